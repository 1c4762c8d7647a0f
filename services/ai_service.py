import logging
from typing import Dict, List, Optional, Tuple

from openai import OpenAI

from services.conversation_service import ConversationService
from services.intent_service import ChatIntent, IntentClassifier

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a helpful Shopify store assistant chatbot. Your role is to help customers:

1. Find products they're looking for
2. Add items to their shopping cart
3. Manage their cart (add/remove items)
4. Guide them through checkout
5. Check order status
6. Provide general shopping assistance

IMPORTANT GUIDELINES:
- Always be friendly, helpful, and professional
- Ask clarifying questions when product searches are vague
- Suggest related or complementary products when appropriate
- Provide clear pricing and availability information
- Guide users through the shopping process step by step
- Handle errors gracefully and offer alternatives

The store can: search products, create a cart, add or remove cart items, show the cart,
start checkout and look up an order by its number. Point the customer to these when it helps.

Always respond in a conversational, helpful manner. If you're unsure about something,
ask for clarification rather than making assumptions."""

GREETING_RESPONSE = (
    "Hello! Welcome to our store! 👋 I'm here to help you find amazing products and make "
    "your shopping experience smooth. What can I help you with today?"
)
SEARCH_CLARIFICATION = (
    "I'd be happy to help you find products! Could you tell me what you're looking for? "
    "For example, you could say 'I'm looking for running shoes' or 'Show me winter jackets'."
)
ADD_TO_CART_RESPONSE = "I'll help you add items to your cart! Let me set that up for you... 🛒"
ADD_TO_CART_WHICH = (
    "Which product would you like to add? Search for something first, then tell me "
    "something like 'add the first one'."
)
REMOVE_EMPTY_CART = "Your cart is already empty. Would you like me to help you find some products?"
REMOVE_WHICH = "Which item would you like to remove? You can say 'remove the first item' or name the product."
VIEW_EMPTY_CART = "Your cart is currently empty. Would you like me to help you find some products to add?"
CHECKOUT_EMPTY_CART = (
    "You don't have any items in your cart yet. Would you like me to help you find some products first?"
)
ORDER_ID_PROMPT = (
    "I can help you check your order status! Please provide your order number "
    "(it usually starts with # followed by numbers)."
)
AI_DEFAULT_RESPONSE = (
    "I'm here to help! You can ask me to search for products, manage your cart, or check "
    "order status. What would you like to do?"
)
FALLBACK_RESPONSE = (
    "I'm here to help with your shopping! You can ask me to search for products, add items "
    "to cart, or check your orders. What can I do for you?"
)


def pick_variant(product: Dict) -> Optional[Dict]:
    """First available variant, else the first one listed"""
    variants = product.get("variants") or []
    for variant in variants:
        if variant.get("available"):
            return variant
    return variants[0] if variants else None


class AIService:
    """
    Turns a shopper message into an intent, a reply draft and the tool calls
    needed to fulfil it. Free-form questions go to OpenAI when a key is set.
    """

    def __init__(self, conversation_service: ConversationService,
                 classifier: Optional[IntentClassifier] = None,
                 api_key: Optional[str] = None,
                 model: str = "gpt-4o-mini",
                 client=None):
        self.conversation_service = conversation_service
        self.classifier = classifier or IntentClassifier()
        self.model = model
        self.client = client

        if self.client is None and api_key:
            try:
                self.client = OpenAI(api_key=api_key)
                logger.info("OpenAI client initialized successfully")
            except Exception as e:
                logger.error(f"Failed to initialize OpenAI client: {e}")
                self.client = None

        if self.client is None:
            logger.warning("OPENAI_API_KEY not set. AI features will use fallback responses.")

    @property
    def is_enabled(self) -> bool:
        return self.client is not None

    def process_message(self, session_id: str, user_message: str) -> Dict:
        context = self.conversation_service.get_or_create(session_id)
        self.conversation_service.add_message(context, "user", user_message)

        intent = self.classifier.classify(user_message)
        response, tool_calls = self.generate_response(user_message, context, intent)

        reply = self.conversation_service.add_message(
            context,
            "assistant",
            response,
            metadata={"intent": intent.value, "tool_calls": [tc["tool"] for tc in tool_calls]},
        )

        context["current_intent"] = intent.value
        self.conversation_service.save(context)

        return {
            "response": response,
            "intent": intent,
            "tool_calls": tool_calls,
            "context": context,
            "message": reply,
        }

    def generate_response(self, message: str, context: Dict, intent: ChatIntent) -> Tuple[str, List[Dict]]:
        tool_calls: List[Dict] = []

        if intent == ChatIntent.GREETING:
            return GREETING_RESPONSE, tool_calls

        if intent == ChatIntent.PRODUCT_SEARCH:
            search_query = self.classifier.extract_search_query(message)
            if not search_query:
                return SEARCH_CLARIFICATION, tool_calls
            tool_calls.append({"tool": "query_products", "params": {"query": search_query, "limit": 5}})
            return f'Let me search for "{search_query}" in our store... 🔍', tool_calls

        if intent == ChatIntent.ADD_TO_CART:
            if not context.get("cart_id"):
                tool_calls.append({"tool": "create_cart", "params": {}})

            item = self._resolve_cart_item(message, context.get("last_products") or [])
            if item:
                # cart_id may still be pending on the create_cart call above
                tool_calls.append({
                    "tool": "add_to_cart",
                    "params": {"cart_id": context.get("cart_id"), "items": [item]},
                })
                return f"Adding {item['title']} to your cart... 🛒", tool_calls

            if tool_calls:
                return ADD_TO_CART_RESPONSE, tool_calls
            return ADD_TO_CART_WHICH, tool_calls

        if intent == ChatIntent.REMOVE_FROM_CART:
            cart = context.get("cart") or {}
            if not context.get("cart_id") or not cart.get("items"):
                return REMOVE_EMPTY_CART, tool_calls

            line = self._pick(message, cart["items"])
            if not line:
                return REMOVE_WHICH, tool_calls

            tool_calls.append({
                "tool": "remove_from_cart",
                "params": {"cart_id": context["cart_id"], "item_ids": [line["variant_id"]]},
            })
            return f"Removing {line.get('title') or 'that item'} from your cart...", tool_calls

        if intent == ChatIntent.VIEW_CART:
            if not context.get("cart_id"):
                return VIEW_EMPTY_CART, tool_calls
            tool_calls.append({"tool": "view_cart", "params": {"cart_id": context["cart_id"]}})
            return "Let me show you what's in your cart...", tool_calls

        if intent == ChatIntent.CHECKOUT:
            if not context.get("cart_id") or not (context.get("cart") or {}).get("items"):
                return CHECKOUT_EMPTY_CART, tool_calls
            tool_calls.append({"tool": "begin_checkout", "params": {"cart_id": context["cart_id"]}})
            return "Great! Let me start the checkout process for you... 💳", tool_calls

        if intent == ChatIntent.ORDER_STATUS:
            order_id = self.classifier.extract_order_id(message)
            if not order_id:
                return ORDER_ID_PROMPT, tool_calls
            tool_calls.append({"tool": "order_status", "params": {"order_id": order_id}})
            return f"Let me check the status of order {order_id}... 📦", tool_calls

        return self._general_help(message, context, intent), tool_calls

    def _general_help(self, message: str, context: Dict, intent: ChatIntent) -> str:
        if not self.is_enabled:
            return FALLBACK_RESPONSE

        history = self.conversation_service.format_history(context, limit=10)
        prompt = (
            f"Based on this conversation history:\n{history}\n\n"
            f'User\'s latest message: "{message}"\n'
            f"Detected intent: {intent.value}\n\n"
            "Please provide a helpful response as a shopping assistant."
        )

        try:
            completion = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=0.5,
            )
            reply = (completion.choices[0].message.content or "").strip()
            return reply or AI_DEFAULT_RESPONSE
        except Exception as e:
            logger.error(f"AI generation error: {e}")
            return FALLBACK_RESPONSE

    def _pick(self, message: str, candidates: List[Dict]) -> Optional[Dict]:
        """Choose a listed product or cart line by title mention or by position"""
        if not candidates:
            return None

        lower_message = message.lower()
        mentioned = [
            c for c in candidates
            if c.get("title") and c["title"].lower() in lower_message
        ]

        position = self.classifier.extract_item_position(message)
        if position:
            # "first aid kit" names a product, not a position
            for candidate in mentioned:
                if self.classifier.extract_item_position(candidate["title"]) is not None:
                    return candidate
            index = len(candidates) - 1 if position == -1 else position - 1
            return candidates[index] if 0 <= index < len(candidates) else None

        if mentioned:
            return mentioned[0]
        return candidates[0] if len(candidates) == 1 else None

    def _resolve_cart_item(self, message: str, products: List[Dict]) -> Optional[Dict]:
        product = self._pick(message, products)
        if not product:
            return None

        variant = pick_variant(product)
        if not variant:
            return None

        return {
            "product_id": product["id"],
            "variant_id": variant["id"],
            "quantity": self.classifier.extract_quantity(message),
            "title": product.get("title", ""),
            "price": variant.get("price"),
        }
