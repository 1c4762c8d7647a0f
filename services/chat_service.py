import logging
from datetime import datetime
from typing import Dict, List, Optional

from models.shop import ShopModel
from services.ai_service import AIService
from services.shopify_admin_service import ShopifyAdminService
from services.tool_service import ToolService
from utils.helpers import ValidationHelpers

logger = logging.getLogger(__name__)


def _format_date(value: Optional[str]) -> str:
    if not value:
        return "Unknown"
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).strftime("%b %d, %Y")
    except ValueError:
        return value


def _render_products(result: Dict) -> str:
    products = result.get("products") or []
    if not products:
        return (
            f'I couldn\'t find any products matching "{result.get("query")}". '
            "Try searching with different keywords or browse our categories."
        )

    lines = [f'I found {result.get("count", len(products))} product(s) for "{result.get("query")}":\n']
    for index, product in enumerate(products, start=1):
        variants = product.get("variants") or []
        first_variant = variants[0] if variants else {}
        lines.append(f"{index}. **{product.get('title')}**")
        lines.append(f"   💰 {first_variant.get('price') or 'Price not available'}")

        description = product.get("description") or ""
        if description:
            suffix = "..." if len(description) > 100 else ""
            lines.append(f"   📝 {description[:100]}{suffix}")

        if first_variant.get("available"):
            lines.append("   ✅ In stock")
        else:
            lines.append("   ❌ Out of stock")
        lines.append("")

    lines.append("Would you like me to add any of these items to your cart? Just let me know which one interests you!")
    return "\n".join(lines)


def _render_cart(result: Dict) -> str:
    cart = result.get("cart") or {}
    items = cart.get("items") or []
    if not items:
        return "Your cart is currently empty. Would you like me to help you find some products to add?"

    lines = [f"🛒 Your cart has {result.get('item_count', len(items))} item(s):\n"]
    for index, line in enumerate(items, start=1):
        price = f" ({line['price']})" if line.get("price") else ""
        lines.append(f"{index}. {line.get('title') or line['variant_id']} x {line['quantity']}{price}")
    lines.append("\nReady to check out, or would you like to keep shopping?")
    return "\n".join(lines)


def _render_order(result: Dict) -> str:
    order = result.get("order")
    if not result.get("found") or not order:
        if result.get("error"):
            return (
                f"⚠️ I couldn't retrieve the status of order \"{result.get('order_id')}\" right now. "
                "Please try again in a moment."
            )
        return (
            f"❌ I couldn't find an order with ID \"{result.get('order_id')}\". "
            "Please check the order number and try again."
        )

    lines = [
        "📦 Here's your order status:\n",
        f"**Order:** {order.get('name')}",
        f"**Status:** {order.get('fulfillmentStatus') or 'Processing'}",
        f"**Total:** {order.get('totalPrice')}",
        f"**Date:** {_format_date(order.get('processedAt'))}",
    ]
    tracking = order.get("trackingInfo") or []
    if tracking:
        lines.append(f"**Tracking:** {tracking[0].get('number')}")
    lines.append("\nIs there anything else you'd like to know about your order?")
    return "\n".join(lines)


def render_tool_results(original_response: str, tool_results: List[Dict]) -> str:
    """
    Build the shopper-facing reply from executed tool results.
    Later results replace earlier text; failures are appended.
    """
    response = original_response

    for tool_result in tool_results:
        tool = tool_result["tool"]
        result = tool_result["result"]

        if not tool_result["success"]:
            response += f"\n\n❌ Error with {tool}: {result.get('error')}"
            continue

        if tool == "query_products":
            response = _render_products(result)
        elif tool == "create_cart":
            response = (
                f"🛒 Great! I've created a new shopping cart for you (ID: {result['cart_id']}). "
                "You can now start adding products to it!"
            )
        elif tool == "add_to_cart":
            response = (
                f"✅ {result['message']}! Your cart now contains {result.get('item_count', 0)} item(s). "
                "Would you like to continue shopping or proceed to checkout?"
            )
        elif tool == "remove_from_cart":
            response = f"🗑️ {result['message']}. Is there anything else you'd like to remove or add to your cart?"
        elif tool == "view_cart":
            response = _render_cart(result)
        elif tool == "begin_checkout":
            response = (
                f"🛒 Perfect! I've prepared your checkout. You can complete your purchase here: "
                f"{result['checkout_url']}\n\n"
                "Click the link above to review your items and complete your order securely."
            )
        elif tool == "order_status":
            response = _render_order(result)

    return response


class ChatService:
    """Runs one chat turn: plan with the AI service, execute tools, write the reply back"""

    def __init__(self, ai_service: AIService, tool_service: ToolService,
                 shop_model: Optional[ShopModel] = None, api_version: str = "2024-10"):
        self.ai_service = ai_service
        self.tool_service = tool_service
        self.shop_model = shop_model
        self.api_version = api_version

    @property
    def conversation_service(self):
        return self.ai_service.conversation_service

    def get_admin_client(self, shop_domain: Optional[str]) -> Optional[ShopifyAdminService]:
        """Admin client for an installed, active shop; None means mock data"""
        if not shop_domain or not self.shop_model:
            return None

        try:
            shop = self.shop_model.get_shop(shop_domain)
        except Exception as e:
            logger.warning(f"Could not load shop record for {shop_domain}: {e}")
            return None

        if not shop or not shop.get("is_active") or not shop.get("access_token"):
            return None

        return ShopifyAdminService(shop_domain, shop["access_token"], self.api_version)

    def handle_message(self, session_id: str, message: str, shop_domain: Optional[str] = None) -> Dict:
        message = ValidationHelpers.sanitize_input(message)
        if not message:
            raise ValueError("Message is required")

        admin = self.get_admin_client(shop_domain)
        ai_response = self.ai_service.process_message(session_id, message)
        context = ai_response["context"]
        final_response = ai_response["response"]

        tool_results = []
        for call in ai_response["tool_calls"]:
            params = dict(call.get("params") or {})
            if "cart_id" in params and not params["cart_id"]:
                params["cart_id"] = context.get("cart_id")

            tool_result = self.tool_service.execute_tool_call({"tool": call["tool"], "params": params}, admin)
            self._update_context(context, tool_result)
            tool_results.append(tool_result)

        if tool_results:
            final_response = render_tool_results(final_response, tool_results)
            # Replace this turn's stored draft with what the shopper sees
            ai_response["message"]["content"] = final_response

        self.conversation_service.save(context)

        return {
            "success": True,
            "response": final_response,
            "intent": ai_response["intent"].value,
            "sessionId": session_id,
            "tool_calls": [r["tool"] for r in tool_results],
            "tool_results": tool_results,
        }

    def clear_conversation(self, session_id: str) -> bool:
        """Forget a session along with the cart it created"""
        context = self.conversation_service.pop(session_id)
        if not context:
            return False
        self._release_cart(context)
        return True

    def cleanup_idle_conversations(self, max_age_hours: int = 24) -> int:
        expired = self.conversation_service.expire_conversations(max_age_hours)
        for context in expired:
            self._release_cart(context)
        return len(expired)

    def _release_cart(self, context: Dict) -> None:
        if context.get("cart_id"):
            self.tool_service.cart_service.delete_cart(context["cart_id"])

    @staticmethod
    def _update_context(context: Dict, tool_result: Dict) -> None:
        if not tool_result["success"]:
            return

        result = tool_result["result"]
        tool = tool_result["tool"]

        if tool == "create_cart":
            context["cart_id"] = result["cart_id"]
            context["cart"] = {"id": result["cart_id"], "items": []}
        elif tool == "query_products":
            context["last_products"] = result.get("products") or []
        elif result.get("cart"):
            context["cart"] = result["cart"]
