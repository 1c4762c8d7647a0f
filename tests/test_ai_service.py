import pytest

from conftest import FakeOpenAI, make_product
from services.ai_service import (
    ADD_TO_CART_WHICH,
    CHECKOUT_EMPTY_CART,
    FALLBACK_RESPONSE,
    GREETING_RESPONSE,
    ORDER_ID_PROMPT,
    REMOVE_EMPTY_CART,
    VIEW_EMPTY_CART,
    AIService,
    pick_variant,
)
from services.conversation_service import ConversationService
from services.intent_service import ChatIntent


@pytest.fixture
def conversations():
    return ConversationService()


@pytest.fixture
def ai(conversations):
    return AIService(conversations)


def _context(conversations, **values):
    context = conversations.get_or_create("s1")
    context.update(values)
    return context


def test_disabled_without_key(ai):
    assert ai.is_enabled is False


def test_process_message_records_turn(ai, conversations):
    result = ai.process_message("s1", "Hello!")

    assert result["intent"] is ChatIntent.GREETING
    assert result["response"] == GREETING_RESPONSE
    assert result["tool_calls"] == []
    assert result["message"]["role"] == "assistant"

    context = conversations.get_context("s1")
    assert context["current_intent"] == "greeting"
    assert [m["role"] for m in context["messages"]] == ["user", "assistant"]
    assert context["messages"][1]["metadata"] == {"intent": "greeting", "tool_calls": []}
    assert context["messages"][1] is result["message"]


def test_search_plans_query_products(ai, conversations):
    text, calls = ai.generate_response(
        "I'm looking for running shoes", _context(conversations), ChatIntent.PRODUCT_SEARCH
    )

    assert text == 'Let me search for "running shoes" in our store... 🔍'
    assert calls == [{"tool": "query_products", "params": {"query": "running shoes", "limit": 5}}]


def test_add_to_cart_creates_cart_first(ai, conversations):
    products = [make_product(1, "Trail Runner", price="89.00"), make_product(2, "Road Racer")]
    context = _context(conversations, last_products=products)

    text, calls = ai.generate_response("add 2 units of the second one", context, ChatIntent.ADD_TO_CART)

    assert text == "Adding Road Racer to your cart... 🛒"
    assert [c["tool"] for c in calls] == ["create_cart", "add_to_cart"]
    assert calls[1]["params"] == {
        "cart_id": None,
        "items": [{
            "product_id": "gid://shopify/Product/2",
            "variant_id": "gid://shopify/ProductVariant/20",
            "quantity": 2,
            "title": "Road Racer",
            "price": "19.99",
        }],
    }


def test_add_to_cart_by_title(ai, conversations):
    products = [make_product(1, "Trail Runner"), make_product(2, "Road Racer")]
    context = _context(conversations, cart_id="c1", last_products=products)

    _, calls = ai.generate_response("add the trail runner please", context, ChatIntent.ADD_TO_CART)

    assert [c["tool"] for c in calls] == ["add_to_cart"]
    assert calls[0]["params"]["cart_id"] == "c1"
    assert calls[0]["params"]["items"][0]["product_id"] == "gid://shopify/Product/1"


def test_add_to_cart_without_products_asks_which(ai, conversations):
    context = _context(conversations, cart_id="c1")

    text, calls = ai.generate_response("add it", context, ChatIntent.ADD_TO_CART)

    assert text == ADD_TO_CART_WHICH
    assert calls == []


def test_add_to_cart_position_out_of_range(ai, conversations):
    context = _context(conversations, cart_id="c1", last_products=[make_product(1, "Hat")])

    text, calls = ai.generate_response("add the third one", context, ChatIntent.ADD_TO_CART)

    assert text == ADD_TO_CART_WHICH
    assert calls == []


def test_remove_from_cart(ai, conversations):
    cart = {"id": "c1", "items": [
        {"product_id": "p1", "variant_id": "v1", "quantity": 1, "title": "Hat"},
        {"product_id": "p2", "variant_id": "v2", "quantity": 1, "title": "Scarf"},
    ]}
    context = _context(conversations, cart_id="c1", cart=cart)

    text, calls = ai.generate_response("remove the scarf", context, ChatIntent.REMOVE_FROM_CART)

    assert text == "Removing Scarf from your cart..."
    assert calls == [{"tool": "remove_from_cart", "params": {"cart_id": "c1", "item_ids": ["v2"]}}]


def test_remove_from_empty_cart(ai, conversations):
    text, calls = ai.generate_response("remove the first item", _context(conversations),
                                       ChatIntent.REMOVE_FROM_CART)

    assert text == REMOVE_EMPTY_CART
    assert calls == []


@pytest.mark.parametrize("intent,expected", [
    (ChatIntent.VIEW_CART, VIEW_EMPTY_CART),
    (ChatIntent.CHECKOUT, CHECKOUT_EMPTY_CART),
])
def test_cart_intents_without_cart(ai, conversations, intent, expected):
    text, calls = ai.generate_response("cart", _context(conversations), intent)

    assert text == expected
    assert calls == []


def test_checkout_with_cart(ai, conversations):
    cart = {"id": "c1", "items": [{"product_id": "p1", "variant_id": "v1", "quantity": 1, "title": "Hat"}]}
    context = _context(conversations, cart_id="c1", cart=cart)

    _, calls = ai.generate_response("checkout", context, ChatIntent.CHECKOUT)

    assert calls == [{"tool": "begin_checkout", "params": {"cart_id": "c1"}}]


def test_checkout_with_emptied_cart(ai, conversations):
    context = _context(conversations, cart_id="c1", cart={"id": "c1", "items": []})

    text, calls = ai.generate_response("checkout", context, ChatIntent.CHECKOUT)

    assert text == CHECKOUT_EMPTY_CART
    assert calls == []


def test_add_to_cart_title_with_ordinal_word(ai, conversations):
    products = [make_product(1, "Bandage"), make_product(2, "First Aid Kit")]
    context = _context(conversations, cart_id="c1", last_products=products)

    text, calls = ai.generate_response("add the first aid kit", context, ChatIntent.ADD_TO_CART)

    assert text == "Adding First Aid Kit to your cart... 🛒"
    assert calls[0]["params"]["items"][0]["product_id"] == "gid://shopify/Product/2"


def test_add_to_cart_ordinal_still_picks_position(ai, conversations):
    products = [make_product(1, "Bandage"), make_product(2, "First Aid Kit")]
    context = _context(conversations, cart_id="c1", last_products=products)

    text, _ = ai.generate_response("add the first one", context, ChatIntent.ADD_TO_CART)

    assert text == "Adding Bandage to your cart... 🛒"


def test_add_to_cart_last_one(ai, conversations):
    products = [make_product(1, "Bandage"), make_product(2, "Gauze"), make_product(3, "Splint")]
    context = _context(conversations, cart_id="c1", last_products=products)

    text, _ = ai.generate_response("add the last one", context, ChatIntent.ADD_TO_CART)

    assert text == "Adding Splint to your cart... 🛒"


def test_order_status(ai, conversations):
    text, calls = ai.generate_response("Where is my order #1001?", _context(conversations),
                                       ChatIntent.ORDER_STATUS)

    assert text == "Let me check the status of order 1001... 📦"
    assert calls == [{"tool": "order_status", "params": {"order_id": "1001"}}]


def test_order_status_asks_for_number(ai, conversations):
    text, calls = ai.generate_response("track my order", _context(conversations), ChatIntent.ORDER_STATUS)

    assert text == ORDER_ID_PROMPT
    assert calls == []


def test_general_help_fallback_without_client(ai, conversations):
    text, calls = ai.generate_response("what is your return policy?", _context(conversations),
                                       ChatIntent.GENERAL_HELP)

    assert text == FALLBACK_RESPONSE
    assert calls == []


def test_general_help_uses_openai(conversations):
    client = FakeOpenAI(reply="  We accept returns within 30 days.  ")
    ai = AIService(conversations, client=client, model="gpt-test")

    result = ai.process_message("s1", "what is your return policy?")

    assert result["response"] == "We accept returns within 30 days."
    call = client.calls[0]
    assert call["model"] == "gpt-test"
    assert call["messages"][0]["role"] == "system"
    assert "what is your return policy?" in call["messages"][1]["content"]
    assert "Detected intent: general_help" in call["messages"][1]["content"]


def test_general_help_falls_back_on_openai_error(conversations):
    ai = AIService(conversations, client=FakeOpenAI(error=RuntimeError("quota")))

    text, _ = ai.generate_response("tell me a joke", _context(conversations), ChatIntent.GENERAL_HELP)

    assert text == FALLBACK_RESPONSE


def test_pick_variant_prefers_available():
    product = {"variants": [{"id": "a", "available": False}, {"id": "b", "available": True}]}
    assert pick_variant(product)["id"] == "b"
    assert pick_variant({"variants": [{"id": "a", "available": False}]})["id"] == "a"
    assert pick_variant({"variants": []}) is None
