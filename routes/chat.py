from flask import Blueprint, request, jsonify, g
import logging
import os
import time

from middleware.widget_auth import WidgetAuthMiddleware
from models.shop import ShopModel
from services.ai_service import AIService
from services.cart_service import CartService
from services.chat_service import ChatService
from services.conversation_service import ConversationService
from services.intent_service import IntentClassifier
from services.jwt_service import JWTService
from services.rate_limit_service import RateLimitService
from services.tool_service import ToolService
from utils.helpers import LoggingHelpers

chat_bp = Blueprint('chat', __name__)
logger = logging.getLogger(__name__)

# Initialize services
jwt_service = JWTService()
widget_auth = WidgetAuthMiddleware(jwt_service)
rate_limit_service = RateLimitService()
conversation_service = ConversationService()
cart_service = CartService()
tool_service = ToolService(cart_service, os.getenv("FALLBACK_SHOP_DOMAIN", "example.myshopify.com"))
ai_service = AIService(
    conversation_service,
    IntentClassifier(),
    api_key=os.getenv("OPENAI_API_KEY"),
    model=os.getenv("OPENAI_MODEL", "gpt-4o-mini")
)
chat_service = ChatService(
    ai_service,
    tool_service,
    ShopModel(),
    api_version=os.getenv("SHOPIFY_API_VERSION", "2024-10")
)

CONVERSATION_MAX_AGE_HOURS = int(os.getenv("CONVERSATION_MAX_AGE_HOURS", "24"))
CLEANUP_INTERVAL_SECONDS = 600
_last_cleanup = {"at": time.time()}


def conversation_key(shop: str, session_id: str) -> str:
    """Sessions are namespaced per shop so two stores never share a conversation"""
    return f"{shop}:{session_id}"


def _maybe_cleanup_conversations():
    now = time.time()
    if now - _last_cleanup["at"] >= CLEANUP_INTERVAL_SECONDS:
        _last_cleanup["at"] = now
        chat_service.cleanup_idle_conversations(CONVERSATION_MAX_AGE_HOURS)


def _request_data() -> dict:
    if request.is_json:
        return request.get_json(silent=True) or {}
    return request.form.to_dict()


@chat_bp.route('/chat', methods=['POST', 'OPTIONS'])
@widget_auth.require_widget_token
def chat_endpoint():
    """
    Handle one shopper message
    POST /api/chat  {message, sessionId}
    """
    shop = g.widget_token['shop']
    plan_type = g.widget_token.get('plan_type', 'free')

    data = _request_data()
    message = (data.get('message') or '').strip()
    session_id = data.get('sessionId') or data.get('session_id')

    if not message or not session_id:
        return jsonify({
            "success": False,
            "error": "Message and sessionId are required"
        }), 400

    if not rate_limit_service.check_rate_limit(shop, plan_type):
        LoggingHelpers.log_rate_limit_hit(shop, plan_type)
        return jsonify({
            "success": False,
            "error": "Rate limit exceeded",
            "message": "Too many requests. Please wait before trying again."
        }), 429

    try:
        _maybe_cleanup_conversations()

        result = chat_service.handle_message(conversation_key(shop, session_id), message, shop)
        rate_limit_service.increment_usage(shop, plan_type)

        logger.info(f"Chat turn for {shop} handled, intent={result['intent']}, tools={result['tool_calls']}")
        return jsonify({
            "success": True,
            "response": result["response"],
            "intent": result["intent"],
            "sessionId": session_id,
            "tool_calls": result["tool_calls"]
        })

    except ValueError as e:
        return jsonify({"success": False, "error": str(e)}), 400

    except Exception as e:
        logger.exception("Chat API error")
        return jsonify({
            "success": False,
            "error": str(e) or "An unexpected error occurred"
        }), 500


@chat_bp.route('/chat/<session_id>', methods=['GET', 'OPTIONS'])
@widget_auth.require_widget_token
def chat_history(session_id):
    """Return the stored conversation for a session"""
    key = conversation_key(g.widget_token['shop'], session_id)
    context = conversation_service.get_context(key)

    return jsonify({
        "success": True,
        "sessionId": session_id,
        "messages": conversation_service.get_history(key),
        "cart_id": context.get("cart_id") if context else None,
        "current_intent": context.get("current_intent") if context else None
    })


@chat_bp.route('/chat/<session_id>', methods=['DELETE'])
@widget_auth.require_widget_token
def clear_chat(session_id):
    cleared = chat_service.clear_conversation(conversation_key(g.widget_token['shop'], session_id))
    return jsonify({"success": True, "cleared": cleared, "sessionId": session_id})
