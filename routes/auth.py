from flask import Blueprint, request, jsonify
from flask_cors import cross_origin
import logging
import uuid
from services.jwt_service import JWTService
from services.rate_limit_service import PLAN_RATE_LIMITS
from models.shop import ShopModel
from utils.helpers import DataHelpers, ValidationHelpers, LoggingHelpers

auth_bp = Blueprint('auth', __name__)
logger = logging.getLogger(__name__)

# Initialize services
jwt_service = JWTService()
shop_model = ShopModel()


@auth_bp.route('/authenticate', methods=['POST', 'OPTIONS'])
@cross_origin(origins="*", methods=['POST', 'OPTIONS'],
              allow_headers=['Content-Type', 'Authorization'])
def authenticate_widget():
    """
    Authenticate the storefront chat panel and return a JWT token
    POST /widget/authenticate  {shop, nonce, session_id?}
    """
    if request.method == 'OPTIONS':
        return jsonify({'status': 'ok'}), 200

    try:
        data = request.get_json(silent=True) or {}

        for field in ('shop', 'nonce'):
            if not data.get(field):
                return jsonify({
                    "error": "Missing required field",
                    "field": field
                }), 400

        shop = DataHelpers.clean_domain_for_storage(data['shop'])
        if not ValidationHelpers.validate_shop_domain(shop):
            return jsonify({
                "error": "Invalid shop",
                "message": "shop must be a myshopify.com domain"
            }), 400

        session_id = data.get('session_id') or f"session_{uuid.uuid4().hex}"

        logger.info(f"Widget authentication request - shop: {shop}")

        record = shop_model.get_shop(shop)
        if not record or not record.get('is_active', False):
            LoggingHelpers.log_security_event("UNKNOWN_SHOP", shop=shop)
            return jsonify({
                "error": "Invalid shop",
                "message": "Shop has not installed the app"
            }), 404

        if not record.get('chatbot_enabled', True):
            logger.warning(f"Authentication failed - chatbot disabled for shop: {shop}")
            return jsonify({
                "error": "Chatbot disabled",
                "message": "The shopping assistant has been turned off for this store"
            }), 403

        plan_type = record.get('plan_type', 'free')
        token = jwt_service.generate_token({
            'shop': shop,
            'nonce': data['nonce'],
            'session_id': session_id,
            'plan_type': plan_type
        })

        logger.info(f"Widget authentication successful - shop: {shop}")

        return jsonify({
            "token": token,
            "expires_in": jwt_service.default_expiry,
            "session_id": session_id,
            "rate_limits": PLAN_RATE_LIMITS.get(plan_type, PLAN_RATE_LIMITS['free'])
        })

    except Exception as e:
        logger.error(f"Authentication error: {str(e)}")
        return jsonify({
            "error": "Authentication failed",
            "message": "Internal authentication error"
        }), 500


def _bearer_token():
    auth_header = request.headers.get('Authorization', '')
    if not auth_header.startswith('Bearer '):
        return None
    return auth_header[len('Bearer '):]


@auth_bp.route('/verify', methods=['POST', 'OPTIONS'])
@cross_origin(origins="*", methods=['POST', 'OPTIONS'],
              allow_headers=['Content-Type', 'Authorization'])
def verify_token():
    """POST /widget/verify -> {valid, payload}"""
    if request.method == 'OPTIONS':
        return jsonify({'status': 'ok'}), 200

    token = _bearer_token()
    if token is None:
        return jsonify({"error": "Invalid authorization header"}), 401

    payload = jwt_service.verify_token(token)
    if not payload:
        return jsonify({"error": "Invalid token"}), 401
    return jsonify({"valid": True, "payload": payload})


@auth_bp.route('/refresh', methods=['POST', 'OPTIONS'])
@cross_origin(origins="*", methods=['POST', 'OPTIONS'],
              allow_headers=['Content-Type', 'Authorization'])
def refresh_token():
    """POST /widget/refresh -> a new token for the same shop and session"""
    if request.method == 'OPTIONS':
        return jsonify({'status': 'ok'}), 200

    token = _bearer_token()
    new_token = jwt_service.refresh_token(token) if token else None
    if not new_token:
        return jsonify({"error": "Invalid token"}), 401

    return jsonify({"token": new_token, "expires_in": jwt_service.default_expiry})
