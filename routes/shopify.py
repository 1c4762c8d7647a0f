from flask import Blueprint, request, jsonify
import logging
from datetime import datetime
from models.shop import ShopModel
from services.shopify_auth_service import ShopifyAuthService, ShopifyAuthError
from utils.helpers import ResponseHelpers, SecurityHelpers, ValidationHelpers, LoggingHelpers

shopify_bp = Blueprint('shopify', __name__)
logger = logging.getLogger(__name__)

shop_model = ShopModel()
auth_service = ShopifyAuthService(shop_model)


@shopify_bp.route('/install', methods=['GET'])
def install():
    shop = (request.args.get('shop') or '').lower()
    if not ValidationHelpers.validate_shop_domain(shop):
        return jsonify(ResponseHelpers.error_response("Valid shop parameter required")), 400

    state = SecurityHelpers.generate_nonce()
    auth_url = auth_service.get_install_url(shop, state)
    return jsonify({"auth_url": auth_url, "state": state})


@shopify_bp.route('/auth/callback', methods=['GET'])
def auth_callback():
    params = request.args.to_dict()
    shop = (params.get('shop') or '').lower()
    code = params.get('code')

    if not ValidationHelpers.validate_shop_domain(shop) or not code:
        return jsonify(ResponseHelpers.error_response("shop and code are required")), 400

    if not auth_service.verify_hmac(params):
        LoggingHelpers.log_security_event("OAUTH_HMAC_MISMATCH", shop=shop)
        return jsonify(ResponseHelpers.error_response("HMAC validation failed", "HMAC_INVALID")), 403

    try:
        result = auth_service.install_shop(shop, code)
        return jsonify({
            "success": True,
            "shop": result["shop"],
            "redirect": f"https://{shop}/admin/apps"
        })
    except ShopifyAuthError as e:
        logger.error(f"OAuth error: {e}")
        return jsonify(ResponseHelpers.error_response(str(e), "OAUTH_FAILED")), 502
    except Exception as e:
        logger.error(f"OAuth error: {e}")
        return jsonify(ResponseHelpers.error_response(str(e))), 500


@shopify_bp.route('/webhooks/uninstall', methods=['POST'])
def handle_uninstall():
    """app/uninstalled webhook"""
    body = request.get_data()
    if not auth_service.verify_webhook(body, request.headers.get('X-Shopify-Hmac-Sha256')):
        LoggingHelpers.log_security_event("WEBHOOK_HMAC_MISMATCH",
                                          shop=request.headers.get('X-Shopify-Shop-Domain'))
        return jsonify(ResponseHelpers.error_response("Invalid webhook signature")), 401

    shop = request.headers.get('X-Shopify-Shop-Domain', '').lower()
    if not shop:
        return jsonify(ResponseHelpers.error_response("Missing shop domain header")), 400

    shop_model.deactivate_shop(shop)
    logger.info(f"App uninstalled from {shop}")
    return jsonify(ResponseHelpers.success_response(message="Shop deactivated")), 200


@shopify_bp.route('/health', methods=['GET', 'OPTIONS'])
def shopify_health():
    """Health check for Shopify services"""
    if request.method == 'OPTIONS':
        return jsonify({'status': 'ok'}), 200

    health_status = {
        "status": "healthy",
        "service": "shopify",
        "timestamp": datetime.utcnow().isoformat(),
        "oauth_configured": bool(auth_service.api_key and auth_service.api_secret),
        "endpoints": {
            "install": "/shopify/install",
            "callback": "/shopify/auth/callback",
            "uninstall_webhook": "/shopify/webhooks/uninstall",
            "health": "/shopify/health"
        }
    }

    if not health_status["oauth_configured"]:
        health_status["status"] = "degraded"

    status_code = 200 if health_status["status"] == "healthy" else 503
    return jsonify(health_status), status_code
