from flask import Flask, request, jsonify, make_response
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
import os
import logging
from typing import Dict, Optional
import sentry_sdk
from sentry_sdk.integrations.flask import FlaskIntegration
from datetime import datetime
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

SECRET_KEY = os.getenv('JWT_SECRET')
SENTRY_DSN = os.getenv('SENTRY_DSN')
REDIS_URL = os.getenv('REDIS_URL')
SUPABASE_URL = os.getenv('SUPABASE_URL')
SUPABASE_KEY = os.getenv('SUPABASE_KEY')
FLASK_ENV = os.getenv('FLASK_ENV', 'production')

VERSION = "1.0.0"

CORS_HEADERS = {
    'Access-Control-Allow-Methods': 'GET, POST, PUT, DELETE, OPTIONS',
    'Access-Control-Allow-Headers': 'Content-Type, Authorization, X-Requested-With, Accept, Origin',
    'Access-Control-Max-Age': '86400'
}

# Logging setup
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)


def create_app(overrides: Optional[Dict] = None) -> Flask:
    app = Flask(__name__)
    app.config.update(
        SECRET_KEY=SECRET_KEY,
        SENTRY_DSN=SENTRY_DSN,
        SUPABASE_URL=SUPABASE_URL,
        SUPABASE_KEY=SUPABASE_KEY,
        FLASK_ENV=FLASK_ENV,
        RATELIMIT_STORAGE_URI=REDIS_URL or 'memory://',
        RATELIMIT_DEFAULT='1000 per hour'
    )
    if overrides:
        app.config.update(overrides)

    # Sentry setup
    if app.config.get('SENTRY_DSN') and not app.testing:
        sentry_sdk.init(
            dsn=app.config['SENTRY_DSN'],
            integrations=[FlaskIntegration()],
            traces_sample_rate=1.0,
            send_default_pii=False
        )

    # Rate limiter setup
    Limiter(
        key_func=get_remote_address,
        app=app,
        storage_uri=app.config['RATELIMIT_STORAGE_URI'],
        default_limits=[app.config['RATELIMIT_DEFAULT']]
    )

    CORS(app,
         origins="*",
         methods=['POST', 'GET', 'OPTIONS', 'PUT', 'DELETE'],
         allow_headers=['Content-Type', 'Authorization', 'X-Requested-With', 'Accept', 'Origin'],
         supports_credentials=False,
         max_age=86400
    )

    @app.after_request
    def after_request(response):
        response.headers['Access-Control-Allow-Origin'] = request.headers.get('Origin') or '*'
        response.headers.update(CORS_HEADERS)
        return response

    @app.before_request
    def handle_preflight():
        if request.method == "OPTIONS":
            response = make_response()
            response.headers['Access-Control-Allow-Origin'] = request.headers.get('Origin') or '*'
            response.headers.update(CORS_HEADERS)
            response.headers['Content-Type'] = 'application/json'
            return response, 200

    # Import and register blueprints AFTER CORS setup
    from routes.auth import auth_bp
    from routes.chat import chat_bp
    from routes.chat_ui import chat_ui_bp
    from routes.mcp import mcp_bp
    from routes.shopify import shopify_bp

    app.register_blueprint(auth_bp, url_prefix='/widget')      # Widget authentication
    app.register_blueprint(chat_bp, url_prefix='/api')         # Chat API
    app.register_blueprint(mcp_bp)                             # MCP tool server
    app.register_blueprint(chat_ui_bp)                         # Chat panel
    app.register_blueprint(shopify_bp, url_prefix='/shopify')  # App install + webhooks

    register_health_routes(app)
    register_error_handlers(app)

    return app


def register_health_routes(app: Flask) -> None:

    @app.route('/')
    def health():
        return jsonify({
            "status": "healthy",
            "service": "ShopBot API",
            "version": VERSION,
            "features": [
                "Intent Detection",
                "Product Search",
                "Cart Management",
                "Checkout",
                "Order Status",
                "MCP Tool Server"
            ],
            "endpoints": {
                "widget_auth": "/widget/*",
                "chat": "/api/chat",
                "chat_ui": "/chat/ui",
                "mcp": "/mcp",
                "shopify": "/shopify/*",
                "health": "/"
            },
            "timestamp": datetime.utcnow().isoformat()
        })

    @app.route('/health/detailed', methods=['GET'])
    def detailed_health():
        """Detailed health check showing all service statuses"""
        from routes.chat import ai_service, chat_service, conversation_service, rate_limit_service

        health_status = {
            "status": "healthy",
            "timestamp": datetime.utcnow().isoformat(),
            "version": VERSION,
            "services": {
                "chat": "healthy",
                "ai": "enabled" if ai_service.is_enabled else "fallback",
                "redis": "healthy" if rate_limit_service.is_healthy() else "unavailable",
                "database": "unknown"
            },
            "active_sessions": conversation_service.session_count(),
            "environment": app.config.get('FLASK_ENV', 'production')
        }

        if app.config.get('SUPABASE_URL') and app.config.get('SUPABASE_KEY'):
            if chat_service.shop_model.is_healthy():
                health_status["services"]["database"] = "healthy"
            else:
                health_status["services"]["database"] = "unhealthy"
                health_status["status"] = "degraded"

        status_code = 200 if health_status["status"] == "healthy" else 503
        return jsonify(health_status), status_code


def register_error_handlers(app: Flask) -> None:

    @app.errorhandler(400)
    def bad_request_handler(e):
        return jsonify({
            "error": "Bad request",
            "message": getattr(e, 'description', 'Invalid request')
        }), 400

    @app.errorhandler(401)
    def unauthorized_handler(e):
        return jsonify({
            "error": "Unauthorized",
            "message": "Invalid or missing authentication token"
        }), 401

    @app.errorhandler(403)
    def forbidden_handler(e):
        return jsonify({
            "error": "Forbidden",
            "message": "Access denied for this shop"
        }), 403

    @app.errorhandler(404)
    def not_found_handler(e):
        return jsonify({
            "error": "Not found",
            "message": "The requested resource does not exist"
        }), 404

    @app.errorhandler(405)
    def method_not_allowed_handler(e):
        return jsonify({
            "success": False,
            "error": "Method not allowed"
        }), 405

    @app.errorhandler(429)
    def rate_limit_handler(e):
        return jsonify({
            "error": "Rate limit exceeded",
            "message": "Too many requests. Please wait before trying again.",
            "retry_after": getattr(e, 'retry_after', 60)
        }), 429

    @app.errorhandler(500)
    def internal_error_handler(e):
        logger.error(f"Internal server error: {e}")
        return jsonify({
            "error": "Internal server error",
            "message": "Something went wrong on our end"
        }), 500


app = create_app()

if __name__ == '__main__':
    app.run(debug=os.getenv('FLASK_ENV') == 'development', host='0.0.0.0', port=5000)
