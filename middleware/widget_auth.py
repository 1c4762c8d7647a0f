from functools import wraps
from flask import request, jsonify, g
import logging
from services.jwt_service import JWTService

logger = logging.getLogger(__name__)


class WidgetAuthMiddleware:
    def __init__(self, jwt_service: JWTService):
        self.jwt_service = jwt_service

    def require_widget_token(self, f):
        """
        Decorator to require a valid storefront widget token
        """
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if request.method == 'OPTIONS':
                return jsonify({'status': 'ok'}), 200

            auth_header = request.headers.get('Authorization', '')
            if not auth_header.startswith('Bearer '):
                return jsonify({
                    'success': False,
                    'error': 'Authorization required',
                    'message': 'Valid token required for chat access'
                }), 401

            token = auth_header.replace('Bearer ', '', 1)
            payload = self.jwt_service.verify_token(token)
            if not payload or not payload.get('shop'):
                return jsonify({
                    'success': False,
                    'error': 'Invalid token',
                    'message': 'Token is invalid or expired'
                }), 401

            g.widget_token = payload
            return f(*args, **kwargs)

        return decorated_function

    @staticmethod
    def get_current_shop():
        token = getattr(g, 'widget_token', None)
        return token.get('shop') if token else None
