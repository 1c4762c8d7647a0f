# routes/__init__.py

from .auth import auth_bp
from .chat import chat_bp
from .chat_ui import chat_ui_bp
from .mcp import mcp_bp
from .shopify import shopify_bp

__all__ = [
    'auth_bp',
    'chat_bp',
    'chat_ui_bp',
    'mcp_bp',
    'shopify_bp'
]
