import re
import json
import secrets
import logging
from urllib.parse import urlparse
from typing import Dict, Optional
from datetime import datetime

logger = logging.getLogger(__name__)

SHOP_DOMAIN_PATTERN = re.compile(r'^[a-z0-9][a-z0-9\-]*\.myshopify\.com$')
CONTROL_CHARS = re.compile(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]')


class SecurityHelpers:

    @staticmethod
    def generate_nonce() -> str:
        """Random hex string used as the OAuth state parameter"""
        return secrets.token_hex(16)


class ValidationHelpers:
    """Checks applied to values coming from the storefront or from Shopify"""

    @staticmethod
    def validate_shop_domain(shop: str) -> bool:
        """Only <store>.myshopify.com hosts are accepted, the form Shopify uses in OAuth requests"""
        if not shop or len(shop) > 253:
            return False
        return SHOP_DOMAIN_PATTERN.match(shop) is not None

    @staticmethod
    def sanitize_input(text: str, max_length: int = 1000) -> str:
        """
        Clean a shopper message before it reaches the classifier

        Args:
            text: Raw message
            max_length: Longer messages are cut to this many characters

        Returns:
            Message without control characters, trimmed; "" for empty input
        """
        if not text:
            return ""
        return CONTROL_CHARS.sub('', text).strip()[:max_length]


class ResponseHelpers:
    """JSON bodies shared by the Shopify plumbing routes"""

    @staticmethod
    def _now() -> str:
        return datetime.utcnow().isoformat()

    @staticmethod
    def success_response(data: Optional[Dict] = None, message: str = "Success") -> Dict:
        body = {"success": True, "message": message, "timestamp": ResponseHelpers._now()}
        if data:
            body["data"] = data
        return body

    @staticmethod
    def error_response(message: str, error_code: Optional[str] = None) -> Dict:
        body = {"success": False, "error": message, "timestamp": ResponseHelpers._now()}
        if error_code:
            body["error_code"] = error_code
        return body


class LoggingHelpers:

    @staticmethod
    def log_security_event(event_type: str, shop: Optional[str] = None, details: Optional[Dict] = None):
        """Security events go out as one JSON line at WARNING"""
        event = {
            "event_type": event_type,
            "shop": shop,
            "details": details or {},
            "timestamp": datetime.utcnow().isoformat()
        }
        logger.warning(f"Security Event: {json.dumps(event)}")

    @staticmethod
    def log_rate_limit_hit(shop: str, plan_type: str):
        LoggingHelpers.log_security_event("RATE_LIMIT_EXCEEDED", shop=shop, details={"plan_type": plan_type})


class DataHelpers:

    @staticmethod
    def clean_domain_for_storage(domain: str) -> str:
        """
        Reduce whatever the storefront sent ("https://Store.myshopify.com/", "store.myshopify.com:443")
        to the bare lower-case host used as the shops table key
        """
        if not domain:
            return ""

        domain = domain.strip()
        if '://' in domain:
            domain = urlparse(domain).netloc
        host = domain.split('/')[0].split(':')[0].lower()
        return host[4:] if host.startswith('www.') else host

    @staticmethod
    def mask_sensitive_data(data: Optional[str], show_last: int = 4) -> str:
        """shpat_abcd1234 -> **********1234"""
        if not data:
            return ""
        if len(data) <= show_last:
            return "*" * len(data)
        return "*" * (len(data) - show_last) + data[-show_last:]
