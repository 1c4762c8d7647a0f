import os
import hmac
import base64
import hashlib
import logging
from typing import Dict, Optional
from urllib.parse import urlencode

import requests

from models.shop import ShopModel
from utils.helpers import DataHelpers

logger = logging.getLogger(__name__)


class ShopifyAuthError(Exception):
    pass


class ShopifyAuthService:
    def __init__(self, shop_model: Optional[ShopModel] = None):
        self.api_key = os.getenv('SHOPIFY_API_KEY')
        self.api_secret = os.getenv('SHOPIFY_API_SECRET') or ''
        self.scopes = os.getenv('SHOPIFY_SCOPES', "read_products,read_orders")
        self.redirect_uri = os.getenv('SHOPIFY_REDIRECT_URI', 'http://localhost:5000/shopify/auth/callback')
        self.shop_model = shop_model or ShopModel()

    def get_install_url(self, shop: str, state: str) -> str:
        query = urlencode({
            "client_id": self.api_key,
            "scope": self.scopes,
            "redirect_uri": self.redirect_uri,
            "state": state,
        })
        return f"https://{shop}/admin/oauth/authorize?{query}"

    def verify_hmac(self, params: Dict[str, str]) -> bool:
        """Check the hmac Shopify appends to OAuth redirects"""
        received = params.get('hmac')
        if not received or not self.api_secret:
            return False

        message = "&".join(
            f"{key}={value}" for key, value in sorted(params.items()) if key not in ('hmac', 'signature')
        )
        digest = hmac.new(self.api_secret.encode(), message.encode(), hashlib.sha256).hexdigest()
        return hmac.compare_digest(digest, received)

    def verify_webhook(self, body: bytes, received_hmac: Optional[str]) -> bool:
        """Check X-Shopify-Hmac-Sha256 on a webhook body"""
        if not received_hmac or not self.api_secret:
            return False

        digest = hmac.new(self.api_secret.encode(), body, hashlib.sha256).digest()
        expected = base64.b64encode(digest).decode()
        return hmac.compare_digest(expected, received_hmac)

    def complete_oauth(self, shop: str, code: str) -> Dict:
        """Exchange code for access token"""
        response = requests.post(
            f"https://{shop}/admin/oauth/access_token",
            json={
                "client_id": self.api_key,
                "client_secret": self.api_secret,
                "code": code
            },
            timeout=30
        )

        if response.status_code != 200:
            logger.error(f"OAuth token exchange failed for {shop}: HTTP {response.status_code}")
            raise ShopifyAuthError(f"Token exchange failed with HTTP {response.status_code}")

        data = response.json()
        if not data.get('access_token'):
            raise ShopifyAuthError("No access token in OAuth response")
        return data

    def install_shop(self, shop: str, code: str) -> Dict:
        result = self.complete_oauth(shop, code)
        self.shop_model.upsert_shop(shop, result['access_token'], result.get('scope', ''))
        logger.info(f"Stored access token {DataHelpers.mask_sensitive_data(result['access_token'])} for {shop}")
        return {"shop": shop, "scope": result.get('scope', '')}
