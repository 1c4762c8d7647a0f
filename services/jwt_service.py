import jwt
import time
import os
import logging
from typing import Dict, Optional

logger = logging.getLogger(__name__)

TOKEN_AUDIENCE = 'shopbot-widget'
TOKEN_ISSUER = 'shopbot-api'

# Claims carried over when a widget token is refreshed
IDENTITY_CLAIMS = ('shop', 'session_id', 'nonce', 'plan_type')


class JWTService:
    """HS256 tokens handed to the storefront chat panel after /widget/authenticate"""

    def __init__(self, secret_key: Optional[str] = None, default_expiry: int = 3600):
        self.secret_key = secret_key or os.getenv('JWT_SECRET')
        if not self.secret_key:
            raise ValueError("JWT_SECRET environment variable is required")

        self.algorithm = 'HS256'
        self.default_expiry = default_expiry

    def generate_token(self, payload: Dict, expiry_seconds: Optional[int] = None) -> str:
        """
        Sign a widget token

        Args:
            payload: Identity claims, at least `shop`
            expiry_seconds: Lifetime, defaults to one hour

        Returns:
            Encoded token
        """
        issued_at = int(time.time())
        claims = dict(payload)
        claims.update(
            iat=issued_at,
            exp=issued_at + (expiry_seconds or self.default_expiry),
            aud=TOKEN_AUDIENCE,
            iss=TOKEN_ISSUER
        )

        logger.debug(f"Issuing widget token for shop: {payload.get('shop')}")
        return jwt.encode(claims, self.secret_key, algorithm=self.algorithm)

    def verify_token(self, token: str) -> Optional[Dict]:
        """Decoded claims, or None when the token is expired, forged or meant for another audience"""
        try:
            return jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                audience=TOKEN_AUDIENCE,
                issuer=TOKEN_ISSUER
            )
        except jwt.ExpiredSignatureError:
            logger.info("Widget token expired")
        except jwt.InvalidTokenError as e:
            logger.warning(f"Rejected widget token: {e}")
        return None

    def refresh_token(self, old_token: str) -> Optional[str]:
        claims = self.verify_token(old_token)
        if not claims:
            return None

        identity = {name: claims.get(name) for name in IDENTITY_CLAIMS}
        identity['plan_type'] = identity['plan_type'] or 'free'
        return self.generate_token(identity)
