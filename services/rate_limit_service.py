import redis
import time
import logging
import os
from typing import Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

# Chat turns allowed per shop, by Shopify billing plan
PLAN_RATE_LIMITS = {
    'free': {'requests_per_minute': 30, 'requests_per_hour': 200, 'requests_per_day': 500},
    'basic': {'requests_per_minute': 60, 'requests_per_hour': 500, 'requests_per_day': 2000},
    'pro': {'requests_per_minute': 120, 'requests_per_hour': 1000, 'requests_per_day': 5000},
    'enterprise': {'requests_per_minute': 300, 'requests_per_hour': 2500, 'requests_per_day': 15000},
}

WINDOWS = (('minute', 60), ('hour', 3600), ('day', 86400))


class RateLimitService:
    """
    Fixed-window chat quotas per shop, counted in Redis.
    Without Redis, or while Redis is failing, every request is let through.
    """

    def __init__(self, redis_client=None, redis_url: Optional[str] = None):
        self.redis_client = redis_client
        if self.redis_client is None:
            self.redis_client = self._connect(redis_url or os.getenv('REDIS_URL'))

    @staticmethod
    def _connect(redis_url: Optional[str]):
        if not redis_url:
            logger.info("REDIS_URL not set, per-shop chat quotas disabled")
            return None
        try:
            client = redis.from_url(redis_url, decode_responses=True)
            client.ping()
            logger.info("Redis connection established")
            return client
        except (redis.RedisError, ValueError) as e:
            logger.error(f"Redis connection failed: {e}")
            return None

    def get_rate_limits(self, plan_type: str) -> Dict:
        return PLAN_RATE_LIMITS.get(plan_type, PLAN_RATE_LIMITS['free'])

    def _window_keys(self, shop: str) -> List[Tuple[str, str, int]]:
        """(window, redis key, ttl) for the window the current second falls in"""
        now = int(time.time())
        return [
            (window, f"rate_limit:{shop}:{window}:{now // seconds}", seconds)
            for window, seconds in WINDOWS
        ]

    def check_rate_limit(self, shop: str, plan_type: str) -> bool:
        """False once any window has used up the plan's allowance"""
        if not self.redis_client:
            return True

        limits = self.get_rate_limits(plan_type)
        try:
            for window, key, _ in self._window_keys(shop):
                used = int(self.redis_client.get(key) or 0)
                allowed = limits[f'requests_per_{window}']
                if used >= allowed:
                    logger.warning(f"Shop {shop} hit its {window} quota ({used}/{allowed})")
                    return False
        except redis.RedisError as e:
            logger.error(f"Rate limit lookup failed for {shop}, allowing request: {e}")
        return True

    def increment_usage(self, shop: str, plan_type: str) -> Dict:
        """
        Count one chat turn in every window

        Returns:
            {window: {current, limit, remaining}}, empty when Redis is unavailable
        """
        if not self.redis_client:
            return {}

        limits = self.get_rate_limits(plan_type)
        usage = {}
        try:
            for window, key, ttl in self._window_keys(shop):
                pipe = self.redis_client.pipeline()
                pipe.incr(key)
                pipe.expire(key, ttl)
                current = pipe.execute()[0]

                allowed = limits[f'requests_per_{window}']
                usage[window] = {'current': current, 'limit': allowed, 'remaining': max(0, allowed - current)}
        except redis.RedisError as e:
            logger.error(f"Could not record usage for {shop}: {e}")
            return {}
        return usage

    def is_healthy(self) -> bool:
        if not self.redis_client:
            return False
        try:
            return bool(self.redis_client.ping())
        except redis.RedisError:
            return False
