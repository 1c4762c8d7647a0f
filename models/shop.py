import os
import logging
from datetime import datetime
from typing import Dict, Optional

from supabase import create_client, Client

logger = logging.getLogger(__name__)


class ShopModel:
    """Installed Shopify shops, stored in the Supabase `shops` table"""

    TABLE = 'shops'

    def __init__(self, client: Optional[Client] = None):
        self._supabase = client

    @property
    def supabase(self) -> Client:
        if self._supabase is None:
            supabase_url = os.getenv("SUPABASE_URL")
            supabase_key = os.getenv("SUPABASE_KEY")

            if not supabase_url or not supabase_key:
                raise ValueError("SUPABASE_URL and SUPABASE_KEY environment variables are required")

            self._supabase = create_client(supabase_url, supabase_key)
        return self._supabase

    def get_shop(self, shop_domain: str) -> Optional[Dict]:
        """
        Get shop record by its myshopify domain

        Args:
            shop_domain: e.g. my-store.myshopify.com

        Returns:
            Shop data or None if not installed
        """
        try:
            response = self.supabase.table(self.TABLE).select('*').eq('shop_domain', shop_domain).execute()

            if response.data:
                return response.data[0]

            logger.warning(f"Shop not found: {shop_domain}")
            return None

        except ValueError:
            raise
        except Exception as e:
            logger.error(f"Error getting shop {shop_domain}: {str(e)}")
            return None

    def upsert_shop(self, shop_domain: str, access_token: str, scope: str = "",
                    plan_type: str = 'free') -> Optional[Dict]:
        """Create or refresh the install record after OAuth"""
        now = datetime.utcnow().isoformat()
        record = {
            'shop_domain': shop_domain,
            'access_token': access_token,
            'scope': scope,
            'plan_type': plan_type,
            'is_active': True,
            'chatbot_enabled': True,
            'installed_at': now,
            'updated_at': now
        }

        response = self.supabase.table(self.TABLE).upsert(record, on_conflict='shop_domain').execute()
        logger.info(f"Shop installed: {shop_domain}")
        return response.data[0] if response.data else None

    def deactivate_shop(self, shop_domain: str) -> bool:
        """Mark a shop as uninstalled and drop its token"""
        try:
            response = self.supabase.table(self.TABLE).update({
                'is_active': False,
                'access_token': None,
                'updated_at': datetime.utcnow().isoformat()
            }).eq('shop_domain', shop_domain).execute()

            logger.info(f"Shop deactivated: {shop_domain}")
            return bool(response.data)

        except Exception as e:
            logger.error(f"Error deactivating shop {shop_domain}: {str(e)}")
            return False

    def is_healthy(self) -> bool:
        try:
            self.supabase.table(self.TABLE).select('shop_domain').limit(1).execute()
            return True
        except Exception as e:
            logger.error(f"Supabase health check failed: {str(e)}")
            return False
