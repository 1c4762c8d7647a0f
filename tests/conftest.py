import os

# Service singletons read these at import time
os.environ["JWT_SECRET"] = "test-secret"
os.environ["SHOPIFY_API_KEY"] = "test-api-key"
os.environ["SHOPIFY_API_SECRET"] = "test-api-secret"
for var in ("OPENAI_API_KEY", "REDIS_URL", "SUPABASE_URL", "SUPABASE_KEY", "SENTRY_DSN", "FLASK_ENV"):
    os.environ.pop(var, None)

from types import SimpleNamespace

import pytest

TEST_SHOP = "test-shop.myshopify.com"


class FakeShopModel:
    def __init__(self, shops=None):
        self.shops = dict(shops or {})
        self.deactivated = []

    def get_shop(self, shop_domain):
        return self.shops.get(shop_domain)

    def upsert_shop(self, shop_domain, access_token, scope="", plan_type="free"):
        record = {
            "shop_domain": shop_domain,
            "access_token": access_token,
            "scope": scope,
            "plan_type": plan_type,
            "is_active": True,
            "chatbot_enabled": True,
        }
        self.shops[shop_domain] = record
        return record

    def deactivate_shop(self, shop_domain):
        self.deactivated.append(shop_domain)
        if shop_domain in self.shops:
            self.shops[shop_domain]["is_active"] = False
            return True
        return False

    def is_healthy(self):
        return True


class FakeAdmin:
    """Stands in for ShopifyAdminService"""

    def __init__(self, products=None, orders=None, shop_domain=TEST_SHOP):
        self.products = products or []
        self.orders = orders or {}
        self.shop_domain = shop_domain
        self.searches = []

    def search_products(self, query, limit=10, collection_id=None):
        self.searches.append((query, limit, collection_id))
        return self.products[:limit]

    def get_order(self, order_id):
        return self.orders.get(order_id)

    def get_shop_domain(self):
        return self.shop_domain


def make_product(number, title, price="19.99", available=True, description=""):
    return {
        "id": f"gid://shopify/Product/{number}",
        "title": title,
        "description": description,
        "handle": title.lower().replace(" ", "-"),
        "images": [],
        "variants": [
            {
                "id": f"gid://shopify/ProductVariant/{number}0",
                "title": "Default Title",
                "price": price,
                "compareAtPrice": None,
                "available": available,
                "selectedOptions": [],
            }
        ],
        "tags": [],
        "productType": "",
        "vendor": "",
        "createdAt": None,
        "updatedAt": None,
    }


class FakeOpenAI:
    def __init__(self, reply="Happy to help!", error=None):
        self.reply = reply
        self.error = error
        self.calls = []
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

    def _create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=self.reply))])


@pytest.fixture
def fake_shop_model():
    return FakeShopModel({
        TEST_SHOP: {
            "shop_domain": TEST_SHOP,
            "access_token": "shpat_test",
            "plan_type": "free",
            "is_active": True,
            "chatbot_enabled": True,
        }
    })


@pytest.fixture
def app(monkeypatch, fake_shop_model):
    import routes.auth
    import routes.chat
    import routes.shopify
    from app import create_app

    monkeypatch.setattr(routes.auth, "shop_model", fake_shop_model)
    monkeypatch.setattr(routes.shopify, "shop_model", fake_shop_model)
    monkeypatch.setattr(routes.shopify.auth_service, "shop_model", fake_shop_model)
    # Route tests run against the mock catalogue unless they patch an admin client in
    monkeypatch.setattr(routes.chat.chat_service, "shop_model", None)
    monkeypatch.setattr(routes.chat.rate_limit_service, "redis_client", None)

    routes.chat.conversation_service._conversations.clear()
    routes.chat.cart_service._carts.clear()

    return create_app({"TESTING": True, "RATELIMIT_ENABLED": False})


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def widget_token():
    import routes.chat

    return routes.chat.jwt_service.generate_token({
        "shop": TEST_SHOP,
        "nonce": "abc",
        "session_id": "s1",
        "plan_type": "free",
    })


@pytest.fixture
def auth_headers(widget_token):
    return {"Authorization": f"Bearer {widget_token}"}
