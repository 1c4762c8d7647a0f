import json
from types import SimpleNamespace

import pytest

import services.shopify_admin_service as admin_module
from services.shopify_admin_service import (
    FIND_ORDER_QUERY,
    GET_ORDER_QUERY,
    SEARCH_PRODUCTS_QUERY,
    ShopifyAdminService,
    ShopifyAPIError,
)

PRODUCT_NODE = {
    "id": "gid://shopify/Product/1",
    "title": "Trail Runner",
    "description": "Grippy",
    "handle": "trail-runner",
    "images": {"edges": [{"node": {"id": "img1", "url": "https://cdn/1.jpg", "altText": None}}]},
    "variants": {"edges": [{"node": {
        "id": "gid://shopify/ProductVariant/10",
        "title": "42",
        "price": "89.00",
        "compareAtPrice": None,
        "availableForSale": True,
        "selectedOptions": [{"name": "Size", "value": "42"}],
    }}]},
    "tags": ["running"],
    "productType": "Shoes",
    "vendor": "Acme",
    "createdAt": "2024-01-01T00:00:00Z",
    "updatedAt": "2024-01-02T00:00:00Z",
}

ORDER_NODE = {
    "id": "gid://shopify/Order/5",
    "name": "#1001",
    "orderNumber": 1001,
    "processedAt": "2024-01-15T10:30:00Z",
    "totalPriceSet": {"shopMoney": {"amount": "59.98", "currencyCode": "USD"}},
    "subtotalPriceSet": {"shopMoney": {"amount": "54.98", "currencyCode": "USD"}},
    "totalTaxSet": None,
    "displayFulfillmentStatus": "FULFILLED",
    "displayFinancialStatus": "PAID",
    "lineItems": {"edges": [{"node": {
        "id": "li1",
        "title": "Trail Runner",
        "quantity": 1,
        "originalUnitPriceSet": {"shopMoney": {"amount": "54.98", "currencyCode": "USD"}},
        "variant": {"id": "gid://shopify/ProductVariant/10", "title": "42"},
    }}]},
    "shippingAddress": None,
    "fulfillments": [{"trackingInfo": [{"number": "1Z", "url": "https://ups/1Z", "company": "UPS"}]}],
}


class FakeShopify:
    """Records GraphQL calls and session handling"""

    def __init__(self, responses=None, error=None):
        self.responses = list(responses or [])
        self.error = error
        self.calls = []
        self.active = []
        fake = self

        class GraphQL:
            def execute(self, query, variables=None):
                fake.calls.append((query, variables))
                if fake.error:
                    raise fake.error
                return json.dumps(fake.responses.pop(0))

        self.GraphQL = GraphQL
        self.Session = lambda domain, version, token: (domain, version, token)
        self.ShopifyResource = SimpleNamespace(
            activate_session=self.active.append,
            clear_session=lambda: self.active.append(None),
        )


@pytest.fixture
def admin():
    return ShopifyAdminService("store.myshopify.com", "shpat_x", "2024-10")


def _install(monkeypatch, fake):
    monkeypatch.setattr(admin_module, "shopify", fake)
    return fake


def test_search_products(monkeypatch, admin):
    fake = _install(monkeypatch, FakeShopify([{"data": {"products": {"edges": [{"node": PRODUCT_NODE}]}}}]))

    products = admin.search_products("shoes", 5)

    assert fake.calls == [(SEARCH_PRODUCTS_QUERY, {"query": "shoes", "first": 5})]
    assert fake.active == [("store.myshopify.com", "2024-10", "shpat_x"), None]
    product = products[0]
    assert product["title"] == "Trail Runner"
    assert product["images"] == [{"id": "img1", "url": "https://cdn/1.jpg", "altText": None}]
    assert product["variants"][0]["available"] is True
    assert product["variants"][0]["price"] == "89.00"


def test_search_products_in_collection_filters_by_title(monkeypatch, admin):
    other = dict(PRODUCT_NODE, id="gid://shopify/Product/2", title="Wool Hat")
    _install(monkeypatch, FakeShopify([
        {"data": {"collection": {"products": {"edges": [{"node": PRODUCT_NODE}, {"node": other}]}}}}
    ]))

    products = admin.search_products("hat", 10, collection_id="gid://shopify/Collection/1")

    assert [p["title"] for p in products] == ["Wool Hat"]


def test_graphql_errors_raise(monkeypatch, admin):
    _install(monkeypatch, FakeShopify([{"errors": [{"message": "Throttled"}]}]))

    with pytest.raises(ShopifyAPIError, match="Throttled"):
        admin.search_products("shoes")


def test_transport_errors_raise_and_clear_session(monkeypatch, admin):
    fake = _install(monkeypatch, FakeShopify(error=ConnectionError("refused")))

    with pytest.raises(ShopifyAPIError, match="refused"):
        admin.get_collections()
    assert fake.active[-1] is None


def test_get_order_by_number(monkeypatch, admin):
    fake = _install(monkeypatch, FakeShopify([{"data": {"orders": {"edges": [{"node": ORDER_NODE}]}}}]))

    order = admin.get_order("1001")

    assert fake.calls == [(FIND_ORDER_QUERY, {"query": "name:#1001"})]
    assert order["name"] == "#1001"
    assert order["totalPrice"] == "59.98 USD"
    assert order["totalTax"] is None
    assert order["fulfillmentStatus"] == "FULFILLED"
    assert order["financialStatus"] == "PAID"
    assert order["lineItems"][0]["price"] == "54.98 USD"
    assert order["trackingInfo"] == [{"number": "1Z", "url": "https://ups/1Z", "company": "UPS"}]


def test_get_order_by_gid(monkeypatch, admin):
    fake = _install(monkeypatch, FakeShopify([{"data": {"order": None}}]))

    assert admin.get_order("gid://shopify/Order/5") is None
    assert fake.calls == [(GET_ORDER_QUERY, {"id": "gid://shopify/Order/5"})]


def test_get_product_and_collections(monkeypatch, admin):
    _install(monkeypatch, FakeShopify([
        {"data": {"product": PRODUCT_NODE}},
        {"data": {"collections": {"edges": [{"node": {"id": "c1", "title": "Shoes", "handle": "shoes"}}]}}},
    ]))

    assert admin.get_product("gid://shopify/Product/1")["handle"] == "trail-runner"
    assert admin.get_collections() == [{"id": "c1", "title": "Shoes", "handle": "shoes"}]


def test_get_shop_domain_prefers_myshopify_domain(monkeypatch, admin):
    _install(monkeypatch, FakeShopify([{"data": {"shop": {"myshopifyDomain": "real.myshopify.com"}}}]))

    assert admin.get_shop_domain() == "real.myshopify.com"
