import base64
import hashlib
import hmac
import json

import routes.shopify
from conftest import TEST_SHOP
from services.shopify_auth_service import ShopifyAuthError

SECRET = "test-api-secret"


def signed_query(params):
    message = "&".join(f"{k}={v}" for k, v in sorted(params.items()))
    return dict(params, hmac=hmac.new(SECRET.encode(), message.encode(), hashlib.sha256).hexdigest())


def test_install_redirect_url(client):
    body = client.get(f"/shopify/install?shop={TEST_SHOP}").get_json()

    assert body["auth_url"].startswith(f"https://{TEST_SHOP}/admin/oauth/authorize?")
    assert f"state={body['state']}" in body["auth_url"]


def test_install_rejects_bad_shop(client):
    assert client.get("/shopify/install?shop=evil.com").status_code == 400
    assert client.get("/shopify/install").status_code == 400


def test_callback_installs_shop(client, monkeypatch, fake_shop_model):
    monkeypatch.setattr(routes.shopify.auth_service, "complete_oauth",
                        lambda shop, code: {"access_token": "shpat_new", "scope": "read_products"})
    params = signed_query({"shop": "new.myshopify.com", "code": "abc", "timestamp": "1700000000"})

    response = client.get("/shopify/auth/callback", query_string=params)

    assert response.status_code == 200
    assert response.get_json()["redirect"] == "https://new.myshopify.com/admin/apps"
    assert fake_shop_model.shops["new.myshopify.com"]["access_token"] == "shpat_new"


def test_callback_rejects_bad_hmac(client):
    params = dict(signed_query({"shop": TEST_SHOP, "code": "abc"}), code="other")

    assert client.get("/shopify/auth/callback", query_string=params).status_code == 403


def test_callback_requires_code(client):
    assert client.get(f"/shopify/auth/callback?shop={TEST_SHOP}").status_code == 400


def test_callback_token_exchange_failure(client, monkeypatch):
    def fail(shop, code):
        raise ShopifyAuthError("Token exchange failed with HTTP 400")

    monkeypatch.setattr(routes.shopify.auth_service, "complete_oauth", fail)
    params = signed_query({"shop": TEST_SHOP, "code": "abc"})

    response = client.get("/shopify/auth/callback", query_string=params)

    assert response.status_code == 502
    assert response.get_json()["error_code"] == "OAUTH_FAILED"


def test_uninstall_webhook(client, fake_shop_model):
    body = json.dumps({"domain": TEST_SHOP}).encode()
    signature = base64.b64encode(hmac.new(SECRET.encode(), body, hashlib.sha256).digest()).decode()

    response = client.post("/shopify/webhooks/uninstall", data=body, headers={
        "X-Shopify-Hmac-Sha256": signature,
        "X-Shopify-Shop-Domain": TEST_SHOP,
        "Content-Type": "application/json",
    })

    assert response.status_code == 200
    assert fake_shop_model.deactivated == [TEST_SHOP]
    assert fake_shop_model.shops[TEST_SHOP]["is_active"] is False


def test_uninstall_webhook_bad_signature(client, fake_shop_model):
    response = client.post("/shopify/webhooks/uninstall", data=b"{}", headers={
        "X-Shopify-Hmac-Sha256": "bm9wZQ==",
        "X-Shopify-Shop-Domain": TEST_SHOP,
    })

    assert response.status_code == 401
    assert fake_shop_model.deactivated == []


def test_shopify_health(client):
    body = client.get("/shopify/health").get_json()

    assert body["status"] == "healthy"
    assert body["oauth_configured"] is True
