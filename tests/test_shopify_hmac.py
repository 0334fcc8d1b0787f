from __future__ import annotations

import base64
import hashlib
import hmac

import pytest

from shopgate.errors import InvalidArgumentError
from shopgate.shopify.hmac import verify_oauth_hmac, verify_webhook_hmac
from shopgate.shopify.oauth import build_authorize_url
from shopgate.shopify.shop import normalize_shop_domain


def _oauth_hmac(query_items: list[tuple[str, str]], secret: str) -> str:
    pairs = [item for item in query_items if item[0] not in {"hmac", "signature"}]
    pairs.sort(key=lambda item: item[0])
    message = "&".join(f"{key}={value}" for key, value in pairs)
    return hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()


QUERY = [
    ("shop", "example-shop.myshopify.com"),
    ("code", "abc"),
    ("timestamp", "1710000000"),
    ("state", "state-123"),
]


def test_verify_oauth_hmac_accepts_valid_signature():
    query_items = QUERY + [("hmac", _oauth_hmac(QUERY, "test_secret"))]
    assert verify_oauth_hmac(query_items, "test_secret")


def test_verify_oauth_hmac_ignores_signature_param():
    query_items = QUERY + [("signature", "legacy"), ("hmac", _oauth_hmac(QUERY, "test_secret"))]
    assert verify_oauth_hmac(query_items, "test_secret")


@pytest.mark.parametrize(
    "query_items",
    [
        QUERY + [("hmac", "invalid")],
        QUERY,
        [("shop", "other.myshopify.com")] + QUERY[1:] + [("hmac", _oauth_hmac(QUERY, "test_secret"))],
    ],
)
def test_verify_oauth_hmac_rejects_bad_input(query_items):
    assert not verify_oauth_hmac(query_items, "test_secret")


def test_verify_oauth_hmac_rejects_wrong_secret():
    query_items = QUERY + [("hmac", _oauth_hmac(QUERY, "other_secret"))]
    assert not verify_oauth_hmac(query_items, "test_secret")


def test_verify_webhook_hmac():
    body = b'{"id": 1}'
    digest = base64.b64encode(hmac.new(b"hook_secret", body, hashlib.sha256).digest()).decode()

    assert verify_webhook_hmac(body=body, secret="hook_secret", supplied_hmac=digest)
    assert not verify_webhook_hmac(body=body + b" ", secret="hook_secret", supplied_hmac=digest)
    assert not verify_webhook_hmac(body=body, secret="hook_secret", supplied_hmac=None)
    assert not verify_webhook_hmac(body=body, secret="hook_secret", supplied_hmac="not-base64")


@pytest.mark.parametrize(
    "raw",
    [
        " Example-Shop.myshopify.com ",
        "https://example-shop.myshopify.com/admin",
        "http://EXAMPLE-SHOP.myshopify.com",
    ],
)
def test_normalize_shop_domain_accepts_variants(raw):
    assert normalize_shop_domain(raw) == "example-shop.myshopify.com"


@pytest.mark.parametrize("raw", [None, "", "example.com", "-bad.myshopify.com", "shop.myshopify.com.evil.com"])
def test_normalize_shop_domain_rejects_invalid(raw):
    with pytest.raises(InvalidArgumentError):
        normalize_shop_domain(raw)


def test_build_authorize_url():
    url = build_authorize_url(
        shop_domain="example-shop.myshopify.com",
        client_id="key",
        scopes="read_products,write_products",
        redirect_uri="https://app.example/oauth/callback",
        state="s.t",
    )
    assert url.startswith("https://example-shop.myshopify.com/admin/oauth/authorize?")
    assert "client_id=key" in url
    assert "scope=read_products%2Cwrite_products" in url
    assert "redirect_uri=https%3A%2F%2Fapp.example%2Foauth%2Fcallback" in url
    assert "state=s.t" in url
