import asyncio
import base64
import hashlib
import hmac

from fastapi.testclient import TestClient

from shopgate.main import create_app

from conftest import API_SECRET

BODY = b'{"id": 820982911946154508, "email": "jon@example.com"}'


def _signature(body: bytes, secret: str = API_SECRET) -> str:
    return base64.b64encode(hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()).decode("utf-8")


def _headers(webhook_id="wh-1", signature=None, body=BODY):
    headers = {
        "content-type": "application/json",
        "x-shopify-topic": "orders/create",
        "x-shopify-shop-domain": "demo-store.myshopify.com",
        "x-shopify-hmac-sha256": signature if signature is not None else _signature(body),
    }
    if webhook_id is not None:
        headers["x-shopify-webhook-id"] = webhook_id
    return headers


def test_webhook_first_delivery_and_replay(api_client, app_context):
    first = api_client.post("/webhooks/shopify", content=BODY, headers=_headers())
    second = api_client.post("/webhooks/shopify", content=BODY, headers=_headers())

    assert first.status_code == 200
    assert first.json() == {"ok": True, "replay": False}
    assert second.status_code == 200
    assert second.json() == {"ok": True, "replay": True}
    assert asyncio.run(app_context.shops.webhook_store.size()) == 1


def test_webhook_distinct_ids_are_both_fresh(api_client):
    assert api_client.post("/webhooks/shopify", content=BODY, headers=_headers("wh-1")).json()["replay"] is False
    assert api_client.post("/webhooks/shopify", content=BODY, headers=_headers("wh-2")).json()["replay"] is False


def test_webhook_bad_signature(api_client, app_context):
    response = api_client.post(
        "/webhooks/shopify", content=BODY, headers=_headers(signature=_signature(BODY, "other-secret"))
    )

    assert response.status_code == 401
    assert asyncio.run(app_context.shops.webhook_store.has("wh-1")) is False


def test_webhook_signature_over_different_body(api_client):
    response = api_client.post(
        "/webhooks/shopify", content=BODY + b" ", headers=_headers(signature=_signature(BODY))
    )
    assert response.status_code == 401


def test_webhook_missing_signature(api_client):
    response = api_client.post("/webhooks/shopify", content=BODY, headers=_headers(signature=""))
    assert response.status_code == 401


def test_webhook_missing_id(api_client):
    response = api_client.post("/webhooks/shopify", content=BODY, headers=_headers(webhook_id=None))
    assert response.status_code == 400


def test_webhook_empty_body(api_client):
    response = api_client.post("/webhooks/shopify", content=b"", headers=_headers(body=b""))
    assert response.status_code == 400


def test_webhook_retried_after_storage_failure_is_not_a_replay(app_context, monkeypatch):
    def _failing_write(path, payload):
        raise OSError("disk full")

    with TestClient(create_app(context=app_context), raise_server_exceptions=False) as client:
        monkeypatch.setattr("shopgate.stores.files._write_atomic", _failing_write)
        failed = client.post("/webhooks/shopify", content=BODY, headers=_headers())
        monkeypatch.undo()
        retried = client.post("/webhooks/shopify", content=BODY, headers=_headers())

    assert failed.status_code == 500
    assert retried.status_code == 200
    assert retried.json() == {"ok": True, "replay": False}
