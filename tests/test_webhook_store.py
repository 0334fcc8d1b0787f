from __future__ import annotations

import asyncio
import json
from datetime import datetime, timedelta, timezone

import pytest

from shopgate.stores.files import StoreFormatError
from shopgate.stores.webhook_store import WebhookStore


class StepClock:
    def __init__(self) -> None:
        self.now = datetime(2026, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


def test_mark_handled_is_true_only_once(tmp_path):
    store = WebhookStore(tmp_path / "webhooks.json")

    async def scenario():
        return (
            await store.mark_handled("id-1", shop="a.myshopify.com", topic="orders/create"),
            await store.mark_handled("id-1", shop="a.myshopify.com", topic="orders/create"),
        )

    assert asyncio.run(scenario()) == (True, False)


def test_oldest_delivery_is_evicted_past_cap(tmp_path):
    store = WebhookStore(tmp_path / "webhooks.json", max_entries=2, clock=StepClock())

    async def scenario():
        for delivery_id in ("id-1", "id-2", "id-3"):
            assert await store.mark_handled(delivery_id)
        seen = [await store.has(delivery_id) for delivery_id in ("id-1", "id-2", "id-3")]
        redelivered = await store.mark_handled("id-1")
        return seen, redelivered, await store.size()

    seen, redelivered, size = asyncio.run(scenario())
    assert seen == [False, True, True]
    assert redelivered is True
    assert size == 2


def test_ledger_survives_reload(tmp_path):
    path = tmp_path / "webhooks.json"
    asyncio.run(WebhookStore(path).mark_handled("id-1", shop="a.myshopify.com", topic="app/uninstalled"))

    saved = json.loads(path.read_text())
    assert saved["version"] == 1
    assert saved["data"][0]["id"] == "id-1"
    assert saved["data"][0]["shop"] == "a.myshopify.com"

    assert asyncio.run(WebhookStore(path).mark_handled("id-1")) is False


def test_legacy_array_is_migrated(tmp_path):
    path = tmp_path / "webhooks.json"
    path.write_text(json.dumps([{"id": "old-1", "receivedAt": "2025-01-01T00:00:00.000Z"}]))
    store = WebhookStore(path)

    assert asyncio.run(store.has("old-1")) is True
    asyncio.run(store.mark_handled("new-1"))
    assert json.loads(path.read_text())["version"] == 1


def test_unknown_version_is_rejected(tmp_path):
    path = tmp_path / "webhooks.json"
    path.write_text(json.dumps({"version": 3, "data": []}))
    with pytest.raises(StoreFormatError):
        asyncio.run(WebhookStore(path).has("id-1"))


def test_max_entries_must_be_positive(tmp_path):
    with pytest.raises(ValueError):
        WebhookStore(tmp_path / "webhooks.json", max_entries=0)


def _failing_write(path, payload):
    raise OSError("disk full")


def test_failed_write_does_not_mark_delivery_handled(tmp_path, monkeypatch):
    path = tmp_path / "webhooks.json"
    store = WebhookStore(path)

    monkeypatch.setattr("shopgate.stores.files._write_atomic", _failing_write)
    with pytest.raises(OSError):
        asyncio.run(store.mark_handled("id-1"))
    assert asyncio.run(store.has("id-1")) is False

    monkeypatch.undo()
    assert asyncio.run(store.mark_handled("id-1")) is True
    assert asyncio.run(WebhookStore(path).has("id-1")) is True


def test_failed_write_keeps_evicted_delivery(tmp_path, monkeypatch):
    store = WebhookStore(tmp_path / "webhooks.json", max_entries=1, clock=StepClock())
    asyncio.run(store.mark_handled("id-1"))

    monkeypatch.setattr("shopgate.stores.files._write_atomic", _failing_write)
    with pytest.raises(OSError):
        asyncio.run(store.mark_handled("id-2"))

    assert asyncio.run(store.has("id-1")) is True
    assert asyncio.run(store.size()) == 1
