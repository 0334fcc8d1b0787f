from __future__ import annotations

import asyncio
import json

import pytest

from shopgate.stores.files import StoreFormatError
from shopgate.stores.state_store import StateStore

SECRET = "state_secret"
SHOP = "shop.myshopify.com"


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _store(tmp_path, *, ttl_seconds: int = 600, clock=None) -> StateStore:
    return StateStore(tmp_path / "states.json", ttl_seconds=ttl_seconds, hmac_secret=SECRET, clock=clock or FakeClock())


def test_state_is_single_use(tmp_path):
    store = _store(tmp_path)

    async def scenario():
        issued = await store.generate(SHOP)
        first = await store.consume(issued.state)
        second = await store.consume(issued.state)
        return first, second

    first, second = asyncio.run(scenario())
    assert first is not None and first.shop == SHOP
    assert second is None


def test_zero_ttl_expires_immediately(tmp_path):
    store = _store(tmp_path, ttl_seconds=0)

    async def scenario():
        issued = await store.generate(SHOP)
        return await store.consume(issued.state), await store.size()

    consumed, remaining = asyncio.run(scenario())
    assert consumed is None
    assert remaining == 0


def test_expired_state_is_rejected_and_removed(tmp_path):
    clock = FakeClock()
    store = _store(tmp_path, ttl_seconds=600, clock=clock)

    async def scenario():
        issued = await store.generate(SHOP)
        clock.now += 600
        return await store.consume(issued.state), await store.size()

    assert asyncio.run(scenario()) == (None, 0)


def test_tampered_state_is_rejected_without_touching_store(tmp_path):
    store = _store(tmp_path)

    async def scenario():
        issued = await store.generate(SHOP)
        state = issued.state
        for index, char in enumerate(state):
            replacement = "A" if char != "A" else "B"
            tampered = state[:index] + replacement + state[index + 1 :]
            assert await store.consume(tampered) is None
        assert await store.size() == 1
        return await store.consume(state)

    assert asyncio.run(scenario()).shop == SHOP


def test_state_signed_with_other_secret_is_rejected(tmp_path):
    store = _store(tmp_path)
    other = StateStore(tmp_path / "other.json", ttl_seconds=600, hmac_secret="other", clock=FakeClock())

    async def scenario():
        issued = await other.generate(SHOP)
        return await store.consume(issued.state)

    assert asyncio.run(scenario()) is None


def test_state_embeds_signed_shop_payload(tmp_path):
    store = _store(tmp_path)
    issued = asyncio.run(store.generate(SHOP))

    payload = store.verify_signature(issued.state)
    assert payload["shop"] == SHOP
    assert len(payload["nonce"]) >= 32
    assert issued.expires_at == 1_700_000_000_000 + 600_000


def test_states_survive_reload(tmp_path):
    clock = FakeClock()
    issued = asyncio.run(_store(tmp_path, clock=clock).generate(SHOP))

    reloaded = _store(tmp_path, clock=clock)
    record = asyncio.run(reloaded.consume(issued.state))
    assert record is not None
    assert record.shop == SHOP
    assert record.expires_at == issued.expires_at


def test_expired_states_are_pruned_on_generate_and_load(tmp_path):
    clock = FakeClock()
    store = _store(tmp_path, ttl_seconds=10, clock=clock)
    asyncio.run(store.generate("old.myshopify.com"))

    clock.now += 20
    assert asyncio.run(_store(tmp_path, ttl_seconds=10, clock=clock).size()) == 0

    asyncio.run(store.generate(SHOP))
    saved = json.loads((tmp_path / "states.json").read_text())
    assert saved["version"] == 1
    assert [entry["shop"] for entry in saved["data"].values()] == [SHOP]


def test_unknown_file_version_is_rejected(tmp_path):
    (tmp_path / "states.json").write_text(json.dumps({"version": 2, "data": {}}))
    with pytest.raises(StoreFormatError):
        asyncio.run(_store(tmp_path).size())


def _failing_write(path, payload):
    raise OSError("disk full")


def test_failed_generate_leaves_no_state(tmp_path, monkeypatch):
    store = _store(tmp_path)

    monkeypatch.setattr("shopgate.stores.files._write_atomic", _failing_write)
    with pytest.raises(OSError):
        asyncio.run(store.generate(SHOP))

    assert asyncio.run(store.size()) == 0


def test_failed_consume_keeps_state_usable(tmp_path, monkeypatch):
    store = _store(tmp_path)
    issued = asyncio.run(store.generate(SHOP))

    monkeypatch.setattr("shopgate.stores.files._write_atomic", _failing_write)
    with pytest.raises(OSError):
        asyncio.run(store.consume(issued.state))

    monkeypatch.undo()
    consumed = asyncio.run(store.consume(issued.state))
    assert consumed is not None and consumed.shop == SHOP
    assert asyncio.run(store.consume(issued.state)) is None
