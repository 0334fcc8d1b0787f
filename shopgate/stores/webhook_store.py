from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable

from shopgate.domain.models import to_iso, utcnow
from shopgate.stores.files import JsonFileStore, StoreFormatError


@dataclass(frozen=True)
class WebhookDelivery:
    id: str
    received_at: str
    shop: str | None = None
    topic: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "shop": self.shop, "topic": self.topic, "receivedAt": self.received_at}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WebhookDelivery":
        return cls(
            id=data["id"],
            received_at=data["receivedAt"],
            shop=data.get("shop"),
            topic=data.get("topic"),
        )


class WebhookStore(JsonFileStore):
    """Ledger of handled webhook deliveries, capped at ``max_entries``.

    Once the cap is exceeded the oldest deliveries by ``receivedAt`` are
    dropped; a redelivery of a dropped id is treated as new.
    """

    def __init__(
        self,
        path: str | Path,
        *,
        max_entries: int = 5000,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        super().__init__(path)
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._max_entries = max_entries
        self._clock = clock
        self._seen: dict[str, WebhookDelivery] = {}

    def _load_data(self, data: Any) -> None:
        if not isinstance(data, list):
            raise StoreFormatError(f"{self.path} data must be an array")
        self._load_legacy(data)

    def _load_legacy(self, items: list[Any]) -> None:
        for entry in items:
            delivery = WebhookDelivery.from_dict(entry)
            self._seen[delivery.id] = delivery

    def _dump_data(self) -> list[dict[str, Any]]:
        return [delivery.to_dict() for delivery in self._seen.values()]

    def _snapshot(self) -> dict[str, WebhookDelivery]:
        return dict(self._seen)

    def _restore(self, snapshot: dict[str, WebhookDelivery]) -> None:
        self._seen = snapshot

    def _evict_overflow(self) -> None:
        overflow = len(self._seen) - self._max_entries
        if overflow <= 0:
            return
        # sort is stable, so equal timestamps keep arrival order
        oldest = sorted(self._seen.values(), key=lambda delivery: delivery.received_at)[:overflow]
        for delivery in oldest:
            del self._seen[delivery.id]

    async def has(self, delivery_id: str) -> bool:
        await self._ensure_loaded()
        return delivery_id in self._seen

    async def mark_handled(self, delivery_id: str, *, shop: str | None = None, topic: str | None = None) -> bool:
        """Record a delivery. Returns False when ``delivery_id`` was already handled."""
        async with self._lock:
            await self._load_locked()
            if delivery_id in self._seen:
                return False
            snapshot = self._snapshot()
            self._seen[delivery_id] = WebhookDelivery(
                id=delivery_id,
                received_at=to_iso(self._clock()),
                shop=shop,
                topic=topic,
            )
            self._evict_overflow()
            await self._commit_locked(snapshot)
        return True

    async def size(self) -> int:
        await self._ensure_loaded()
        return len(self._seen)
