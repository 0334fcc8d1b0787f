from __future__ import annotations

import base64
import hashlib
import hmac
import secrets
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

import orjson

from shopgate.domain.models import to_iso
from shopgate.stores.files import JsonFileStore, StoreFormatError

NONCE_BYTES = 32


@dataclass(frozen=True)
class StoredState:
    shop: str
    nonce: str
    created_at: str
    expires_at: int  # epoch milliseconds

    def to_dict(self) -> dict[str, Any]:
        return {"shop": self.shop, "nonce": self.nonce, "createdAt": self.created_at, "expiresAt": self.expires_at}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StoredState":
        return cls(
            shop=data["shop"],
            nonce=data.get("nonce", ""),
            created_at=data["createdAt"],
            expires_at=int(data["expiresAt"]),
        )


@dataclass(frozen=True)
class IssuedState:
    state: str
    expires_at: int


def _b64url(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


class StateStore(JsonFileStore):
    """Signed, single-use OAuth ``state`` values with a fixed TTL.

    A state is ``<base64url payload>.<hex HMAC-SHA256 of the payload>``. The
    signature is checked before the store is consulted, and a state is removed
    the first time it is consumed.
    """

    def __init__(
        self,
        path: str | Path,
        *,
        ttl_seconds: int,
        hmac_secret: str,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(path)
        self._ttl_ms = ttl_seconds * 1000
        self._secret = hmac_secret.encode("utf-8")
        self._clock = clock
        self._states: dict[str, StoredState] = {}

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _sign(self, payload: str) -> str:
        return hmac.new(self._secret, payload.encode("ascii"), hashlib.sha256).hexdigest()

    def _load_data(self, data: Any) -> None:
        if not isinstance(data, dict):
            raise StoreFormatError(f"{self.path} data must be an object")
        now = self._now_ms()
        for state, entry in data.items():
            stored = StoredState.from_dict(entry)
            if stored.expires_at > now:
                self._states[state] = stored

    def _load_legacy(self, items: list[Any]) -> None:
        now = self._now_ms()
        for entry in items:
            stored = StoredState.from_dict(entry)
            if entry.get("state") and stored.expires_at > now:
                self._states[entry["state"]] = stored

    def _dump_data(self) -> dict[str, Any]:
        return {state: stored.to_dict() for state, stored in self._states.items()}

    def _snapshot(self) -> dict[str, StoredState]:
        return dict(self._states)

    def _restore(self, snapshot: dict[str, StoredState]) -> None:
        self._states = snapshot

    def _prune_expired(self, now: int) -> bool:
        expired = [state for state, stored in self._states.items() if stored.expires_at <= now]
        for state in expired:
            del self._states[state]
        return bool(expired)

    def verify_signature(self, state: str) -> dict[str, Any] | None:
        """Return the decoded payload of a well-formed, correctly signed state."""
        parts = state.split(".")
        if len(parts) != 2 or not parts[0] or not parts[1]:
            return None
        payload, signature = parts
        if not hmac.compare_digest(self._sign(payload), signature):
            return None
        try:
            decoded = orjson.loads(base64.urlsafe_b64decode(payload + "=" * (-len(payload) % 4)))
        except (ValueError, orjson.JSONDecodeError):
            return None
        return decoded if isinstance(decoded, dict) else None

    async def generate(self, shop: str) -> IssuedState:
        async with self._lock:
            await self._load_locked()
            now = self._now_ms()
            snapshot = self._snapshot()
            self._prune_expired(now)

            created_at = to_iso(datetime.fromtimestamp(now / 1000, tz=timezone.utc))
            nonce = secrets.token_hex(NONCE_BYTES)
            payload = _b64url(
                orjson.dumps({"shop": shop, "nonce": nonce, "createdAt": created_at}, option=orjson.OPT_SORT_KEYS)
            )
            state = f"{payload}.{self._sign(payload)}"
            stored = StoredState(shop=shop, nonce=nonce, created_at=created_at, expires_at=now + self._ttl_ms)
            self._states[state] = stored
            await self._commit_locked(snapshot)
        return IssuedState(state=state, expires_at=stored.expires_at)

    async def consume(self, state: str) -> StoredState | None:
        if self.verify_signature(state) is None:
            return None
        async with self._lock:
            await self._load_locked()
            snapshot = self._snapshot()
            stored = self._states.pop(state, None)
            if stored is None:
                return None
            await self._commit_locked(snapshot)
        if stored.expires_at <= self._now_ms():
            return None
        return stored

    async def size(self) -> int:
        await self._ensure_loaded()
        return len(self._states)
