"""At-most-once execution keyed by a client-supplied idempotency key.

A request first claims ``idempotency/<sha256(key)>`` with an atomic
create-if-absent write. Only the claimant runs the operation; the claim is then
completed with the operation's result, which later requests replay. A failed
operation releases its claim so the client can retry.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from shopgate.db.ports import DocumentStore
from shopgate.domain.models import to_iso, utcnow
from shopgate.errors import IdempotencyConflictError, IdempotencyInProgressError, InvalidArgumentError
from shopgate.ids import idempotency_key_hash, is_valid_idempotency_key

logger = logging.getLogger("authz.idempotency")

IDEMPOTENCY_HEADER = "x-idempotency-key"
LEGACY_IDEMPOTENCY_HEADER = "idempotency-key"
COLLECTION = "idempotency"

STATE_PENDING = "pending"
STATE_COMPLETED = "completed"
COMPLETION_ATTEMPTS = 2


@dataclass(frozen=True)
class IdempotentResult:
    from_cache: bool
    result: Any


def require_idempotency_key(value: str | None) -> str:
    if not value:
        raise InvalidArgumentError(f"Header {IDEMPOTENCY_HEADER} is required")
    if not is_valid_idempotency_key(value):
        raise InvalidArgumentError(f"Invalid {IDEMPOTENCY_HEADER}")
    return value


class IdempotencyEngine:
    def __init__(self, store: DocumentStore, clock: Callable[[], datetime] = utcnow) -> None:
        self._store = store
        self._clock = clock

    def run(
        self,
        key: str,
        operation: Callable[[], Any],
        *,
        actor_id: str | None = None,
        body_hash: str | None = None,
    ) -> IdempotentResult:
        record_key = idempotency_key_hash(key)
        claim: dict[str, Any] = {
            "hash": record_key,
            "createdAt": to_iso(self._clock()),
            "actorId": actor_id or "unknown",
            "state": STATE_PENDING,
        }
        if body_hash is not None:
            claim["bodyHash"] = body_hash

        if not self._store.create(COLLECTION, record_key, claim):
            return self._replay(record_key, body_hash)

        try:
            result = operation()
        except Exception:
            self._store.delete(COLLECTION, record_key)
            logger.info("Released idempotency claim after failure", extra={"hash": record_key})
            raise

        self._complete(record_key, result)
        return IdempotentResult(from_cache=False, result=result)

    def _complete(self, record_key: str, result: Any) -> None:
        """Mark the claim completed, retrying once.

        If both writes fail the claim is released so the key does not stay
        pending forever; a retry of the request runs the operation again.
        """
        patch = {"state": STATE_COMPLETED, "result": result}
        for attempt in range(1, COMPLETION_ATTEMPTS + 1):
            try:
                self._store.update(COLLECTION, record_key, patch)
                return
            except Exception:
                if attempt < COMPLETION_ATTEMPTS:
                    logger.warning("Retrying idempotency completion write", extra={"hash": record_key})
                    continue
                logger.exception("Could not complete idempotency claim, releasing it", extra={"hash": record_key})
                self._store.delete(COLLECTION, record_key)
                raise

    def _replay(self, record_key: str, body_hash: str | None) -> IdempotentResult:
        existing = self._store.get(COLLECTION, record_key)
        if existing is None:
            # The claimant failed and released the key between our create and get.
            raise IdempotencyInProgressError()

        stored_hash = existing.get("bodyHash")
        if body_hash and stored_hash and body_hash != stored_hash:
            logger.warning("Idempotency key reused with different payload", extra={"hash": record_key})
            raise IdempotencyConflictError()

        if existing.get("state", STATE_COMPLETED) != STATE_COMPLETED:
            raise IdempotencyInProgressError()
        return IdempotentResult(from_cache=True, result=existing.get("result"))
