from fastapi import Header

from shopgate.idempotency import IDEMPOTENCY_HEADER, LEGACY_IDEMPOTENCY_HEADER, require_idempotency_key


def get_idempotency_key(
    x_idempotency_key: str | None = Header(default=None, alias=IDEMPOTENCY_HEADER),
    idempotency_key: str | None = Header(default=None, alias=LEGACY_IDEMPOTENCY_HEADER),
) -> str:
    return require_idempotency_key(x_idempotency_key or idempotency_key)
