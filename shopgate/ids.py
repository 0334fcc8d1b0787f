from __future__ import annotations

import hashlib
import re
from typing import Any

import orjson
from ulid import ULID

ULID_RE = re.compile(r"^[0-9A-HJKMNP-TV-Z]{26}$")
_IDEMPOTENCY_KEY_RE = re.compile(r"^[A-Za-z0-9._~-]{10,64}$")
COMPOUND_SEPARATOR = "_"


def generate_id() -> str:
    return str(ULID())


def is_valid_ulid(value: str | None) -> bool:
    return bool(value) and ULID_RE.fullmatch(value) is not None


def is_valid_idempotency_key(key: str | None) -> bool:
    return bool(key) and _IDEMPOTENCY_KEY_RE.fullmatch(key) is not None


def idempotency_key_hash(key: str) -> str:
    """Storage address for a caller-supplied idempotency key."""
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


def body_hash(payload: dict[str, Any]) -> str:
    """sha256 over the key-sorted JSON encoding of ``payload``."""
    return hashlib.sha256(orjson.dumps(payload, option=orjson.OPT_SORT_KEYS)).hexdigest()


def compound_id(parts: list[str]) -> str:
    if not parts:
        raise ValueError("compound_id requires at least one part")
    for part in parts:
        if COMPOUND_SEPARATOR in part:
            raise ValueError(f'compound_id part cannot contain "{COMPOUND_SEPARATOR}": {part}')
    return COMPOUND_SEPARATOR.join(parts)


def membership_key(tenant_id: str, uid: str) -> str:
    return compound_id([tenant_id, uid])
