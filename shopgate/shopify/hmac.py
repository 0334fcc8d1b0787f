from __future__ import annotations

import base64
import hashlib
import hmac
from collections.abc import Sequence


def calculate_callback_hmac(query_items: Sequence[tuple[str, str]], secret: str) -> str:
    filtered = [(key, value) for key, value in query_items if key not in {"hmac", "signature"}]
    filtered.sort(key=lambda item: item[0])
    message = "&".join(f"{key}={value}" for key, value in filtered)
    return hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()


def verify_oauth_hmac(query_items: Sequence[tuple[str, str]], secret: str) -> bool:
    supplied_hmac = None
    for key, value in query_items:
        if key == "hmac":
            supplied_hmac = value
    if not supplied_hmac:
        return False
    digest = calculate_callback_hmac(query_items, secret)
    return hmac.compare_digest(digest, supplied_hmac.strip().lower())


def verify_webhook_hmac(*, body: bytes, secret: str, supplied_hmac: str | None) -> bool:
    if not supplied_hmac:
        return False
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    encoded = base64.b64encode(digest).decode("utf-8")
    return hmac.compare_digest(encoded, supplied_hmac.strip())
