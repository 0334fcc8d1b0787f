from __future__ import annotations

import re

from shopgate.errors import InvalidArgumentError

_SHOP_DOMAIN_RE = re.compile(r"^[a-z0-9](?:[a-z0-9-]*[a-z0-9])?\.myshopify\.com$")
_SCHEME_RE = re.compile(r"^https?://")


def normalize_shop_domain(shop: str | None) -> str:
    """Lower-case a shop reference and reduce it to its ``*.myshopify.com`` host."""
    normalized = _SCHEME_RE.sub("", (shop or "").strip().lower())
    host = normalized.split("/", 1)[0]
    if not _SHOP_DOMAIN_RE.fullmatch(host):
        raise InvalidArgumentError("shop must be a valid *.myshopify.com domain")
    return host
