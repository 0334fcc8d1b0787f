from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

import httpx

from shopgate.errors import UpstreamError

logger = logging.getLogger("shops.oauth")


def build_authorize_url(*, shop_domain: str, client_id: str, scopes: str, redirect_uri: str, state: str) -> str:
    query = urlencode(
        {
            "client_id": client_id,
            "scope": scopes,
            "redirect_uri": redirect_uri,
            "state": state,
        }
    )
    return f"https://{shop_domain}/admin/oauth/authorize?{query}"


@dataclass(frozen=True)
class AccessTokenGrant:
    access_token: str
    scope: str


class ShopifyOAuthClient:
    def __init__(self, *, api_key: str, api_secret: str, timeout: float = 20.0) -> None:
        self._api_key = api_key
        self._api_secret = api_secret
        self._timeout = timeout

    async def exchange_code_for_access_token(self, *, shop_domain: str, code: str) -> AccessTokenGrant:
        url = f"https://{shop_domain}/admin/oauth/access_token"
        payload = {
            "client_id": self._api_key,
            "client_secret": self._api_secret,
            "code": code,
        }
        response = await self._post_json(url=url, payload=payload)
        access_token = response.get("access_token")
        scope = response.get("scope")
        if not isinstance(access_token, str) or not access_token:
            raise UpstreamError("OAuth token exchange response is missing access_token")
        if not isinstance(scope, str):
            raise UpstreamError("OAuth token exchange response is missing scope")
        return AccessTokenGrant(access_token=access_token, scope=scope)

    async def _post_json(self, *, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(url, json=payload)
        except httpx.RequestError as exc:
            raise UpstreamError(f"Network error while calling Shopify: {exc}") from exc

        if response.status_code >= 400:
            logger.warning("Shopify API call failed", extra={"url": url, "status": response.status_code})
            raise UpstreamError(f"Shopify API call failed ({response.status_code})")

        try:
            body = response.json()
        except ValueError as exc:
            raise UpstreamError("Shopify API returned invalid JSON") from exc

        if not isinstance(body, dict):
            raise UpstreamError("Shopify API response must be a JSON object")
        return body
