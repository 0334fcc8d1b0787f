from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime
from typing import Callable

from shopgate.domain.models import to_iso, utcnow
from shopgate.errors import BadSignatureError, InvalidArgumentError, UpstreamError
from shopgate.shopify.hmac import verify_oauth_hmac, verify_webhook_hmac
from shopgate.shopify.oauth import ShopifyOAuthClient, build_authorize_url
from shopgate.shopify.shop import normalize_shop_domain
from shopgate.stores.state_store import StateStore
from shopgate.stores.token_store import ShopTokenRecord, TokenStore
from shopgate.stores.webhook_store import WebhookStore

logger = logging.getLogger("shops.install")


class ShopInstallService:
    def __init__(
        self,
        *,
        state_store: StateStore,
        token_store: TokenStore,
        webhook_store: WebhookStore,
        oauth_client: ShopifyOAuthClient,
        api_key: str,
        api_secret: str,
        webhook_secret: str,
        scopes: str,
        redirect_uri: str,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.state_store = state_store
        self.token_store = token_store
        self.webhook_store = webhook_store
        self._oauth_client = oauth_client
        self._api_key = api_key
        self._api_secret = api_secret
        self._webhook_secret = webhook_secret
        self._scopes = scopes
        self._redirect_uri = redirect_uri
        self._clock = clock

    async def begin_install(self, shop: str | None) -> str:
        """Issue a state for ``shop`` and return the provider authorize URL."""
        try:
            shop_domain = normalize_shop_domain(shop)
        except InvalidArgumentError:
            logger.warning("Shop install request rejected", extra={"reason": "invalid_shop_param"})
            raise
        issued = await self.state_store.generate(shop_domain)
        logger.info("Redirecting to Shopify install", extra={"shop": shop_domain})
        return build_authorize_url(
            shop_domain=shop_domain,
            client_id=self._api_key,
            scopes=self._scopes,
            redirect_uri=self._redirect_uri,
            state=issued.state,
        )

    async def complete_install(self, query_items: Sequence[tuple[str, str]]) -> ShopTokenRecord:
        """Verify an OAuth callback, exchange its code and store the shop's token.

        Nothing is consumed or written unless the callback HMAC is valid.
        """
        params = dict(query_items)
        if not verify_oauth_hmac(query_items, self._api_secret):
            logger.warning("Callback HMAC validation failed", extra={"shop": params.get("shop"), "security": True})
            raise BadSignatureError("Invalid OAuth HMAC")

        shop, code, state = params.get("shop"), params.get("code"), params.get("state")
        if not shop or not code or not state:
            raise InvalidArgumentError("Missing required OAuth callback params: shop, code, state")
        shop_domain = normalize_shop_domain(shop)

        stored = await self.state_store.consume(state)
        if stored is None or stored.shop != shop_domain:
            logger.warning("State validation failed", extra={"shop": shop_domain})
            raise InvalidArgumentError("Invalid OAuth state")

        try:
            grant = await self._oauth_client.exchange_code_for_access_token(shop_domain=shop_domain, code=code)
        except UpstreamError:
            logger.error("OAuth token exchange failed", extra={"shop": shop_domain})
            raise

        record = ShopTokenRecord(
            shop=shop_domain,
            access_token=grant.access_token,
            scope=grant.scope,
            installed_at=to_iso(self._clock()),
        )
        await self.token_store.save(record)
        logger.info("Shop installed successfully", extra={"shop": shop_domain, "scope": grant.scope})
        return record

    async def ingest_webhook(
        self,
        *,
        body: bytes,
        webhook_id: str | None,
        supplied_hmac: str | None,
        shop: str | None = None,
        topic: str | None = None,
    ) -> bool:
        """Verify and record one delivery. Returns True when the delivery is a replay."""
        if not webhook_id:
            raise InvalidArgumentError("Missing x-shopify-webhook-id header")
        if not body:
            raise InvalidArgumentError("Missing webhook body")
        if not verify_webhook_hmac(body=body, secret=self._webhook_secret, supplied_hmac=supplied_hmac):
            logger.warning(
                "Webhook signature validation failed",
                extra={"webhookId": webhook_id, "shop": shop, "security": True},
            )
            raise BadSignatureError("Invalid webhook HMAC")

        fresh = await self.webhook_store.mark_handled(webhook_id, shop=shop, topic=topic)
        logger.info(
            "Shopify webhook processed",
            extra={"webhookId": webhook_id, "shop": shop, "topic": topic, "replay": not fresh},
        )
        return not fresh
