"""Application context: every store, client and workflow, built once per app.

``build_context`` is the only place that turns settings into live objects.
Routes reach the context through ``request.app.state.context``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

from shopgate.auth.firebase import FirebaseTokenVerifier, TokenVerifier
from shopgate.config import Settings
from shopgate.db.memory import InMemoryDocumentStore
from shopgate.db.ports import DocumentStore
from shopgate.db.sql import SqlDocumentStore
from shopgate.google_clients import get_secret_manager_client
from shopgate.idempotency import IdempotencyEngine
from shopgate.services.invitations import InvitationService
from shopgate.services.jobs import JobDispatcher, build_default_dispatcher
from shopgate.services.shop_install import ShopInstallService
from shopgate.services.tenants import TenantService
from shopgate.shopify.oauth import ShopifyOAuthClient
from shopgate.stores.state_store import StateStore
from shopgate.stores.token_store import FileTokenStore, SecretManagerTokenStore, TokenStore
from shopgate.stores.webhook_store import WebhookStore

logger = logging.getLogger("shopgate.context")


@dataclass
class AppContext:
    settings: Settings
    documents: DocumentStore
    idempotency: IdempotencyEngine
    verifier: TokenVerifier
    tenants: TenantService
    invitations: InvitationService
    shops: ShopInstallService
    jobs: JobDispatcher


def build_document_store(settings: Settings) -> DocumentStore:
    if settings.DOCUMENT_STORE_BACKEND == "memory":
        return InMemoryDocumentStore()
    return SqlDocumentStore.from_url(settings.DATABASE_URL)


def build_token_store(settings: Settings) -> TokenStore:
    if settings.TOKEN_STORE_BACKEND == "secret_manager":
        return SecretManagerTokenStore(
            get_secret_manager_client(settings.GOOGLE_APPLICATION_CREDENTIALS),
            project_id=str(settings.GCP_PROJECT_ID),
            prefix=settings.TOKEN_SECRET_PREFIX,
        )
    return FileTokenStore(Path(settings.DATA_DIR) / "tokens.json")


def build_context(
    settings: Settings,
    *,
    documents: DocumentStore | None = None,
    verifier: TokenVerifier | None = None,
    token_store: TokenStore | None = None,
    oauth_client: ShopifyOAuthClient | None = None,
) -> AppContext:
    documents = documents if documents is not None else build_document_store(settings)
    idempotency = IdempotencyEngine(documents)
    data_dir = Path(settings.DATA_DIR)

    shops = ShopInstallService(
        state_store=StateStore(
            data_dir / "oauth-states.json",
            ttl_seconds=settings.STATE_TTL_SECONDS,
            hmac_secret=settings.SHOPIFY_API_SECRET,
        ),
        token_store=token_store if token_store is not None else build_token_store(settings),
        webhook_store=WebhookStore(data_dir / "webhooks.json", max_entries=settings.WEBHOOK_MAX_ENTRIES),
        oauth_client=oauth_client
        or ShopifyOAuthClient(
            api_key=settings.SHOPIFY_API_KEY,
            api_secret=settings.SHOPIFY_API_SECRET,
            timeout=settings.SHOPIFY_REQUEST_TIMEOUT_SECONDS,
        ),
        api_key=settings.SHOPIFY_API_KEY,
        api_secret=settings.SHOPIFY_API_SECRET,
        webhook_secret=settings.webhook_secret,
        scopes=settings.SHOPIFY_SCOPES,
        redirect_uri=settings.oauth_redirect_uri,
    )

    logger.info(
        "Application context built",
        extra={
            "documentStore": settings.DOCUMENT_STORE_BACKEND,
            "tokenStore": settings.TOKEN_STORE_BACKEND,
            "environment": settings.ENVIRONMENT,
        },
    )
    return AppContext(
        settings=settings,
        documents=documents,
        idempotency=idempotency,
        verifier=verifier
        or FirebaseTokenVerifier(project_id=settings.FIREBASE_PROJECT_ID, jwks_url=settings.FIREBASE_JWKS_URL),
        tenants=TenantService(documents, idempotency),
        invitations=InvitationService(
            documents,
            idempotency,
            enforce_email=settings.ENFORCE_INVITE_EMAIL,
            validity=timedelta(days=settings.INVITATION_TTL_DAYS),
        ),
        shops=shops,
        jobs=build_default_dispatcher(),
    )
