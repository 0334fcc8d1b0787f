import os
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

ROOT_DIR = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT_DIR))

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("FIREBASE_PROJECT_ID", "shopgate-test")
os.environ.setdefault("APP_URL", "https://shopgate.example.app")
os.environ.setdefault("SHOPIFY_API_KEY", "test_key")
os.environ.setdefault("SHOPIFY_API_SECRET", "test_secret")
os.environ.setdefault("SHOPIFY_SCOPES", "read_products,write_products")
os.environ.setdefault("DOCUMENT_STORE_BACKEND", "memory")

from shopgate.auth.firebase import Principal
from shopgate.config import Settings
from shopgate.context import build_context
from shopgate.db.memory import InMemoryDocumentStore
from shopgate.errors import UnauthorizedError, UpstreamError
from shopgate.main import create_app
from shopgate.shopify.oauth import AccessTokenGrant

API_SECRET = "test_secret"


class FakeVerifier:
    def __init__(self) -> None:
        self._principals: dict[str, Principal] = {}

    def add(self, uid: str, email: str | None = None, *, email_verified: bool = True) -> str:
        token = f"token-{uid}"
        self._principals[token] = Principal(uid=uid, email=email, email_verified=email_verified)
        return token

    def verify(self, token: str) -> Principal:
        principal = self._principals.get(token)
        if principal is None:
            raise UnauthorizedError("Invalid token")
        return principal


class FakeOAuthClient:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []
        self.error: Exception | None = None
        self.grant = AccessTokenGrant(access_token="shpat_test_token", scope="read_products,write_products")

    async def exchange_code_for_access_token(self, *, shop_domain: str, code: str) -> AccessTokenGrant:
        self.calls.append((shop_domain, code))
        if self.error is not None:
            raise self.error
        return self.grant

    def fail_with(self, message: str = "Shopify API call failed (500)") -> None:
        self.error = UpstreamError(message)


@pytest.fixture()
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        ENVIRONMENT="test",
        FIREBASE_PROJECT_ID="shopgate-test",
        APP_URL="https://shopgate.example.app",
        SHOPIFY_API_KEY="test_key",
        SHOPIFY_API_SECRET=API_SECRET,
        SHOPIFY_SCOPES="read_products, write_products",
        DOCUMENT_STORE_BACKEND="memory",
        DATA_DIR=str(tmp_path / "data"),
    )


@pytest.fixture()
def verifier() -> FakeVerifier:
    return FakeVerifier()


@pytest.fixture()
def oauth_client() -> FakeOAuthClient:
    return FakeOAuthClient()


@pytest.fixture()
def app_context(settings, verifier, oauth_client):
    return build_context(
        settings,
        documents=InMemoryDocumentStore(),
        verifier=verifier,
        oauth_client=oauth_client,
    )


@pytest.fixture()
def api_client(app_context):
    with TestClient(create_app(context=app_context)) as client:
        yield client


@pytest.fixture()
def auth_headers(verifier):
    def _headers(uid: str, email: str | None = None, *, key: str | None = None, email_verified: bool = True):
        headers = {"Authorization": f"Bearer {verifier.add(uid, email, email_verified=email_verified)}"}
        if key is not None:
            headers["x-idempotency-key"] = key
        return headers

    return _headers
