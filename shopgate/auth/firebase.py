from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

import httpx
from jose import jwk, jwt
from jose.exceptions import JWSError, JWTError

from shopgate.errors import UnauthorizedError, UpstreamError

logger = logging.getLogger("auth.firebase")


@dataclass(frozen=True)
class Principal:
    uid: str
    email: str | None = None
    email_verified: bool = False


class TokenVerifier(Protocol):
    def verify(self, token: str) -> Principal: ...


class _JWKSCache:
    def __init__(self, ttl_seconds: int = 300) -> None:
        self.jwks: Optional[Dict[str, Any]] = None
        self.cached_at: float = 0.0
        self.ttl_seconds = ttl_seconds

    def get(self) -> Optional[Dict[str, Any]]:
        if self.jwks and (time.time() - self.cached_at) < self.ttl_seconds:
            return self.jwks
        return None

    def set(self, jwks: Optional[Dict[str, Any]]) -> None:
        self.jwks = jwks
        self.cached_at = time.time()


class FirebaseTokenVerifier:
    """Verifies Firebase ID tokens against Google's published signing keys."""

    def __init__(self, *, project_id: str, jwks_url: str, timeout: float = 10.0) -> None:
        self._project_id = project_id
        self._issuer = f"https://securetoken.google.com/{project_id}"
        self._jwks_url = jwks_url
        self._timeout = timeout
        self._cache = _JWKSCache()
        self._lock = threading.Lock()

    def _fetch_jwks(self) -> Dict[str, Any]:
        with self._lock:
            cached = self._cache.get()
            if cached:
                return cached
            try:
                resp = httpx.get(self._jwks_url, timeout=self._timeout)
                resp.raise_for_status()
                data = resp.json()
            except (httpx.HTTPError, ValueError) as exc:
                logger.exception("JWKS fetch failed", extra={"jwks_url": self._jwks_url})
                raise UpstreamError("Unable to fetch identity signing keys") from exc
            self._cache.set(data)
            return data

    def _find_key(self, kid: str) -> Optional[Dict[str, Any]]:
        for key in self._fetch_jwks().get("keys", []):
            if key.get("kid") == kid:
                return key
        return None

    def _get_public_key(self, token: str) -> Dict[str, Any]:
        try:
            headers = jwt.get_unverified_header(token)
        except JWTError as exc:
            logger.warning("Invalid token header", exc_info=exc)
            raise UnauthorizedError("Invalid token") from exc
        kid = headers.get("kid")
        if not kid:
            raise UnauthorizedError("Missing kid in token")
        key = self._find_key(kid)
        if key is None:
            # keys rotate; refetch once
            self._cache.set(None)
            key = self._find_key(kid)
        if key is None:
            logger.warning("Signing key not found", extra={"kid": kid})
            raise UnauthorizedError("Signing key not found")
        return key

    def verify(self, token: str) -> Principal:
        public_key = self._get_public_key(token)
        try:
            key = jwk.construct(public_key, algorithm=public_key.get("alg", "RS256"))
            claims = jwt.decode(
                token,
                key=key.to_pem().decode(),
                algorithms=[public_key.get("alg", "RS256")],
                audience=self._project_id,
                issuer=self._issuer,
            )
        except (JWTError, JWSError, ValueError) as exc:
            logger.warning("Token verification failed", exc_info=exc)
            raise UnauthorizedError("Invalid token") from exc

        uid = claims.get("sub")
        if not isinstance(uid, str) or not uid:
            raise UnauthorizedError("Invalid token claims")
        logger.debug("Verified identity token", extra={"kid": public_key.get("kid"), "sub": uid})
        return Principal(
            uid=uid,
            email=claims.get("email"),
            email_verified=bool(claims.get("email_verified", False)),
        )
