from __future__ import annotations

import asyncio
import base64
import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

import orjson
from googleapiclient.errors import HttpError

from shopgate.stores.files import JsonFileStore, StoreFormatError

logger = logging.getLogger("shops.tokens")


@dataclass(frozen=True)
class ShopTokenRecord:
    shop: str
    access_token: str
    scope: str
    installed_at: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "shop": self.shop,
            "accessToken": self.access_token,
            "scope": self.scope,
            "installedAt": self.installed_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ShopTokenRecord":
        return cls(
            shop=data["shop"],
            access_token=data.get("accessToken") or data.get("access_token") or "",
            scope=data.get("scope", ""),
            installed_at=data.get("installedAt", ""),
        )


class TokenStore(Protocol):
    async def save(self, record: ShopTokenRecord) -> None: ...

    async def get(self, shop: str) -> ShopTokenRecord | None: ...

    async def list(self) -> list[ShopTokenRecord]: ...


class FileTokenStore(JsonFileStore):
    """Per-shop access tokens in one local file. Single process only."""

    def __init__(self, path: str | Path) -> None:
        super().__init__(path)
        self._tokens: dict[str, ShopTokenRecord] = {}

    def _load_data(self, data: Any) -> None:
        if not isinstance(data, dict):
            raise StoreFormatError(f"{self.path} data must be an object")
        for shop, entry in data.items():
            self._tokens[shop] = ShopTokenRecord.from_dict(entry)

    def _load_legacy(self, items: list[Any]) -> None:
        for entry in items:
            record = ShopTokenRecord.from_dict(entry)
            self._tokens[record.shop] = record

    def _dump_data(self) -> dict[str, Any]:
        return {shop: record.to_dict() for shop, record in self._tokens.items()}

    def _snapshot(self) -> dict[str, ShopTokenRecord]:
        return dict(self._tokens)

    def _restore(self, snapshot: dict[str, ShopTokenRecord]) -> None:
        self._tokens = snapshot

    async def save(self, record: ShopTokenRecord) -> None:
        async with self._lock:
            await self._load_locked()
            snapshot = self._snapshot()
            self._tokens[record.shop] = record
            await self._commit_locked(snapshot)

    async def get(self, shop: str) -> ShopTokenRecord | None:
        await self._ensure_loaded()
        return self._tokens.get(shop)

    async def list(self) -> list[ShopTokenRecord]:
        await self._ensure_loaded()
        return list(self._tokens.values())


def secret_id_for_shop(prefix: str, shop: str) -> str:
    return f"{prefix}{shop.replace('.', '-')}"


class SecretManagerTokenStore:
    """One Secret Manager secret per shop; every save adds a new version."""

    def __init__(self, client: Any, *, project_id: str, prefix: str = "shopify-token-") -> None:
        self._client = client
        self._project_id = project_id
        self._prefix = prefix
        # discovery clients share one http connection and are not thread safe
        self._client_lock = threading.Lock()

    def _secrets(self):
        return self._client.projects().secrets()

    def _secret_name(self, shop: str) -> str:
        return f"projects/{self._project_id}/secrets/{secret_id_for_shop(self._prefix, shop)}"

    def _save_sync(self, record: ShopTokenRecord) -> None:
        secret_id = secret_id_for_shop(self._prefix, record.shop)
        with self._client_lock:
            try:
                self._secrets().create(
                    parent=f"projects/{self._project_id}",
                    secretId=secret_id,
                    body={"replication": {"automatic": {}}, "labels": {"kind": "shopify-token"}},
                ).execute()
                logger.info("Created token secret", extra={"shop": record.shop, "secretId": secret_id})
            except HttpError as exc:
                if exc.resp.status != 409:
                    raise
            payload = base64.b64encode(orjson.dumps(record.to_dict())).decode("ascii")
            self._secrets().addVersion(
                parent=self._secret_name(record.shop),
                body={"payload": {"data": payload}},
            ).execute()

    def _access_sync(self, secret_name: str) -> ShopTokenRecord | None:
        with self._client_lock:
            try:
                response = self._secrets().versions().access(name=f"{secret_name}/versions/latest").execute()
            except HttpError as exc:
                if exc.resp.status == 404:
                    return None
                raise
        data = (response.get("payload") or {}).get("data")
        if not data:
            return None
        return ShopTokenRecord.from_dict(orjson.loads(base64.b64decode(data)))

    def _list_names_sync(self) -> list[str]:
        names: list[str] = []
        with self._client_lock:
            request = self._secrets().list(parent=f"projects/{self._project_id}", filter="labels.kind=shopify-token")
            while request is not None:
                response = request.execute()
                names.extend(
                    secret["name"]
                    for secret in response.get("secrets", [])
                    if secret.get("name", "").rsplit("/", 1)[-1].startswith(self._prefix)
                )
                request = self._secrets().list_next(previous_request=request, previous_response=response)
        return names

    async def save(self, record: ShopTokenRecord) -> None:
        await asyncio.to_thread(self._save_sync, record)

    async def get(self, shop: str) -> ShopTokenRecord | None:
        return await asyncio.to_thread(self._access_sync, self._secret_name(shop))

    async def list(self) -> list[ShopTokenRecord]:
        names = await asyncio.to_thread(self._list_names_sync)
        records = []
        for name in names:
            record = await asyncio.to_thread(self._access_sync, name)
            if record is not None:
                records.append(record)
        return records
