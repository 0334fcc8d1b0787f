"""Versioned JSON files backing the OAuth state, token and webhook stores.

Each file holds ``{"version": 1, "data": ...}``. A store loads its file once,
then serves reads from memory; every mutation rewrites the file through a
temp file and ``os.replace`` while holding the store's lock, so writes to one
file never interleave. A failed write leaves the in-memory state as it was
before the mutation. Files from before versioning (a bare JSON array) are
migrated on load; any other version is rejected.
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Any

import orjson

logger = logging.getLogger("shops.stores")

FILE_FORMAT_VERSION = 1


class StoreFormatError(ValueError):
    pass


def _write_atomic(path: Path, payload: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_name(f"{path.name}.tmp")
    with open(temp_path, "wb") as handle:
        handle.write(payload)
        handle.flush()
        os.fsync(handle.fileno())
    os.replace(temp_path, path)


def _read(path: Path) -> bytes | None:
    try:
        return path.read_bytes()
    except FileNotFoundError:
        return None


class JsonFileStore:
    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = asyncio.Lock()
        self._loaded = False

    def _load_data(self, data: Any) -> None:
        raise NotImplementedError

    def _load_legacy(self, items: list[Any]) -> None:
        raise NotImplementedError

    def _dump_data(self) -> Any:
        raise NotImplementedError

    def _snapshot(self) -> Any:
        raise NotImplementedError

    def _restore(self, snapshot: Any) -> None:
        raise NotImplementedError

    async def _ensure_loaded(self) -> None:
        if self._loaded:
            return
        async with self._lock:
            await self._load_locked()

    async def _load_locked(self) -> None:
        if self._loaded:
            return
        raw = await asyncio.to_thread(_read, self.path)
        if raw is not None:
            self._decode(raw)
        self._loaded = True

    def _decode(self, raw: bytes) -> None:
        try:
            parsed = orjson.loads(raw)
        except orjson.JSONDecodeError as exc:
            raise StoreFormatError(f"{self.path} is not valid JSON") from exc

        if isinstance(parsed, list):
            logger.info("Migrating legacy store file", extra={"path": str(self.path), "entries": len(parsed)})
            self._load_legacy(parsed)
            return
        if not isinstance(parsed, dict) or "version" not in parsed:
            raise StoreFormatError(f"{self.path} has no version field")
        if parsed["version"] != FILE_FORMAT_VERSION:
            raise StoreFormatError(f"{self.path} has unsupported version {parsed['version']!r}")
        self._load_data(parsed.get("data"))

    async def _commit_locked(self, snapshot: Any) -> None:
        """Persist pending changes, or roll memory back to ``snapshot`` if the write fails."""
        try:
            await self._persist_locked()
        except Exception:
            self._restore(snapshot)
            logger.exception("Store write failed, in-memory changes rolled back", extra={"path": str(self.path)})
            raise

    async def _persist_locked(self) -> None:
        payload = orjson.dumps(
            {"version": FILE_FORMAT_VERSION, "data": self._dump_data()},
            option=orjson.OPT_INDENT_2,
        )
        await asyncio.to_thread(_write_atomic, self.path, payload)
