from __future__ import annotations

import copy
import threading
from typing import Any, Callable

from shopgate.db.ports import (
    Document,
    DocumentAccess,
    DocumentMissingError,
    QuerySpec,
    R,
    apply_query,
)

_DELETED = object()


class InMemoryDocumentStore:
    """Process-local document store. Transactions are serialized by one lock."""

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._lock = threading.RLock()

    def get(self, collection: str, key: str) -> dict[str, Any] | None:
        with self._lock:
            data = self._collections.get(collection, {}).get(key)
            return copy.deepcopy(data) if data is not None else None

    def set(self, collection: str, key: str, data: dict[str, Any], *, merge: bool = False) -> None:
        with self._lock:
            docs = self._collections.setdefault(collection, {})
            if merge and key in docs:
                merged = dict(docs[key])
                merged.update(copy.deepcopy(data))
                docs[key] = merged
            else:
                docs[key] = copy.deepcopy(data)

    def create(self, collection: str, key: str, data: dict[str, Any]) -> bool:
        with self._lock:
            docs = self._collections.setdefault(collection, {})
            if key in docs:
                return False
            docs[key] = copy.deepcopy(data)
            return True

    def update(self, collection: str, key: str, patch: dict[str, Any]) -> None:
        with self._lock:
            docs = self._collections.get(collection, {})
            if key not in docs:
                raise DocumentMissingError(collection, key)
            docs[key].update(copy.deepcopy(patch))

    def delete(self, collection: str, key: str) -> None:
        with self._lock:
            self._collections.get(collection, {}).pop(key, None)

    def query(self, spec: QuerySpec) -> list[Document]:
        with self._lock:
            docs = [
                Document(key=key, data=copy.deepcopy(data))
                for key, data in self._collections.get(spec.collection, {}).items()
            ]
        return apply_query(docs, spec)

    def run_transaction(self, fn: Callable[[DocumentAccess], R]) -> R:
        with self._lock:
            transaction = _MemoryTransaction(self)
            result = fn(transaction)
            transaction.commit()
            return result


class _MemoryTransaction:
    """Stages writes and applies them only if the transaction body returns."""

    def __init__(self, store: InMemoryDocumentStore) -> None:
        self._store = store
        self._staged: dict[tuple[str, str], Any] = {}

    def get(self, collection: str, key: str) -> dict[str, Any] | None:
        staged = self._staged.get((collection, key))
        if staged is _DELETED:
            return None
        if staged is not None:
            return copy.deepcopy(staged)
        return self._store.get(collection, key)

    def set(self, collection: str, key: str, data: dict[str, Any], *, merge: bool = False) -> None:
        current = self.get(collection, key) if merge else None
        if current is not None:
            current.update(copy.deepcopy(data))
            self._staged[(collection, key)] = current
        else:
            self._staged[(collection, key)] = copy.deepcopy(data)

    def update(self, collection: str, key: str, patch: dict[str, Any]) -> None:
        current = self.get(collection, key)
        if current is None:
            raise DocumentMissingError(collection, key)
        current.update(copy.deepcopy(patch))
        self._staged[(collection, key)] = current

    def delete(self, collection: str, key: str) -> None:
        self._staged[(collection, key)] = _DELETED

    def commit(self) -> None:
        for (collection, key), data in self._staged.items():
            if data is _DELETED:
                self._store.delete(collection, key)
            else:
                self._store.set(collection, key, data)
        self._staged.clear()
