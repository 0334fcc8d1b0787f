from __future__ import annotations

from typing import Any

from shopgate.db.ports import DocumentAccess, DocumentStore


class Repository:
    """Binds one collection to a store or to an open transaction."""

    collection: str = ""

    def __init__(self, docs: DocumentAccess) -> None:
        self.docs = docs

    def _get(self, key: str) -> dict[str, Any] | None:
        return self.docs.get(self.collection, key)

    def _store(self) -> DocumentStore:
        if not hasattr(self.docs, "query"):
            raise TypeError(f"{type(self).__name__} queries need a store, not a transaction")
        return self.docs  # type: ignore[return-value]
