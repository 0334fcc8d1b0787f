"""Document-store interface shared by the in-memory and SQL backends.

Documents are JSON-compatible dicts addressed by ``(collection, key)``. Reads
and writes outside ``run_transaction`` are consistent per document only.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Literal, Protocol, TypeVar

WhereOp = Literal["==", ">=", "<=", "in", "array-contains"]
OrderDir = Literal["asc", "desc"]

R = TypeVar("R")


class DocumentMissingError(LookupError):
    def __init__(self, collection: str, key: str) -> None:
        super().__init__(f"Document {collection}/{key} does not exist")
        self.collection = collection
        self.key = key


@dataclass(frozen=True)
class Where:
    field: str
    op: WhereOp
    value: Any


@dataclass(frozen=True)
class OrderBy:
    field: str
    dir: OrderDir = "asc"


@dataclass(frozen=True)
class QuerySpec:
    collection: str
    where: list[Where] = field(default_factory=list)
    order_by: list[OrderBy] = field(default_factory=list)
    limit: int | None = None


@dataclass(frozen=True)
class Document:
    key: str
    data: dict[str, Any]


class DocumentAccess(Protocol):
    """Operations available both on a store and inside a transaction."""

    def get(self, collection: str, key: str) -> dict[str, Any] | None: ...

    def set(self, collection: str, key: str, data: dict[str, Any], *, merge: bool = False) -> None: ...

    def update(self, collection: str, key: str, patch: dict[str, Any]) -> None: ...

    def delete(self, collection: str, key: str) -> None: ...


class DocumentStore(DocumentAccess, Protocol):
    def create(self, collection: str, key: str, data: dict[str, Any]) -> bool:
        """Insert only if absent. Returns False when the key already exists."""
        ...

    def query(self, spec: QuerySpec) -> list[Document]: ...

    def run_transaction(self, fn: Callable[[DocumentAccess], R]) -> R: ...


def _matches(data: dict[str, Any], clause: Where) -> bool:
    if clause.field not in data:
        return False
    value = data[clause.field]
    if clause.op == "==":
        return value == clause.value
    if clause.op == ">=":
        return value is not None and value >= clause.value
    if clause.op == "<=":
        return value is not None and value <= clause.value
    if clause.op == "in":
        return value in clause.value
    if clause.op == "array-contains":
        return isinstance(value, list) and clause.value in value
    raise ValueError(f"Unsupported where operator: {clause.op}")


def apply_query(documents: list[Document], spec: QuerySpec) -> list[Document]:
    """Filter, order and limit already-loaded documents of one collection."""
    selected = [doc for doc in documents if all(_matches(doc.data, clause) for clause in spec.where)]
    for order in reversed(spec.order_by):
        selected.sort(
            key=lambda doc: (doc.data.get(order.field) is None, doc.data.get(order.field)),
            reverse=order.dir == "desc",
        )
    if spec.limit is not None:
        selected = selected[: spec.limit]
    return selected
