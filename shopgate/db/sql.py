from __future__ import annotations

import copy
import logging
from typing import Any, Callable

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from shopgate.db.base import build_engine, build_session_factory, init_db
from shopgate.db.models import DocumentRow, utcnow
from shopgate.db.ports import (
    Document,
    DocumentAccess,
    DocumentMissingError,
    QuerySpec,
    R,
    apply_query,
)
from shopgate.errors import InternalError

logger = logging.getLogger("db.sql")

_DELETED = object()
_ABSENT = -1
MAX_TRANSACTION_ATTEMPTS = 5


class TransactionContentionError(InternalError):
    default_message = "Transaction did not commit after repeated conflicts"


class _WriteConflict(Exception):
    pass


class SqlDocumentStore:
    """Durable document store over a single ``documents`` table.

    Transactions are optimistic: every document read inside a transaction
    remembers its row version, and the staged writes only commit if those
    versions are unchanged. A conflicting commit reruns the transaction body.
    """

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    @classmethod
    def from_url(cls, database_url: str) -> "SqlDocumentStore":
        engine = build_engine(database_url)
        init_db(engine)
        return cls(build_session_factory(engine))

    def get(self, collection: str, key: str) -> dict[str, Any] | None:
        with self._session_factory() as session:
            row = session.get(DocumentRow, (collection, key))
            return copy.deepcopy(row.data) if row is not None else None

    def set(self, collection: str, key: str, data: dict[str, Any], *, merge: bool = False) -> None:
        for _ in range(2):
            with self._session_factory() as session:
                try:
                    row = session.get(DocumentRow, (collection, key))
                    if row is None:
                        session.add(DocumentRow(collection=collection, key=key, data=copy.deepcopy(data)))
                    else:
                        row.data = {**row.data, **copy.deepcopy(data)} if merge else copy.deepcopy(data)
                        row.version = row.version + 1
                    session.commit()
                    return
                except IntegrityError:
                    # Lost an insert race; the second pass updates the winner's row.
                    session.rollback()
        logger.error("Could not write document", extra={"collection": collection, "key": key})
        raise TransactionContentionError()

    def create(self, collection: str, key: str, data: dict[str, Any]) -> bool:
        with self._session_factory() as session:
            try:
                session.add(DocumentRow(collection=collection, key=key, data=copy.deepcopy(data)))
                session.commit()
            except IntegrityError:
                session.rollback()
                return False
        return True

    def update(self, collection: str, key: str, patch: dict[str, Any]) -> None:
        with self._session_factory() as session:
            row = session.get(DocumentRow, (collection, key))
            if row is None:
                raise DocumentMissingError(collection, key)
            row.data = {**row.data, **copy.deepcopy(patch)}
            row.version = row.version + 1
            session.commit()

    def delete(self, collection: str, key: str) -> None:
        with self._session_factory() as session:
            session.execute(
                delete(DocumentRow).where(DocumentRow.collection == collection, DocumentRow.key == key)
            )
            session.commit()

    def query(self, spec: QuerySpec) -> list[Document]:
        with self._session_factory() as session:
            rows = session.scalars(select(DocumentRow).where(DocumentRow.collection == spec.collection)).all()
            docs = [Document(key=row.key, data=copy.deepcopy(row.data)) for row in rows]
        return apply_query(docs, spec)

    def run_transaction(self, fn: Callable[[DocumentAccess], R]) -> R:
        for attempt in range(1, MAX_TRANSACTION_ATTEMPTS + 1):
            with self._session_factory() as session:
                transaction = _SqlTransaction(session)
                result = fn(transaction)
                try:
                    transaction.commit()
                    return result
                except _WriteConflict:
                    session.rollback()
                    logger.info("Transaction conflict, retrying", extra={"attempt": attempt})
        raise TransactionContentionError()


class _SqlTransaction:
    def __init__(self, session: Session) -> None:
        self._session = session
        self._read_versions: dict[tuple[str, str], int] = {}
        self._staged: dict[tuple[str, str], Any] = {}

    def _load(self, collection: str, key: str) -> dict[str, Any] | None:
        row = self._session.scalars(
            select(DocumentRow)
            .where(DocumentRow.collection == collection, DocumentRow.key == key)
            .with_for_update()
        ).first()
        if (collection, key) not in self._read_versions:
            self._read_versions[(collection, key)] = row.version if row is not None else _ABSENT
        return copy.deepcopy(row.data) if row is not None else None

    def get(self, collection: str, key: str) -> dict[str, Any] | None:
        staged = self._staged.get((collection, key))
        if staged is _DELETED:
            return None
        if staged is not None:
            return copy.deepcopy(staged)
        return self._load(collection, key)

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
        try:
            for (collection, key), data in self._staged.items():
                self._apply(collection, key, data)
            self._verify_reads()
            self._session.commit()
        except IntegrityError as exc:
            raise _WriteConflict() from exc

    def _verify_reads(self) -> None:
        """Fail the commit if a document read but not written has changed since it was read."""
        for (collection, key), read_version in self._read_versions.items():
            if (collection, key) in self._staged:
                continue
            current = self._session.scalar(
                select(DocumentRow.version).where(DocumentRow.collection == collection, DocumentRow.key == key)
            )
            if (current if current is not None else _ABSENT) != read_version:
                raise _WriteConflict()

    def _apply(self, collection: str, key: str, data: Any) -> None:
        read_version = self._read_versions.get((collection, key))
        match = [DocumentRow.collection == collection, DocumentRow.key == key]
        if read_version is not None and read_version != _ABSENT:
            match.append(DocumentRow.version == read_version)

        if data is _DELETED:
            result = self._session.execute(
                delete(DocumentRow).where(*match).execution_options(synchronize_session=False)
            )
            if read_version not in (None, _ABSENT) and result.rowcount == 0:
                raise _WriteConflict()
            return

        if read_version == _ABSENT:
            self._session.add(DocumentRow(collection=collection, key=key, data=data))
            self._session.flush()
            return

        result = self._session.execute(
            update(DocumentRow)
            .where(*match)
            .values(data=data, version=DocumentRow.version + 1, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            if read_version is not None:
                raise _WriteConflict()
            self._session.add(DocumentRow(collection=collection, key=key, data=data))
            self._session.flush()
