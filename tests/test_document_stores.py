from __future__ import annotations

import pytest

from shopgate.db.memory import InMemoryDocumentStore
from shopgate.db.ports import DocumentMissingError, OrderBy, QuerySpec, Where
from shopgate.db.sql import SqlDocumentStore


@pytest.fixture(params=["memory", "sql"])
def store(request, tmp_path):
    if request.param == "memory":
        return InMemoryDocumentStore()
    return SqlDocumentStore.from_url(f"sqlite:///{tmp_path / 'documents.db'}")


def test_set_get_and_merge(store):
    store.set("things", "a", {"x": 1, "y": 2})
    store.set("things", "a", {"y": 3}, merge=True)
    assert store.get("things", "a") == {"x": 1, "y": 3}

    store.set("things", "a", {"z": 0})
    assert store.get("things", "a") == {"z": 0}
    assert store.get("things", "missing") is None


def test_returned_documents_are_copies(store):
    store.set("things", "a", {"items": [1]})
    doc = store.get("things", "a")
    doc["items"].append(2)
    assert store.get("things", "a") == {"items": [1]}


def test_update_requires_existing_document(store):
    with pytest.raises(DocumentMissingError):
        store.update("things", "missing", {"x": 1})
    store.set("things", "a", {"x": 1})
    store.update("things", "a", {"y": 2})
    assert store.get("things", "a") == {"x": 1, "y": 2}


def test_create_only_when_absent(store):
    assert store.create("things", "a", {"v": 1}) is True
    assert store.create("things", "a", {"v": 2}) is False
    assert store.get("things", "a") == {"v": 1}


def test_delete_is_silent_for_missing(store):
    store.set("things", "a", {"v": 1})
    store.delete("things", "a")
    store.delete("things", "a")
    assert store.get("things", "a") is None


def test_query_filters_orders_and_limits(store):
    store.set("members", "1", {"uid": "u1", "tenantId": "t1", "roles": ["Owner"], "n": 3})
    store.set("members", "2", {"uid": "u1", "tenantId": "t2", "roles": ["Collaborator"], "n": 1})
    store.set("members", "3", {"uid": "u2", "tenantId": "t1", "roles": ["Collaborator"], "n": 2})
    store.set("other", "4", {"uid": "u1"})

    by_uid = store.query(QuerySpec("members", where=[Where("uid", "==", "u1")], order_by=[OrderBy("n")]))
    assert [doc.key for doc in by_uid] == ["2", "1"]

    collaborators = store.query(
        QuerySpec(
            "members",
            where=[Where("roles", "array-contains", "Collaborator")],
            order_by=[OrderBy("n", "desc")],
            limit=1,
        )
    )
    assert [doc.key for doc in collaborators] == ["3"]

    in_tenants = store.query(QuerySpec("members", where=[Where("tenantId", "in", ["t2"])]))
    assert [doc.key for doc in in_tenants] == ["2"]


def test_transaction_commits_all_writes(store):
    store.set("things", "a", {"v": 1})

    def body(tx):
        current = tx.get("things", "a")
        tx.set("things", "a", {"v": current["v"] + 1})
        tx.set("things", "b", {"v": 10})
        tx.delete("things", "gone")
        return "done"

    assert store.run_transaction(body) == "done"
    assert store.get("things", "a") == {"v": 2}
    assert store.get("things", "b") == {"v": 10}


def test_transaction_discards_writes_when_body_raises(store):
    store.set("things", "a", {"v": 1})

    def body(tx):
        tx.update("things", "a", {"v": 99})
        tx.set("things", "b", {"v": 10})
        raise RuntimeError("abort")

    with pytest.raises(RuntimeError):
        store.run_transaction(body)
    assert store.get("things", "a") == {"v": 1}
    assert store.get("things", "b") is None


def test_transaction_reads_its_own_writes(store):
    def body(tx):
        tx.set("things", "a", {"v": 1})
        tx.update("things", "a", {"w": 2})
        first = tx.get("things", "a")
        tx.delete("things", "a")
        return first, tx.get("things", "a")

    assert store.run_transaction(body) == ({"v": 1, "w": 2}, None)
    assert store.get("things", "a") is None


def test_sql_transaction_retries_after_concurrent_write(tmp_path):
    store = SqlDocumentStore.from_url(f"sqlite:///{tmp_path / 'conflict.db'}")
    store.set("counters", "c", {"n": 0})
    attempts = []

    def body(tx):
        current = tx.get("counters", "c")
        attempts.append(current["n"])
        if len(attempts) == 1:
            # another writer commits between our read and our commit
            store.set("counters", "c", {"n": 5})
        tx.set("counters", "c", {"n": current["n"] + 1})

    store.run_transaction(body)
    assert attempts == [0, 5]
    assert store.get("counters", "c") == {"n": 6}


def test_sql_transaction_retries_when_read_only_document_changes(tmp_path):
    store = SqlDocumentStore.from_url(f"sqlite:///{tmp_path / 'read-conflict.db'}")
    store.set("memberships", "t_u", {"roles": ["Owner"]})
    store.set("invitations", "tok", {"status": "PENDING"})
    seen_roles = []

    def body(tx):
        roles = tx.get("memberships", "t_u")["roles"]
        seen_roles.append(roles)
        if len(seen_roles) == 1:
            # the owner is demoted after we checked their role
            store.set("memberships", "t_u", {"roles": ["Collaborator"]})
        if "Owner" in roles:
            tx.update("invitations", "tok", {"status": "CANCELED"})

    store.run_transaction(body)
    assert seen_roles == [["Owner"], ["Collaborator"]]
    assert store.get("invitations", "tok") == {"status": "PENDING"}
