from __future__ import annotations

from shopgate.db.ports import QuerySpec, Where
from shopgate.db.repositories.base import Repository
from shopgate.domain.models import Membership, Role
from shopgate.errors import InvalidArgumentError
from shopgate.ids import membership_key


def _key(tenant_id: str, uid: str) -> str:
    try:
        return membership_key(tenant_id, uid)
    except ValueError as exc:
        raise InvalidArgumentError(str(exc)) from exc


class MembershipsRepository(Repository):
    collection = "memberships"

    def get(self, tenant_id: str, uid: str) -> Membership | None:
        data = self._get(_key(tenant_id, uid))
        return Membership.from_doc(data) if data is not None else None

    def set(self, membership: Membership) -> None:
        self.docs.set(self.collection, _key(membership.tenant_id, membership.uid), membership.to_doc())

    def list_tenants_by_uid(self, uid: str) -> list[Membership]:
        docs = self._store().query(QuerySpec(collection=self.collection, where=[Where("uid", "==", uid)]))
        return [Membership.from_doc(doc.data) for doc in docs]

    def list_members_by_tenant(self, tenant_id: str) -> list[Membership]:
        docs = self._store().query(
            QuerySpec(collection=self.collection, where=[Where("tenantId", "==", tenant_id)])
        )
        return [Membership.from_doc(doc.data) for doc in docs]

    def get_roles(self, tenant_id: str, uid: str) -> list[Role] | None:
        membership = self.get(tenant_id, uid)
        return membership.roles if membership is not None else None

    def has_access(self, tenant_id: str, uid: str) -> bool:
        return bool(self.get_roles(tenant_id, uid))

    def has_role(self, tenant_id: str, uid: str, role: Role) -> bool:
        return role in (self.get_roles(tenant_id, uid) or [])
