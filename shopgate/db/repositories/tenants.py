from __future__ import annotations

from shopgate.db.repositories.base import Repository
from shopgate.domain.models import Tenant


class TenantsRepository(Repository):
    collection = "tenants"

    def get(self, tenant_id: str) -> Tenant | None:
        data = self._get(tenant_id)
        return Tenant.from_doc(data) if data is not None else None

    def set(self, tenant: Tenant) -> None:
        self.docs.set(self.collection, tenant.tenant_id, tenant.to_doc())
