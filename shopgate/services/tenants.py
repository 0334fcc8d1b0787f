from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable

from shopgate.auth.firebase import Principal
from shopgate.db.ports import DocumentAccess, DocumentStore
from shopgate.db.repositories import MembershipsRepository, TenantsRepository, UsersRepository
from shopgate.domain.models import Membership, Role, Tenant, User, to_iso, utcnow
from shopgate.errors import ForbiddenError, InvalidArgumentError, NotFoundError
from shopgate.idempotency import IdempotencyEngine, IdempotentResult
from shopgate.ids import body_hash, generate_id, is_valid_ulid

logger = logging.getLogger("authz.tenants")


def require_tenant_id(tenant_id: str) -> str:
    if not is_valid_ulid(tenant_id):
        raise InvalidArgumentError("Invalid tenantId format")
    return tenant_id


class TenantService:
    def __init__(
        self,
        store: DocumentStore,
        idempotency: IdempotencyEngine,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._idempotency = idempotency
        self._clock = clock

    def create_tenant(self, principal: Principal, *, name: str, idempotency_key: str) -> IdempotentResult:
        """Create a tenant and make the caller its Owner, at most once per key."""

        def _create() -> dict[str, Any]:
            tenant_id = generate_id()
            now = to_iso(self._clock())

            def _write(tx: DocumentAccess) -> None:
                TenantsRepository(tx).set(
                    Tenant(tenant_id=tenant_id, name=name, created_at=now, owner_uid=principal.uid)
                )
                MembershipsRepository(tx).set(
                    Membership(tenant_id=tenant_id, uid=principal.uid, roles=[Role.Owner], created_at=now)
                )

            self._store.run_transaction(_write)
            return {"tenantId": tenant_id}

        outcome = self._idempotency.run(
            idempotency_key,
            _create,
            actor_id=principal.uid,
            body_hash=body_hash({"name": name}),
        )
        logger.info(
            "Tenant %s",
            "retrieved from cache" if outcome.from_cache else "created",
            extra={
                "uid": principal.uid,
                "tenantId": outcome.result["tenantId"],
                "action": "create_tenant",
                "outcome": "idempotent" if outcome.from_cache else "created",
            },
        )
        return outcome

    def _require_tenant(self, principal: Principal, tenant_id: str, action: str) -> None:
        try:
            require_tenant_id(tenant_id)
        except InvalidArgumentError:
            logger.warning(
                "Invalid tenantId format",
                extra={"uid": principal.uid, "tenantId": tenant_id, "action": action, "outcome": "invalid_id"},
            )
            raise
        if TenantsRepository(self._store).get(tenant_id) is None:
            logger.info(
                "Tenant not found",
                extra={"uid": principal.uid, "tenantId": tenant_id, "action": action, "outcome": "not_found"},
            )
            raise NotFoundError("Tenant not found")

    def check_access(self, principal: Principal, tenant_id: str) -> None:
        self._require_tenant(principal, tenant_id, "access")
        allowed = MembershipsRepository(self._store).has_access(tenant_id, principal.uid)
        logger.info(
            "Access %s",
            "granted" if allowed else "denied",
            extra={
                "uid": principal.uid,
                "tenantId": tenant_id,
                "action": "access",
                "outcome": "allow" if allowed else "deny",
            },
        )
        if not allowed:
            raise ForbiddenError("User is not a member of this tenant")

    def get_roles(self, principal: Principal, tenant_id: str) -> list[Role]:
        self._require_tenant(principal, tenant_id, "roles")
        roles = MembershipsRepository(self._store).get_roles(tenant_id, principal.uid)
        if not roles:
            logger.info(
                "User is not a member",
                extra={"uid": principal.uid, "tenantId": tenant_id, "action": "roles", "outcome": "deny"},
            )
            raise ForbiddenError("User is not a member of this tenant")
        logger.info(
            "Roles retrieved",
            extra={
                "uid": principal.uid,
                "tenantId": tenant_id,
                "action": "roles",
                "outcome": "allow",
                "rolesCount": len(roles),
            },
        )
        return roles

    def list_members(self, principal: Principal, tenant_id: str) -> list[Membership]:
        self._require_tenant(principal, tenant_id, "members")
        memberships = MembershipsRepository(self._store)
        if not memberships.has_access(tenant_id, principal.uid):
            raise ForbiddenError("User is not a member of this tenant")
        return memberships.list_members_by_tenant(tenant_id)

    def me(self, principal: Principal) -> tuple[User, list[Membership]]:
        """Record the login and return the caller's profile and memberships."""
        users = UsersRepository(self._store)
        now = to_iso(self._clock())
        existing = users.get(principal.uid)
        user = User(
            uid=principal.uid,
            email=principal.email or (existing.email if existing else ""),
            created_at=existing.created_at if existing else now,
            last_login_at=now,
        )
        users.upsert(user)
        return user, MembershipsRepository(self._store).list_tenants_by_uid(principal.uid)
