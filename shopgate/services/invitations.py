from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta
from typing import Any, Callable

from shopgate.auth.firebase import Principal
from shopgate.db.ports import DocumentAccess, DocumentStore
from shopgate.db.repositories import InvitationsRepository, MembershipsRepository, TenantsRepository
from shopgate.domain.models import Invitation, InvitationStatus, Membership, Role, to_iso, utcnow
from shopgate.errors import ForbiddenError, GoneError, NotFoundError
from shopgate.idempotency import IdempotencyEngine, IdempotentResult
from shopgate.ids import body_hash

logger = logging.getLogger("authz.invitations")

INVITATION_VALIDITY_DAYS = 7


def new_invitation_token() -> str:
    return secrets.token_urlsafe(32)


class InvitationService:
    def __init__(
        self,
        store: DocumentStore,
        idempotency: IdempotencyEngine,
        *,
        enforce_email: bool = True,
        validity: timedelta = timedelta(days=INVITATION_VALIDITY_DAYS),
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._idempotency = idempotency
        self._enforce_email = enforce_email
        self._validity = validity
        self._clock = clock

    def create(
        self,
        principal: Principal,
        *,
        tenant_id: str,
        email: str,
        role: Role,
        idempotency_key: str,
    ) -> IdempotentResult:
        if TenantsRepository(self._store).get(tenant_id) is None:
            raise NotFoundError("Tenant not found")
        if not MembershipsRepository(self._store).has_role(tenant_id, principal.uid, Role.Owner):
            logger.warning(
                "User is not Owner of tenant",
                extra={"uid": principal.uid, "tenantId": tenant_id, "action": "create_invitation", "outcome": "deny"},
            )
            raise ForbiddenError("Only tenant Owners can create invitations")

        def _create() -> dict[str, Any]:
            now = self._clock()
            invitation = Invitation(
                token=new_invitation_token(),
                tenant_id=tenant_id,
                email=email,
                role=role,
                status=InvitationStatus.PENDING,
                created_at=to_iso(now),
                expires_at=to_iso(now + self._validity),
            )
            InvitationsRepository(self._store).create(invitation)
            return {"token": invitation.token, "tenantId": tenant_id, "expiresAt": invitation.expires_at}

        outcome = self._idempotency.run(
            idempotency_key,
            _create,
            actor_id=principal.uid,
            body_hash=body_hash({"op": "create-invite", "tenantId": tenant_id, "email": email, "role": role.value}),
        )
        logger.info(
            "Invitation %s",
            "retrieved from cache" if outcome.from_cache else "created",
            extra={
                "uid": principal.uid,
                "tenantId": tenant_id,
                "token": outcome.result["token"],
                "action": "create_invitation",
                "outcome": "idempotent" if outcome.from_cache else "created",
            },
        )
        return outcome

    def get_public(self, token: str) -> Invitation:
        """Return a pending, unexpired invitation; callers expose only safe fields."""
        invitation = InvitationsRepository(self._store).get_by_token(token)
        if invitation is None:
            logger.info(
                "Invitation not found",
                extra={"token": token, "action": "get_invitation", "outcome": "not_found"},
            )
            raise NotFoundError("Invitation not found")
        if not invitation.is_open(self._clock()):
            logger.info(
                "Invitation expired or no longer valid",
                extra={
                    "token": token,
                    "status": invitation.status.value,
                    "expiresAt": invitation.expires_at,
                    "action": "get_invitation",
                    "outcome": "expired_or_invalid",
                },
            )
            raise GoneError()
        return invitation

    def accept(self, principal: Principal, *, token: str, idempotency_key: str) -> IdempotentResult:
        """Merge the invited role into the caller's membership and close the invitation.

        The invitation check, the membership write and the status change commit
        together in one store transaction.
        """

        def _accept(tx: DocumentAccess) -> dict[str, Any]:
            invitations = InvitationsRepository(tx)
            memberships = MembershipsRepository(tx)
            invitation = invitations.get_by_token(token)
            if invitation is None:
                raise NotFoundError("Invitation not found")
            now = self._clock()
            if invitation.is_expired(now) or invitation.status != InvitationStatus.PENDING:
                raise GoneError()
            if self._enforce_email and not self._email_matches(principal, invitation):
                logger.warning(
                    "Email mismatch for invitation",
                    extra={"uid": principal.uid, "token": token, "action": "accept_invitation", "outcome": "email_mismatch"},
                )
                raise ForbiddenError("Email mismatch for invitation")

            membership = memberships.get(invitation.tenant_id, principal.uid)
            if membership is None:
                membership = Membership(
                    tenant_id=invitation.tenant_id,
                    uid=principal.uid,
                    roles=[invitation.role],
                    created_at=to_iso(now),
                )
                memberships.set(membership)
            elif membership.add_role(invitation.role):
                memberships.set(membership)

            invitations.mark_accepted(token, principal.uid, to_iso(now))
            return {"tenantId": invitation.tenant_id, "roles": [role.value for role in membership.roles]}

        outcome = self._idempotency.run(
            idempotency_key,
            lambda: self._store.run_transaction(_accept),
            actor_id=principal.uid,
            body_hash=body_hash({"op": "accept-invite", "token": token}),
        )
        logger.info(
            "Invitation %s",
            "already accepted" if outcome.from_cache else "accepted",
            extra={
                "uid": principal.uid,
                "tenantId": outcome.result["tenantId"],
                "token": token,
                "action": "accept_invitation",
                "outcome": "idempotent" if outcome.from_cache else "accepted",
            },
        )
        return outcome

    @staticmethod
    def _email_matches(principal: Principal, invitation: Invitation) -> bool:
        return bool(principal.email) and principal.email_verified and principal.email == invitation.email

    def cancel(self, principal: Principal, *, token: str) -> str:
        """Cancel a pending invitation. Missing or already-closed invitations are a no-op.

        Returns the outcome recorded in the log: ``canceled``, ``not_found`` or
        ``already_done``.
        """

        def _cancel(tx: DocumentAccess) -> tuple[str, str | None]:
            invitations = InvitationsRepository(tx)
            invitation = invitations.get_by_token(token)
            if invitation is None:
                return "not_found", None
            if not MembershipsRepository(tx).has_role(invitation.tenant_id, principal.uid, Role.Owner):
                logger.warning(
                    "User is not Owner of tenant",
                    extra={
                        "uid": principal.uid,
                        "tenantId": invitation.tenant_id,
                        "token": token,
                        "action": "cancel_invitation",
                        "outcome": "deny",
                    },
                )
                raise ForbiddenError("Only tenant Owners can cancel invitations")
            if invitation.status != InvitationStatus.PENDING:
                return "already_done", invitation.tenant_id
            invitations.cancel(token, principal.uid, to_iso(self._clock()))
            return "canceled", invitation.tenant_id

        outcome, tenant_id = self._store.run_transaction(_cancel)
        logger.info(
            "Invitation cancel: %s",
            outcome,
            extra={"uid": principal.uid, "tenantId": tenant_id, "token": token, "action": "cancel_invitation", "outcome": outcome},
        )
        return outcome
