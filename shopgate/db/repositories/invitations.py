from __future__ import annotations

from shopgate.db.repositories.base import Repository
from shopgate.domain.models import Invitation, InvitationStatus


class InvitationsRepository(Repository):
    collection = "invitations"

    def get_by_token(self, token: str) -> Invitation | None:
        data = self._get(token)
        return Invitation.from_doc(data) if data is not None else None

    def create(self, invitation: Invitation) -> None:
        self.docs.set(self.collection, invitation.token, invitation.to_doc())

    def mark_accepted(self, token: str, uid: str, at_iso: str) -> None:
        self.docs.update(
            self.collection,
            token,
            {"status": InvitationStatus.ACCEPTED.value, "acceptedAt": at_iso, "acceptedBy": uid},
        )

    def cancel(self, token: str, uid: str, at_iso: str) -> None:
        self.docs.update(
            self.collection,
            token,
            {"status": InvitationStatus.CANCELED.value, "canceledAt": at_iso, "canceledBy": uid},
        )

