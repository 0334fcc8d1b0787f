from __future__ import annotations

from shopgate.db.repositories.base import Repository
from shopgate.domain.models import User


class UsersRepository(Repository):
    collection = "users"

    def get(self, uid: str) -> User | None:
        data = self._get(uid)
        return User.from_doc(data) if data is not None else None

    def upsert(self, user: User) -> None:
        self.docs.set(self.collection, user.uid, user.to_doc(), merge=True)
