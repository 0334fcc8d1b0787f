from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any


class Role(str, Enum):
    Owner = "Owner"
    Collaborator = "Collaborator"
    PlatformAdmin = "PlatformAdmin"


class InvitationStatus(str, Enum):
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    CANCELED = "CANCELED"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def from_iso(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class Tenant:
    tenant_id: str
    name: str
    created_at: str
    owner_uid: str

    def to_doc(self) -> dict[str, Any]:
        return {
            "tenantId": self.tenant_id,
            "name": self.name,
            "createdAt": self.created_at,
            "ownerUid": self.owner_uid,
        }

    @classmethod
    def from_doc(cls, data: dict[str, Any]) -> "Tenant":
        return cls(
            tenant_id=data["tenantId"],
            name=data["name"],
            created_at=data["createdAt"],
            owner_uid=data["ownerUid"],
        )


@dataclass
class Membership:
    tenant_id: str
    uid: str
    roles: list[Role] = field(default_factory=list)
    created_at: str = ""

    def has_role(self, role: Role) -> bool:
        return role in self.roles

    def add_role(self, role: Role) -> bool:
        """Roles only grow; returns False when ``role`` was already held."""
        if role in self.roles:
            return False
        self.roles.append(role)
        return True

    def to_doc(self) -> dict[str, Any]:
        return {
            "tenantId": self.tenant_id,
            "uid": self.uid,
            "roles": [role.value for role in self.roles],
            "createdAt": self.created_at,
        }

    @classmethod
    def from_doc(cls, data: dict[str, Any]) -> "Membership":
        return cls(
            tenant_id=data["tenantId"],
            uid=data["uid"],
            roles=[Role(role) for role in data.get("roles") or []],
            created_at=data.get("createdAt", ""),
        )


@dataclass
class Invitation:
    token: str
    tenant_id: str
    email: str
    role: Role
    status: InvitationStatus
    created_at: str
    expires_at: str
    accepted_at: str | None = None
    accepted_by: str | None = None
    canceled_at: str | None = None
    canceled_by: str | None = None

    def is_expired(self, now: datetime) -> bool:
        return from_iso(self.expires_at) < now

    def is_open(self, now: datetime) -> bool:
        return self.status == InvitationStatus.PENDING and not self.is_expired(now)

    def to_doc(self) -> dict[str, Any]:
        doc: dict[str, Any] = {
            "token": self.token,
            "tenantId": self.tenant_id,
            "email": self.email,
            "role": self.role.value,
            "status": self.status.value,
            "createdAt": self.created_at,
            "expiresAt": self.expires_at,
        }
        for name, value in (
            ("acceptedAt", self.accepted_at),
            ("acceptedBy", self.accepted_by),
            ("canceledAt", self.canceled_at),
            ("canceledBy", self.canceled_by),
        ):
            if value is not None:
                doc[name] = value
        return doc

    @classmethod
    def from_doc(cls, data: dict[str, Any]) -> "Invitation":
        return cls(
            token=data["token"],
            tenant_id=data["tenantId"],
            email=data["email"],
            role=Role(data["role"]),
            status=InvitationStatus(data["status"]),
            created_at=data["createdAt"],
            expires_at=data["expiresAt"],
            accepted_at=data.get("acceptedAt"),
            accepted_by=data.get("acceptedBy"),
            canceled_at=data.get("canceledAt"),
            canceled_by=data.get("canceledBy"),
        )


@dataclass
class User:
    uid: str
    email: str
    created_at: str
    last_login_at: str | None = None

    def to_doc(self) -> dict[str, Any]:
        doc: dict[str, Any] = {"uid": self.uid, "email": self.email, "createdAt": self.created_at}
        if self.last_login_at is not None:
            doc["lastLoginAt"] = self.last_login_at
        return doc

    @classmethod
    def from_doc(cls, data: dict[str, Any]) -> "User":
        return cls(
            uid=data["uid"],
            email=data.get("email", ""),
            created_at=data["createdAt"],
            last_login_at=data.get("lastLoginAt"),
        )
