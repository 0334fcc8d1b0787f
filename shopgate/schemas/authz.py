from __future__ import annotations

from pydantic import BaseModel, EmailStr, Field

from shopgate.domain.models import InvitationStatus, Role
from shopgate.ids import ULID_RE


class CreateTenantRequest(BaseModel):
    name: str = Field(min_length=2, max_length=64)


class CreateTenantResponse(BaseModel):
    tenantId: str


class TenantRolesResponse(BaseModel):
    tenantId: str
    roles: list[Role]


class TenantMember(BaseModel):
    uid: str
    roles: list[Role]
    createdAt: str


class TenantMembersResponse(BaseModel):
    tenantId: str
    members: list[TenantMember]


class CreateInvitationRequest(BaseModel):
    tenantId: str = Field(pattern=ULID_RE.pattern)
    email: EmailStr
    role: Role


class CreateInvitationResponse(BaseModel):
    token: str
    tenantId: str
    expiresAt: str


class InvitationDetailsResponse(BaseModel):
    tenantId: str
    email: str
    role: Role
    status: InvitationStatus
    expiresAt: str


class AcceptInvitationResponse(BaseModel):
    tenantId: str
    roles: list[Role]


class MeTenant(BaseModel):
    tenantId: str
    roles: list[Role]


class MeResponse(BaseModel):
    uid: str
    email: str
    tenants: list[MeTenant]
