from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import ORJSONResponse

from shopgate.auth.dependencies import get_context, get_current_user
from shopgate.auth.firebase import Principal
from shopgate.context import AppContext
from shopgate.routers.deps import get_idempotency_key
from shopgate.schemas.authz import (
    CreateTenantRequest,
    CreateTenantResponse,
    TenantMember,
    TenantMembersResponse,
    TenantRolesResponse,
)

router = APIRouter(prefix="/tenants", tags=["tenants"])


@router.post("", response_model=CreateTenantResponse, status_code=status.HTTP_201_CREATED)
def create_tenant(
    payload: CreateTenantRequest,
    principal: Principal = Depends(get_current_user),
    idempotency_key: str = Depends(get_idempotency_key),
    ctx: AppContext = Depends(get_context),
):
    outcome = ctx.tenants.create_tenant(principal, name=payload.name, idempotency_key=idempotency_key)
    return ORJSONResponse(
        status_code=status.HTTP_200_OK if outcome.from_cache else status.HTTP_201_CREATED,
        content=CreateTenantResponse(**outcome.result).model_dump(),
    )


@router.head("/{tenant_id}/access")
def check_tenant_access(
    tenant_id: str,
    principal: Principal = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
) -> Response:
    ctx.tenants.check_access(principal, tenant_id)
    return Response(status_code=status.HTTP_200_OK)


@router.get("/{tenant_id}/roles", response_model=TenantRolesResponse)
def get_tenant_roles(
    tenant_id: str,
    principal: Principal = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
) -> TenantRolesResponse:
    roles = ctx.tenants.get_roles(principal, tenant_id)
    return TenantRolesResponse(tenantId=tenant_id, roles=roles)


@router.get("/{tenant_id}/members", response_model=TenantMembersResponse)
def list_tenant_members(
    tenant_id: str,
    principal: Principal = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
) -> TenantMembersResponse:
    members = ctx.tenants.list_members(principal, tenant_id)
    return TenantMembersResponse(
        tenantId=tenant_id,
        members=[TenantMember(uid=m.uid, roles=m.roles, createdAt=m.created_at) for m in members],
    )
