from fastapi import APIRouter, Depends

from shopgate.auth.dependencies import get_context, get_current_user
from shopgate.auth.firebase import Principal
from shopgate.context import AppContext
from shopgate.schemas.authz import MeResponse, MeTenant

router = APIRouter(tags=["me"])


@router.get("/me", response_model=MeResponse)
def me(
    principal: Principal = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
) -> MeResponse:
    user, memberships = ctx.tenants.me(principal)
    return MeResponse(
        uid=user.uid,
        email=user.email,
        tenants=[MeTenant(tenantId=m.tenant_id, roles=m.roles) for m in memberships],
    )
