from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import ORJSONResponse

from shopgate.auth.dependencies import get_context, get_current_user
from shopgate.auth.firebase import Principal
from shopgate.context import AppContext
from shopgate.routers.deps import get_idempotency_key
from shopgate.schemas.authz import (
    AcceptInvitationResponse,
    CreateInvitationRequest,
    CreateInvitationResponse,
    InvitationDetailsResponse,
)

router = APIRouter(prefix="/invitations", tags=["invitations"])


def _created_or_replayed(from_cache: bool, content: dict) -> ORJSONResponse:
    return ORJSONResponse(
        status_code=status.HTTP_200_OK if from_cache else status.HTTP_201_CREATED,
        content=content,
    )


@router.post("", response_model=CreateInvitationResponse, status_code=status.HTTP_201_CREATED)
def create_invitation(
    payload: CreateInvitationRequest,
    principal: Principal = Depends(get_current_user),
    idempotency_key: str = Depends(get_idempotency_key),
    ctx: AppContext = Depends(get_context),
):
    outcome = ctx.invitations.create(
        principal,
        tenant_id=payload.tenantId,
        email=str(payload.email),
        role=payload.role,
        idempotency_key=idempotency_key,
    )
    return _created_or_replayed(outcome.from_cache, CreateInvitationResponse(**outcome.result).model_dump())


@router.get("/{token}", response_model=InvitationDetailsResponse)
def get_invitation(token: str, ctx: AppContext = Depends(get_context)) -> InvitationDetailsResponse:
    invitation = ctx.invitations.get_public(token)
    return InvitationDetailsResponse(
        tenantId=invitation.tenant_id,
        email=invitation.email,
        role=invitation.role,
        status=invitation.status,
        expiresAt=invitation.expires_at,
    )


@router.post("/{token}/accept", response_model=AcceptInvitationResponse, status_code=status.HTTP_201_CREATED)
def accept_invitation(
    token: str,
    principal: Principal = Depends(get_current_user),
    idempotency_key: str = Depends(get_idempotency_key),
    ctx: AppContext = Depends(get_context),
):
    outcome = ctx.invitations.accept(principal, token=token, idempotency_key=idempotency_key)
    return _created_or_replayed(outcome.from_cache, AcceptInvitationResponse(**outcome.result).model_dump(mode="json"))


@router.delete("/{token}", status_code=status.HTTP_204_NO_CONTENT)
def cancel_invitation(
    token: str,
    principal: Principal = Depends(get_current_user),
    ctx: AppContext = Depends(get_context),
) -> Response:
    ctx.invitations.cancel(principal, token=token)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
