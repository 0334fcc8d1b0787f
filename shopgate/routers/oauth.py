from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse

from shopgate.auth.dependencies import get_context
from shopgate.context import AppContext
from shopgate.schemas.shops import OAuthCallbackResponse

router = APIRouter(prefix="/oauth", tags=["shopify-oauth"])


@router.get("/install")
async def oauth_install(shop: str | None = None, ctx: AppContext = Depends(get_context)):
    authorize_url = await ctx.shops.begin_install(shop)
    return RedirectResponse(url=authorize_url, status_code=302)


@router.get("/callback", response_model=OAuthCallbackResponse)
async def oauth_callback(request: Request, ctx: AppContext = Depends(get_context)) -> OAuthCallbackResponse:
    record = await ctx.shops.complete_install(list(request.query_params.multi_items()))
    return OAuthCallbackResponse(shop=record.shop, scope=record.scope, installedAt=record.installed_at)
