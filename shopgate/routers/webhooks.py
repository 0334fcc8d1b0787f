from fastapi import APIRouter, Depends, Request

from shopgate.auth.dependencies import get_context
from shopgate.context import AppContext
from shopgate.schemas.shops import WebhookAckResponse

router = APIRouter(prefix="/webhooks", tags=["shopify-webhooks"])


@router.post("/shopify", response_model=WebhookAckResponse)
async def shopify_webhook(request: Request, ctx: AppContext = Depends(get_context)) -> WebhookAckResponse:
    body = await request.body()
    replay = await ctx.shops.ingest_webhook(
        body=body,
        webhook_id=request.headers.get("x-shopify-webhook-id"),
        supplied_hmac=request.headers.get("x-shopify-hmac-sha256"),
        shop=request.headers.get("x-shopify-shop-domain"),
        topic=request.headers.get("x-shopify-topic"),
    )
    return WebhookAckResponse(replay=replay)
