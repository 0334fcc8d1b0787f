import logging

from fastapi import APIRouter, Depends

from shopgate.auth.dependencies import get_context
from shopgate.context import AppContext
from shopgate.schemas.jobs import PubSubAckResponse, PubSubEnvelope
from shopgate.services.jobs import decode_job_data

router = APIRouter(tags=["jobs"])
logger = logging.getLogger("worker.pubsub")


@router.post("/pubsub", response_model=PubSubAckResponse)
async def pubsub_push(envelope: PubSubEnvelope, ctx: AppContext = Depends(get_context)) -> PubSubAckResponse:
    """Pub/Sub push endpoint. 4xx drops a malformed message, 5xx asks for redelivery."""
    message = envelope.message
    job = decode_job_data(message.data)
    logger.info(
        "Received Pub/Sub message",
        extra={"message_id": message.messageId, "subscription": envelope.subscription},
    )
    handled = await ctx.jobs.dispatch(job, message_id=message.messageId)
    return PubSubAckResponse(messageId=message.messageId, handled=handled)
