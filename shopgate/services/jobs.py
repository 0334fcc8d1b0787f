from __future__ import annotations

import base64
import binascii
import logging
from typing import Any, Awaitable, Callable

import orjson

from shopgate.errors import InvalidArgumentError

logger = logging.getLogger("worker.jobs")

JobHandler = Callable[[dict[str, Any]], Awaitable[None]]


def decode_job_data(data: str) -> dict[str, Any]:
    """Decode a Pub/Sub ``message.data`` field into a job payload."""
    try:
        job = orjson.loads(base64.b64decode(data, validate=True))
    except (binascii.Error, orjson.JSONDecodeError) as exc:
        raise InvalidArgumentError("Pub/Sub message data is not base64-encoded JSON") from exc
    if not isinstance(job, dict):
        raise InvalidArgumentError("Job payload must be a JSON object")
    return job


async def _log_email(job: dict[str, Any]) -> None:
    logger.info("Processing email job", extra={"job_type": "email"})


async def _log_notification(job: dict[str, Any]) -> None:
    logger.info("Processing notification job", extra={"notification_type": job.get("notificationType")})


async def _log_data_processing(job: dict[str, Any]) -> None:
    logger.info("Processing data job", extra={"data_size": job.get("dataSize")})


class JobDispatcher:
    def __init__(self) -> None:
        self._handlers: dict[str, JobHandler] = {}

    def register(self, job_type: str, handler: JobHandler) -> None:
        self._handlers[job_type] = handler

    async def dispatch(self, job: dict[str, Any], *, message_id: str) -> bool:
        """Run the handler for ``job["type"]``. Returns False for unknown types.

        Handler exceptions propagate so the push endpoint answers 500 and
        Pub/Sub redelivers.
        """
        job_type = job.get("type")
        handler = self._handlers.get(job_type) if isinstance(job_type, str) else None
        if handler is None:
            logger.warning("Unknown job type", extra={"job_type": job_type, "message_id": message_id})
            return False
        logger.info("Processing job", extra={"job_type": job_type, "message_id": message_id})
        await handler(job)
        logger.info("Job completed successfully", extra={"job_type": job_type, "message_id": message_id})
        return True


def build_default_dispatcher() -> JobDispatcher:
    dispatcher = JobDispatcher()
    dispatcher.register("email", _log_email)
    dispatcher.register("notification", _log_notification)
    dispatcher.register("data_processing", _log_data_processing)
    return dispatcher
