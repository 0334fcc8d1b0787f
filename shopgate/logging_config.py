from __future__ import annotations

import logging
from contextvars import ContextVar

from shopgate.config import Settings

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(request_id)s] %(message)s"


class RequestIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = request_id_var.get() or "-"
        return True


def configure_logging(settings: Settings) -> None:
    root = logging.getLogger()
    root.setLevel(settings.LOG_LEVEL)
    if not any(isinstance(f, RequestIdFilter) for handler in root.handlers for f in handler.filters):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_LOG_FORMAT))
        handler.addFilter(RequestIdFilter())
        root.addHandler(handler)
