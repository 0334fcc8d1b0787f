import logging
from collections.abc import Awaitable, Callable

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import ORJSONResponse

from shopgate.config import Settings, load_settings
from shopgate.context import AppContext, build_context
from shopgate.errors import AppError
from shopgate.ids import generate_id
from shopgate.logging_config import configure_logging, request_id_var
from shopgate.routers import health, invitations, me, oauth, pubsub, tenants, webhooks

logger = logging.getLogger("shopgate.app")

REQUEST_ID_HEADER = "x-request-id"


def _error_response(request: Request, status_code: int, content: dict) -> Response:
    if request.method == "HEAD":
        return Response(status_code=status_code)
    return ORJSONResponse(status_code=status_code, content=content)


def create_app(settings: Settings | None = None, context: AppContext | None = None) -> FastAPI:
    if context is not None:
        settings = context.settings
    settings = settings or load_settings()
    configure_logging(settings)

    app = FastAPI(title="Shopgate API", default_response_class=ORJSONResponse)
    app.state.context = context or build_context(settings)

    @app.middleware("http")
    async def request_id_middleware(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or generate_id()
        request.state.request_id = request_id
        token = request_id_var.set(request_id)
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> Response:
        if exc.http_status >= 500:
            logger.error(
                "Request failed",
                extra={"code": exc.code, "path": request.url.path, "request_id": request.state.request_id},
            )
        return _error_response(request, exc.http_status, exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> Response:
        return _error_response(
            request,
            400,
            {
                "code": "VALIDATION_ERROR",
                "message": "Invalid request",
                "details": [
                    {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
                    for error in exc.errors()
                ],
            },
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> Response:
        logger.exception(
            "Unhandled server exception",
            exc_info=exc,
            extra={"path": request.url.path, "request_id": getattr(request.state, "request_id", None)},
        )
        response = _error_response(request, 500, {"code": "INTERNAL", "message": "Internal server error"})
        request_id = getattr(request.state, "request_id", None)
        if request_id:
            response.headers[REQUEST_ID_HEADER] = request_id
        return response

    app.include_router(health.router)
    app.include_router(me.router)
    app.include_router(tenants.router)
    app.include_router(invitations.router)
    app.include_router(oauth.router)
    app.include_router(webhooks.router)
    app.include_router(pubsub.router)

    return app
