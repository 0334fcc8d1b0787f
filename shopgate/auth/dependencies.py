import logging

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from shopgate.auth.firebase import Principal
from shopgate.context import AppContext
from shopgate.errors import UnauthorizedError

bearer_scheme = HTTPBearer(auto_error=False)
logger = logging.getLogger("auth.deps")


def get_context(request: Request) -> AppContext:
    return request.app.state.context


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    ctx: AppContext = Depends(get_context),
) -> Principal:
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError("Missing bearer token")

    principal = ctx.verifier.verify(credentials.credentials)
    logger.debug("Principal resolved", extra={"sub": principal.uid})
    return principal
