"""Client IP allow-list and shared secret key middleware."""

import hmac
import logging

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from paygate.errors.exceptions import AuthenticationError, AuthorizationError, PaygateError
from paygate.errors.handlers import error_response

logger = logging.getLogger(__name__)

# Paths that do not require authentication
_PUBLIC_PATHS = {
    "/api/v1/health",
    "/api/v1/health/live",
    "/api/v1/health/ready",
}

_LOOPBACK = {"127.0.0.1", "::1"}

SECRET_HEADER = "x-secret-key"


class AuthMiddleware(BaseHTTPMiddleware):
    """Reject callers outside the allow-list or without the shared secret."""

    def __init__(self, app: ASGIApp, allowed_ips: list[str], secret_key: str) -> None:
        super().__init__(app)
        self._allowed_ips = set(allowed_ips) | _LOOPBACK
        self._secret_key = secret_key

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path
        if path in _PUBLIC_PATHS:
            return await call_next(request)

        client_ip = request.client.host if request.client else ""
        logger.info("Request from %s: %s %s", client_ip, request.method, path)

        try:
            self._check(client_ip, request.headers.get(SECRET_HEADER, ""))
        except PaygateError as exc:
            logger.warning("Rejected request from %s: %s", client_ip, exc.message)
            return error_response(request, exc.status_code, exc.code, exc.message)

        return await call_next(request)

    def _check(self, client_ip: str, secret: str) -> None:
        if client_ip not in self._allowed_ips:
            raise AuthorizationError(f"Client IP not allowed: {client_ip}")
        if not hmac.compare_digest(secret.encode("utf-8"), self._secret_key.encode("utf-8")):
            raise AuthenticationError("Invalid secret key")
