from time import perf_counter
from uuid import uuid4

import jwt
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from publishdesk.core.security import decode_token
from publishdesk.infrastructure.logging.context import (
    reset_request_id,
    reset_user_id,
    set_request_id,
    set_user_id,
)
from publishdesk.infrastructure.observability.metrics import record_request
from publishdesk.interfaces.api.deps import extract_session_token


class SessionContextMiddleware(BaseHTTPMiddleware):
    """Tags log records with the session's user id.

    Only the token signature is checked here; authorization stays with the
    route dependencies.
    """

    async def dispatch(self, request: Request, call_next):
        authorization = request.headers.get("Authorization") or ""
        bearer_token = authorization[7:] if authorization.lower().startswith("bearer ") else None
        token = extract_session_token(request, bearer_token)
        user_id = None
        if token:
            try:
                user_id = decode_token(token).get("sub")
            except jwt.PyJWTError:
                user_id = None

        user_token = set_user_id(user_id)
        try:
            return await call_next(request)
        finally:
            reset_user_id(user_token)


class MetricsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        started_at = perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            route = request.scope.get("route")
            record_request(
                method=request.method,
                path=getattr(route, "path", request.url.path),
                status_code=status_code,
                duration_seconds=perf_counter() - started_at,
            )


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid4())
        request.state.request_id = request_id
        request_token = set_request_id(request_id)
        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            return response
        finally:
            reset_request_id(request_token)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Content-Security-Policy"] = "default-src 'self'; frame-ancestors 'none'; object-src 'none';"
        return response
