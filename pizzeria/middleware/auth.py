"""
Pizzeria — JWT Authentication Middleware

Menu, carts, health and metrics are public. The payment webhook
authenticates with its shared secret header (checked in the route).
Everything else needs a Bearer token whose `sub` is a user id.
"""
import re

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from jose import JWTError
from starlette.middleware.base import BaseHTTPMiddleware

from pizzeria.core.security import decode_token

PUBLIC_PATHS = {"/", "/health", "/docs", "/openapi.json", "/menu", "/menu/toppings"}
PUBLIC_PREFIXES = ("/metrics", "/cart/")
WEBHOOK_PATH = re.compile(r"^/orders/[^/]+/payment$")


def is_public(path: str) -> bool:
    return path in PUBLIC_PATHS or path.startswith(PUBLIC_PREFIXES) or bool(WEBHOOK_PATH.match(path))


def _unauthorized(detail: str) -> JSONResponse:
    return JSONResponse(status_code=401, content={"detail": detail}, headers={"WWW-Authenticate": "Bearer"})


class JWTAuthMiddleware(BaseHTTPMiddleware):
    """Attaches decoded claims to request.state.user; route dependencies resolve the user."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request.state.user = None
        if request.method == "OPTIONS" or is_public(request.url.path):
            return await call_next(request)

        scheme, _, token = request.headers.get("Authorization", "").partition(" ")
        if scheme != "Bearer" or not token:
            return _unauthorized("Missing or invalid Authorization header. Expected: Bearer <token>")
        try:
            claims = decode_token(token)
        except JWTError as exc:
            return _unauthorized(f"Invalid or expired JWT: {exc}")
        if not claims.get("sub"):
            return _unauthorized("Token has no subject.")

        request.state.user = claims
        return await call_next(request)
