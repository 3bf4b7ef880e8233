"""
auth/gate.py -- Per-request authentication and authorization gate.

RequestGate is raw ASGI middleware. It runs once per HTTP request, before any
route handler, dependency or body parsing, and either answers the request
itself or forwards it with a verified identity attached:

  1. OPTIONS         -> CORS pre-flight answered here, never forwarded.
  2. strip headers   -> client-supplied x-user-* headers are dropped, always.
  3. public path     -> forwarded untouched (plus CORS headers).
  4. no bearer token -> 401 MISSING_TOKEN
  5. bad token       -> 401 INVALID_TOKEN (expired and forged look the same)
  6. admin path,
     role != admin   -> 403 ADMIN_ACCESS_REQUIRED
  7. success         -> Identity stored at scope["state"]["identity"], trusted
                        x-user-* headers injected, request forwarded.

The gate never refreshes tokens. Refresh is a separate, client-initiated
request to /api/auth/refresh.

Trust boundary [T1]: the typed Identity in request state is the authoritative
channel; auth.dependencies.get_identity() reads only that. The injected
headers exist for handlers that prefer headers, and are trustworthy only
because step 2 removes any copy a client sent.

Raw ASGI, not @app.middleware("http"): downstream handlers must see the
rewritten scope.

Layer rule: no imports from api/ or client/.
"""

from __future__ import annotations

import logging
from urllib.parse import quote
from typing import Iterable, Optional

from starlette.datastructures import Headers, MutableHeaders
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from auth.models import Identity
from auth.policy import DEFAULT_POLICY, RolePolicy, is_admin
from auth.tokens import extract_bearer_token, verify_access_token
from core.errors import ErrorKind, error_body

logger = logging.getLogger("segregate.gate")

IDENTITY_HEADERS = ("x-user-id", "x-user-email", "x-user-role")
_IDENTITY_HEADER_BYTES = frozenset(h.encode("latin-1") for h in IDENTITY_HEADERS)

CORS_HEADERS = {
    "Access-Control-Allow-Credentials": "true",
    "Access-Control-Allow-Methods": "GET,HEAD,PUT,PATCH,POST,DELETE",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}


def allowed_origin(origin: Optional[str], allow_list: Iterable[str]) -> str | None:
    """Return origin if it exactly matches an allow-list entry, else None."""
    if origin and origin in allow_list:
        return origin
    return None


def cors_headers_for(origin: str) -> dict[str, str]:
    return {"Access-Control-Allow-Origin": origin, "Vary": "Origin", **CORS_HEADERS}


class RequestGate:
    """Raw ASGI gate enforcing authentication and role policy on every request.

    Args:
        app:             Downstream ASGI application.
        allowed_origins: Exact-match CORS allow-list.
        policy:          Route classification and permission table.
    """

    def __init__(self, app: ASGIApp, allowed_origins: Iterable[str] = (), policy: RolePolicy = DEFAULT_POLICY):
        self.app = app
        self.allowed_origins = frozenset(allowed_origins)
        self.policy = policy

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)
        path: str = scope.get("path") or ""
        origin = allowed_origin(headers.get("origin"), self.allowed_origins)

        # 1. CORS pre-flight
        if scope["method"] == "OPTIONS":
            if origin:
                response = Response(status_code=200, headers=cors_headers_for(origin))
            else:
                response = Response(status_code=204)
            await response(scope, receive, send)
            return

        # 2. Trust boundary [T1]
        scope["headers"] = [(k, v) for k, v in scope["headers"] if k.lower() not in _IDENTITY_HEADER_BYTES]

        # 3. Public route -- no auth
        if not self.policy.is_protected_route(path):
            await self.app(scope, receive, _with_cors(send, origin))
            return

        # 4. Token extraction
        token = extract_bearer_token(headers.get("authorization"))
        if token is None:
            logger.warning("Rejected %s %s: missing token", scope["method"], path)
            await self._reject(ErrorKind.MISSING_TOKEN, origin, scope, receive, send)
            return

        # 5. Token verification
        identity = verify_access_token(token)
        if identity is None:
            logger.warning("Rejected %s %s: invalid token", scope["method"], path)
            await self._reject(ErrorKind.INVALID_TOKEN, origin, scope, receive, send)
            return

        # 6. Admin-only routes
        if self.policy.is_admin_route(path) and not is_admin(identity.role):
            logger.warning(
                "Rejected %s %s: admin required (user_id=%s role=%s)",
                scope["method"],
                path,
                identity.user_id,
                identity.role,
            )
            await self._reject(ErrorKind.ADMIN_ACCESS_REQUIRED, origin, scope, receive, send)
            return

        # 7. Context propagation
        _attach_identity(scope, identity)
        logger.debug("Authenticated %s %s user_id=%s role=%s", scope["method"], path, identity.user_id, identity.role)
        await self.app(scope, receive, _with_cors(send, origin))

    @staticmethod
    async def _reject(kind: ErrorKind, origin: str | None, scope: Scope, receive: Receive, send: Send) -> None:
        response = JSONResponse(status_code=kind.status, content=error_body(kind))
        if origin:
            response.headers.update(cors_headers_for(origin))
        await response(scope, receive, send)


def _attach_identity(scope: Scope, identity: Identity) -> None:
    """Store the identity in request state and append the x-user-* headers.

    Header values must be latin-1, so x-user-email is percent-encoded (RFC 3986,
    "@" and "+" kept). Addresses made of letters, digits, "@", "+", ".", "-"
    and "_" pass through unchanged; decode with
    urllib.parse.unquote, or read request.state.identity, for the exact value.
    """
    scope.setdefault("state", {})["identity"] = identity
    scope["headers"] = [
        *scope["headers"],
        (b"x-user-id", str(identity.user_id).encode("latin-1")),
        (b"x-user-email", quote(identity.email, safe="@+").encode("ascii")),
        (b"x-user-role", identity.role.encode("latin-1")),
    ]


def _with_cors(send: Send, origin: str | None) -> Send:
    """Wrap send so the response start message carries CORS headers."""
    if not origin:
        return send

    async def send_with_cors(message: Message) -> None:
        if message["type"] == "http.response.start":
            headers = MutableHeaders(scope=message)
            for key, value in cors_headers_for(origin).items():
                headers[key] = value
        await send(message)

    return send_with_cors
