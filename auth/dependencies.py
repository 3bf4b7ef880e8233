"""
auth/dependencies.py -- FastAPI Depends() helpers for authenticated routes.

The request gate (auth/gate.py) has already verified the bearer token before
any of these run. These helpers only read the typed Identity the gate left in
request state -- they never parse headers or tokens themselves [T1].

get_identity()      -- the verified caller; 401 if the gate did not attach one.
require_permission  -- factory: 403 PERMISSION_DENIED unless the role has it.
require_admin()     -- re-reads the caller from the store and requires that the
                       CURRENT role is admin. The gate already checked the token
                       claim; this closes the window where an admin demoted in
                       the last 15 minutes still holds an admin access token.

Layer rule: no imports from api/ or client/.
  This module may import from fastapi because it is part of the FastAPI
  dependency injection system.
"""

from __future__ import annotations

from typing import Callable

from fastapi import Depends, Request

from auth.models import Credential, Identity
from auth.policy import has_permission, is_admin
from auth.store import CredentialStore
from core.errors import AppError, ErrorKind


def get_credential_store(request: Request) -> CredentialStore:
    return request.app.state.credential_store


def get_identity(request: Request) -> Identity:
    """Return the Identity attached by the gate.

    Raises MISSING_TOKEN if absent, which only happens when a route that
    depends on identity is mounted outside the protected prefixes -- a
    configuration error that must fail closed.
    """
    identity = getattr(request.state, "identity", None)
    if not isinstance(identity, Identity):
        raise AppError(ErrorKind.MISSING_TOKEN)
    return identity


def require_permission(permission: str) -> Callable[..., Identity]:
    """Build a dependency that requires the caller's role to hold permission.

    Use as a FastAPI dependency:
        @router.get("/users")
        async def route(identity: Identity = Depends(require_permission("read_user"))): ...
    """

    def dependency(identity: Identity = Depends(get_identity)) -> Identity:
        if not has_permission(identity.role, permission):
            raise AppError(ErrorKind.PERMISSION_DENIED)
        return identity

    return dependency


def require_admin(
    identity: Identity = Depends(get_identity),
    store: CredentialStore = Depends(get_credential_store),
) -> Credential:
    """Require that the caller is an admin right now, per the store."""
    current = store.get_by_id(identity.user_id)
    if current is None or not is_admin(current.role):
        raise AppError(ErrorKind.ADMIN_ACCESS_REQUIRED)
    return current
