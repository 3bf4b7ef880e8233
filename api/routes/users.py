"""
api/routes/users.py -- Read-only user endpoints for any authenticated role.

Routes (protected by the gate: /api/users is a protected prefix):
  GET /api/users/me        -- the caller's identity and permissions
  GET /api/users           -- paginated list, optional ?role= filter (read_user)
  GET /api/users/{id}      -- one user (read_user)
"""

from __future__ import annotations

import math
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from api.models import IdentityResponse, Pagination, RoleEnum, UserPage, UserResponse
from api.responses import success
from auth.dependencies import get_credential_store, get_identity, require_permission
from auth.models import Identity
from auth.policy import ROLE_PERMISSIONS
from auth.store import CredentialStore
from core.errors import AppError, ErrorKind

router = APIRouter()


@router.get("/users/me")
async def me(identity: Identity = Depends(get_identity)) -> JSONResponse:
    """Return the verified caller as seen by the gate."""
    data = IdentityResponse(
        user_id=identity.user_id,
        email=identity.email,
        role=identity.role,
        permissions=sorted(ROLE_PERMISSIONS.get(identity.role, ())),
    )
    return success(data, "Current user")


@router.get("/users")
async def list_users(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=10, ge=1, le=100),
    role: Optional[RoleEnum] = None,
    identity: Identity = Depends(require_permission("read_user")),
    store: CredentialStore = Depends(get_credential_store),
) -> JSONResponse:
    role_filter = role.value if role is not None else None
    users = store.list_credentials(role=role_filter, limit=limit, offset=(page - 1) * limit)
    total = store.count_credentials(role=role_filter)
    data = UserPage(
        users=[UserResponse.from_credential(u) for u in users],
        pagination=Pagination(page=page, limit=limit, total=total, total_pages=math.ceil(total / limit)),
    )
    return success(data, "Users fetched successfully")


@router.get("/users/{user_id}")
async def get_user(
    user_id: int,
    identity: Identity = Depends(require_permission("read_user")),
    store: CredentialStore = Depends(get_credential_store),
) -> JSONResponse:
    credential = store.get_by_id(user_id)
    if credential is None:
        raise AppError(ErrorKind.NOT_FOUND, "User not found")
    return success(UserResponse.from_credential(credential), "User fetched successfully")
