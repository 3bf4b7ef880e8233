"""
api/routes/admin.py -- Admin-only user and role management.

Routes (gate: /api/admin is admin-only, so non-admin tokens never get here):
  GET   /api/admin/users              -- every account
  POST  /api/admin/users              -- create an account with any role;
                                          names with script or markup are refused
  PATCH /api/admin/users/{id}/role    -- change a role

require_admin re-reads the caller from the store, so an admin demoted after
their access token was issued is refused here even though the gate let the
token through.

[M4] The last admin cannot be demoted -- there would be no way back in
without database access. The store enforces it in the UPDATE itself.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from api.models import AdminUserCreate, RoleUpdate, UserResponse
from api.responses import success
from auth.dependencies import get_credential_store, require_admin
from auth.models import Credential
from auth.store import CredentialStore
from auth.tokens import hash_password
from core.errors import AppError, ErrorKind
from core.sanitize import is_input_safe, strip_tags

logger = logging.getLogger("segregate.api")

router = APIRouter()


@router.get("/admin/users")
async def list_all_users(
    admin: Credential = Depends(require_admin),
    store: CredentialStore = Depends(get_credential_store),
) -> JSONResponse:
    total = store.count_credentials()
    users = store.list_credentials(limit=max(total, 1))
    return success([UserResponse.from_credential(u).model_dump(by_alias=True) for u in users], "Users fetched")


@router.post("/admin/users", status_code=201)
def create_user(
    body: AdminUserCreate,
    admin: Credential = Depends(require_admin),
    store: CredentialStore = Depends(get_credential_store),
) -> JSONResponse:
    """Create an account with an explicit role. The only path to a privileged role at creation."""
    if not is_input_safe(body.name):
        raise AppError(ErrorKind.UNSAFE_INPUT)
    name = strip_tags(body.name)
    if len(name) < 2:
        raise AppError(
            ErrorKind.VALIDATION_ERROR,
            details=[{"field": "name", "message": "Name must be at least 2 characters once markup is removed"}],
        )

    created = store.create_credential(
        Credential(
            name=name,
            email=body.email,
            hashed_password=hash_password(body.password),
            role=body.role.value,
        )
    )
    logger.info("Admin user_id=%s created user_id=%s role=%s", admin.id, created.id, created.role)
    return success(UserResponse.from_credential(created), "User created successfully", 201)


@router.patch("/admin/users/{user_id}/role")
async def update_role(
    user_id: int,
    body: RoleUpdate,
    admin: Credential = Depends(require_admin),
    store: CredentialStore = Depends(get_credential_store),
) -> JSONResponse:
    """Change a user's role. Takes effect on the user's next refresh."""
    target = store.get_by_id(user_id)
    if target is None:
        raise AppError(ErrorKind.USER_NOT_FOUND)

    new_role = body.role.value
    if not store.update_role(user_id, new_role):  # raises LAST_ADMIN [M4]
        raise AppError(ErrorKind.USER_NOT_FOUND)
    logger.info("Admin user_id=%s changed user_id=%s role %s -> %s", admin.id, user_id, target.role, new_role)
    updated = store.get_by_id(user_id)
    return success(UserResponse.from_credential(updated), "Role updated successfully")
