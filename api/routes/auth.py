"""
api/routes/auth.py -- Login, signup, refresh and logout endpoints.

Routes (all public -- the gate does not cover /api/auth):
  POST /api/auth/login    -- password login; access token in body, refresh token in cookie
  POST /api/auth/signup   -- self-registration; role is always "user"
  POST /api/auth/refresh  -- new access token from the refresh cookie
  POST /api/auth/logout   -- clears the refresh cookie

Security:
  [H2] POST /login is rate-limited (LOGIN_RATE_LIMIT, default 10/minute per IP).
  [C1] authenticate() provides timing equalization -- use it, never inline.
  [E1] Unknown email and wrong password return the same status and body.
  [M5] Cache-Control: no-store on every response that carries a token.
  Refresh tokens are NOT rotated: the same cookie is valid until it expires
  or the user logs out.

login and signup are plain `def` so bcrypt runs in the threadpool rather
than blocking the event loop.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_rate_limit
from api.models import AuthPayload, LoginRequest, SignupRequest, UserResponse
from api.responses import failure, success
from auth.dependencies import get_credential_store
from auth.models import Credential
from auth.store import CredentialStore, register_user
from auth.tokens import (
    REFRESH_COOKIE,
    authenticate,
    clear_refresh_cookie,
    issue_access_token,
    issue_refresh_token,
    set_refresh_cookie,
    verify_refresh_token,
)
from core.errors import AppError, ErrorKind

logger = logging.getLogger("segregate.api")

router = APIRouter()


def _auth_payload(credential: Credential) -> AuthPayload:
    return AuthPayload(
        access_token=issue_access_token(credential.id, credential.email, credential.role),
        user=UserResponse.from_credential(credential),
    )


@limiter.limit(login_rate_limit)  # [H2] must be ABOVE @router to preserve FastAPI introspection
@router.post("/auth/login")
def login(
    request: Request,
    body: LoginRequest,
    store: CredentialStore = Depends(get_credential_store),
) -> JSONResponse:
    """Authenticate with email and password.

    Returns {accessToken, user} and sets the refresh token as an HttpOnly
    cookie. Every failure is the same INVALID_CREDENTIALS response [E1].
    """
    credential = authenticate(store, body.email, body.password)
    if credential is None:
        resp = failure(ErrorKind.INVALID_CREDENTIALS)
        resp.headers["Cache-Control"] = "no-store"  # [M5]
        return resp

    resp = success(_auth_payload(credential), "Login successful")
    set_refresh_cookie(resp, issue_refresh_token(credential.id))
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    logger.info("User logged in user_id=%s role=%s", credential.id, credential.role)
    return resp


@router.post("/auth/signup", status_code=201)
def signup(body: SignupRequest, store: CredentialStore = Depends(get_credential_store)) -> JSONResponse:
    """Register a new account. Does not log the user in.

    A requested role is ignored; the account is always created as "user".
    Duplicate emails return 409 EMAIL_ALREADY_EXISTS, including when two
    signups race past the pre-check [R1].
    """
    requested = body.role.value if body.role is not None else None
    credential = register_user(store, body.name, body.email, body.password, requested_role=requested)
    logger.info("User registered user_id=%s", credential.id)
    return success(UserResponse.from_credential(credential), "User registered successfully. Please log in.", 201)


@router.post("/auth/refresh")
async def refresh(request: Request, store: CredentialStore = Depends(get_credential_store)) -> JSONResponse:
    """Issue a new access token from the refresh cookie.

    The user is re-read from the store so the new access token carries the
    CURRENT role and email, not whatever they were at login.
    """
    token = request.cookies.get(REFRESH_COOKIE)
    if not token:
        raise AppError(ErrorKind.REFRESH_TOKEN_MISSING)

    user_id = verify_refresh_token(token)
    if user_id is None:
        raise AppError(ErrorKind.REFRESH_TOKEN_INVALID)

    credential = store.get_by_id(user_id)
    if credential is None:
        raise AppError(ErrorKind.USER_NOT_FOUND)

    resp = success(_auth_payload(credential), "Access token refreshed successfully")
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    logger.info("Access token refreshed user_id=%s", credential.id)
    return resp


@router.post("/auth/logout")
async def logout() -> JSONResponse:
    """Clear the refresh cookie. Outstanding access tokens expire on their own."""
    resp = success(None, "Logged out")
    clear_refresh_cookie(resp)
    return resp
