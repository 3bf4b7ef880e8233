"""
client/session.py -- Client-side auth lifecycle controller.

SessionController is the one object a UI holds for "who is logged in". It is
created once at the composition root, started once, and passed to whatever
needs it -- no module-level globals.

States:
  INITIALIZING     -- constructed, start() not yet called
  LOADING          -- a login/signup/refresh call is in flight
  AUTHENTICATED    -- access token and user held in memory
  UNAUTHENTICATED  -- nothing held

Transitions:
  start()    INITIALIZING -> LOADING -> AUTHENTICATED | UNAUTHENTICATED   (once)
  login()    * -> LOADING -> AUTHENTICATED, or back to UNAUTHENTICATED + AuthClientError
  signup()   * -> LOADING -> UNAUTHENTICATED (always; the user must log in)
  logout()   * -> UNAUTHENTICATED
  refresh()  silent; AUTHENTICATED on success, UNAUTHENTICATED on failure

The access token lives only on this object. It is never written to disk or
any other durable storage. The refresh token is an HttpOnly cookie held by
the HTTP session's cookie jar; this controller never reads its value.

guard() is a UX redirect, not a security control. The server's request gate
rejects unauthenticated API calls whether or not this guard ran.

Layer rule: talks to the API over HTTP only. No imports from api/ or auth/.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Iterable, Optional

import requests

logger = logging.getLogger("segregate.client")

REFRESH_COOKIE = "refreshToken"
PROTECTED_PAGES: tuple[str, ...] = ("/dashboard", "/users", "/reports", "/profile")
LOGIN_PAGE = "/login"
DASHBOARD_PAGE = "/dashboard"


class AuthState(str, Enum):
    INITIALIZING = "initializing"
    LOADING = "loading"
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"


class AuthClientError(Exception):
    """A user-visible auth failure: the server's message plus its error code."""

    def __init__(self, message: str, code: Optional[str] = None, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.status = status


def _noop_navigate(path: str) -> None:
    logger.debug("navigate(%s) with no navigator attached", path)


class SessionController:
    """Owns the access token, the current user, and the auth state machine.

    Args:
        base_url:        API origin, e.g. "https://segregate.example.com".
                         Empty string for clients that resolve relative URLs.
        http:            requests.Session (or anything with the same post/request
                         API and a cookie jar). A new Session is created if omitted.
        navigate:        Called with a path whenever the controller wants the UI
                         to change page.
        protected_pages: Page prefixes that require a logged-in user.
        timeout:         Per-request timeout in seconds.
    """

    def __init__(
        self,
        base_url: str = "",
        http: Any = None,
        navigate: Optional[Callable[[str], None]] = None,
        protected_pages: Iterable[str] = PROTECTED_PAGES,
        timeout: float = 10.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.http = http if http is not None else requests.Session()
        self._navigate = navigate or _noop_navigate
        self.protected_pages = tuple(protected_pages)
        self.timeout = timeout

        self.state = AuthState.INITIALIZING
        self.user: Optional[dict] = None
        self._access_token: Optional[str] = None
        self._started = False
        self._submitting = False

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def access_token(self) -> Optional[str]:
        return self._access_token

    @property
    def is_authenticated(self) -> bool:
        return self.state is AuthState.AUTHENTICATED

    @property
    def is_loading(self) -> bool:
        return self.state in (AuthState.INITIALIZING, AuthState.LOADING)

    @property
    def submitting(self) -> bool:
        """True while a login or signup call is in flight.

        Overlapping submits are not deduplicated here; a UI should disable
        its submit control while this is True.
        """
        return self._submitting

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, current_path: str = "/") -> AuthState:
        """Run the one automatic transition: a silent refresh at startup.

        Calling start() again is a no-op that returns the current state.
        """
        if self._started:
            return self.state
        self._started = True
        self.refresh()
        self.guard(current_path)
        return self.state

    def refresh(self) -> bool:
        """Try to obtain a fresh access token from the refresh cookie.

        Silent: any failure (no cookie, expired cookie, network
        error, unexpected body) ends UNAUTHENTICATED and returns False without
        raising.
        """
        self.state = AuthState.LOADING
        try:
            resp = self._post("/api/auth/refresh")
            body = resp.json()
        except (requests.RequestException, ValueError) as exc:
            logger.info("Silent refresh failed: %s", exc)
            self._clear()
            return False

        data = body.get("data") if isinstance(body, dict) and body.get("success") else None
        if not isinstance(data, dict) or not data.get("accessToken"):
            logger.debug("Silent refresh rejected with status %s", resp.status_code)
            self._clear()
            return False

        self._set_session(data["accessToken"], data.get("user"))
        return True

    def login(self, email: str, password: str) -> dict:
        """Log in and navigate to the dashboard. Returns the user dict.

        Raises AuthClientError with the server's message on any failure,
        including network errors.
        """
        self._begin_submit()
        try:
            body = self._submit("/api/auth/login", {"email": email, "password": password}, "Login failed")
        except AuthClientError:
            self._clear()
            raise
        finally:
            self._submitting = False

        data = body["data"]
        self._set_session(data["accessToken"], data.get("user"))
        logger.info("Logged in as %s", (self.user or {}).get("email"))
        self._navigate(DASHBOARD_PAGE)
        return self.user or {}

    def signup(self, name: str, email: str, password: str, role: Optional[str] = None) -> dict:
        """Register an account and navigate to the login page.

        Never authenticates: the user confirms their credentials by logging
        in. Returns the created user dict. Raises AuthClientError on failure.
        """
        payload: dict[str, Any] = {"name": name, "email": email, "password": password}
        if role is not None:
            payload["role"] = role
        self._begin_submit()
        try:
            body = self._submit("/api/auth/signup", payload, "Signup failed")
        finally:
            self._submitting = False
            self._clear()
        self._navigate(LOGIN_PAGE)
        return body.get("data") or {}

    def logout(self) -> None:
        """Forget the session locally, ask the server to clear the cookie, go to login."""
        self._clear()
        self.http.cookies.pop(REFRESH_COOKIE, None)
        try:
            self._post("/api/auth/logout")
        except requests.RequestException as exc:
            # The local session is already gone; the server cookie expires on its own.
            logger.warning("Server logout failed: %s", exc)
        self._navigate(LOGIN_PAGE)

    def guard(self, path: str) -> bool:
        """Redirect to login if settled unauthenticated on a protected page.

        Returns True if a redirect was issued. Does nothing while loading.
        """
        if self.state is not AuthState.UNAUTHENTICATED:
            return False
        if not path.startswith(self.protected_pages):
            return False
        self._navigate(LOGIN_PAGE)
        return True

    # ------------------------------------------------------------------
    # Authenticated API calls
    # ------------------------------------------------------------------

    def authorized_request(self, method: str, path: str, **kwargs: Any):
        """Send a request with the bearer token attached.

        On a 401 the controller makes one independent refresh call; if that
        succeeds the original request is sent once more with the new token.
        A second 401 is returned to the caller as-is.
        """
        resp = self._send_authorized(method, path, **kwargs)
        if resp.status_code != 401 or self._access_token is None:
            return resp
        if not self.refresh():
            return resp
        return self._send_authorized(method, path, **kwargs)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def _post(self, path: str, payload: Optional[dict] = None):
        return self.http.post(self._url(path), json=payload, timeout=self.timeout)

    def _send_authorized(self, method: str, path: str, **kwargs: Any):
        headers = dict(kwargs.pop("headers", None) or {})
        if self._access_token:
            headers["Authorization"] = f"Bearer {self._access_token}"
        kwargs.setdefault("timeout", self.timeout)
        return self.http.request(method, self._url(path), headers=headers, **kwargs)

    def _begin_submit(self) -> None:
        self._submitting = True
        self.state = AuthState.LOADING

    def _submit(self, path: str, payload: dict, fallback: str) -> dict:
        try:
            resp = self._post(path, payload)
        except requests.RequestException as exc:
            raise AuthClientError(f"{fallback}: could not reach the server") from exc
        try:
            body = resp.json()
        except ValueError as exc:
            raise AuthClientError(fallback, status=resp.status_code) from exc
        if not isinstance(body, dict) or not body.get("success"):
            error = (body.get("error") or {}) if isinstance(body, dict) else {}
            message = (body.get("message") if isinstance(body, dict) else None) or fallback
            raise AuthClientError(message, code=error.get("code"), status=resp.status_code)
        return body

    def _set_session(self, token: str, user: Optional[dict]) -> None:
        self._access_token = token
        self.user = user
        self.state = AuthState.AUTHENTICATED

    def _clear(self) -> None:
        self._access_token = None
        self.user = None
        self.state = AuthState.UNAUTHENTICATED
