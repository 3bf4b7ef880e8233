"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and routes do
the work; these only own the shape.

Layer rule: no imports from api/ or client/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class Credential:
    """A registered account: who the person is and how they prove it.

    email is unique and stored lower-cased. hashed_password is a bcrypt hash;
    the plaintext is never kept. role is one of "user", "volunteer", "admin"
    (see auth.policy.ROLES).
    """

    name: str
    email: str
    hashed_password: str
    role: str = "user"
    id: int | None = None
    created_at: str | None = None


@dataclass(frozen=True)
class Identity:
    """The verified caller of a single request.

    Built only by the request gate from a verified access token and read by
    route handlers through auth.dependencies.get_identity(). Never persisted
    and never built from client-supplied headers.
    """

    user_id: int
    email: str
    role: str
