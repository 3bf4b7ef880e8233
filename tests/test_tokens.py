"""Unit tests for auth/tokens.py -- token issue/verify and password hashing.

Covers:
- access token round trip (identity preserved)
- expiry: valid before 15 minutes, invalid after
- secret isolation: access and refresh tokens never cross-verify
- tampered and malformed tokens verify as None, never raise
- Bearer header extraction
- bcrypt hash/verify and timing-equalized authenticate()
"""

from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from auth.models import Credential, Identity
from auth.store import CredentialStore
from auth.tokens import (
    authenticate,
    extract_bearer_token,
    hash_password,
    issue_access_token,
    issue_refresh_token,
    verify_access_token,
    verify_password,
    verify_refresh_token,
)
from core.config import get_settings


def _ago(**kwargs) -> datetime:
    return datetime.now(timezone.utc) - timedelta(**kwargs)


class TestAccessTokens:
    @pytest.mark.parametrize(
        "user_id, email, role",
        [(1, "ada@segregate.org", "user"), (42, "vol@segregate.org", "volunteer"), (7, "root@segregate.org", "admin")],
    )
    def test_round_trip(self, user_id, email, role):
        token = issue_access_token(user_id, email, role)
        assert verify_access_token(token) == Identity(user_id=user_id, email=email, role=role)

    def test_valid_just_before_expiry(self):
        token = issue_access_token(1, "ada@segregate.org", "user", now=_ago(minutes=14, seconds=30))
        assert verify_access_token(token) is not None

    def test_invalid_after_expiry(self):
        """A token issued 16 minutes ago is past its 15-minute lifetime."""
        token = issue_access_token(1, "ada@segregate.org", "user", now=_ago(minutes=16))
        assert verify_access_token(token) is None

    def test_lifetime_is_fifteen_minutes(self):
        token = issue_access_token(1, "ada@segregate.org", "user")
        claims = jwt.get_unverified_claims(token)
        assert claims["exp"] - claims["iat"] == 15 * 60

    def test_tampered_signature_rejected(self):
        token = issue_access_token(1, "ada@segregate.org", "user")
        head, payload, sig = token.split(".")
        flipped = sig[:5] + ("A" if sig[5] != "A" else "B") + sig[6:]
        assert verify_access_token(f"{head}.{payload}.{flipped}") is None

    def test_forged_with_other_key_rejected(self):
        forged = jwt.encode(
            {"user_id": 1, "email": "ada@segregate.org", "role": "admin", "type": "access",
             "exp": datetime.now(timezone.utc) + timedelta(minutes=5)},
            "x" * 64,
            algorithm="HS256",
        )
        assert verify_access_token(forged) is None

    @pytest.mark.parametrize("garbage", ["", "garbage", "a.b.c", "Bearer abc"])
    def test_malformed_returns_none(self, garbage):
        assert verify_access_token(garbage) is None


class TestRefreshTokens:
    def test_round_trip_carries_only_user_id(self):
        token = issue_refresh_token(9)
        assert verify_refresh_token(token) == 9
        claims = jwt.get_unverified_claims(token)
        assert "role" not in claims
        assert "email" not in claims

    def test_lifetime_is_seven_days(self):
        claims = jwt.get_unverified_claims(issue_refresh_token(9))
        assert claims["exp"] - claims["iat"] == 7 * 24 * 60 * 60

    def test_expired_refresh_rejected(self):
        assert verify_refresh_token(issue_refresh_token(9, now=_ago(days=8))) is None


class TestSecretIsolation:
    def test_access_token_is_not_a_refresh_token(self):
        assert verify_refresh_token(issue_access_token(3, "a@segregate.org", "user")) is None

    def test_refresh_token_is_not_an_access_token(self):
        assert verify_access_token(issue_refresh_token(3)) is None

    def test_type_claim_checked_even_with_matching_secret(self):
        """A refresh-shaped token signed with the refresh secret but typed 'access' is refused."""
        token = jwt.encode(
            {"user_id": 3, "type": "access", "exp": datetime.now(timezone.utc) + timedelta(minutes=5)},
            get_settings().refresh_token_secret,
            algorithm="HS256",
        )
        assert verify_refresh_token(token) is None

    def test_secrets_differ(self):
        settings = get_settings()
        assert settings.access_token_secret != settings.refresh_token_secret


class TestBearerExtraction:
    @pytest.mark.parametrize(
        "header, expected",
        [
            ("Bearer abc.def.ghi", "abc.def.ghi"),
            (None, None),
            ("", None),
            ("Bearer ", None),
            ("bearer abc", None),
            ("Basic dXNlcjpwYXNz", None),
            ("abc.def.ghi", None),
        ],
    )
    def test_extract(self, header, expected):
        assert extract_bearer_token(header) == expected


class TestPasswords:
    def test_hash_and_verify(self):
        hashed = hash_password("longenough1")
        assert hashed != "longenough1"
        assert verify_password("longenough1", hashed)
        assert not verify_password("wrong-password", hashed)

    def test_hashes_are_salted(self):
        assert hash_password("same") != hash_password("same")

    def test_malformed_hash_is_a_mismatch(self):
        assert verify_password("anything", "not-a-bcrypt-hash") is False

    def test_authenticate(self):
        store = CredentialStore("sqlite:///:memory:")
        store.create_credential(
            Credential(name="Ada", email="ada@segregate.org", hashed_password=hash_password("longenough1"))
        )
        assert authenticate(store, "ada@segregate.org", "longenough1").email == "ada@segregate.org"
        assert authenticate(store, "ADA@segregate.org", "longenough1") is not None
        assert authenticate(store, "ada@segregate.org", "wrong") is None
        assert authenticate(store, "nobody@segregate.org", "longenough1") is None
        store.close()
