"""
Tests for signup/login and access tokens.
"""

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from orderpay.core.exceptions import (
    AlreadyExists,
    InvalidCredentials,
    InvalidToken,
    MissingFields,
)
from orderpay.core.security import (
    create_access_token,
    decode_access_token,
    hash_secret,
    verify_secret,
)
from orderpay.models import Account
from orderpay.services.accounts import CredentialIssuer, SqlAccountStore


@pytest.fixture
def issuer(session) -> CredentialIssuer:
    return CredentialIssuer(SqlAccountStore(session))


class TestHashing:
    """Tests for Argon2id helpers."""

    async def test_hash_and_verify(self):
        encoded = await hash_secret("hunter2")
        assert encoded.startswith("$argon2id$")
        assert await verify_secret(encoded, "hunter2") is True
        assert await verify_secret(encoded, "hunter3") is False

    async def test_salted(self):
        """Same input should hash differently each time."""
        assert await hash_secret("same") != await hash_secret("same")

    async def test_malformed_hash_is_false(self):
        assert await verify_secret("not-a-hash", "x") is False
        assert await verify_secret(None, "x") is False


class TestAccessTokens:
    """Tests for JWT issuance and validation."""

    def test_round_trip_claims(self):
        token = create_access_token("acc1", "555")
        claims = decode_access_token(token)

        assert claims["sub"] == "acc1"
        assert claims["phone"] == "555"
        assert claims["exp"] - claims["iat"] == 12 * 3600

    def test_expired_token(self):
        issued = datetime.now(timezone.utc) - timedelta(hours=13)
        token = create_access_token("acc1", "555", now=issued)

        with pytest.raises(InvalidToken):
            decode_access_token(token)

    def test_wrong_secret(self):
        token = jwt.encode(
            {"sub": "acc1", "exp": datetime.now(timezone.utc) + timedelta(hours=1)},
            "some-other-secret",
            algorithm="HS256",
        )
        with pytest.raises(InvalidToken):
            decode_access_token(token)

    def test_missing_subject(self):
        token = jwt.encode(
            {"exp": datetime.now(timezone.utc) + timedelta(hours=1)},
            "test-jwt-secret",
            algorithm="HS256",
        )
        with pytest.raises(InvalidToken):
            decode_access_token(token)

    def test_garbage(self):
        with pytest.raises(InvalidToken):
            decode_access_token("not.a.token")


class TestSignup:
    """Tests for account creation."""

    async def test_signup_returns_token_and_public_fields(self, issuer, session):
        result = await issuer.signup("Asha", "A@X.com", "555", "pw-123")

        assert set(result.account) == {"id", "name", "email", "phone"}
        assert result.account["email"] == "a@x.com"
        assert decode_access_token(result.token)["sub"] == result.account["id"]

        stored = await session.get(Account, result.account["id"])
        assert stored.password_hash.startswith("$argon2id$")
        assert stored.password_hash != "pw-123"

    async def test_duplicate_email(self, issuer):
        """Second signup with the same email but another phone should fail."""
        await issuer.signup("Asha", "a@x.com", "555", "pw-123")

        with pytest.raises(AlreadyExists):
            await issuer.signup("Other", "a@x.com", "556", "pw-456")

    async def test_duplicate_phone(self, issuer):
        await issuer.signup("Asha", "a@x.com", "555", "pw-123")

        with pytest.raises(AlreadyExists):
            await issuer.signup("Other", "b@x.com", "555", "pw-456")

    @pytest.mark.parametrize("field", ["name", "email", "phone", "password"])
    async def test_missing_field(self, issuer, field):
        values = {"name": "Asha", "email": "a@x.com", "phone": "555", "password": "pw"}
        values[field] = ""

        with pytest.raises(MissingFields):
            await issuer.signup(**values)

    async def test_unique_constraint_race(self, session):
        """A conflict only caught by the database should still be AlreadyExists."""
        class BlindStore(SqlAccountStore):
            async def find_by_email_or_phone(self, email, phone):
                return None

        issuer = CredentialIssuer(BlindStore(session))
        await issuer.signup("Asha", "a@x.com", "555", "pw-123")

        with pytest.raises(AlreadyExists):
            await issuer.signup("Asha", "a@x.com", "555", "pw-123")


class TestLogin:
    """Tests for password login."""

    async def test_login(self, issuer):
        created = await issuer.signup("Asha", "a@x.com", "555", "pw-123")
        result = await issuer.login("a@x.com", "pw-123")

        assert result.account["id"] == created.account["id"]
        assert decode_access_token(result.token)["phone"] == "555"

    async def test_login_is_case_insensitive_on_email(self, issuer):
        await issuer.signup("Asha", "a@x.com", "555", "pw-123")
        result = await issuer.login("  A@X.COM ", "pw-123")
        assert result.account["email"] == "a@x.com"

    async def test_wrong_password_and_unknown_email_look_the_same(self, issuer):
        await issuer.signup("Asha", "a@x.com", "555", "pw-123")

        with pytest.raises(InvalidCredentials) as wrong_password:
            await issuer.login("a@x.com", "nope")
        with pytest.raises(InvalidCredentials) as unknown:
            await issuer.login("ghost@x.com", "nope")

        assert wrong_password.value.to_dict() == unknown.value.to_dict()

    async def test_missing_fields(self, issuer):
        with pytest.raises(MissingFields):
            await issuer.login("a@x.com", "")
