"""
Credential Issuer

Password signup and login. Both return a freshly signed access token and
the public account fields; a token is only ever produced for an account
that has been committed (signup) or whose password verified (login).
"""

import logging
from dataclasses import dataclass
from typing import Optional

from orderpay.core.exceptions import AlreadyExists, InvalidCredentials, MissingFields
from orderpay.core.security import (
    burn_verify,
    create_access_token,
    hash_secret,
    verify_secret,
)
from orderpay.services.accounts.store import BaseAccountStore

logger = logging.getLogger(__name__)


@dataclass
class CredentialResult:
    token: str
    account: dict

    def to_response(self) -> dict:
        return {"success": True, "token": self.token, "user": self.account}


def _clean(value: Optional[str]) -> str:
    return (value or "").strip()


class CredentialIssuer:
    """Create/load accounts and issue access tokens."""

    def __init__(self, accounts: BaseAccountStore):
        self.accounts = accounts

    async def signup(
        self,
        name: Optional[str],
        email: Optional[str],
        phone: Optional[str],
        password: Optional[str],
    ) -> CredentialResult:
        """
        Register a new account.

        Raises:
            MissingFields: any of name/email/phone/password absent
            AlreadyExists: email or phone already registered
        """
        name, phone = _clean(name), _clean(phone)
        email = _clean(email).lower()
        if not (name and email and phone and password):
            raise MissingFields("missing fields")

        existing = await self.accounts.find_by_email_or_phone(email, phone)
        if existing is not None:
            logger.info(f"Signup rejected, account exists for {email} / {phone}")
            raise AlreadyExists()

        password_hash = await hash_secret(password)
        account = await self.accounts.create(
            name=name,
            email=email,
            phone=phone,
            password_hash=password_hash,
        )
        logger.info(f"Account {account.id} created")

        token = create_access_token(account.id, account.phone)
        return CredentialResult(token=token, account=account.to_public())

    async def login(self, email: Optional[str], password: Optional[str]) -> CredentialResult:
        """
        Authenticate by email and password.

        Raises:
            MissingFields: email or password absent
            InvalidCredentials: unknown email or wrong password (same error)
        """
        email = _clean(email).lower()
        if not email or not password:
            raise MissingFields("email and password required")

        account = await self.accounts.find_by_email(email)
        if account is None:
            await burn_verify(password)
            logger.info("Login failed: invalid credentials")
            raise InvalidCredentials()

        if not await verify_secret(account.password_hash, password):
            logger.info("Login failed: invalid credentials")
            raise InvalidCredentials()

        token = create_access_token(account.id, account.phone)
        return CredentialResult(token=token, account=account.to_public())
