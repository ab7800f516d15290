"""
Account Store

The "account store" capability used by the credential issuer, with an
abstract interface and the SQLAlchemy implementation.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from orderpay.core.exceptions import AlreadyExists
from orderpay.models import Account

logger = logging.getLogger(__name__)


class BaseAccountStore(ABC):
    """Abstract account persistence."""

    @abstractmethod
    async def find_by_email_or_phone(self, email: str, phone: str) -> Optional[Account]:
        """Return any account matching either identifier."""
        pass

    @abstractmethod
    async def find_by_email(self, email: str) -> Optional[Account]:
        pass

    @abstractmethod
    async def create(
        self,
        name: str,
        email: str,
        phone: str,
        password_hash: str,
    ) -> Account:
        """
        Persist a new account.

        Raises:
            AlreadyExists: email or phone already taken
        """
        pass


class SqlAccountStore(BaseAccountStore):
    """Accounts table accessed through an async session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_by_email_or_phone(self, email: str, phone: str) -> Optional[Account]:
        result = await self.session.execute(
            select(Account).where(or_(Account.email == email, Account.phone == phone)).limit(1)
        )
        return result.scalar_one_or_none()

    async def find_by_email(self, email: str) -> Optional[Account]:
        result = await self.session.execute(select(Account).where(Account.email == email))
        return result.scalar_one_or_none()

    async def create(
        self,
        name: str,
        email: str,
        phone: str,
        password_hash: str,
    ) -> Account:
        account = Account(
            name=name,
            email=email,
            phone=phone,
            password_hash=password_hash,
        )
        self.session.add(account)
        try:
            await self.session.commit()
        except IntegrityError:
            # Lost a race with a concurrent signup for the same email/phone
            await self.session.rollback()
            logger.warning(f"Signup conflict on unique constraint for {email} / {phone}")
            raise AlreadyExists()
        await self.session.refresh(account)
        return account
