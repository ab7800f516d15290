"""
OTP Challenge Store

Persistence for OtpChallenge rows. Every method is a single statement
committed on its own: issuance is one upsert keyed by phone, attempt
increments and deletes are conditional on the ``issue_id`` that was read,
so no caller ever needs a lock held across the slow hash comparison.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from orderpay.database import dialect_insert
from orderpay.models import OtpChallenge, new_id

logger = logging.getLogger(__name__)


class OtpStore:
    """SQL-backed store holding one live challenge per phone."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, phone: str) -> Optional[OtpChallenge]:
        """Load the current challenge for a phone, bypassing stale identity-map state."""
        result = await self.session.execute(
            select(OtpChallenge)
            .where(OtpChallenge.phone == phone)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def replace(
        self,
        phone: str,
        code_hash: str,
        expires_at: datetime,
    ) -> str:
        """
        Store a new hashed challenge, replacing any previous one.

        Resets attempts and clears a legacy plaintext code.

        Returns:
            The new issue_id
        """
        issue_id = new_id()
        stmt = dialect_insert(self.session, OtpChallenge).values(
            phone=phone,
            code_hash=code_hash,
            code=None,
            expires_at=expires_at,
            attempts=0,
            issue_id=issue_id,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[OtpChallenge.phone],
            set_={
                "code_hash": stmt.excluded.code_hash,
                "code": None,
                "expires_at": stmt.excluded.expires_at,
                "attempts": 0,
                "issue_id": stmt.excluded.issue_id,
            },
        )
        await self.session.execute(stmt)
        await self.session.commit()
        return issue_id

    async def reserve_attempt(
        self,
        phone: str,
        issue_id: str,
        limit: int,
    ) -> Optional[int]:
        """
        Atomically count one verification attempt against a challenge.

        The increment only happens while ``attempts < limit`` and the
        challenge is still the one identified by ``issue_id``.

        Returns:
            The attempt count after the increment, or None when nothing
            was updated (locked out, replaced or deleted).
        """
        result = await self.session.execute(
            update(OtpChallenge)
            .where(
                OtpChallenge.phone == phone,
                OtpChallenge.issue_id == issue_id,
                OtpChallenge.attempts < limit,
            )
            .values(attempts=OtpChallenge.attempts + 1)
            .returning(OtpChallenge.attempts)
            .execution_options(synchronize_session=False)
        )
        attempts = result.scalar_one_or_none()
        await self.session.commit()
        return attempts

    async def delete(self, phone: str, issue_id: str) -> bool:
        """Consume a challenge. Returns False if it was already gone or replaced."""
        result = await self.session.execute(
            delete(OtpChallenge)
            .where(
                OtpChallenge.phone == phone,
                OtpChallenge.issue_id == issue_id,
            )
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
        return result.rowcount == 1

    async def delete_expired(self, now: datetime) -> int:
        """Remove every challenge whose expiry is strictly before ``now``."""
        result = await self.session.execute(
            delete(OtpChallenge)
            .where(OtpChallenge.expires_at < now)
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
        return result.rowcount or 0
