"""
Celery Tasks
Background maintenance for the OTP store.
"""

import asyncio
import time

from orderpay.celery_worker import celery_app
from orderpay.core.config import get_logger
from orderpay.database import async_session_maker
from orderpay.services.notifications import get_notification_service
from orderpay.services.otp import OtpManager, OtpStore

logger = get_logger(__name__)


async def _cleanup() -> int:
    async with async_session_maker() as session:
        manager = OtpManager.from_settings(OtpStore(session), get_notification_service())
        return await manager.cleanup()


@celery_app.task(
    bind=True,
    name='orderpay.tasks.cleanup_expired_otps',
    max_retries=3,
    default_retry_delay=5,
    autoretry_for=(Exception,),
    retry_backoff=True
)
def cleanup_expired_otps(self) -> dict:
    """
    Delete every OTP challenge whose expiry has passed.

    Scheduled by celery beat every OTP_CLEANUP_INTERVAL_SECONDS; the admin
    endpoint runs the same sweep on demand.

    Returns:
        dict: Number of challenges removed
    """
    task_id = self.request.id
    start_time = time.time()

    try:
        removed = asyncio.run(_cleanup())
    except Exception as e:
        elapsed = round(time.time() - start_time, 3)
        logger.error(f"Task {task_id}: cleanup failed after {elapsed}s - {e}")
        # Celery will auto-retry based on configuration
        raise

    elapsed = round(time.time() - start_time, 3)
    logger.info(f"Task {task_id}: removed {removed} expired otps in {elapsed}s")
    return {
        'success': True,
        'removed': removed,
        'task_id': task_id,
        'processing_time_seconds': elapsed,
    }
