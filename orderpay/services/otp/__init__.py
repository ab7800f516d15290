"""
OTP Service Module

Usage:
    from orderpay.services.otp import OtpManager, OtpStore

    manager = OtpManager.from_settings(OtpStore(db), get_notification_service())
    await manager.issue("+919199999999")
    await manager.verify("+919199999999", "123456")
"""

from orderpay.services.otp.manager import (
    IssueOutcome,
    OtpManager,
    generate_numeric_code,
)
from orderpay.services.otp.store import OtpStore

__all__ = [
    "IssueOutcome",
    "OtpManager",
    "OtpStore",
    "generate_numeric_code",
]
