"""
Accounts Service Module

Signup/login and the account store they rely on.
"""

from orderpay.services.accounts.issuer import CredentialIssuer, CredentialResult
from orderpay.services.accounts.store import BaseAccountStore, SqlAccountStore

__all__ = [
    "CredentialIssuer",
    "CredentialResult",
    "BaseAccountStore",
    "SqlAccountStore",
]
