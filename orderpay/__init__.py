"""
                Order & Payment Trust Service

Credential and transaction trust boundary for the restaurant ordering
backend: phone OTP challenges, password accounts with signed access
tokens, and payment-gateway webhook reconciliation.

Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
