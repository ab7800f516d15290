"""
                        Services Module

Contains all business logic services with the hybrid architecture pattern.
Services with external providers have Mock (development) and Real
(production) implementations.

Services:
    - otp: Phone OTP issuance, verification and cleanup
    - accounts: Password signup/login and access tokens
    - payment: Webhook verification and payment reconciliation
    - notifications: Twilio SMS / SendGrid email delivery
    - rate_limit: Sliding-window limits for the auth routes
"""
