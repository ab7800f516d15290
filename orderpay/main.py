"""
FastAPI Application Entry Point

Credential and payment trust boundary for the ordering platform.
Supports both Mock services (development) and Real APIs (production).

Endpoints:
    - POST /api/auth/send-otp: Issue a phone OTP
    - POST /api/auth/verify-otp: Verify and consume a phone OTP
    - POST /api/auth/signup: Password signup, returns access token
    - POST /api/auth/login: Password login, returns access token
    - GET /api/auth/me: Resolve the bearer token
    - POST /api/payments/webhook: Signed payment gateway callback
    - POST /api/payments/create: Record a client-initiated payment
    - POST /api/admin/cleanup-expired-otps: Sweep expired OTP challenges
    - GET /health: System health check
"""

import hmac
import json
import logging
from datetime import datetime
from typing import Any, Optional
from contextlib import asynccontextmanager

from fastapi import FastAPI, Depends, Request, Header
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from redis import asyncio as aioredis

from orderpay.core.config import get_settings, setup_logging
from orderpay.core.exceptions import OrderPayError, RateLimited, Unauthorized
from orderpay.core.security import decode_access_token
from orderpay.database import get_db, init_db, engine
from orderpay.schemas import (
    SendOtpRequest,
    SendOtpResponse,
    VerifyOtpRequest,
    VerifyOtpResponse,
    SignupRequest,
    LoginRequest,
    CredentialResponse,
    MeResponse,
    CreatePaymentRequest,
    CreatePaymentResponse,
    WebhookAck,
    CleanupResponse,
    ErrorResponse,
    HealthResponse,
)
from orderpay.services.accounts import CredentialIssuer, SqlAccountStore
from orderpay.services.notifications import get_notification_service
from orderpay.services.otp import OtpManager, OtpStore
from orderpay.services.payment import (
    SIGNATURE_HEADERS,
    PaymentReconciler,
    PaymentStore,
    SqlOrderStore,
    get_webhook_verifier,
)
from orderpay.services.rate_limit import get_rate_limiter

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    # Startup
    logger.info("=" * 60)
    logger.info(f"Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info("=" * 60)

    await init_db()
    logger.info("Database initialized")

    notifier = get_notification_service()
    limiter = get_rate_limiter()
    verifier = get_webhook_verifier()
    logger.info(f"Notification Service: {notifier.provider_name}")
    logger.info(f"Rate Limiter: {limiter.backend_name}")
    logger.info(f"Payment webhooks: {'signed' if verifier.is_signed_mode else 'UNSIGNED'}")

    if settings.use_real_services:
        missing = settings.validate_production_config()
        if missing:
            logger.warning(f"Missing production config: {missing}")

    logger.info("Application ready")

    yield  # Application runs

    # Shutdown
    logger.info("Shutting down...")
    await engine.dispose()
    logger.info("Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "OTP login, password credentials and signed payment webhooks "
        "for the ordering platform."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

bearer_scheme = HTTPBearer(auto_error=False)


# =============================================================================
# DEPENDENCIES
# =============================================================================

def get_otp_manager(db: AsyncSession = Depends(get_db)) -> OtpManager:
    return OtpManager.from_settings(OtpStore(db), get_notification_service())


def get_credential_issuer(db: AsyncSession = Depends(get_db)) -> CredentialIssuer:
    return CredentialIssuer(SqlAccountStore(db))


def get_reconciler(db: AsyncSession = Depends(get_db)) -> PaymentReconciler:
    return PaymentReconciler(PaymentStore(db), SqlOrderStore(db))


def client_identity(request: Request, body: bytes) -> str:
    """Phone from the JSON body when present, else the client address."""
    try:
        document = json.loads(body) if body else None
    except (json.JSONDecodeError, UnicodeDecodeError):
        document = None

    if isinstance(document, dict):
        phone = document.get("phone")
        if isinstance(phone, str) and phone.strip():
            return f"phone:{phone.strip()}"

    host = request.client.host if request.client else "unknown"
    return f"ip:{host}"


async def enforce_auth_rate_limit(request: Request) -> None:
    """Sliding-window limit shared by all auth routes."""
    limiter = get_rate_limiter()
    identity = client_identity(request, await request.body())
    info = await limiter.hit(limiter.key_for("auth", identity))
    if not info.allowed:
        logger.warning(f"Rate limit exceeded for {identity}")
        raise RateLimited(retry_after=info.retry_after or 0)


async def current_claims(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> dict[str, Any]:
    """Decode the bearer token or fail with 401."""
    if credentials is None or not credentials.credentials:
        raise Unauthorized("Missing bearer token")
    return decode_access_token(credentials.credentials)


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    db: AsyncSession = Depends(get_db)
) -> HealthResponse:
    """Verify all system components are operational."""

    # Check database
    db_status = "healthy"
    try:
        await db.execute(select(1))
    except Exception as e:
        db_status = f"unhealthy: {str(e)}"
        logger.error(f"Database health check failed: {e}")

    # Check Redis (broker and shared rate limits; unused in development)
    redis_status = "not used"
    if settings.use_real_services:
        redis_status = "healthy"
        client = aioredis.from_url(settings.redis_url, socket_timeout=2)
        try:
            await client.ping()
        except Exception as e:
            redis_status = f"unhealthy: {str(e)}"
            logger.error(f"Redis health check failed: {e}")
        finally:
            await client.aclose()

    notifier = get_notification_service()
    notification_status = "healthy" if await notifier.health_check() else "unhealthy"

    overall = "operational" if all(
        s in ("healthy", "not used") for s in [db_status, redis_status, notification_status]
    ) else "degraded"

    return HealthResponse(
        status=overall,
        database=db_status,
        redis=redis_status,
        notification_service=notification_status,
        rate_limiter=get_rate_limiter().backend_name,
        webhook_mode="signed" if get_webhook_verifier().is_signed_mode else "unsigned",
        timestamp=datetime.now(),
    )


# =============================================================================
# AUTH ENDPOINTS
# =============================================================================

@app.post(
    "/api/auth/send-otp",
    response_model=SendOtpResponse,
    responses={400: {"model": ErrorResponse}, 429: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    tags=["Auth"],
    summary="Send OTP",
    dependencies=[Depends(enforce_auth_rate_limit)],
)
async def send_otp(
    payload: SendOtpRequest,
    otp: OtpManager = Depends(get_otp_manager),
) -> SendOtpResponse:
    """
    Issue a fresh OTP for the phone number, replacing any earlier one.

    The code is delivered by SMS and never appears in the response.
    """
    outcome = await otp.issue(payload.phone, payload.digits)
    message = "OTP sent" if not outcome.fallback else "OTP generated (delivery channel not configured)"
    return SendOtpResponse(message=message)


@app.post(
    "/api/auth/verify-otp",
    response_model=VerifyOtpResponse,
    responses={400: {"model": ErrorResponse}, 429: {"model": ErrorResponse}},
    tags=["Auth"],
    summary="Verify OTP",
    dependencies=[Depends(enforce_auth_rate_limit)],
)
async def verify_otp(
    payload: VerifyOtpRequest,
    otp: OtpManager = Depends(get_otp_manager),
) -> VerifyOtpResponse:
    """Check the code; a correct code consumes the challenge."""
    result = await otp.verify(payload.phone, payload.otp)
    return VerifyOtpResponse(phone=result["phone"])


@app.post(
    "/api/auth/signup",
    response_model=CredentialResponse,
    responses={400: {"model": ErrorResponse}, 429: {"model": ErrorResponse}},
    tags=["Auth"],
    summary="Signup",
    dependencies=[Depends(enforce_auth_rate_limit)],
)
async def signup(
    payload: SignupRequest,
    issuer: CredentialIssuer = Depends(get_credential_issuer),
) -> dict[str, Any]:
    result = await issuer.signup(payload.name, payload.email, payload.phone, payload.password)
    return result.to_response()


@app.post(
    "/api/auth/login",
    response_model=CredentialResponse,
    responses={400: {"model": ErrorResponse}, 429: {"model": ErrorResponse}},
    tags=["Auth"],
    summary="Login",
    dependencies=[Depends(enforce_auth_rate_limit)],
)
async def login(
    payload: LoginRequest,
    issuer: CredentialIssuer = Depends(get_credential_issuer),
) -> dict[str, Any]:
    result = await issuer.login(payload.email, payload.password)
    return result.to_response()


@app.get(
    "/api/auth/me",
    response_model=MeResponse,
    responses={401: {"model": ErrorResponse}},
    tags=["Auth"],
    summary="Current account",
)
async def me(claims: dict[str, Any] = Depends(current_claims)) -> MeResponse:
    return MeResponse(account_id=claims["sub"], phone=claims.get("phone"))


# =============================================================================
# PAYMENT ENDPOINTS
# =============================================================================

@app.post(
    "/api/payments/webhook",
    response_model=WebhookAck,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
    tags=["Payments"],
    summary="Payment gateway webhook",
)
async def payment_webhook(
    request: Request,
    reconciler: PaymentReconciler = Depends(get_reconciler),
) -> WebhookAck:
    """
    Authenticate a gateway callback and reconcile it.

    The signature covers the exact raw body, so the body is read as bytes
    and never re-serialized. Once authenticated the gateway always gets
    ``{"ok": true}``; reconciliation problems are only logged.
    """
    body = await request.body()
    signature = next(
        (request.headers[name] for name in SIGNATURE_HEADERS if request.headers.get(name)),
        None,
    )

    event = get_webhook_verifier().authenticate(body, signature)
    outcome = await reconciler.reconcile(event)
    logger.debug(f"[PAYMENT] outcome: {outcome}")
    return WebhookAck()


@app.post(
    "/api/payments/create",
    response_model=CreatePaymentResponse,
    responses={400: {"model": ErrorResponse}},
    tags=["Payments"],
    summary="Record a payment initiation",
)
async def create_payment(
    payload: CreatePaymentRequest,
    reconciler: PaymentReconciler = Depends(get_reconciler),
) -> dict[str, Any]:
    payment = await reconciler.create_payment(
        order_id=payload.order_id,
        amount=payload.amount,
        currency=payload.currency,
        restaurant_id=payload.restaurant_id,
        provider_payment_id=payload.provider_payment_id,
    )
    return {"success": True, "data": payment.to_dict()}


# =============================================================================
# ADMIN ENDPOINTS
# =============================================================================

@app.post(
    "/api/admin/cleanup-expired-otps",
    response_model=CleanupResponse,
    responses={401: {"model": ErrorResponse}},
    tags=["Admin"],
    summary="Delete expired OTP challenges",
)
async def cleanup_expired_otps(
    otp: OtpManager = Depends(get_otp_manager),
    x_admin_secret: Optional[str] = Header(None, alias="x-admin-secret"),
) -> CleanupResponse:
    """Same sweep as the Celery beat task, triggered on demand."""
    expected = settings.admin_secret
    if not expected or not x_admin_secret or not hmac.compare_digest(
        expected.encode(), x_admin_secret.encode()
    ):
        raise Unauthorized()

    removed = await otp.cleanup()
    return CleanupResponse(removed=removed)


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(OrderPayError)
async def orderpay_exception_handler(request: Request, exc: OrderPayError) -> JSONResponse:
    """Map domain errors to their status and stable code."""
    headers = None
    if isinstance(exc, RateLimited) and exc.retry_after:
        headers = {"Retry-After": str(exc.retry_after)}
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies are client errors like any other bad input."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = f"{field}: {first.get('msg')}" if field else "Invalid request"
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": message, "code": "validation_error"},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler."""
    logger.exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": str(exc) if settings.debug else "Internal Server Error",
            "code": "internal_error",
        },
    )
