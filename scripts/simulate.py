"""
Chaos Simulation Script

Fires concurrent auth and payment traffic at a running server to check
the trust boundary under load:
    - concurrent wrong OTP guesses never exceed the attempt limit
    - concurrent duplicate signed webhooks yield one payment record
    - tampered webhooks are rejected

Run from project root: python scripts/simulate.py --secret <webhook secret>
"""

import asyncio
import hashlib
import hmac
import json
import os
import random
import sys
import time
import argparse
from datetime import datetime
from typing import Any, Optional

import httpx

# Configuration
API_BASE_URL = os.getenv("API_BASE_URL", "http://localhost:8000")
DUPLICATE_DELIVERIES = 20
OTP_GUESSES = 20


def sign(secret: str, body: bytes) -> str:
    """Hex HMAC-SHA256 of the raw body, as the gateway computes it."""
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def random_phone() -> str:
    return f"+9191{random.randint(10000000, 99999999)}"


def captured_event(payment_id: str, order_id: str, amount: int = 49900) -> bytes:
    """Razorpay-style payment.captured event body."""
    document = {
        "event": "payment.captured",
        "payload": {
            "payment": {
                "entity": {
                    "id": payment_id,
                    "order_id": order_id,
                    "amount": amount,
                    "currency": "INR",
                }
            }
        },
    }
    return json.dumps(document, separators=(",", ":")).encode()


# =============================================================================
# OTP LOCKOUT SIMULATION
# =============================================================================

async def guess_otp(client: httpx.AsyncClient, phone: str, guess_num: int) -> dict[str, Any]:
    start_time = time.time()
    try:
        response = await client.post(
            f"{API_BASE_URL}/api/auth/verify-otp",
            json={"phone": phone, "otp": f"{guess_num:06d}"},
            timeout=30.0,
        )
        body = response.json()
        return {
            "guess": guess_num,
            "status": response.status_code,
            "code": body.get("code", "ok"),
            "time": round(time.time() - start_time, 3),
        }
    except Exception as e:
        return {
            "guess": guess_num,
            "status": 0,
            "code": f"error: {str(e)[:80]}",
            "time": round(time.time() - start_time, 3),
        }


async def run_otp_lockout(client: httpx.AsyncClient, guesses: int) -> dict[str, Any]:
    """Issue one OTP, then fire concurrent wrong guesses at it."""
    phone = random_phone()
    print(f"\nIssuing OTP for {phone}...")
    response = await client.post(f"{API_BASE_URL}/api/auth/send-otp", json={"phone": phone})
    if response.status_code != 200:
        print(f"   Failed: {response.text[:100]}")
        return {"phone": phone, "issued": False}
    print(f"   {response.json().get('message')}")

    print(f"Firing {guesses} concurrent wrong guesses...")
    tasks = [guess_otp(client, phone, i) for i in range(1, guesses + 1)]
    results = await asyncio.gather(*tasks)

    codes: dict[str, int] = {}
    for r in results:
        codes[r["code"]] = codes.get(r["code"], 0) + 1

    print(f"   Outcomes: {codes}")
    return {"phone": phone, "issued": True, "outcomes": codes}


# =============================================================================
# WEBHOOK IDEMPOTENCE SIMULATION
# =============================================================================

async def deliver(
    client: httpx.AsyncClient,
    body: bytes,
    signature: Optional[str],
) -> int:
    headers = {"content-type": "application/json"}
    if signature:
        headers["x-razorpay-signature"] = signature
    try:
        response = await client.post(
            f"{API_BASE_URL}/api/payments/webhook",
            content=body,
            headers=headers,
            timeout=30.0,
        )
        return response.status_code
    except Exception:
        return 0


async def run_duplicate_webhooks(
    client: httpx.AsyncClient,
    secret: str,
    deliveries: int,
) -> dict[str, Any]:
    """Deliver the same signed event concurrently, then one tampered copy."""
    payment_id = f"pay_sim_{random.randint(100000, 999999)}"
    order_id = f"order_sim_{random.randint(100000, 999999)}"
    body = captured_event(payment_id, order_id)
    signature = sign(secret, body)

    print(f"\nDelivering {payment_id} x{deliveries} concurrently...")
    start_time = time.time()
    statuses = await asyncio.gather(*[deliver(client, body, signature) for _ in range(deliveries)])
    elapsed = round(time.time() - start_time, 2)

    accepted = statuses.count(200)
    print(f"   Accepted: {accepted}/{deliveries} in {elapsed}s")

    tampered = body.replace(b"49900", b"1")
    tampered_status = await deliver(client, tampered, signature)
    print(f"   Tampered body -> HTTP {tampered_status} (expected 400)")

    unsigned_status = await deliver(client, body, None)
    print(f"   Missing signature -> HTTP {unsigned_status} (expected 400)")

    return {
        "payment_id": payment_id,
        "accepted": accepted,
        "deliveries": deliveries,
        "tampered_rejected": tampered_status == 400,
        "unsigned_rejected": unsigned_status == 400,
    }


# =============================================================================
# MAIN SIMULATION RUNNER
# =============================================================================

async def test_single_flows(client: httpx.AsyncClient) -> bool:
    """Pre-flight checks before the concurrent runs."""
    print("\n" + "=" * 70)
    print("TESTING INDIVIDUAL FLOWS")
    print("=" * 70)

    print("\n1. Health Check...")
    response = await client.get(f"{API_BASE_URL}/health")
    if response.status_code != 200:
        print(f"   Failed: {response.text}")
        return False
    data = response.json()
    print(f"   Status: {data.get('status')}")
    print(f"   Database: {data.get('database')}")
    print(f"   Webhooks: {data.get('webhook_mode')}")

    print("\n2. Signup / login / me...")
    suffix = random.randint(100000, 999999)
    account = {
        "name": "Sim User",
        "email": f"sim{suffix}@example.com",
        "phone": random_phone(),
        "password": "sim-password",
    }
    response = await client.post(f"{API_BASE_URL}/api/auth/signup", json=account)
    if response.status_code != 200:
        print(f"   Signup failed: {response.text[:100]}")
        return False

    response = await client.post(
        f"{API_BASE_URL}/api/auth/login",
        json={"email": account["email"], "password": account["password"]},
    )
    if response.status_code != 200:
        print(f"   Login failed: {response.text[:100]}")
        return False
    token = response.json()["token"]

    response = await client.get(
        f"{API_BASE_URL}/api/auth/me",
        headers={"Authorization": f"Bearer {token}"},
    )
    print(f"   /me -> {response.status_code} {response.json().get('account_id')}")

    print("\n" + "=" * 70)
    return True


async def run_simulation(secret: str, deliveries: int, guesses: int, skip_tests: bool) -> dict[str, Any]:
    print("=" * 70)
    print("CHAOS SIMULATION - TRUST BOUNDARY")
    print("=" * 70)
    print(f"Target: {API_BASE_URL}")
    print(f"Started: {datetime.now().strftime('%H:%M:%S')}")
    print("=" * 70)

    async with httpx.AsyncClient() as client:
        if not skip_tests and not await test_single_flows(client):
            print("\nPre-flight tests failed. Fix issues before running simulation.")
            sys.exit(1)

        otp = await run_otp_lockout(client, guesses)
        webhooks = await run_duplicate_webhooks(client, secret, deliveries)

    print("\n" + "=" * 70)
    print("SIMULATION RESULTS")
    print("=" * 70)
    outcomes = otp.get("outcomes", {})
    print(f"OTP: wrong_code={outcomes.get('wrong_code', 0)} "
          f"too_many_attempts={outcomes.get('too_many_attempts', 0)} "
          f"rate_limited={outcomes.get('rate_limited', 0)}")
    print(f"Webhooks: {webhooks['accepted']}/{webhooks['deliveries']} accepted, "
          f"tamper rejected={webhooks['tampered_rejected']}, "
          f"unsigned rejected={webhooks['unsigned_rejected']}")
    print("\nVERIFICATION STEPS")
    print(f"1. SELECT count(*) FROM payments WHERE provider_payment_id = '{webhooks['payment_id']}'  -- expect 1")
    print("2. wrong_code count must not exceed OTP_ATTEMPT_LIMIT - 1")
    print("=" * 70)

    return {"otp": otp, "webhooks": webhooks}


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Chaos Simulation Script")
    parser.add_argument("--secret", default=os.getenv("PAYMENT_WEBHOOK_SECRET", ""),
                        help="Webhook HMAC secret (defaults to PAYMENT_WEBHOOK_SECRET)")
    parser.add_argument("--deliveries", type=int, default=DUPLICATE_DELIVERIES,
                        help="Concurrent duplicate webhook deliveries")
    parser.add_argument("--guesses", type=int, default=OTP_GUESSES,
                        help="Concurrent wrong OTP guesses")
    parser.add_argument("--skip-tests", action="store_true", help="Skip individual tests")
    args = parser.parse_args()

    if not args.secret:
        print("A webhook secret is required (--secret or PAYMENT_WEBHOOK_SECRET).")
        sys.exit(1)

    asyncio.run(run_simulation(args.secret, args.deliveries, args.guesses, args.skip_tests))
