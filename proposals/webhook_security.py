"""
Webhook Security Module

Signature verification for the payment webhook and the shared-secret check
guarding the scheduled sweep trigger.
"""

import hashlib
import hmac
import logging
import time
from typing import Optional

from fastapi import HTTPException, Request

from . import config

logger = logging.getLogger(__name__)

# Maximum age of webhook in seconds (5 minutes)
MAX_WEBHOOK_AGE_SECONDS = 300


def constant_time_compare(a: str, b: str) -> bool:
    """Compare two strings in constant time"""
    if not a or not b:
        return False
    return hmac.compare_digest(a, b)


def compute_hmac_sha256(secret: str, payload: bytes) -> str:
    """Compute HMAC-SHA256 signature of payload"""
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def verify_timestamp(timestamp: Optional[str], max_age: int = MAX_WEBHOOK_AGE_SECONDS) -> bool:
    """
    Verify webhook timestamp is within acceptable range.

    Args:
        timestamp: Unix timestamp as string
        max_age: Maximum age in seconds

    Returns:
        True if timestamp is valid or absent, False otherwise
    """
    if not timestamp:
        return True  # Timestamp is optional

    try:
        webhook_time = int(timestamp)
        age = abs(int(time.time()) - webhook_time)

        if age > max_age:
            logger.warning(f"🚫 Webhook timestamp too old: {age}s (max: {max_age}s)")
            return False

        return True
    except (ValueError, TypeError):
        logger.warning(f"🚫 Invalid webhook timestamp format: {timestamp}")
        return False


async def verify_payment_webhook(request: Request) -> bytes:
    """
    Verify a payment processor webhook.

    The signature is the hex HMAC-SHA256 of "<timestamp>.<body>" when an
    X-Webhook-Timestamp header is sent, otherwise of the raw body alone.

    Returns:
        The raw request body
    """
    raw_body = await request.body()
    secret = config.PAYMENT_WEBHOOK_SECRET

    if not secret:
        logger.error("❌ PAYMENT_WEBHOOK_SECRET not configured")
        raise HTTPException(status_code=500, detail="Webhook secret not configured")

    signature = request.headers.get("x-webhook-signature", "")
    timestamp = request.headers.get("x-webhook-timestamp")

    if not signature:
        logger.error("❌ Missing X-Webhook-Signature header")
        raise HTTPException(status_code=401, detail="Missing webhook signature")

    if not verify_timestamp(timestamp):
        raise HTTPException(status_code=401, detail="Webhook timestamp expired")

    signed_payload = f"{timestamp}.".encode() + raw_body if timestamp else raw_body
    expected = compute_hmac_sha256(secret, signed_payload)

    if not constant_time_compare(expected, signature):
        logger.warning("🚫 Payment webhook signature mismatch")
        raise HTTPException(status_code=401, detail="Invalid webhook signature")

    logger.info("✅ Payment webhook signature verified")
    return raw_body


def verify_cron_secret(request: Request) -> None:
    """Check the Authorization: Bearer <CRON_SECRET> header of a sweep trigger"""
    secret = config.CRON_SECRET
    if not secret:
        logger.error("❌ CRON_SECRET not configured")
        raise HTTPException(status_code=500, detail="Server configuration error")

    auth_header = request.headers.get("authorization", "")
    if not constant_time_compare(auth_header, f"Bearer {secret}"):
        logger.warning("🚫 Unauthorized cron trigger attempt")
        raise HTTPException(status_code=401, detail="Unauthorized")
