"""
Webhook Security Module

Signature verification for MercadoPago notifications. MercadoPago signs a
manifest built from the notification id, the x-request-id header and the
timestamp carried in x-signature ("ts=...,v1=...").
"""

import hashlib
import hmac
import logging
import time
from typing import Optional

logger = logging.getLogger(__name__)

# Maximum age of webhook in seconds (5 minutes)
MAX_WEBHOOK_AGE_SECONDS = 300


class WebhookSignatureError(Exception):
    """Raised when webhook signature verification fails"""

    pass


def constant_time_compare(a: str, b: str) -> bool:
    if not a or not b:
        return False
    return hmac.compare_digest(a, b)


def compute_hmac_sha256(secret: str, payload: bytes) -> str:
    """Compute HMAC-SHA256 signature of payload"""
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def parse_signature_header(header: Optional[str]) -> dict:
    """Split "ts=123,v1=abc" into {"ts": "123", "v1": "abc"}"""
    parts = {}
    for item in (header or "").split(","):
        key, sep, value = item.strip().partition("=")
        if sep:
            parts[key.strip()] = value.strip()
    return parts


def verify_timestamp(timestamp: Optional[str], max_age: int = MAX_WEBHOOK_AGE_SECONDS) -> bool:
    """
    Verify webhook timestamp is within acceptable range.
    Accepts seconds or milliseconds since the epoch.
    """
    try:
        webhook_time = int(timestamp)
    except (ValueError, TypeError):
        logger.warning(f"Invalid webhook timestamp format: {timestamp}")
        return False

    if webhook_time > 10**11:
        webhook_time //= 1000
    age = abs(int(time.time()) - webhook_time)
    if age > max_age:
        logger.warning(f"Webhook timestamp too old: {age}s (max: {max_age}s)")
        return False
    return True


def build_manifest(data_id: str, request_id: Optional[str], ts: str) -> str:
    manifest = f"id:{str(data_id).lower()};"
    if request_id:
        manifest += f"request-id:{request_id};"
    return manifest + f"ts:{ts};"


def verify_mercadopago_signature(
    secret: str,
    signature_header: Optional[str],
    request_id: Optional[str],
    data_id: Optional[str],
    max_age: int = MAX_WEBHOOK_AGE_SECONDS,
) -> None:
    """
    Verify a MercadoPago webhook signature.

    Args:
        secret: Webhook secret from the MercadoPago dashboard
        signature_header: Raw x-signature header
        request_id: Raw x-request-id header
        data_id: Notification resource id (data.id)
        max_age: Maximum accepted age of the signed timestamp

    Raises:
        WebhookSignatureError: when the header is missing, stale or does not match
    """
    parts = parse_signature_header(signature_header)
    ts = parts.get("ts")
    received = parts.get("v1")

    if not ts or not received or not data_id:
        logger.warning("Missing MercadoPago signature components")
        raise WebhookSignatureError("Missing signature")

    if not verify_timestamp(ts, max_age):
        raise WebhookSignatureError("Signature timestamp outside accepted window")

    manifest = build_manifest(data_id, request_id, ts)
    expected = compute_hmac_sha256(secret, manifest.encode("utf-8"))

    if not constant_time_compare(expected, received):
        logger.warning(f"MercadoPago signature mismatch for notification {data_id}")
        raise WebhookSignatureError("Invalid signature")

    logger.debug(f"MercadoPago signature verified for notification {data_id}")
