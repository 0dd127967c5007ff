"""Slack request signing (v0 scheme) for the Events API webhook."""

import hashlib
import hmac
import time
from typing import Optional

from fastapi import HTTPException, Request

SIGNATURE_VERSION = "v0"
MAX_REQUEST_AGE_SECONDS = 60 * 5


def compute_signature(signing_secret: str, timestamp: str, body: bytes) -> str:
    basestring = b":".join([SIGNATURE_VERSION.encode(), timestamp.encode(), body])
    digest = hmac.new(signing_secret.encode(), basestring, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_VERSION}={digest}"


def is_fresh(timestamp: int, now: Optional[float] = None) -> bool:
    now = time.time() if now is None else now
    return abs(now - timestamp) <= MAX_REQUEST_AGE_SECONDS


async def verify_slack_signature(request: Request, signing_secret: str):
    """
    Check X-Slack-Signature against the raw body.
    Raises HTTPException: 500 without a secret, 400 for missing/stale headers,
    401 for a wrong signature.
    """
    if not signing_secret:
        raise HTTPException(status_code=500, detail="SLACK_SIGNING_SECRET not configured")

    timestamp = request.headers.get("X-Slack-Request-Timestamp")
    signature = request.headers.get("X-Slack-Signature")
    if not timestamp or not signature:
        raise HTTPException(status_code=400, detail="Missing Slack headers")

    try:
        fresh = is_fresh(int(timestamp))
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid Slack timestamp")
    if not fresh:
        # Replayed request
        raise HTTPException(status_code=400, detail="Request timestamp too old")

    expected = compute_signature(signing_secret, timestamp, await request.body())
    if not hmac.compare_digest(expected, signature):
        raise HTTPException(status_code=401, detail="Invalid Slack signature")
