"""Signed-webhook verification and body parsing."""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import time

from django.conf import settings

from rpg.events import IssueEvent, PayloadError, normalize_payload

logger = logging.getLogger("rpg.ingress")

SIGNATURE_HEADER = "X-Bard-Signature"
TIMESTAMP_HEADER = "X-Bard-Request-Timestamp"


class WebhookRejected(Exception):
    """Raised when an inbound webhook must be refused before any processing."""

    def __init__(self, reason: str, status: int, detail: str = "") -> None:
        self.reason = reason
        self.status = status
        self.detail = detail
        super().__init__(f"{reason}: {detail}" if detail else reason)


class SigningSecretMissing(Exception):
    """Raised when no signing secret is configured."""


def unauthorized(detail: str) -> WebhookRejected:
    return WebhookRejected("unauthorized", 401, detail)


def bad_request(detail: str) -> WebhookRejected:
    return WebhookRejected("bad_request", 400, detail)


def verify_signature(
    raw_body: bytes,
    timestamp: str | None,
    signature: str | None,
    *,
    secret: str | None = None,
    now: float | None = None,
) -> None:
    """Check the ``v0`` HMAC-SHA256 signature over the raw request body.

    The replay window is checked first, so a stale request is refused even
    when its signature is valid.

    Args:
        raw_body: The request body bytes exactly as received.
        timestamp: Value of the request-timestamp header (unix seconds).
        signature: Value of the signature header (``v0=<hex>``).
        secret: Signing secret; defaults to ``settings.SLACK_SIGNING_SECRET``.
        now: Current unix time, for tests.

    Raises:
        SigningSecretMissing: If no secret is configured.
        WebhookRejected: With reason ``unauthorized`` on any failure.
    """
    secret = secret if secret is not None else settings.SLACK_SIGNING_SECRET
    if not secret:
        raise SigningSecretMissing("SLACK_SIGNING_SECRET is not configured")

    if not timestamp or not signature:
        raise unauthorized("missing signature headers")
    try:
        sent_at = int(timestamp)
    except (TypeError, ValueError):
        raise unauthorized("malformed timestamp") from None

    current = time.time() if now is None else now
    if abs(current - sent_at) > settings.WEBHOOK_REPLAY_WINDOW:
        raise unauthorized("timestamp outside replay window")

    base = b"v0:" + timestamp.encode() + b":" + raw_body
    expected = "v0=" + hmac.new(secret.encode(), base, hashlib.sha256).hexdigest()
    if not hmac.compare_digest(expected.encode(), signature.encode()):
        raise unauthorized("signature mismatch")


def parse_event(raw_body: bytes) -> tuple[dict, IssueEvent]:
    """Decode a verified body into the raw payload and its ``IssueEvent``.

    Raises:
        WebhookRejected: With reason ``bad_request`` if the body is not JSON
            or does not describe an issue event.
    """
    try:
        payload = json.loads(raw_body)
    except (json.JSONDecodeError, UnicodeDecodeError, ValueError) as exc:
        raise bad_request("invalid JSON") from exc
    try:
        event = normalize_payload(payload)
    except PayloadError as exc:
        raise bad_request(str(exc)) from exc
    return payload, event


def accept_webhook(request) -> tuple[dict, IssueEvent]:
    """Verify and parse a Django request carrying a signed webhook."""
    raw_body = request.body
    verify_signature(
        raw_body,
        request.headers.get(TIMESTAMP_HEADER),
        request.headers.get(SIGNATURE_HEADER),
    )
    return parse_event(raw_body)
