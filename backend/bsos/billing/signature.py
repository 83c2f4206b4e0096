"""Stripe webhook signature verification.

The signed message is "{timestamp}.{raw body}", so verification must run on the
exact bytes received; parsing and re-serializing the JSON first would break it.
"""

import json
import time

import stripe
import structlog
from pydantic import ValidationError

from bsos.billing.events import StripeEvent
from bsos.core.exceptions import SignatureError, TimestampOutsideToleranceError, WebhookNotConfiguredError

logger = structlog.get_logger(__name__)


def _signed_timestamp(sig_header: str) -> int:
    """Extract the t= component of a Stripe-Signature header."""
    for part in sig_header.split(","):
        key, _, value = part.strip().partition("=")
        if key == "t":
            try:
                return int(value)
            except ValueError:
                raise SignatureError("Malformed signature timestamp")
    raise SignatureError("Signature header has no timestamp")


class SignatureVerifier:
    """Turns a raw webhook request into a trusted StripeEvent."""

    def __init__(self, secret: str, tolerance_seconds: int = 300):
        self.secret = secret
        self.tolerance_seconds = tolerance_seconds

    def verify(self, payload: bytes, sig_header: str | None, now: int | None = None) -> StripeEvent:
        """Verify the signature over the raw body and parse the event envelope.

        Args:
            payload: Raw request body, byte-exact
            sig_header: Value of the Stripe-Signature header
            now: Current unix time (for deterministic testing)

        Raises:
            WebhookNotConfiguredError: no secret configured (fail closed)
            TimestampOutsideToleranceError: signed timestamp too far from now
            SignatureError: missing/malformed header, bad HMAC, or unparseable body
        """
        if not self.secret:
            raise WebhookNotConfiguredError("Webhook secret is not configured")
        if not sig_header:
            raise SignatureError("Missing signature header")

        timestamp = _signed_timestamp(sig_header)
        now = int(time.time()) if now is None else now
        skew = abs(now - timestamp)
        if skew > self.tolerance_seconds:
            raise TimestampOutsideToleranceError(timestamp, skew, self.tolerance_seconds)

        try:
            body = payload.decode("utf-8")
        except UnicodeDecodeError:
            raise SignatureError("Payload is not valid UTF-8")

        # Tolerance is enforced above in both directions; the SDK only checks the HMAC here
        try:
            stripe.WebhookSignature.verify_header(body, sig_header, self.secret, tolerance=None)
        except stripe.SignatureVerificationError as e:
            raise SignatureError(f"Invalid signature: {e.user_message or e}") from e

        try:
            return StripeEvent.model_validate(json.loads(body))
        except (ValueError, ValidationError) as e:
            raise SignatureError(f"Invalid payload: {e}") from e
