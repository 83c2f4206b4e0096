"""Tests for Stripe webhook signature verification."""

import pytest

from bsos.billing.events import EventKind
from bsos.billing.signature import SignatureVerifier
from bsos.core.exceptions import (
    SignatureError,
    TimestampOutsideToleranceError,
    WebhookNotConfiguredError,
)
from tests.factories import TEST_WEBHOOK_SECRET, invoice_data, make_payload, sign_payload

pytestmark = pytest.mark.unit

NOW = 1_760_000_500


@pytest.fixture
def verifier():
    return SignatureVerifier(TEST_WEBHOOK_SECRET, tolerance_seconds=300)


@pytest.fixture
def payload():
    return make_payload("evt_sig_001", "invoice.payment_succeeded", invoice_data())


class TestValidSignature:
    def test_valid_signature_returns_parsed_event(self, verifier, payload):
        header = sign_payload(payload, timestamp=NOW)

        event = verifier.verify(payload, header, now=NOW)

        assert event.id == "evt_sig_001"
        assert event.kind is EventKind.INVOICE_PAYMENT_SUCCEEDED
        assert event.payload["id"] == "in_001"

    def test_timestamp_at_tolerance_edge_is_accepted(self, verifier, payload):
        header = sign_payload(payload, timestamp=NOW - 300)

        event = verifier.verify(payload, header, now=NOW)

        assert event.id == "evt_sig_001"

    def test_header_with_multiple_v1_signatures_matches_any(self, verifier, payload):
        """Stripe sends several v1 entries while a secret is being rolled."""
        good = sign_payload(payload, timestamp=NOW)
        stale = sign_payload(payload, secret="whsec_old", timestamp=NOW).split(",")[1]

        event = verifier.verify(payload, f"{good.split(',')[0]},{stale},{good.split(',')[1]}", now=NOW)

        assert event.id == "evt_sig_001"


class TestRejectedSignature:
    def test_missing_secret_fails_closed(self, payload):
        verifier = SignatureVerifier("", tolerance_seconds=300)

        with pytest.raises(WebhookNotConfiguredError):
            verifier.verify(payload, sign_payload(payload, timestamp=NOW), now=NOW)

    def test_missing_header_is_rejected(self, verifier, payload):
        with pytest.raises(SignatureError, match="Missing signature header"):
            verifier.verify(payload, None, now=NOW)

    def test_header_without_timestamp_is_rejected(self, verifier, payload):
        with pytest.raises(SignatureError, match="no timestamp"):
            verifier.verify(payload, "v1=deadbeef", now=NOW)

    def test_non_numeric_timestamp_is_rejected(self, verifier, payload):
        with pytest.raises(SignatureError, match="Malformed"):
            verifier.verify(payload, "t=yesterday,v1=deadbeef", now=NOW)

    def test_wrong_secret_is_rejected(self, verifier, payload):
        header = sign_payload(payload, secret="whsec_attacker", timestamp=NOW)

        with pytest.raises(SignatureError, match="Invalid signature"):
            verifier.verify(payload, header, now=NOW)

    def test_tampered_body_is_rejected(self, verifier, payload):
        header = sign_payload(payload, timestamp=NOW)
        tampered = payload.replace(b"12000", b"1")

        with pytest.raises(SignatureError, match="Invalid signature"):
            verifier.verify(tampered, header, now=NOW)

    def test_stale_timestamp_is_rejected(self, verifier, payload):
        header = sign_payload(payload, timestamp=NOW - 301)

        with pytest.raises(TimestampOutsideToleranceError) as exc_info:
            verifier.verify(payload, header, now=NOW)

        assert exc_info.value.skew_seconds == 301
        assert exc_info.value.tolerance_seconds == 300

    def test_future_timestamp_is_rejected(self, verifier, payload):
        header = sign_payload(payload, timestamp=NOW + 600)

        with pytest.raises(TimestampOutsideToleranceError):
            verifier.verify(payload, header, now=NOW)

    def test_timestamp_error_is_a_signature_error(self, verifier, payload):
        header = sign_payload(payload, timestamp=NOW - 10_000)

        with pytest.raises(SignatureError):
            verifier.verify(payload, header, now=NOW)

    def test_signed_non_json_body_is_rejected(self, verifier):
        payload = b"not json"
        header = sign_payload(payload, timestamp=NOW)

        with pytest.raises(SignatureError, match="Invalid payload"):
            verifier.verify(payload, header, now=NOW)

    def test_signed_body_missing_envelope_fields_is_rejected(self, verifier):
        payload = b'{"id": "evt_x"}'
        header = sign_payload(payload, timestamp=NOW)

        with pytest.raises(SignatureError, match="Invalid payload"):
            verifier.verify(payload, header, now=NOW)
