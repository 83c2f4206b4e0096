"""Webhook ingestion pipeline.

verify -> claim in ledger -> dispatch -> handler write -> mark processed.
Every outcome is translated to an HTTP status here: 2xx tells Stripe the
delivery is done, anything else makes it retry later.
"""

from dataclasses import dataclass, field
from typing import Any

import structlog

from bsos.billing.dispatcher import EventDispatcher
from bsos.billing.events import StripeEvent
from bsos.billing.ledger import IdempotencyLedger
from bsos.billing.signature import SignatureVerifier
from bsos.billing.store import FinancialRecordStore
from bsos.core.config import Settings, get_settings
from bsos.core.exceptions import (
    DuplicateEventError,
    HandlerFailure,
    OutOfOrderReferenceError,
    SignatureError,
    TimestampOutsideToleranceError,
    WebhookNotConfiguredError,
)
from bsos.metrics.cloudwatch import emit_business_event

logger = structlog.get_logger(__name__)


@dataclass
class WebhookResult:
    status_code: int
    body: dict[str, Any] = field(default_factory=dict)


class WebhookPipeline:
    def __init__(self, verifier: SignatureVerifier, ledger: IdempotencyLedger, dispatcher: EventDispatcher):
        self.verifier = verifier
        self.ledger = ledger
        self.dispatcher = dispatcher

    async def process(self, payload: bytes, sig_header: str | None) -> WebhookResult:
        """Handle one delivery end to end and return the response to send."""
        try:
            event = self.verifier.verify(payload, sig_header)
        except WebhookNotConfiguredError:
            logger.error("webhook_secret_missing")
            return WebhookResult(503, {"detail": "Webhook endpoint is not configured"})
        except TimestampOutsideToleranceError as e:
            logger.warning("webhook_timestamp_outside_tolerance", skew_seconds=e.skew_seconds)
            await emit_business_event("webhook_rejected_timestamp")
            return WebhookResult(400, {"detail": "Signature timestamp outside tolerance"})
        except SignatureError as e:
            logger.warning("webhook_signature_invalid", reason=str(e))
            await emit_business_event("webhook_rejected_signature")
            return WebhookResult(400, {"detail": str(e)})

        log = logger.bind(event_id=event.id, event_type=event.type)
        log.info("webhook_received")

        try:
            await self._claim(event)
        except DuplicateEventError as e:
            if e.in_flight:
                # Outcome of the attempt holding the lease is unknown; make Stripe come back later
                log.info("webhook_in_flight_deferred")
                return WebhookResult(
                    409,
                    {"detail": f"Webhook event {event.id} is already being processed", "retryable": True},
                )
            log.info("webhook_duplicate_ignored")
            return WebhookResult(200, {"received": True, "duplicate": True, "event_id": event.id})
        except Exception as e:
            log.error("webhook_claim_failed", error=str(e), error_type=type(e).__name__, exc_info=True)
            await emit_business_event("webhook_failed")
            return WebhookResult(500, {"detail": f"Error processing webhook event {event.id}", "retryable": True})

        try:
            handled = await self.dispatcher.dispatch(event)
        except OutOfOrderReferenceError as e:
            log.warning("webhook_out_of_order", subscription_id=e.stripe_subscription_id)
            return await self._fail(event, e)
        except HandlerFailure as e:
            log.error("webhook_handler_failed", reason=e.reason)
            return await self._fail(event, e)
        except Exception as e:
            log.error("webhook_handler_failed", error=str(e), error_type=type(e).__name__, exc_info=True)
            return await self._fail(event, HandlerFailure(event.id, event.type, f"{type(e).__name__}: {e}"))

        try:
            await self.ledger.mark_processed(event.id)
        except Exception as e:
            # Handler writes are upserts, so rerunning them on the next delivery is safe
            log.error("webhook_commit_failed", error=str(e), error_type=type(e).__name__, exc_info=True)
            return await self._fail(event, HandlerFailure(event.id, event.type, f"ledger commit failed: {e}"))

        log.info("webhook_processed", handled=handled)
        await emit_business_event("webhook_processed" if handled else "webhook_ignored")

        return WebhookResult(
            200,
            {"received": True, "duplicate": False, "handled": handled, "event_id": event.id, "event_type": event.type},
        )

    async def _claim(self, event: StripeEvent) -> None:
        """Claim the event for this request or raise DuplicateEventError."""
        claim = await self.ledger.record_if_new(event.id, event.type)
        if claim.is_new:
            return
        if claim.processed:
            raise DuplicateEventError(event.id)
        # Seen before but never completed: a retry after a failure or crash
        if not await self.ledger.begin_retry(event.id):
            raise DuplicateEventError(event.id, in_flight=True)
        logger.info("webhook_retry_attempt", event_id=event.id)

    async def _fail(self, event: StripeEvent, error: HandlerFailure) -> WebhookResult:
        """Release the lease so the next delivery retries, then answer 500."""
        try:
            await self.ledger.record_failure(event.id, str(error))
        except Exception as e:
            # Lease stays held until it expires; redeliveries get 409 until then
            logger.error(
                "webhook_lease_release_failed",
                event_id=event.id,
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
        await emit_business_event("webhook_failed")
        return WebhookResult(500, {"detail": f"Error processing webhook event {event.id}", "retryable": True})


def build_pipeline(session_factory, settings: Settings | None = None) -> WebhookPipeline:
    """Wire verifier, ledger, store and dispatcher from settings."""
    settings = settings or get_settings()
    store = FinancialRecordStore(session_factory)
    return WebhookPipeline(
        verifier=SignatureVerifier(settings.stripe_webhook_secret, settings.stripe_webhook_tolerance_seconds),
        ledger=IdempotencyLedger(session_factory, settings.webhook_processing_lease_seconds),
        dispatcher=EventDispatcher(store),
    )
