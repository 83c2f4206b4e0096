"""Domain handlers: one store write per Stripe event type.

Every handler is an idempotent upsert or in-place update, and takes its
timestamps from the event rather than the wall clock, so running it twice for
the same event leaves the same state.
"""

from collections.abc import Awaitable, Callable

import structlog

from bsos.billing.events import (
    EventKind,
    InvoicePayload,
    PaymentIntentPayload,
    StripeEvent,
    SubscriptionPayload,
    from_unix,
)
from bsos.billing.store import FinancialRecordStore
from bsos.core.exceptions import OutOfOrderReferenceError
from bsos.db.models.payment import PaymentStatus

logger = structlog.get_logger(__name__)

Handler = Callable[[FinancialRecordStore, StripeEvent], Awaitable[None]]


async def handle_invoice_payment_succeeded(store: FinancialRecordStore, event: StripeEvent) -> None:
    invoice = InvoicePayload.model_validate(event.payload)
    paid_at = from_unix(invoice.status_transitions.paid_at) or event.created_at

    await store.upsert_invoice_payment(
        stripe_invoice_id=invoice.id,
        stripe_customer_id=invoice.customer,
        amount=invoice.amount_paid,
        currency=invoice.currency,
        status=PaymentStatus.PAID,
        paid_at=paid_at,
    )
    logger.info("invoice_payment_recorded", invoice_id=invoice.id, status=PaymentStatus.PAID.value)


async def handle_invoice_payment_failed(store: FinancialRecordStore, event: StripeEvent) -> None:
    invoice = InvoicePayload.model_validate(event.payload)

    await store.upsert_invoice_payment(
        stripe_invoice_id=invoice.id,
        stripe_customer_id=invoice.customer,
        amount=invoice.amount_due,
        currency=invoice.currency,
        status=PaymentStatus.FAILED,
    )
    logger.info("invoice_payment_recorded", invoice_id=invoice.id, status=PaymentStatus.FAILED.value)


async def handle_subscription_created(store: FinancialRecordStore, event: StripeEvent) -> None:
    subscription = SubscriptionPayload.model_validate(event.payload)
    period_start, period_end = subscription.period()

    await store.upsert_subscription(
        stripe_subscription_id=subscription.id,
        stripe_customer_id=subscription.customer,
        status=subscription.status,
        current_period_start=period_start,
        current_period_end=period_end,
    )
    logger.info("subscription_recorded", subscription_id=subscription.id, status=subscription.status)


async def handle_subscription_updated(store: FinancialRecordStore, event: StripeEvent) -> None:
    """Sync status and billing period. The created event must have landed first."""
    subscription = SubscriptionPayload.model_validate(event.payload)
    period_start, period_end = subscription.period()

    found = await store.update_subscription(
        stripe_subscription_id=subscription.id,
        status=subscription.status,
        current_period_start=period_start,
        current_period_end=period_end,
    )
    if not found:
        raise OutOfOrderReferenceError(event.id, event.type, subscription.id)
    logger.info("subscription_status_updated", subscription_id=subscription.id, status=subscription.status)


async def handle_subscription_deleted(store: FinancialRecordStore, event: StripeEvent) -> None:
    """Mark the subscription canceled. Rows are kept to preserve billing history."""
    subscription = SubscriptionPayload.model_validate(event.payload)
    canceled_at = from_unix(subscription.canceled_at) or event.created_at

    found = await store.cancel_subscription(subscription.id, canceled_at)
    if not found:
        raise OutOfOrderReferenceError(event.id, event.type, subscription.id)
    logger.info("subscription_canceled", subscription_id=subscription.id)


async def handle_payment_intent_succeeded(store: FinancialRecordStore, event: StripeEvent) -> None:
    intent = PaymentIntentPayload.model_validate(event.payload)

    await store.upsert_payment_intent(
        stripe_payment_intent_id=intent.id,
        stripe_customer_id=intent.customer,
        amount=intent.amount,
        currency=intent.currency,
        status=PaymentStatus.PAID,
        paid_at=event.created_at,
    )
    logger.info("payment_intent_recorded", payment_intent_id=intent.id, status=PaymentStatus.PAID.value)


async def handle_payment_intent_failed(store: FinancialRecordStore, event: StripeEvent) -> None:
    intent = PaymentIntentPayload.model_validate(event.payload)

    await store.upsert_payment_intent(
        stripe_payment_intent_id=intent.id,
        stripe_customer_id=intent.customer,
        amount=intent.amount,
        currency=intent.currency,
        status=PaymentStatus.FAILED,
    )
    logger.info("payment_intent_recorded", payment_intent_id=intent.id, status=PaymentStatus.FAILED.value)


HANDLERS: dict[EventKind, Handler] = {
    EventKind.INVOICE_PAYMENT_SUCCEEDED: handle_invoice_payment_succeeded,
    EventKind.INVOICE_PAYMENT_FAILED: handle_invoice_payment_failed,
    EventKind.SUBSCRIPTION_CREATED: handle_subscription_created,
    EventKind.SUBSCRIPTION_UPDATED: handle_subscription_updated,
    EventKind.SUBSCRIPTION_DELETED: handle_subscription_deleted,
    EventKind.PAYMENT_INTENT_SUCCEEDED: handle_payment_intent_succeeded,
    EventKind.PAYMENT_INTENT_FAILED: handle_payment_intent_failed,
}
