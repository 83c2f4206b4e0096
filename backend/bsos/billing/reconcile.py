"""On-demand backfill of the financial record store from Stripe's ledger.

Webhooks can be missed (endpoint down longer than Stripe's retry window,
events predating the endpoint). This walks recent invoices and subscriptions
through the async Stripe SDK and writes them with the same upserts the webhook
handlers use. It is never called from the webhook path.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime

import stripe
import structlog

from bsos.billing.events import InvoicePayload, SubscriptionPayload, from_unix
from bsos.billing.provider import PAGE_SIZE, as_dict, configure_stripe
from bsos.billing.store import FinancialRecordStore
from bsos.db.models.payment import PaymentStatus

logger = structlog.get_logger(__name__)


@dataclass
class ReconcileReport:
    since: datetime
    invoices_scanned: int = 0
    payments_written: int = 0
    subscriptions_scanned: int = 0
    subscriptions_written: int = 0
    skipped: int = 0
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    finished_at: datetime | None = None


def invoice_payment_status(invoice: InvoicePayload) -> PaymentStatus | None:
    """Map a Stripe invoice status onto the local payment status.

    Drafts and voided invoices never became payments and are skipped (None).
    """
    if invoice.status == "paid":
        return PaymentStatus.PAID
    if invoice.status == "uncollectible":
        return PaymentStatus.FAILED
    if invoice.status == "open":
        return PaymentStatus.FAILED if invoice.attempted else PaymentStatus.PENDING
    return None


class InvoiceReconciler:
    def __init__(self, store: FinancialRecordStore, secret_key: str | None = None):
        self.store = store
        self.secret_key = secret_key

    async def reconcile(self, since: datetime) -> ReconcileReport:
        """Backfill invoices and subscriptions created at or after `since`."""
        configure_stripe(self.secret_key)
        report = ReconcileReport(since=since)
        created = {"gte": int(since.timestamp())}

        invoices = await stripe.Invoice.list_async(created=created, limit=PAGE_SIZE)
        async for raw in invoices.auto_paging_iter():
            report.invoices_scanned += 1
            await self._apply_invoice(InvoicePayload.model_validate(as_dict(raw)), report)

        subscriptions = await stripe.Subscription.list_async(created=created, status="all", limit=PAGE_SIZE)
        async for raw in subscriptions.auto_paging_iter():
            report.subscriptions_scanned += 1
            await self._apply_subscription(SubscriptionPayload.model_validate(as_dict(raw)), report)

        report.finished_at = datetime.now(UTC)
        logger.info(
            "reconcile_complete",
            invoices_scanned=report.invoices_scanned,
            payments_written=report.payments_written,
            subscriptions_scanned=report.subscriptions_scanned,
            subscriptions_written=report.subscriptions_written,
            skipped=report.skipped,
        )
        return report

    async def _apply_invoice(self, invoice: InvoicePayload, report: ReconcileReport) -> None:
        status = invoice_payment_status(invoice)
        if status is None:
            report.skipped += 1
            return

        await self.store.upsert_invoice_payment(
            stripe_invoice_id=invoice.id,
            stripe_customer_id=invoice.customer,
            amount=invoice.amount_paid if status is PaymentStatus.PAID else invoice.amount_due,
            currency=invoice.currency,
            status=status,
            paid_at=from_unix(invoice.status_transitions.paid_at) if status is PaymentStatus.PAID else None,
        )
        report.payments_written += 1

    async def _apply_subscription(self, subscription: SubscriptionPayload, report: ReconcileReport) -> None:
        period_start, period_end = subscription.period()
        await self.store.upsert_subscription(
            stripe_subscription_id=subscription.id,
            stripe_customer_id=subscription.customer,
            status=subscription.status,
            current_period_start=period_start,
            current_period_end=period_end,
            canceled_at=from_unix(subscription.canceled_at),
        )
        report.subscriptions_written += 1
