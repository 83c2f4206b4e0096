"""Payment event reconciliation: webhook ingestion and mirrored financial records."""

from bsos.billing.dispatcher import EventDispatcher
from bsos.billing.events import EventKind, StripeEvent
from bsos.billing.ledger import IdempotencyLedger, LedgerClaim
from bsos.billing.pipeline import WebhookPipeline, WebhookResult, build_pipeline
from bsos.billing.reconcile import InvoiceReconciler, ReconcileReport
from bsos.billing.signature import SignatureVerifier
from bsos.billing.store import FinancialRecordStore, PaymentTotals

__all__ = [
    "EventDispatcher",
    "EventKind",
    "FinancialRecordStore",
    "IdempotencyLedger",
    "InvoiceReconciler",
    "LedgerClaim",
    "PaymentTotals",
    "ReconcileReport",
    "SignatureVerifier",
    "StripeEvent",
    "WebhookPipeline",
    "WebhookResult",
    "build_pipeline",
]
