"""Finance read routes for the dashboards, plus on-demand reconciliation.

Reads come from the local mirror; only /finance/balance and /finance/sync talk to Stripe.
"""

from collections import defaultdict
from datetime import UTC, datetime, timedelta

import stripe
import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Response

from bsos.billing.balance import BalanceReader
from bsos.billing.reconcile import InvoiceReconciler
from bsos.billing.store import FinancialRecordStore
from bsos.core.auth import FinanceViewer, require_finance_role
from bsos.core.exceptions import ProviderNotConfiguredError
from bsos.core.rate_limit import RateLimiter
from bsos.db.base import get_session_factory
from bsos.db.models.payment import PaymentStatus
from bsos.db.models.subscription import SubscriptionStatus
from bsos.db.redis import get_redis
from bsos.metrics.cloudwatch import emit_business_event
from bsos.schemas.finance import (
    BalanceResponse,
    FinanceSummaryResponse,
    PaymentListResponse,
    PaymentResponse,
    PaymentTotalsResponse,
    SubscriptionListResponse,
    SubscriptionResponse,
    SyncResponse,
)

logger = structlog.get_logger(__name__)

router = APIRouter()


def get_store() -> FinancialRecordStore:
    return FinancialRecordStore(get_session_factory())


def get_rate_limiter() -> RateLimiter:
    return RateLimiter(get_redis())


@router.get("/payments", response_model=PaymentListResponse)
async def list_payments(
    customer_id: str | None = None,
    status: PaymentStatus | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = Query(100, ge=1, le=500),
    viewer: FinanceViewer = Depends(require_finance_role),
    store: FinancialRecordStore = Depends(get_store),
):
    """List mirrored payments, newest first."""
    payments = await store.list_payments(customer_id=customer_id, status=status, start=start, end=end, limit=limit)
    return PaymentListResponse(
        payments=[PaymentResponse.model_validate(p) for p in payments],
        count=len(payments),
    )


@router.get("/subscriptions", response_model=SubscriptionListResponse)
async def list_subscriptions(
    customer_id: str | None = None,
    status: SubscriptionStatus | None = None,
    limit: int = Query(100, ge=1, le=500),
    viewer: FinanceViewer = Depends(require_finance_role),
    store: FinancialRecordStore = Depends(get_store),
):
    subscriptions = await store.list_subscriptions(
        customer_id=customer_id,
        status=status.value if status else None,
        limit=limit,
    )
    return SubscriptionListResponse(
        subscriptions=[SubscriptionResponse.model_validate(s) for s in subscriptions],
        count=len(subscriptions),
    )


@router.get("/summary", response_model=FinanceSummaryResponse)
async def finance_summary(
    start: datetime | None = None,
    end: datetime | None = None,
    viewer: FinanceViewer = Depends(require_finance_role),
    store: FinancialRecordStore = Depends(get_store),
):
    """Payment counts and amounts per status and currency."""
    if start and end and start >= end:
        raise HTTPException(status_code=400, detail="start must be before end")

    totals = await store.payment_summary(start=start, end=end)

    paid_by_currency: dict[str, int] = defaultdict(int)
    for row in totals:
        if row.status == PaymentStatus.PAID.value:
            paid_by_currency[row.currency] += row.amount

    return FinanceSummaryResponse(
        start=start,
        end=end,
        totals=[PaymentTotalsResponse.model_validate(row) for row in totals],
        paid_amount_by_currency=dict(paid_by_currency),
    )


@router.post("/sync", response_model=SyncResponse)
async def sync_from_stripe(
    response: Response,
    since_days: int = Query(30, ge=1, le=365),
    viewer: FinanceViewer = Depends(require_finance_role),
    store: FinancialRecordStore = Depends(get_store),
    limiter: RateLimiter = Depends(get_rate_limiter),
):
    """Backfill recent invoices and subscriptions from Stripe into the local store.

    Over the limit, RateLimitExceededError propagates to the app-level 429 handler.
    """
    await limiter.hit("finance_sync", viewer.role)
    response.headers["X-RateLimit-Remaining"] = str(await limiter.remaining("finance_sync", viewer.role))

    since = datetime.now(UTC) - timedelta(days=since_days)
    try:
        report = await InvoiceReconciler(store).reconcile(since)
    except ProviderNotConfiguredError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except stripe.StripeError as e:
        logger.error("reconcile_stripe_error", error=str(e), error_type=type(e).__name__)
        raise HTTPException(status_code=502, detail="Stripe request failed")

    await emit_business_event("finance_sync_completed")
    return SyncResponse.model_validate(report)


@router.get("/balance", response_model=BalanceResponse)
async def stripe_balance(
    response: Response,
    currency: str = Query("usd", min_length=3, max_length=3),
    viewer: FinanceViewer = Depends(require_finance_role),
    limiter: RateLimiter = Depends(get_rate_limiter),
):
    """Current Stripe balance with revenue, refund and payment method analytics."""
    await limiter.hit("finance_balance", viewer.role)
    response.headers["X-RateLimit-Remaining"] = str(await limiter.remaining("finance_balance", viewer.role))

    try:
        report = await BalanceReader().read(currency=currency)
    except ProviderNotConfiguredError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except stripe.StripeError as e:
        logger.error("balance_stripe_error", error=str(e), error_type=type(e).__name__)
        raise HTTPException(status_code=502, detail="Stripe request failed")

    return BalanceResponse.model_validate(report)
