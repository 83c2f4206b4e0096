"""Live Stripe balance plus 30-day charge analytics for the finance dashboard.

Read straight from Stripe, never from the local mirror: refunds and payment
method breakdowns are not part of what the webhook handlers store.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

import stripe
import structlog

from bsos.billing.provider import PAGE_SIZE, as_dict, configure_stripe

logger = structlog.get_logger(__name__)

DAY = 24 * 60 * 60
ANALYTICS_WINDOW_DAYS = 30
DAILY_REVENUE_DAYS = 7

# Refunds in these states never left the account
_VOID_REFUND_STATUSES = {"failed", "canceled"}


@dataclass
class BalanceAmount:
    amount: int
    currency: str


@dataclass
class DailyRevenue:
    date: str
    revenue: int
    transactions: int


@dataclass
class BalanceReport:
    currency: str
    available: list[BalanceAmount]
    pending: list[BalanceAmount]
    total_revenue_30_days: int = 0
    total_revenue_7_days: int = 0
    total_refunds_30_days: int = 0
    net_revenue_30_days: int = 0
    total_transactions_30_days: int = 0
    total_transactions_7_days: int = 0
    avg_transaction_value: float = 0.0
    week_over_week_growth: float = 0.0
    payment_methods: dict[str, int] = field(default_factory=dict)
    daily_revenue: list[DailyRevenue] = field(default_factory=list)
    generated_at: datetime = field(default_factory=lambda: datetime.now(UTC))


def _amounts(entries: list[dict[str, Any]] | None) -> list[BalanceAmount]:
    return [BalanceAmount(amount=e["amount"], currency=e["currency"]) for e in entries or []]


def _payment_method_type(charge: dict[str, Any]) -> str:
    details = charge.get("payment_method_details") or {}
    return details.get("type") or "unknown"


def _sum(charges: list[dict[str, Any]]) -> int:
    return sum(c["amount"] for c in charges)


class BalanceReader:
    def __init__(self, secret_key: str | None = None):
        self.secret_key = secret_key

    async def read(self, currency: str = "usd", now: datetime | None = None) -> BalanceReport:
        """Fetch the account balance and summarise charges and refunds in `currency`."""
        configure_stripe(self.secret_key)
        currency = currency.lower()
        now_ts = int((now or datetime.now(UTC)).timestamp())
        window = {"gte": now_ts - ANALYTICS_WINDOW_DAYS * DAY}

        balance = as_dict(await stripe.Balance.retrieve_async())
        charges = await self._collect(await stripe.Charge.list_async(created=window, limit=PAGE_SIZE), currency)
        refunds = await self._collect(await stripe.Refund.list_async(created=window, limit=PAGE_SIZE), currency)

        succeeded = [c for c in charges if c.get("status") == "succeeded"]
        report = BalanceReport(
            currency=currency,
            available=_amounts(balance.get("available")),
            pending=_amounts(balance.get("pending")),
        )
        self._summarise(report, succeeded, refunds, now_ts)

        logger.info(
            "balance_read",
            currency=currency,
            charges=len(succeeded),
            refunds=len(refunds),
            net_revenue_30_days=report.net_revenue_30_days,
        )
        return report

    @staticmethod
    async def _collect(listing, currency: str) -> list[dict[str, Any]]:
        items = []
        async for raw in listing.auto_paging_iter():
            item = as_dict(raw)
            if (item.get("currency") or "").lower() == currency:
                items.append(item)
        return items

    @staticmethod
    def _summarise(report: BalanceReport, charges: list[dict], refunds: list[dict], now_ts: int) -> None:
        week_start = now_ts - 7 * DAY
        previous_week_start = week_start - 7 * DAY

        last_week = [c for c in charges if c["created"] >= week_start]
        previous_week = [c for c in charges if previous_week_start <= c["created"] < week_start]

        report.total_revenue_30_days = _sum(charges)
        report.total_revenue_7_days = _sum(last_week)
        report.total_refunds_30_days = _sum([r for r in refunds if r.get("status") not in _VOID_REFUND_STATUSES])
        report.net_revenue_30_days = report.total_revenue_30_days - report.total_refunds_30_days
        report.total_transactions_30_days = len(charges)
        report.total_transactions_7_days = len(last_week)
        if charges:
            report.avg_transaction_value = report.total_revenue_30_days / len(charges)

        previous_revenue = _sum(previous_week)
        if previous_revenue > 0:
            report.week_over_week_growth = (report.total_revenue_7_days - previous_revenue) / previous_revenue * 100

        by_method: dict[str, int] = defaultdict(int)
        for charge in charges:
            by_method[_payment_method_type(charge)] += charge["amount"]
        report.payment_methods = dict(by_method)

        # Calendar days in UTC, oldest first, today included
        today = datetime.fromtimestamp(now_ts, UTC).replace(hour=0, minute=0, second=0, microsecond=0)
        for offset in range(DAILY_REVENUE_DAYS - 1, -1, -1):
            day = today - timedelta(days=offset)
            start = int(day.timestamp())
            day_charges = [c for c in charges if start <= c["created"] < start + DAY]
            report.daily_revenue.append(
                DailyRevenue(date=day.date().isoformat(), revenue=_sum(day_charges), transactions=len(day_charges))
            )
