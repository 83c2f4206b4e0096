"""Pydantic schemas for the finance read API and webhook responses."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class PaymentResponse(BaseModel):
    """Mirrored payment, either invoice- or payment-intent-backed."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    stripe_invoice_id: str | None = Field(None, description="Stripe invoice id (in_xxx)")
    stripe_payment_intent_id: str | None = Field(None, description="Stripe payment intent id (pi_xxx)")
    stripe_customer_id: str | None = Field(None, description="Stripe customer id (cus_xxx)")
    amount: int = Field(..., description="Amount in minor units (cents)")
    currency: str
    status: str = Field(..., description="PAID, FAILED or PENDING")
    paid_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class PaymentListResponse(BaseModel):
    payments: list[PaymentResponse]
    count: int


class SubscriptionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    stripe_subscription_id: str
    stripe_customer_id: str
    status: str = Field(..., description="Latest status reported by Stripe")
    current_period_start: datetime | None = None
    current_period_end: datetime | None = None
    canceled_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class SubscriptionListResponse(BaseModel):
    subscriptions: list[SubscriptionResponse]
    count: int


class PaymentTotalsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    status: str
    currency: str
    count: int
    amount: int = Field(..., description="Sum in minor units")


class FinanceSummaryResponse(BaseModel):
    """Totals for the dashboard, computed from local records only."""

    start: datetime | None
    end: datetime | None
    totals: list[PaymentTotalsResponse]
    paid_amount_by_currency: dict[str, int]


class SyncResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    since: datetime
    invoices_scanned: int
    payments_written: int
    subscriptions_scanned: int
    subscriptions_written: int
    skipped: int
    started_at: datetime
    finished_at: datetime | None


class BalanceAmountResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    amount: int = Field(..., description="Minor units")
    currency: str


class DailyRevenueResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    date: str = Field(..., description="UTC calendar day, YYYY-MM-DD")
    revenue: int
    transactions: int


class BalanceResponse(BaseModel):
    """Live Stripe balance and 30-day charge analytics in one currency."""

    model_config = ConfigDict(from_attributes=True)

    currency: str
    available: list[BalanceAmountResponse]
    pending: list[BalanceAmountResponse]
    total_revenue_30_days: int
    total_revenue_7_days: int
    total_refunds_30_days: int
    net_revenue_30_days: int
    total_transactions_30_days: int
    total_transactions_7_days: int
    avg_transaction_value: float
    week_over_week_growth: float = Field(..., description="Percent change against the previous 7 days")
    payment_methods: dict[str, int]
    daily_revenue: list[DailyRevenueResponse]
    generated_at: datetime
