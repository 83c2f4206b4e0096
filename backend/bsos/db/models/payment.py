"""Payment model: invoices and payment intents mirrored from Stripe."""

from datetime import UTC, datetime
from enum import StrEnum

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, String

from bsos.db.base import Base


class PaymentStatus(StrEnum):
    PAID = "PAID"
    FAILED = "FAILED"
    PENDING = "PENDING"


class Payment(Base):
    __tablename__ = "payments"
    __table_args__ = (
        # Provenance is either an invoice or a payment intent, never both
        CheckConstraint(
            "(stripe_invoice_id IS NULL) <> (stripe_payment_intent_id IS NULL)",
            name="ck_payments_single_provenance",
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    stripe_invoice_id = Column(String(255), unique=True, nullable=True)
    stripe_payment_intent_id = Column(String(255), unique=True, nullable=True)
    stripe_customer_id = Column(String(255), nullable=True, index=True)  # soft FK into identity domain

    amount = Column(Integer, nullable=False, default=0)  # minor units (cents)
    currency = Column(String(10), nullable=False, default="usd")
    status = Column(String(20), nullable=False, index=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC), index=True)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )
