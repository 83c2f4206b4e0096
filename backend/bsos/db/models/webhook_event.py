"""WebhookEvent model: idempotency ledger for provider webhook deliveries."""

from datetime import UTC, datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text

from bsos.db.base import Base


class WebhookEvent(Base):
    """One row per event accepted by signature verification.

    Inserted before handlers run; `processed` flips to true only after the
    handler's write has committed.
    """

    __tablename__ = "webhook_events"

    event_id = Column(String(255), primary_key=True)  # evt_xxx from Stripe
    event_type = Column(String(100), nullable=False, index=True)
    processed = Column(Boolean, nullable=False, default=False, index=True)

    attempts = Column(Integer, nullable=False, default=1)
    last_attempt_at = Column(DateTime(timezone=True), nullable=True)  # processing lease; null = released
    last_error = Column(Text, nullable=True)

    received_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )
    processed_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<WebhookEvent(event_id='{self.event_id}', event_type='{self.event_type}', processed={self.processed})>"
