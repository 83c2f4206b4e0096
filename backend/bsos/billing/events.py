"""Typed view of the Stripe webhook events this service consumes.

Event types form a closed enum with an explicit UNRECOGNIZED member, so routing
can be checked for completeness and new provider event types pass through
harmlessly.
"""

from datetime import UTC, datetime
from enum import StrEnum
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field


class EventKind(StrEnum):
    INVOICE_PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
    INVOICE_PAYMENT_FAILED = "invoice.payment_failed"
    SUBSCRIPTION_CREATED = "customer.subscription.created"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"
    PAYMENT_INTENT_SUCCEEDED = "payment_intent.succeeded"
    PAYMENT_INTENT_FAILED = "payment_intent.payment_failed"
    UNRECOGNIZED = "unrecognized"

    @classmethod
    def parse(cls, event_type: str) -> "EventKind":
        try:
            kind = cls(event_type)
        except ValueError:
            return cls.UNRECOGNIZED
        return kind

    @classmethod
    def known(cls) -> list["EventKind"]:
        return [kind for kind in cls if kind is not cls.UNRECOGNIZED]


def from_unix(value: int | None) -> datetime | None:
    """Convert a Stripe unix timestamp (seconds) to an aware UTC datetime."""
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=UTC)


def _object_id(value: Any) -> Any:
    # Expanded references arrive as objects; keep only their id
    if isinstance(value, dict):
        return value.get("id")
    return value


CustomerRef = Annotated[str | None, BeforeValidator(_object_id)]


class EventData(BaseModel):
    model_config = ConfigDict(extra="ignore")

    object: dict[str, Any]


class StripeEvent(BaseModel):
    """Envelope of a verified webhook delivery."""

    model_config = ConfigDict(extra="ignore")

    id: str
    type: str
    created: int
    livemode: bool = False
    api_version: str | None = None
    data: EventData

    @property
    def kind(self) -> EventKind:
        return EventKind.parse(self.type)

    @property
    def created_at(self) -> datetime:
        return from_unix(self.created)

    @property
    def payload(self) -> dict[str, Any]:
        return self.data.object


class StatusTransitions(BaseModel):
    model_config = ConfigDict(extra="ignore")

    paid_at: int | None = None


class InvoicePayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    customer: CustomerRef = None
    amount_paid: int = 0
    amount_due: int = 0
    currency: str = "usd"
    status: str | None = None
    attempted: bool = False
    status_transitions: StatusTransitions = Field(default_factory=StatusTransitions)


class PaymentIntentPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    customer: CustomerRef = None
    amount: int = 0
    currency: str = "usd"
    status: str | None = None


class SubscriptionItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    current_period_start: int | None = None
    current_period_end: int | None = None


class SubscriptionItemList(BaseModel):
    model_config = ConfigDict(extra="ignore")

    data: list[SubscriptionItem] = Field(default_factory=list)


class SubscriptionPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    customer: Annotated[str, BeforeValidator(_object_id)]
    status: str
    current_period_start: int | None = None
    current_period_end: int | None = None
    canceled_at: int | None = None
    items: SubscriptionItemList = Field(default_factory=SubscriptionItemList)

    def period(self) -> tuple[datetime | None, datetime | None]:
        """Billing period, read from the first item when the top level lacks it.

        Newer Stripe API versions moved current_period_* onto subscription items.
        """
        start, end = self.current_period_start, self.current_period_end
        if (start is None or end is None) and self.items.data:
            item = self.items.data[0]
            start = start if start is not None else item.current_period_start
            end = end if end is not None else item.current_period_end
        return from_unix(start), from_unix(end)
