"""Re-export all models so Base.metadata sees them."""

from bsos.db.models.payment import Payment, PaymentStatus
from bsos.db.models.subscription import Subscription, SubscriptionStatus
from bsos.db.models.webhook_event import WebhookEvent

__all__ = [
    "Payment",
    "PaymentStatus",
    "Subscription",
    "SubscriptionStatus",
    "WebhookEvent",
]
