class BillingError(Exception):
    """Base exception for the billing service."""

    pass


class SignatureError(BillingError):
    """Raised when a webhook payload cannot be verified as coming from Stripe."""

    pass


class TimestampOutsideToleranceError(SignatureError):
    """Raised when the signed timestamp is too far from the local clock."""

    def __init__(self, timestamp: int, skew_seconds: int, tolerance_seconds: int):
        self.timestamp = timestamp
        self.skew_seconds = skew_seconds
        self.tolerance_seconds = tolerance_seconds
        super().__init__(
            f"Signature timestamp {timestamp} is {skew_seconds}s from now (tolerance {tolerance_seconds}s)"
        )


class WebhookNotConfiguredError(SignatureError):
    """Raised when no webhook secret is configured. Verification fails closed."""

    pass


class DuplicateEventError(BillingError):
    """Raised inside the pipeline when an event was already handled or is in flight."""

    def __init__(self, event_id: str, in_flight: bool = False):
        self.event_id = event_id
        self.in_flight = in_flight
        super().__init__(f"Event {event_id} already {'in flight' if in_flight else 'processed'}")


class UnhandledEventError(BillingError):
    """Raised when the dispatcher's routing table is missing a known event kind."""

    pass


class HandlerFailure(BillingError):
    """Raised when a domain handler could not apply an event. Retryable."""

    def __init__(self, event_id: str, event_type: str, reason: str):
        self.event_id = event_id
        self.event_type = event_type
        self.reason = reason
        super().__init__(f"Handler for {event_type} ({event_id}) failed: {reason}")


class OutOfOrderReferenceError(HandlerFailure):
    """Raised when an event references a subscription not seen yet."""

    def __init__(self, event_id: str, event_type: str, stripe_subscription_id: str):
        self.stripe_subscription_id = stripe_subscription_id
        super().__init__(event_id, event_type, f"subscription {stripe_subscription_id} not found")


class RateLimitExceededError(BillingError):
    """Raised when an identifier exceeds its request budget for the current window."""

    def __init__(self, identifier: str, limit: int, retry_after: int):
        self.identifier = identifier
        self.limit = limit
        self.retry_after = retry_after
        super().__init__(f"Rate limit of {limit} exceeded for '{identifier}', retry in {retry_after}s")


class ProviderNotConfiguredError(BillingError):
    """Raised when a provider API call is attempted without a secret key."""

    pass
