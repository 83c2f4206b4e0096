"""Request correlation for the billing service.

Every request gets an X-Request-ID (echoed from the caller, Stripe included,
or freshly generated) that the structlog processors attach to each log line.
"""

import uuid

from asgi_correlation_id import CorrelationIdMiddleware
from asgi_correlation_id.context import correlation_id
from fastapi import FastAPI

REQUEST_ID_HEADER = "X-Request-ID"


def setup_correlation_middleware(app: FastAPI) -> None:
    """Install the correlation middleware; caller-supplied ids are accepted as-is."""
    app.add_middleware(
        CorrelationIdMiddleware,
        header_name=REQUEST_ID_HEADER,
        generator=lambda: str(uuid.uuid4()),
        validator=None,
        transformer=lambda a: a,
    )


def get_correlation_id() -> str | None:
    """Current request's correlation id, or None outside a request."""
    try:
        return correlation_id.get()
    except LookupError:
        return None


__all__ = ["REQUEST_ID_HEADER", "get_correlation_id", "setup_correlation_middleware"]
