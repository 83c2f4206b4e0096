"""Shared setup for the outbound Stripe API calls (backfill and balance)."""

from typing import Any

import stripe

from bsos.core.config import get_settings
from bsos.core.exceptions import ProviderNotConfiguredError

PAGE_SIZE = 100


def configure_stripe(secret_key: str | None = None) -> None:
    """Set the SDK key or raise ProviderNotConfiguredError when none is configured."""
    key = secret_key if secret_key is not None else get_settings().stripe_secret_key
    if not key:
        raise ProviderNotConfiguredError("Stripe secret key is not configured")
    stripe.api_key = key


def as_dict(obj: Any) -> dict[str, Any]:
    to_dict = getattr(obj, "to_dict", None)
    return to_dict() if callable(to_dict) else obj
