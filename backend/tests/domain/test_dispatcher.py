"""Tests for routing verified events to handlers."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from bsos.billing.dispatcher import EventDispatcher
from bsos.billing.events import EventKind
from bsos.billing.handlers import HANDLERS
from bsos.core.exceptions import UnhandledEventError
from tests.factories import invoice_data, make_event

pytestmark = pytest.mark.unit


def _mock_handlers() -> dict:
    return {kind: AsyncMock() for kind in EventKind.known()}


def test_default_table_covers_every_known_kind():
    assert set(HANDLERS) == set(EventKind.known())


def test_incomplete_table_is_rejected_at_construction():
    handlers = _mock_handlers()
    del handlers[EventKind.PAYMENT_INTENT_FAILED]

    with pytest.raises(UnhandledEventError, match="payment_intent.payment_failed"):
        EventDispatcher(MagicMock(), handlers)


async def test_known_event_runs_its_handler():
    handlers = _mock_handlers()
    store = MagicMock()
    dispatcher = EventDispatcher(store, handlers)
    event = make_event("evt_1", "invoice.payment_failed", invoice_data())

    handled = await dispatcher.dispatch(event)

    assert handled is True
    handlers[EventKind.INVOICE_PAYMENT_FAILED].assert_awaited_once_with(store, event)
    handlers[EventKind.INVOICE_PAYMENT_SUCCEEDED].assert_not_awaited()


async def test_unrecognized_event_is_acknowledged_without_handler():
    handlers = _mock_handlers()
    dispatcher = EventDispatcher(MagicMock(), handlers)
    event = make_event("evt_2", "charge.dispute.created", {"id": "dp_1"})

    handled = await dispatcher.dispatch(event)

    assert handled is False
    for handler in handlers.values():
        handler.assert_not_awaited()


async def test_handler_errors_propagate():
    handlers = _mock_handlers()
    handlers[EventKind.INVOICE_PAYMENT_SUCCEEDED].side_effect = RuntimeError("db down")
    dispatcher = EventDispatcher(MagicMock(), handlers)

    with pytest.raises(RuntimeError, match="db down"):
        await dispatcher.dispatch(make_event("evt_3", "invoice.payment_succeeded", invoice_data()))
