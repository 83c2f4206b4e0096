"""Routes verified events to their domain handler."""

import structlog

from bsos.billing.events import EventKind, StripeEvent
from bsos.billing.handlers import HANDLERS, Handler
from bsos.billing.store import FinancialRecordStore
from bsos.core.exceptions import UnhandledEventError

logger = structlog.get_logger(__name__)


class EventDispatcher:
    """Static routing table from EventKind to handler.

    The table must cover every known kind; a gap is a wiring bug and is
    rejected at construction time rather than on the first delivery.
    """

    def __init__(self, store: FinancialRecordStore, handlers: dict[EventKind, Handler] | None = None):
        self.store = store
        self.handlers = HANDLERS if handlers is None else handlers

        missing = [kind.value for kind in EventKind.known() if kind not in self.handlers]
        if missing:
            raise UnhandledEventError(f"No handler registered for: {missing}")

    async def dispatch(self, event: StripeEvent) -> bool:
        """Run the handler for this event.

        Returns False when the provider sent a type this service does not
        consume; such events are acknowledged, never rejected.
        """
        kind = event.kind
        if kind is EventKind.UNRECOGNIZED:
            logger.info("webhook_event_type_ignored", event_id=event.id, event_type=event.type)
            return False

        handler = self.handlers.get(kind)
        if handler is None:
            raise UnhandledEventError(f"No handler registered for {kind.value}")

        await handler(self.store, event)
        return True
