"""Idempotency ledger for webhook deliveries.

A unique-constrained insert on the provider event id is the mutual-exclusion
point: of any number of concurrent deliveries of one event, exactly one insert
succeeds. A lease column lets a later retry of an unprocessed event run the
handler again without two retries running at once.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import structlog
from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bsos.db.models.webhook_event import WebhookEvent

logger = structlog.get_logger(__name__)

MAX_ERROR_LENGTH = 2000


@dataclass(frozen=True)
class LedgerClaim:
    is_new: bool
    processed: bool


class IdempotencyLedger:
    """Durable record of every accepted webhook event."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], lease_seconds: int = 60):
        self.session_factory = session_factory
        self.lease_seconds = lease_seconds

    async def record_if_new(self, event_id: str, event_type: str, now: datetime | None = None) -> LedgerClaim:
        """Insert the event row. Returns is_new=False if it already existed.

        A constraint violation means "duplicate" and is never raised to the caller.
        """
        now = now or datetime.now(UTC)
        async with self.session_factory() as session:
            try:
                session.add(
                    WebhookEvent(
                        event_id=event_id,
                        event_type=event_type,
                        processed=False,
                        attempts=1,
                        last_attempt_at=now,
                        received_at=now,
                    )
                )
                await session.commit()
                return LedgerClaim(is_new=True, processed=False)
            except IntegrityError:
                await session.rollback()
                logger.debug("webhook_event_already_recorded", event_id=event_id)

            result = await session.execute(select(WebhookEvent.processed).where(WebhookEvent.event_id == event_id))
            processed = result.scalar_one()
            return LedgerClaim(is_new=False, processed=bool(processed))

    async def begin_retry(self, event_id: str, now: datetime | None = None) -> bool:
        """Take the processing lease on an unprocessed event.

        Returns True for exactly one caller while the lease is free (released
        after a failure, or expired after a crash); False otherwise.
        """
        now = now or datetime.now(UTC)
        lease_cutoff = now - timedelta(seconds=self.lease_seconds)
        async with self.session_factory() as session:
            result = await session.execute(
                update(WebhookEvent)
                .where(
                    WebhookEvent.event_id == event_id,
                    WebhookEvent.processed.is_(False),
                    or_(WebhookEvent.last_attempt_at.is_(None), WebhookEvent.last_attempt_at < lease_cutoff),
                )
                .values(attempts=WebhookEvent.attempts + 1, last_attempt_at=now)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
            return result.rowcount == 1

    async def mark_processed(self, event_id: str, now: datetime | None = None) -> None:
        """Flag the event as fully handled. Safe to call repeatedly."""
        now = now or datetime.now(UTC)
        async with self.session_factory() as session:
            await session.execute(
                update(WebhookEvent)
                .where(WebhookEvent.event_id == event_id, WebhookEvent.processed.is_(False))
                .values(processed=True, processed_at=now, last_error=None, last_attempt_at=None)
                .execution_options(synchronize_session=False)
            )
            await session.commit()

    async def record_failure(self, event_id: str, error: str) -> None:
        """Store the handler failure and release the lease for the next retry."""
        async with self.session_factory() as session:
            await session.execute(
                update(WebhookEvent)
                .where(WebhookEvent.event_id == event_id, WebhookEvent.processed.is_(False))
                .values(last_error=error[:MAX_ERROR_LENGTH], last_attempt_at=None)
                .execution_options(synchronize_session=False)
            )
            await session.commit()

    async def get(self, event_id: str) -> WebhookEvent | None:
        async with self.session_factory() as session:
            result = await session.execute(select(WebhookEvent).where(WebhookEvent.event_id == event_id))
            return result.scalar_one_or_none()
