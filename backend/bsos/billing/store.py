"""Financial record store: persistence boundary for mirrored payments and subscriptions.

Writes are upserts keyed by the provider's natural ids, so replaying an event
never creates a second row. No business rules live here.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from bsos.db.models.payment import Payment, PaymentStatus
from bsos.db.models.subscription import Subscription, SubscriptionStatus


@dataclass(frozen=True)
class PaymentTotals:
    status: str
    currency: str
    count: int
    amount: int


def _dialect_insert(session: AsyncSession):
    dialect = session.bind.dialect.name
    if dialect == "postgresql":
        return pg_insert
    if dialect == "sqlite":
        return sqlite_insert
    raise RuntimeError(f"Upsert not supported for dialect '{dialect}'")


class FinancialRecordStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    # ── Generic persistence operations ──────────────────────────────

    async def upsert(
        self,
        model: type[Payment] | type[Subscription],
        natural_key: str,
        key_value: str,
        create_fields: dict[str, Any],
        update_fields: dict[str, Any],
    ) -> None:
        """INSERT ... ON CONFLICT (natural_key) DO UPDATE in a single statement."""
        now = datetime.now(UTC)
        async with self.session_factory() as session:
            insert = _dialect_insert(session)
            stmt = insert(model).values(**{natural_key: key_value, **create_fields})
            stmt = stmt.on_conflict_do_update(
                index_elements=[natural_key],
                set_={**update_fields, "updated_at": now},
            )
            await session.execute(stmt)
            await session.commit()

    async def update(
        self,
        model: type[Payment] | type[Subscription],
        natural_key: str,
        key_value: str,
        fields: dict[str, Any],
    ) -> bool:
        """Update an existing row in place. Returns False when no row matched."""
        async with self.session_factory() as session:
            column = getattr(model, natural_key)
            result = await session.execute(
                update(model)
                .where(column == key_value)
                .values(**fields, updated_at=datetime.now(UTC))
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                await session.rollback()
                return False
            await session.commit()
            return True

    # ── Payments ────────────────────────────────────────────────────

    async def upsert_invoice_payment(
        self,
        stripe_invoice_id: str,
        stripe_customer_id: str | None,
        amount: int,
        currency: str,
        status: PaymentStatus,
        paid_at: datetime | None = None,
    ) -> None:
        update_fields: dict[str, Any] = {"status": status.value}
        if paid_at is not None:
            update_fields["paid_at"] = paid_at
        await self.upsert(
            Payment,
            "stripe_invoice_id",
            stripe_invoice_id,
            create_fields={
                "stripe_customer_id": stripe_customer_id,
                "amount": amount,
                "currency": currency,
                "status": status.value,
                "paid_at": paid_at,
            },
            update_fields=update_fields,
        )

    async def upsert_payment_intent(
        self,
        stripe_payment_intent_id: str,
        stripe_customer_id: str | None,
        amount: int,
        currency: str,
        status: PaymentStatus,
        paid_at: datetime | None = None,
    ) -> None:
        update_fields: dict[str, Any] = {"status": status.value}
        if paid_at is not None:
            update_fields["paid_at"] = paid_at
        await self.upsert(
            Payment,
            "stripe_payment_intent_id",
            stripe_payment_intent_id,
            create_fields={
                "stripe_customer_id": stripe_customer_id,
                "amount": amount,
                "currency": currency,
                "status": status.value,
                "paid_at": paid_at,
            },
            update_fields=update_fields,
        )

    async def get_payment_by_invoice(self, stripe_invoice_id: str) -> Payment | None:
        async with self.session_factory() as session:
            result = await session.execute(select(Payment).where(Payment.stripe_invoice_id == stripe_invoice_id))
            return result.scalar_one_or_none()

    async def get_payment_by_intent(self, stripe_payment_intent_id: str) -> Payment | None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Payment).where(Payment.stripe_payment_intent_id == stripe_payment_intent_id)
            )
            return result.scalar_one_or_none()

    async def list_payments(
        self,
        customer_id: str | None = None,
        status: PaymentStatus | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int = 100,
    ) -> list[Payment]:
        """Newest first. The date range applies to created_at, end exclusive."""
        stmt = select(Payment)
        if customer_id:
            stmt = stmt.where(Payment.stripe_customer_id == customer_id)
        if status:
            stmt = stmt.where(Payment.status == status.value)
        if start:
            stmt = stmt.where(Payment.created_at >= start)
        if end:
            stmt = stmt.where(Payment.created_at < end)
        stmt = stmt.order_by(Payment.created_at.desc(), Payment.id.desc()).limit(limit)

        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def payment_summary(self, start: datetime | None = None, end: datetime | None = None) -> list[PaymentTotals]:
        """Count and amount per (status, currency) over an optional created_at range."""
        stmt = select(
            Payment.status,
            Payment.currency,
            func.count(Payment.id),
            func.coalesce(func.sum(Payment.amount), 0),
        )
        if start:
            stmt = stmt.where(Payment.created_at >= start)
        if end:
            stmt = stmt.where(Payment.created_at < end)
        stmt = stmt.group_by(Payment.status, Payment.currency).order_by(Payment.status, Payment.currency)

        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return [
                PaymentTotals(status=status, currency=currency, count=int(count), amount=int(amount))
                for status, currency, count, amount in result.all()
            ]

    # ── Subscriptions ───────────────────────────────────────────────

    async def upsert_subscription(
        self,
        stripe_subscription_id: str,
        stripe_customer_id: str,
        status: str,
        current_period_start: datetime | None,
        current_period_end: datetime | None,
        canceled_at: datetime | None = None,
    ) -> None:
        update_fields: dict[str, Any] = {
            "status": status,
            "current_period_start": current_period_start,
            "current_period_end": current_period_end,
        }
        if canceled_at is not None:
            update_fields["canceled_at"] = canceled_at
        await self.upsert(
            Subscription,
            "stripe_subscription_id",
            stripe_subscription_id,
            create_fields={
                "stripe_customer_id": stripe_customer_id,
                "status": status,
                "current_period_start": current_period_start,
                "current_period_end": current_period_end,
                "canceled_at": canceled_at,
            },
            update_fields=update_fields,
        )

    async def update_subscription(
        self,
        stripe_subscription_id: str,
        status: str,
        current_period_start: datetime | None,
        current_period_end: datetime | None,
    ) -> bool:
        return await self.update(
            Subscription,
            "stripe_subscription_id",
            stripe_subscription_id,
            {
                "status": status,
                "current_period_start": current_period_start,
                "current_period_end": current_period_end,
            },
        )

    async def cancel_subscription(self, stripe_subscription_id: str, canceled_at: datetime) -> bool:
        return await self.update(
            Subscription,
            "stripe_subscription_id",
            stripe_subscription_id,
            {"status": SubscriptionStatus.CANCELED.value, "canceled_at": canceled_at},
        )

    async def get_subscription(self, stripe_subscription_id: str) -> Subscription | None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Subscription).where(Subscription.stripe_subscription_id == stripe_subscription_id)
            )
            return result.scalar_one_or_none()

    async def list_subscriptions(
        self,
        customer_id: str | None = None,
        status: str | None = None,
        limit: int = 100,
    ) -> list[Subscription]:
        stmt = select(Subscription)
        if customer_id:
            stmt = stmt.where(Subscription.stripe_customer_id == customer_id)
        if status:
            stmt = stmt.where(Subscription.status == status)
        stmt = stmt.order_by(Subscription.created_at.desc(), Subscription.id.desc()).limit(limit)

        async with self.session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())
