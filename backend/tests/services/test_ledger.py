"""Tests for the webhook idempotency ledger."""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

pytestmark = pytest.mark.unit

T0 = datetime(2030, 1, 1, 12, 0, 0, tzinfo=UTC)


async def test_first_record_is_new(ledger):
    claim = await ledger.record_if_new("evt_1", "invoice.payment_succeeded", now=T0)

    assert claim.is_new is True
    assert claim.processed is False

    row = await ledger.get("evt_1")
    assert row.event_type == "invoice.payment_succeeded"
    assert row.processed is False
    assert row.attempts == 1


async def test_second_record_reports_existing_unprocessed(ledger):
    await ledger.record_if_new("evt_1", "invoice.payment_succeeded", now=T0)

    claim = await ledger.record_if_new("evt_1", "invoice.payment_succeeded", now=T0)

    assert claim.is_new is False
    assert claim.processed is False


async def test_record_after_processing_reports_processed(ledger):
    await ledger.record_if_new("evt_1", "invoice.payment_succeeded", now=T0)
    await ledger.mark_processed("evt_1", now=T0)

    claim = await ledger.record_if_new("evt_1", "invoice.payment_succeeded")

    assert claim.is_new is False
    assert claim.processed is True


async def test_mark_processed_is_repeatable(ledger):
    await ledger.record_if_new("evt_1", "invoice.payment_succeeded", now=T0)

    await ledger.mark_processed("evt_1", now=T0)
    await ledger.mark_processed("evt_1", now=T0 + timedelta(minutes=5))

    row = await ledger.get("evt_1")
    assert row.processed is True
    assert row.processed_at.replace(tzinfo=UTC) == T0
    assert row.last_attempt_at is None


async def test_concurrent_records_admit_exactly_one(ledger):
    claims = await asyncio.gather(
        *[ledger.record_if_new("evt_race", "invoice.payment_succeeded", now=T0) for _ in range(5)]
    )

    assert sum(1 for claim in claims if claim.is_new) == 1


class TestRetryLease:
    async def test_retry_blocked_while_first_attempt_holds_lease(self, ledger):
        await ledger.record_if_new("evt_1", "invoice.payment_succeeded", now=T0)

        assert await ledger.begin_retry("evt_1", now=T0 + timedelta(seconds=10)) is False

    async def test_retry_allowed_after_lease_expires(self, ledger):
        """A worker that crashed mid-handler leaves a stale lease behind."""
        await ledger.record_if_new("evt_1", "invoice.payment_succeeded", now=T0)

        assert await ledger.begin_retry("evt_1", now=T0 + timedelta(seconds=61)) is True

        row = await ledger.get("evt_1")
        assert row.attempts == 2

    async def test_retry_allowed_immediately_after_recorded_failure(self, ledger):
        await ledger.record_if_new("evt_1", "customer.subscription.updated", now=T0)
        await ledger.record_failure("evt_1", "subscription sub_1 not found")

        assert await ledger.begin_retry("evt_1", now=T0 + timedelta(seconds=1)) is True

        row = await ledger.get("evt_1")
        assert row.last_error == "subscription sub_1 not found"

    async def test_only_one_retry_wins_the_lease(self, ledger):
        await ledger.record_if_new("evt_1", "invoice.payment_succeeded", now=T0)
        await ledger.record_failure("evt_1", "boom")

        later = T0 + timedelta(seconds=5)
        results = [await ledger.begin_retry("evt_1", now=later) for _ in range(3)]

        assert results == [True, False, False]

    async def test_processed_event_is_never_retried(self, ledger):
        await ledger.record_if_new("evt_1", "invoice.payment_succeeded", now=T0)
        await ledger.mark_processed("evt_1", now=T0)

        assert await ledger.begin_retry("evt_1", now=T0 + timedelta(hours=1)) is False

    async def test_failure_message_is_truncated(self, ledger):
        await ledger.record_if_new("evt_1", "invoice.payment_succeeded", now=T0)

        await ledger.record_failure("evt_1", "x" * 5000)

        row = await ledger.get("evt_1")
        assert len(row.last_error) == 2000

    async def test_success_clears_previous_error(self, ledger):
        await ledger.record_if_new("evt_1", "invoice.payment_succeeded", now=T0)
        await ledger.record_failure("evt_1", "boom")

        await ledger.mark_processed("evt_1", now=T0)

        row = await ledger.get("evt_1")
        assert row.last_error is None
