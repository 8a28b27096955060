"""Tests for the delivery ledger and slot claims."""

from datetime import date, datetime, timedelta

import pytest
from sqlalchemy import select

from threadbot.core.datetime_utils import utc_now
from threadbot.models.delivery import ClaimStatus, DeliveryClaim
from threadbot.models.recipient import ContentSourceKind, Slot
from threadbot.services.ledger import (
    ClaimOutcome,
    append_to_reply_buffer,
    claim_slot,
    delete_stale_claims,
    get_ledger_entry,
    is_recorded,
    record_delivery,
    release_claim_failed,
)

pytestmark = pytest.mark.asyncio

DAY = date(2026, 1, 5)
NOW = datetime(2026, 1, 5, 9, 2)


class TestClaimSlot:
    """Tests for claim_slot."""

    async def test_first_claim_is_acquired(self, db_session):
        outcome = await claim_slot(db_session, "acct-1", DAY, Slot.MORNING, now=NOW)
        assert outcome == ClaimOutcome.ACQUIRED

    async def test_pending_claim_blocks_second_caller(self, db_session):
        await claim_slot(db_session, "acct-1", DAY, Slot.MORNING, now=NOW)
        outcome = await claim_slot(db_session, "acct-1", DAY, Slot.MORNING, now=NOW)
        assert outcome == ClaimOutcome.IN_FLIGHT

    async def test_stale_pending_claim_can_be_taken_over(self, db_session):
        await claim_slot(db_session, "acct-1", DAY, Slot.MORNING, now=NOW, lease_seconds=120)
        outcome = await claim_slot(
            db_session,
            "acct-1",
            DAY,
            Slot.MORNING,
            now=NOW + timedelta(seconds=121),
            lease_seconds=120,
        )
        assert outcome == ClaimOutcome.ACQUIRED

    async def test_failed_claim_can_be_retried(self, db_session):
        await claim_slot(db_session, "acct-1", DAY, Slot.MORNING, now=NOW)
        await release_claim_failed(db_session, "acct-1", DAY, Slot.MORNING, "gateway: 502")

        outcome = await claim_slot(db_session, "acct-1", DAY, Slot.MORNING, now=NOW)
        assert outcome == ClaimOutcome.ACQUIRED

    async def test_sent_claim_is_final(self, db_session):
        await claim_slot(db_session, "acct-1", DAY, Slot.MORNING, now=NOW)
        await record_delivery(
            db_session, "acct-1", DAY, Slot.MORNING, "item-1", ContentSourceKind.GENERATED
        )

        outcome = await claim_slot(
            db_session, "acct-1", DAY, Slot.MORNING, now=NOW + timedelta(hours=1)
        )
        assert outcome == ClaimOutcome.ALREADY_SENT

    async def test_slots_and_days_are_independent(self, db_session):
        await claim_slot(db_session, "acct-1", DAY, Slot.MORNING, now=NOW)

        assert await claim_slot(db_session, "acct-1", DAY, Slot.EVENING, now=NOW) == (
            ClaimOutcome.ACQUIRED
        )
        assert await claim_slot(
            db_session, "acct-1", DAY + timedelta(days=1), Slot.MORNING, now=NOW
        ) == ClaimOutcome.ACQUIRED


class TestRecordDelivery:
    """Tests for record_delivery and the ledger entry."""

    async def test_creates_ledger_entry(self, db_session):
        await claim_slot(db_session, "acct-1", DAY, Slot.MORNING, now=NOW)
        await record_delivery(
            db_session, "acct-1", DAY, Slot.MORNING, "item-1", ContentSourceKind.GENERATED, NOW
        )

        entry = await get_ledger_entry(db_session, "acct-1")
        assert entry.correlation_id == "item-1"
        assert entry.last_delivered_at == NOW
        assert is_recorded(entry, DAY, Slot.MORNING) is True
        assert is_recorded(entry, DAY, Slot.EVENING) is False

        claim = await db_session.scalar(
            select(DeliveryClaim.status).where(DeliveryClaim.account_id == "acct-1")
        )
        assert claim == ClaimStatus.SENT

    async def test_new_delivery_replaces_correlation_and_clears_buffer(self, db_session):
        await record_delivery(
            db_session, "acct-1", DAY, Slot.MORNING, "item-1", ContentSourceKind.GENERATED
        )
        assert await append_to_reply_buffer(db_session, "acct-1", "first reply") is True

        await record_delivery(
            db_session, "acct-1", DAY, Slot.EVENING, "page-2", ContentSourceKind.NOTION
        )

        entry = await get_ledger_entry(db_session, "acct-1")
        assert entry.correlation_id == "page-2"
        assert entry.content_source == ContentSourceKind.NOTION
        assert entry.last_slot == Slot.EVENING
        assert entry.reply_buffer is None

    async def test_reply_buffer_appends_with_separator(self, db_session):
        await record_delivery(
            db_session, "acct-1", DAY, Slot.MORNING, "item-1", ContentSourceKind.GENERATED
        )
        await append_to_reply_buffer(db_session, "acct-1", "one")
        await append_to_reply_buffer(db_session, "acct-1", "two")

        entry = await get_ledger_entry(db_session, "acct-1")
        assert entry.reply_buffer == "one\n\n---\n\ntwo"

    async def test_reply_buffer_needs_a_delivery(self, db_session):
        assert await append_to_reply_buffer(db_session, "acct-unknown", "hi") is False


class TestDeleteStaleClaims:
    """Tests for delete_stale_claims."""

    async def test_deletes_only_old_claims(self, db_session):
        today = utc_now().date()
        await claim_slot(db_session, "acct-1", today - timedelta(days=30), Slot.MORNING)
        await claim_slot(db_session, "acct-1", today, Slot.MORNING)

        deleted = await delete_stale_claims(db_session, older_than_days=7)

        assert deleted == 1
        remaining = (await db_session.execute(select(DeliveryClaim.slot_date))).scalars().all()
        assert remaining == [today]
