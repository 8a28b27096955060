"""Tests for inbound message routing."""

from datetime import date

import pytest
from sqlalchemy import select

from threadbot.models.linking import LinkAttempt
from threadbot.models.recipient import ContentSourceKind, Slot
from threadbot.services.inbound import (
    HELP_MESSAGE,
    INVALID_CODE_MESSAGE,
    LINKED_MESSAGE,
    InboundRoute,
    handle_inbound_message,
)
from threadbot.services.ledger import record_delivery
from threadbot.services.linking import issue_code
from threadbot.services.replies import ReplyOutcome

pytestmark = pytest.mark.asyncio


class TestHandleInboundMessage:
    """Tests for handle_inbound_message."""

    async def test_unlinked_chat_sending_code_is_linked(self, db_session, gateway):
        issued = await issue_code(db_session, "acct-1")

        result = await handle_inbound_message(db_session, gateway, "chat-1", issued.code)

        assert result.route == InboundRoute.LINK
        assert result.link.linked is True
        assert gateway.sent == [("chat-1", LINKED_MESSAGE)]

    async def test_unlinked_chat_with_wrong_code(self, db_session, gateway):
        result = await handle_inbound_message(db_session, gateway, "chat-1", "999999")

        assert result.route == InboundRoute.LINK
        assert result.link.linked is False
        assert gateway.sent == [("chat-1", INVALID_CODE_MESSAGE)]

    async def test_unlinked_chat_small_talk_gets_help(self, db_session, gateway):
        result = await handle_inbound_message(db_session, gateway, "chat-1", "what is this?")

        assert result.route == InboundRoute.HELP
        assert gateway.sent == [("chat-1", HELP_MESSAGE)]

    async def test_linked_chat_reply_is_logged(
        self, db_session, gateway, recipient_factory, prompt_factory
    ):
        recipient = await recipient_factory(gateway_identity="chat-1")
        item = await prompt_factory(recipient.account_id, date(2026, 1, 5), Slot.MORNING)
        await record_delivery(
            db_session,
            recipient.account_id,
            date(2026, 1, 5),
            Slot.MORNING,
            str(item.id),
            ContentSourceKind.GENERATED,
        )

        result = await handle_inbound_message(
            db_session, gateway, "chat-1", "Hello, today I wrote 500 words"
        )

        assert result.route == InboundRoute.REPLY
        assert result.reply.outcome == ReplyOutcome.APPLIED
        assert gateway.sent == []
        await db_session.refresh(item)
        assert item.response == "Hello, today I wrote 500 words"

    async def test_linked_chat_bare_code_relinks(self, db_session, gateway, recipient_factory):
        await recipient_factory(account_id="acct-old", gateway_identity="chat-1")
        issued = await issue_code(db_session, "acct-new")

        result = await handle_inbound_message(db_session, gateway, "chat-1", issued.code)

        assert result.route == InboundRoute.LINK
        assert result.link.account_id == "acct-new"

    async def test_rate_limited_notice(self, db_session, gateway):
        for _ in range(10):
            await handle_inbound_message(db_session, gateway, "chat-1", "000000")
        gateway.sent.clear()

        result = await handle_inbound_message(db_session, gateway, "chat-1", "000000")

        assert result.link.retry_after_seconds > 0
        assert "Too many attempts" in gateway.sent[0][1]

    async def test_notice_failure_does_not_raise(self, db_session, gateway):
        gateway.fail = True

        result = await handle_inbound_message(db_session, gateway, "chat-1", "what?")

        assert result.route == InboundRoute.HELP

    async def test_linked_chat_numeric_answer_is_a_reply(
        self, db_session, gateway, recipient_factory, prompt_factory
    ):
        recipient = await recipient_factory(gateway_identity="chat-1")
        item = await prompt_factory(recipient.account_id, date(2026, 1, 5), Slot.MORNING)
        await record_delivery(
            db_session,
            recipient.account_id,
            date(2026, 1, 5),
            Slot.MORNING,
            str(item.id),
            ContentSourceKind.GENERATED,
        )

        result = await handle_inbound_message(db_session, gateway, "chat-1", "250000")

        assert result.route == InboundRoute.REPLY
        assert gateway.sent == []
        await db_session.refresh(item)
        assert item.response == "250000"
        counter = await db_session.scalar(
            select(LinkAttempt).where(LinkAttempt.gateway_identity == "chat-1")
        )
        assert counter is None
