import asyncio
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from wa_agent.models import Conversation, Message
from wa_agent.services.conversation_service import (
    STATUS_ACTIVE,
    STATUS_CLOSED,
    STATUS_HANDOFF,
    ConversationLocks,
    clear_intent,
    find_or_create_active,
    is_handoff_active,
    mark_intent,
    request_handoff,
    save_message,
)
from wa_agent.services.dedup_service import DEDUP_WINDOW_SECONDS, is_duplicate_incoming


class TestFindOrCreateActive:
    def test_creates_active_conversation(self, db):
        company_id = uuid4()

        conversation = find_or_create_active(db, company_id, "5511999990000", "Ana")
        db.commit()

        assert conversation.status == STATUS_ACTIVE
        assert conversation.handoff_requested is False
        assert conversation.client_name == "Ana"

    def test_reuses_open_conversation(self, db):
        company_id = uuid4()
        first = find_or_create_active(db, company_id, "5511999990000")
        db.commit()

        second = find_or_create_active(db, company_id, "5511999990000")

        assert second.id == first.id
        assert db.query(Conversation).count() == 1

    def test_handoff_conversation_still_resolves(self, db):
        company_id = uuid4()
        conversation = find_or_create_active(db, company_id, "5511999990000")
        request_handoff(db, conversation)
        db.commit()

        again = find_or_create_active(db, company_id, "5511999990000")

        assert again.id == conversation.id
        assert is_handoff_active(again)

    def test_closed_conversation_starts_new_one(self, db):
        company_id = uuid4()
        conversation = find_or_create_active(db, company_id, "5511999990000")
        conversation.status = STATUS_CLOSED
        db.commit()

        fresh = find_or_create_active(db, company_id, "5511999990000")

        assert fresh.id != conversation.id

    def test_scoped_by_tenant(self, db):
        first = find_or_create_active(db, uuid4(), "5511999990000")
        second = find_or_create_active(db, uuid4(), "5511999990000")

        assert first.id != second.id

    def test_fills_missing_client_name(self, db):
        company_id = uuid4()
        conversation = find_or_create_active(db, company_id, "5511999990000")
        db.commit()

        find_or_create_active(db, company_id, "5511999990000", "Bruna")

        assert conversation.client_name == "Bruna"


class TestHandoffAndIntent:
    def test_request_handoff_sets_both_flags(self, db):
        conversation = find_or_create_active(db, uuid4(), "5511999990000")

        request_handoff(db, conversation)

        assert conversation.handoff_requested is True
        assert conversation.status == STATUS_HANDOFF

    def test_clear_intent(self, db):
        conversation = find_or_create_active(db, uuid4(), "5511999990000")
        mark_intent(db, conversation, "complaint_pending")
        db.commit()

        clear_intent(db, conversation.id)
        db.commit()
        db.refresh(conversation)

        assert conversation.current_intent is None


class TestDedup:
    def test_identical_message_inside_window_is_duplicate(self, db):
        conversation = find_or_create_active(db, uuid4(), "5511999990000")
        save_message(db, conversation, "incoming", "oi")
        db.commit()

        assert is_duplicate_incoming(db, conversation.id, "oi") is True
        assert is_duplicate_incoming(db, conversation.id, "oi!") is False

    def test_outside_window_is_not_duplicate(self, db):
        conversation = find_or_create_active(db, uuid4(), "5511999990000")
        message = save_message(db, conversation, "incoming", "oi")
        message.created_at = datetime.now(timezone.utc) - timedelta(seconds=DEDUP_WINDOW_SECONDS + 5)
        db.commit()

        assert is_duplicate_incoming(db, conversation.id, "oi") is False

    def test_outgoing_messages_are_ignored(self, db):
        conversation = find_or_create_active(db, uuid4(), "5511999990000")
        save_message(db, conversation, "outgoing", "oi")
        db.commit()

        assert is_duplicate_incoming(db, conversation.id, "oi") is False

    def test_save_message_copies_tenant(self, db):
        company_id = uuid4()
        conversation = find_or_create_active(db, company_id, "5511999990000")

        message = save_message(db, conversation, "incoming", "oi")

        assert message.company_id == company_id
        assert db.query(Message).count() == 1


class TestConversationLocks:
    @pytest.mark.asyncio
    async def test_same_key_is_serialized(self):
        locks = ConversationLocks()
        company_id = uuid4()
        order = []

        async def worker(name: str):
            async with locks.hold(company_id, "5511999990000"):
                order.append(f"{name}-in")
                await asyncio.sleep(0.01)
                order.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))

        assert order in (["a-in", "a-out", "b-in", "b-out"], ["b-in", "b-out", "a-in", "a-out"])
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_different_keys_run_concurrently(self):
        locks = ConversationLocks()
        company_id = uuid4()
        inside = asyncio.Event()

        async def first():
            async with locks.hold(company_id, "111"):
                await asyncio.wait_for(inside.wait(), timeout=1)

        async def second():
            async with locks.hold(company_id, "222"):
                inside.set()

        await asyncio.gather(first(), second())

        assert len(locks) == 0
