import json
from datetime import time, timedelta
from uuid import uuid4

import pytest
from conftest import FakeLLM, FakeTransport, create_appointment, create_tenant, llm_reply

from wa_agent.errors import LLMError
from wa_agent.models import AgentActionLog, Conversation, Message
from wa_agent.schemas.webhook import InboundEvent
from wa_agent.services.conversation_service import INTENT_COMPLAINT_PENDING
from wa_agent.services.context_service import local_today
from wa_agent.services.pipeline import process_inbound
from wa_agent.services.tools import MSG_HANDOFF

PHONE = "5511999990000"


def _event(company_id, text="Oi", sender_name="Ana") -> InboundEvent:
    return InboundEvent(company_id=company_id, phone=PHONE, text=text, sender_name=sender_name)


async def _run(db, session_factory, locks, event, llm, transport, sleep_func):
    return await process_inbound(
        event,
        db,
        session_factory,
        llm=llm,
        transport=transport,
        locks=locks,
        sleep_func=sleep_func,
        humanize=False,
    )


def _messages(db, direction):
    return db.query(Message).filter(Message.direction == direction).all()


class TestProcessInbound:
    @pytest.mark.asyncio
    async def test_happy_path(self, db, session_factory, locks, tenant, no_sleep):
        llm = FakeLLM([llm_reply("Olá, Ana!\n\nComo posso ajudar?")])
        transport = FakeTransport()

        result = await _run(db, session_factory, locks, _event(tenant.company_id), llm, transport, no_sleep)

        assert result.skipped is None
        assert result.reply == "Olá, Ana!\n\nComo posso ajudar?"
        assert result.chunks_sent == 2
        assert [text for _, text in transport.sent] == ["Olá, Ana!", "Como posso ajudar?"]

        incoming = _messages(db, "incoming")
        outgoing = _messages(db, "outgoing")
        assert [m.content for m in incoming] == ["Oi"]
        assert len(outgoing) == 1
        assert outgoing[0].content == "Olá, Ana!\n\nComo posso ajudar?"
        assert outgoing[0].delivery_status == "sent"

        conversation = db.query(Conversation).one()
        assert conversation.client_name == "Ana"
        assert conversation.phone == PHONE

    @pytest.mark.asyncio
    async def test_first_contact_prompt_excludes_current_message_from_history(
        self, db, session_factory, locks, tenant, no_sleep
    ):
        llm = FakeLLM([llm_reply("Olá!")])

        await _run(db, session_factory, locks, _event(tenant.company_id), llm, FakeTransport(), no_sleep)

        messages = llm.calls[0]["messages"]
        assert [m["role"] for m in messages] == ["system", "user"]
        assert "PRIMEIRO CONTATO" in messages[0]["content"]

    @pytest.mark.asyncio
    async def test_duplicate_delivery_is_idempotent(self, db, session_factory, locks, tenant, no_sleep):
        llm = FakeLLM([llm_reply("Olá!"), llm_reply("Olá de novo!")])
        transport = FakeTransport()

        first = await _run(db, session_factory, locks, _event(tenant.company_id), llm, transport, no_sleep)
        second = await _run(db, session_factory, locks, _event(tenant.company_id), llm, transport, no_sleep)

        assert first.skipped is None
        assert second.skipped == "duplicate"
        assert len(_messages(db, "incoming")) == 1
        assert len(llm.calls) == 1
        assert len(transport.sent) == 1

    @pytest.mark.asyncio
    async def test_agent_disabled_stores_nothing(self, db, session_factory, locks, no_sleep):
        tenant = create_tenant(db, enabled=False)
        llm = FakeLLM()

        result = await _run(db, session_factory, locks, _event(tenant.company_id), llm, FakeTransport(), no_sleep)

        assert result.skipped == "agent_disabled"
        assert db.query(Message).count() == 0
        assert llm.calls == []

    @pytest.mark.asyncio
    async def test_unknown_tenant_is_disabled(self, db, session_factory, locks, no_sleep):
        result = await _run(db, session_factory, locks, _event(uuid4()), FakeLLM(), FakeTransport(), no_sleep)

        assert result.skipped == "agent_disabled"

    @pytest.mark.asyncio
    async def test_handoff_is_terminal(self, db, session_factory, locks, tenant, no_sleep):
        llm = FakeLLM([llm_reply("", ("request_handoff", "{}"))])
        transport = FakeTransport()

        first = await _run(db, session_factory, locks, _event(tenant.company_id, "Quero falar com alguém"), llm, transport, no_sleep)
        second = await _run(db, session_factory, locks, _event(tenant.company_id, "Alô?"), llm, transport, no_sleep)

        assert first.reply == MSG_HANDOFF
        assert second.skipped == "handoff"
        assert second.conversation_id == first.conversation_id
        assert len(llm.calls) == 1
        assert [text for _, text in transport.sent] == [MSG_HANDOFF]
        assert [m.content for m in _messages(db, "incoming")] == ["Quero falar com alguém", "Alô?"]

    @pytest.mark.asyncio
    async def test_llm_failure_leaves_message_unanswered(self, db, session_factory, locks, tenant, no_sleep):
        llm = FakeLLM(error=LLMError("LLM API error: 500", status_code=500))
        transport = FakeTransport()

        with pytest.raises(LLMError):
            await _run(db, session_factory, locks, _event(tenant.company_id), llm, transport, no_sleep)

        assert len(_messages(db, "incoming")) == 1
        assert _messages(db, "outgoing") == []
        assert transport.sent == []
        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_empty_model_reply_is_skipped(self, db, session_factory, locks, tenant, no_sleep):
        llm = FakeLLM([llm_reply("")])
        transport = FakeTransport()

        result = await _run(db, session_factory, locks, _event(tenant.company_id), llm, transport, no_sleep)

        assert result.skipped == "empty_reply"
        assert _messages(db, "outgoing") == []
        assert transport.sent == []

    @pytest.mark.asyncio
    async def test_tool_turn_updates_appointment(self, db, session_factory, locks, tenant, no_sleep):
        appointment = create_appointment(
            db,
            tenant.company_id,
            day=local_today() + timedelta(days=2),
            start=time(10, 0),
            end=time(10, 45),
            phone=PHONE,
        )
        llm = FakeLLM([llm_reply("", ("confirm_appointment", json.dumps({"appointment_id": str(appointment.id)})))])

        result = await _run(
            db, session_factory, locks, _event(tenant.company_id, "Confirmo"), llm, FakeTransport(), no_sleep
        )

        db.refresh(appointment)
        assert appointment.status == "confirmed"
        assert result.reply == "Agendamento confirmado!"
        assert str(appointment.id) in llm.calls[0]["messages"][0]["content"]
        assert db.query(AgentActionLog).count() == 1

    @pytest.mark.asyncio
    async def test_complaint_flags_intent(self, db, session_factory, locks, tenant, no_sleep):
        llm = FakeLLM([llm_reply("Sinto muito pelo ocorrido.")])

        await _run(
            db,
            session_factory,
            locks,
            _event(tenant.company_id, "O produto veio com defeito, quero reembolso"),
            llm,
            FakeTransport(),
            no_sleep,
        )

        assert db.query(Conversation).one().current_intent == INTENT_COMPLAINT_PENDING

    @pytest.mark.asyncio
    async def test_transport_failure_marks_delivery_failed(self, db, session_factory, locks, tenant, no_sleep):
        llm = FakeLLM([llm_reply("Um.\n\nDois.")])

        result = await _run(
            db, session_factory, locks, _event(tenant.company_id), llm, FakeTransport(fail_after=1), no_sleep
        )

        assert result.chunks_sent == 1
        assert _messages(db, "outgoing")[0].delivery_status == "failed"

    @pytest.mark.asyncio
    async def test_second_turn_is_ongoing(self, db, session_factory, locks, tenant, no_sleep):
        llm = FakeLLM([llm_reply("Olá!"), llm_reply("Claro.")])
        transport = FakeTransport()

        await _run(db, session_factory, locks, _event(tenant.company_id, "Oi"), llm, transport, no_sleep)
        await _run(db, session_factory, locks, _event(tenant.company_id, "Tem horário amanhã?"), llm, transport, no_sleep)

        messages = llm.calls[1]["messages"]
        assert [m["role"] for m in messages] == ["system", "user", "assistant", "user"]
        assert "CONVERSA EM ANDAMENTO" in messages[0]["content"]
        assert "PRIMEIRO CONTATO" not in messages[0]["content"]
