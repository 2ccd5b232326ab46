"""Single inbound pipeline shared by every webhook entry point.

agent enabled -> lock(tenant, phone) -> find-or-create -> dedup -> store
incoming -> handoff check -> context -> orchestrator -> store outgoing ->
dispatch.
"""

import asyncio
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from wa_agent.config import settings
from wa_agent.logging_config import bind_logger
from wa_agent.models import AgentSettings
from wa_agent.schemas.webhook import InboundEvent
from wa_agent.services.agent_service import get_llm_provider, run_agent_turn
from wa_agent.services.context_service import assemble_context
from wa_agent.services.conversation_service import (
    INTENT_COMPLAINT_PENDING,
    ConversationLocks,
    conversation_locks,
    find_or_create_active,
    is_handoff_active,
    mark_intent,
    save_message,
    touch_activity,
)
from wa_agent.services.dedup_service import is_duplicate_incoming
from wa_agent.services.humanizer import Transport, dispatch_reply
from wa_agent.services.intent_service import is_complaint_message
from wa_agent.services.llm import LLMProvider
from wa_agent.services.transport_service import get_transport


@dataclass
class PipelineResult:
    skipped: Optional[str] = None
    conversation_id: Optional[UUID] = None
    reply: Optional[str] = None
    chunks_sent: int = 0


def get_agent_settings(db: Session, company_id: UUID) -> Optional[AgentSettings]:
    return db.query(AgentSettings).filter(AgentSettings.company_id == company_id).first()


async def process_inbound(
    event: InboundEvent,
    db: Session,
    session_factory: Callable[[], Session],
    *,
    llm: Optional[LLMProvider] = None,
    transport: Optional[Transport] = None,
    locks: ConversationLocks = conversation_locks,
    sleep_func: Callable[[float], Awaitable[None]] = asyncio.sleep,
    rng: Optional[random.Random] = None,
    humanize: Optional[bool] = None,
) -> PipelineResult:
    """Handle one normalized inbound message end to end.

    Filtered outcomes come back as ``PipelineResult(skipped=...)``. ``LLMError``
    and database errors propagate; in that case no outgoing row is written and
    nothing is sent.
    """
    log = bind_logger("pipeline", {"company_id": str(event.company_id), "phone": event.phone})

    agent_settings = get_agent_settings(db, event.company_id)
    if not agent_settings or not agent_settings.enabled:
        log.info("Agent disabled for company")
        return PipelineResult(skipped="agent_disabled")

    async with locks.hold(event.company_id, event.phone):
        conversation = find_or_create_active(db, event.company_id, event.phone, event.sender_name)
        conversation_id = conversation.id
        log = log.bind(conversation_id=str(conversation_id))

        if is_duplicate_incoming(db, conversation_id, event.text):
            db.commit()
            return PipelineResult(skipped="duplicate", conversation_id=conversation_id)

        incoming = save_message(db, conversation, "incoming", event.text)
        touch_activity(db, conversation)
        if is_complaint_message(event.text):
            mark_intent(db, conversation, INTENT_COMPLAINT_PENDING)
            log.info("Complaint intent flagged")
        db.commit()

        if is_handoff_active(conversation):
            log.info("Handoff active, agent stays silent")
            return PipelineResult(skipped="handoff", conversation_id=conversation_id)

        context = await assemble_context(
            session_factory,
            event.company_id,
            event.phone,
            conversation_id,
            exclude_message_id=incoming.id,
            greeting_message=agent_settings.greeting_message,
            log=log,
        )

        llm = llm or get_llm_provider(agent_settings.openai_api_key)
        turn = await run_agent_turn(db, llm, context, conversation, event.text, log=log)
        if not turn.reply:
            log.warning("Model returned neither text nor tool calls")
            return PipelineResult(skipped="empty_reply", conversation_id=conversation_id)

        outgoing = save_message(db, conversation, "outgoing", turn.reply, delivery_status="pending")
        touch_activity(db, conversation)
        db.commit()

        transport = transport or get_transport(db, event.company_id)
        if transport is None:
            log.warning("No active WhatsApp connection, reply not delivered")
            outgoing.delivery_status = "failed"
            db.commit()
            return PipelineResult(conversation_id=conversation_id, reply=turn.reply, chunks_sent=0)

        humanize = settings.humanize_replies if humanize is None else humanize
        dispatch = await dispatch_reply(
            transport,
            event.phone,
            turn.reply,
            sleep_func=sleep_func,
            rng=rng,
            humanize=humanize,
            log=log,
        )
        outgoing.delivery_status = "sent" if dispatch.complete else "failed"
        db.commit()

        return PipelineResult(conversation_id=conversation_id, reply=turn.reply, chunks_sent=dispatch.sent)
