"""Complaint ticket extraction for conversations flagged ``complaint_pending``.

A conversation is processed once it has been quiet for a while, so the
ticket is built from the whole complaint rather than its first message.
"""

import json
import re
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from typing import List, Optional
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from wa_agent.config import settings
from wa_agent.errors import LLMError
from wa_agent.logging_config import get_logger
from wa_agent.models import ComplaintTicket, Conversation, Message
from wa_agent.schemas.complaint import PRIORITIES, PROBLEM_TYPES, ComplaintDetails
from wa_agent.services.alert_service import alert_warning
from wa_agent.services.context_service import phone_digits
from wa_agent.services.conversation_service import INTENT_COMPLAINT_PENDING, clear_intent
from wa_agent.services.llm import LLMProvider

logger = get_logger("complaint_service")

MAX_TRANSCRIPT_MESSAGES = 50
FALLBACK_MESSAGES = 3
FALLBACK_DESCRIPTION_CHARS = 500
EXTRACTION_MAX_TOKENS = 600

_CODE_FENCE = re.compile(r"```(?:json)?", re.IGNORECASE)
_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)

EXTRACTION_PROMPT = """Você é um analista de atendimento ao cliente. Analise o histórico COMPLETO de conversa abaixo e extraia as informações do problema relatado.

HISTÓRICO DA CONVERSA:
{transcript}

Extraia APENAS em JSON válido (sem markdown, sem explicação extra):
{{
  "client_name": "nome completo do cliente ou null",
  "location_name": "nome do condomínio, loja, local ou endereço mencionado ou null",
  "problem_type": "UMA opção: {problem_types}",
  "priority": "{priorities}",
  "description": "Descrição objetiva e completa do problema em 2-4 frases: o que aconteceu, quando, onde e impacto",
  "notes": "Detalhes adicionais úteis (número de pedido, produto, horário, tentativas anteriores) ou null"
}}

Responda SOMENTE com o JSON, sem nenhum texto antes ou depois."""


@dataclass
class SweepResult:
    processed: int = 0
    failed: int = 0
    total: int = 0


def _ensure_timezone(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _local_zone() -> ZoneInfo:
    return ZoneInfo(settings.local_timezone)


def get_transcript_messages(db: Session, conversation_id) -> List[Message]:
    return (
        db.query(Message)
        .filter(
            Message.conversation_id == conversation_id,
            Message.content.isnot(None),
            Message.content != "",
        )
        .order_by(Message.created_at.asc())
        .limit(MAX_TRANSCRIPT_MESSAGES)
        .all()
    )


def render_transcript(messages: List[Message], tz: Optional[ZoneInfo] = None) -> str:
    """``[dd/mm HH:MM] Cliente|Agente: text`` lines in local time."""
    tz = tz or _local_zone()
    lines = []
    for message in messages:
        content = (message.content or "").strip()
        if not content:
            continue
        role = "Cliente" if message.direction == "incoming" else "Agente"
        stamp = _ensure_timezone(message.created_at).astimezone(tz)
        lines.append(f"[{stamp:%d/%m %H:%M}] {role}: {content}")
    return "\n".join(lines)


def parse_extraction(raw: str) -> ComplaintDetails:
    """Parse the model's JSON answer, tolerating markdown fences and chatter around it."""
    cleaned = _CODE_FENCE.sub("", raw or "").strip()
    match = _JSON_OBJECT.search(cleaned)
    if not match:
        raise ValueError("No JSON object in extraction response")
    data = json.loads(match.group(0))
    if not isinstance(data, dict):
        raise ValueError("Extraction response is not an object")
    # Older prompts used condominium_name.
    if "location_name" not in data and "condominium_name" in data:
        data["location_name"] = data["condominium_name"]
    return ComplaintDetails.model_validate(data)


def fallback_details(messages: List[Message], client_name: Optional[str]) -> ComplaintDetails:
    incoming = [m.content.strip() for m in messages if m.direction == "incoming" and m.content]
    description = " | ".join(incoming[:FALLBACK_MESSAGES])[:FALLBACK_DESCRIPTION_CHARS]
    return ComplaintDetails(client_name=client_name, description=description)


async def extract_details(
    llm: Optional[LLMProvider], messages: List[Message], client_name: Optional[str]
) -> ComplaintDetails:
    if llm is None:
        logger.warning("No LLM provider, using fallback extraction")
        return fallback_details(messages, client_name)

    prompt = EXTRACTION_PROMPT.format(
        transcript=render_transcript(messages),
        problem_types=" | ".join(PROBLEM_TYPES),
        priorities=" | ".join(PRIORITIES),
    )
    try:
        response = await llm.complete(
            [{"role": "user", "content": prompt}],
            temperature=0,
            max_tokens=EXTRACTION_MAX_TOKENS,
        )
        details = parse_extraction(response.content)
    except (LLMError, ValueError) as exc:
        logger.warning(f"Complaint extraction failed, using fallback: {exc}")
        return fallback_details(messages, client_name)

    if not details.client_name and client_name:
        details.client_name = client_name
    return details


def _local_day_bounds(now: datetime) -> tuple[datetime, datetime]:
    """UTC bounds of the local calendar day containing ``now``."""
    tz = _local_zone()
    local_now = _ensure_timezone(now).astimezone(tz)
    start = datetime.combine(local_now.date(), time.min, tzinfo=tz)
    end = start + timedelta(days=1)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def upsert_ticket(
    db: Session,
    conversation: Conversation,
    details: ComplaintDetails,
    now: datetime,
) -> ComplaintTicket:
    """One ticket per (tenant, phone, local day): enrich today's ticket or open a new one."""
    phone = phone_digits(conversation.phone)
    day_start, day_end = _local_day_bounds(now)

    ticket = (
        db.query(ComplaintTicket)
        .filter(
            ComplaintTicket.company_id == conversation.company_id,
            ComplaintTicket.phone == phone,
            ComplaintTicket.created_at >= day_start,
            ComplaintTicket.created_at < day_end,
        )
        .order_by(ComplaintTicket.created_at.desc())
        .first()
    )

    client_name = details.client_name or conversation.client_name
    if ticket:
        ticket.client_name = client_name or ticket.client_name
        ticket.location_name = details.location_name or ticket.location_name
        ticket.problem_type = details.problem_type
        ticket.priority = details.priority
        ticket.description = details.description
        ticket.notes = details.notes or ticket.notes
        ticket.updated_at = now
    else:
        ticket = ComplaintTicket(
            company_id=conversation.company_id,
            phone=phone,
            client_name=client_name,
            location_name=details.location_name,
            problem_type=details.problem_type,
            priority=details.priority,
            description=details.description,
            notes=details.notes,
            status="aberto",
            created_at=now,
            updated_at=now,
        )
        db.add(ticket)
    db.flush()
    return ticket


def get_pending_conversations(db: Session, now: datetime) -> List[Conversation]:
    cutoff = now - timedelta(minutes=settings.complaint_inactivity_minutes)
    return (
        db.query(Conversation)
        .filter(
            Conversation.current_intent == INTENT_COMPLAINT_PENDING,
            Conversation.last_message_at < cutoff,
        )
        .order_by(Conversation.last_message_at.asc())
        .all()
    )


async def process_conversation(db: Session, llm: Optional[LLMProvider], conversation: Conversation, now: datetime) -> bool:
    """Build or enrich the ticket for one conversation. False when there was nothing to file."""
    messages = get_transcript_messages(db, conversation.id)
    if not messages:
        logger.warning(
            "No messages for pending complaint",
            extra={"context": {"conversation_id": str(conversation.id)}},
        )
        clear_intent(db, conversation.id)
        db.commit()
        return False

    details = await extract_details(llm, messages, conversation.client_name)
    ticket = upsert_ticket(db, conversation, details, now)
    clear_intent(db, conversation.id)
    db.commit()

    logger.info(
        "Complaint ticket saved",
        extra={
            "context": {
                "conversation_id": str(conversation.id),
                "ticket_id": str(ticket.id),
                "problem_type": ticket.problem_type,
                "priority": ticket.priority,
            }
        },
    )
    return True


async def process_pending_complaints(
    db: Session,
    llm: Optional[LLMProvider],
    now: Optional[datetime] = None,
) -> SweepResult:
    """Turn every quiet ``complaint_pending`` conversation into a complaint ticket."""
    now = _ensure_timezone(now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    conversations = get_pending_conversations(db, now)
    result = SweepResult(total=len(conversations))

    logger.info(f"Found {len(conversations)} conversations with pending complaints")

    for conversation in conversations:
        conversation_id = conversation.id
        try:
            if await process_conversation(db, llm, conversation, now):
                result.processed += 1
        except Exception as exc:
            db.rollback()
            result.failed += 1
            logger.error(
                f"Complaint processing failed: {exc}",
                extra={"context": {"conversation_id": str(conversation_id)}},
                exc_info=True,
            )
            clear_intent(db, conversation_id)
            db.commit()

    if result.failed:
        await alert_warning(
            "Complaint sweep had failures",
            {"processed": result.processed, "failed": result.failed, "total": result.total},
        )
    return result
