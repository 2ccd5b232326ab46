"""Bounded context bundle for one agent turn.

Every fetch is an independent read, so each runs in a worker thread with its
own session and the whole bundle is gathered concurrently.
"""

import asyncio
import re
import time
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, List, Optional
from uuid import UUID
from zoneinfo import ZoneInfo

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from wa_agent.config import settings
from wa_agent.logging_config import LoggerAdapter, bind_logger
from wa_agent.models import Appointment, BusinessHours, Company, KnowledgeEntry, Message, Service
from wa_agent.services.availability_service import SchedulingSettings, get_scheduling_settings

MAX_HISTORY_MESSAGES = 20
MAX_UPCOMING_APPOINTMENTS = 10
UPCOMING_STATUSES = ("pending", "confirmed")

# Shortest digit suffix accepted when one side lacks the country/area code.
MIN_PHONE_SUFFIX = 8
PHONE_PUNCTUATION = ("+", " ", "-", "(", ")", ".")


@dataclass
class ConversationContext:
    today: date
    history: List[dict] = field(default_factory=list)
    appointments: List[dict] = field(default_factory=list)
    company: dict = field(default_factory=dict)
    services: List[dict] = field(default_factory=list)
    business_hours: List[dict] = field(default_factory=list)
    knowledge: List[dict] = field(default_factory=list)
    scheduling: SchedulingSettings = field(default_factory=SchedulingSettings)
    greeting_message: Optional[str] = None

    @property
    def is_first_contact(self) -> bool:
        return not self.history


def local_today(tz_name: Optional[str] = None) -> date:
    return datetime.now(ZoneInfo(tz_name or settings.local_timezone)).date()


def phone_digits(value: Optional[str]) -> str:
    return re.sub(r"\D", "", value or "")


def phones_match(stored: Optional[str], phone: str) -> bool:
    """Compare by digits, tolerating a missing country code on either side."""
    a, b = phone_digits(stored), phone_digits(phone)
    if not a or not b:
        return False
    if a == b:
        return True
    shorter, longer = (a, b) if len(a) < len(b) else (b, a)
    return len(shorter) >= MIN_PHONE_SUFFIX and longer.endswith(shorter)


def get_history(db: Session, conversation_id: UUID, exclude_message_id: Optional[UUID] = None) -> List[dict]:
    """Last messages of the conversation as chat turns, oldest first."""
    query = db.query(Message).filter(Message.conversation_id == conversation_id)
    if exclude_message_id is not None:
        query = query.filter(Message.id != exclude_message_id)
    messages = query.order_by(Message.created_at.desc()).limit(MAX_HISTORY_MESSAGES).all()

    history = []
    for msg in reversed(messages):
        if not msg.content:
            continue
        role = "assistant" if msg.direction == "outgoing" else "user"
        history.append({"role": role, "content": msg.content})
    return history


def _digits_only(column):
    """SQL expression stripping the usual phone punctuation from ``column``."""
    for char in PHONE_PUNCTUATION:
        column = func.replace(column, char, "")
    return column


def get_upcoming_appointments(db: Session, company_id: UUID, phone: str, today: date) -> List[dict]:
    digits = phone_digits(phone)
    if not digits:
        return []

    rows = (
        db.query(Appointment)
        .options(joinedload(Appointment.service), joinedload(Appointment.staff))
        .filter(
            Appointment.company_id == company_id,
            Appointment.status.in_(UPCOMING_STATUSES),
            Appointment.appointment_date >= today,
            _digits_only(Appointment.client_phone).like(f"%{digits[-MIN_PHONE_SUFFIX:]}"),
        )
        .order_by(Appointment.appointment_date.asc(), Appointment.start_time.asc())
        .all()
    )

    upcoming = []
    for appointment in rows:
        if not phones_match(appointment.client_phone, phone):
            continue
        upcoming.append(
            {
                "id": str(appointment.id),
                "date": appointment.appointment_date,
                "start_time": appointment.start_time,
                "end_time": appointment.end_time,
                "status": appointment.status,
                "service": appointment.service.name if appointment.service else None,
                "staff": appointment.staff.name if appointment.staff else None,
            }
        )
        if len(upcoming) >= MAX_UPCOMING_APPOINTMENTS:
            break
    return upcoming


def get_company_profile(db: Session, company_id: UUID) -> dict:
    company = db.query(Company).filter(Company.id == company_id).first()
    if not company:
        return {}
    return {"name": company.name, "address": company.address, "phone": company.phone}


def get_services(db: Session, company_id: UUID) -> List[dict]:
    rows = (
        db.query(Service)
        .filter(Service.company_id == company_id, Service.active.is_(True))
        .order_by(Service.name.asc())
        .all()
    )
    return [
        {
            "name": s.name,
            "description": s.description,
            "duration": s.duration,
            "price": float(s.price) if s.price is not None else None,
        }
        for s in rows
    ]


def get_business_hours(db: Session, company_id: UUID) -> List[dict]:
    rows = (
        db.query(BusinessHours)
        .filter(BusinessHours.company_id == company_id)
        .order_by(BusinessHours.day_of_week.asc())
        .all()
    )
    return [
        {
            "day_of_week": h.day_of_week,
            "open_time": h.open_time,
            "close_time": h.close_time,
            "is_open": bool(h.is_open),
        }
        for h in rows
    ]


def get_knowledge(db: Session, company_id: UUID) -> List[dict]:
    rows = (
        db.query(KnowledgeEntry)
        .filter(KnowledgeEntry.company_id == company_id, KnowledgeEntry.active.is_(True))
        .order_by(KnowledgeEntry.title.asc())
        .all()
    )
    return [{"title": k.title, "content": k.content, "category": k.category} for k in rows]


def _with_session(session_factory: Callable[[], Session], fetch: Callable[..., Any], *args: Any) -> Any:
    db = session_factory()
    try:
        return fetch(db, *args)
    finally:
        db.close()


async def _gather_one(
    name: str,
    session_factory: Callable[[], Session],
    fetch: Callable[..., Any],
    *args: Any,
    default: Any,
    log: LoggerAdapter,
) -> Any:
    try:
        return await asyncio.to_thread(_with_session, session_factory, fetch, *args)
    except Exception as exc:
        log.warning(f"Context fetch degraded: {name}: {exc}", context={"fetch": name})
        return default() if callable(default) else default


async def assemble_context(
    session_factory: Callable[[], Session],
    company_id: UUID,
    phone: str,
    conversation_id: UUID,
    *,
    exclude_message_id: Optional[UUID] = None,
    greeting_message: Optional[str] = None,
    today: Optional[date] = None,
    log: Optional[LoggerAdapter] = None,
) -> ConversationContext:
    """Load history, appointments and business data for one turn.

    History failures propagate; every other fetch falls back to its empty value.
    """
    log = log or bind_logger("context", {"company_id": str(company_id)})
    today = today or local_today()
    started = time.monotonic()

    history_task = asyncio.to_thread(_with_session, session_factory, get_history, conversation_id, exclude_message_id)
    (
        history,
        appointments,
        company,
        services,
        business_hours,
        knowledge,
        scheduling,
    ) = await asyncio.gather(
        history_task,
        _gather_one(
            "appointments",
            session_factory,
            get_upcoming_appointments,
            company_id,
            phone,
            today,
            default=list,
            log=log,
        ),
        _gather_one("company", session_factory, get_company_profile, company_id, default=dict, log=log),
        _gather_one("services", session_factory, get_services, company_id, default=list, log=log),
        _gather_one("business_hours", session_factory, get_business_hours, company_id, default=list, log=log),
        _gather_one("knowledge", session_factory, get_knowledge, company_id, default=list, log=log),
        _gather_one(
            "scheduling",
            session_factory,
            get_scheduling_settings,
            company_id,
            default=SchedulingSettings,
            log=log,
        ),
    )

    log.info(
        "Context assembled",
        context={
            "history": len(history),
            "appointments": len(appointments),
            "services": len(services),
            "knowledge": len(knowledge),
            "elapsed_ms": round((time.monotonic() - started) * 1000, 2),
        },
    )

    return ConversationContext(
        today=today,
        history=history,
        appointments=appointments,
        company=company,
        services=services,
        business_hours=business_hours,
        knowledge=knowledge,
        scheduling=scheduling,
        greeting_message=greeting_message,
    )
