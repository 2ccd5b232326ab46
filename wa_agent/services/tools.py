"""Tool palette exposed to the LLM and the handlers that execute it.

Each tool is a pydantic model holding its validated arguments; the set is
closed. Every mutation is filtered by the tenant id as well as the row id, so
a hallucinated or injected foreign id affects nothing.
"""

import datetime as dt
import json
import re
from dataclasses import dataclass, field
from typing import Any, Callable, ClassVar, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator
from sqlalchemy.orm import Session

from wa_agent.errors import ToolArgumentError
from wa_agent.models import AgentActionLog, Appointment, Conversation
from wa_agent.services.availability_service import MAX_SURFACED_SLOTS, check_availability, has_capacity
from wa_agent.services.conversation_service import request_handoff

DEFAULT_SERVICE_DURATION = 30

MSG_CONFIRMED = "Agendamento confirmado!"
MSG_CANCELED = "Agendamento cancelado."
MSG_RESCHEDULED = "Remarcado para {date} {time}"
MSG_SLOTS = "Horários disponíveis em {date}: {slots}"
MSG_NO_SLOTS = "Não há horários disponíveis em {date}."
MSG_HANDOFF = "Transferindo para atendente!"
MSG_SLOT_TAKEN = "Esse horário não está mais disponível. Quer que eu veja outras opções?"
MSG_TOOL_FAILED = "Não consegui concluir essa ação agora. Pode tentar de novo?"

_BR_DATE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
_LOOSE_TIME = re.compile(r"^(\d{1,2})\s*[h:.]\s*(\d{2})?$", re.IGNORECASE)


def format_date(value: dt.date) -> str:
    return value.strftime("%d/%m/%Y")


def format_time(value: dt.time) -> str:
    return value.strftime("%H:%M")


def _coerce_date(value: Any) -> Any:
    if isinstance(value, str):
        match = _BR_DATE.match(value.strip())
        if match:
            day, month, year = (int(part) for part in match.groups())
            return dt.date(year, month, day)
        return value.strip()
    return value


def _coerce_time(value: Any) -> Any:
    if isinstance(value, str):
        text = value.strip()
        match = _LOOSE_TIME.match(text)
        if match:
            return dt.time(int(match.group(1)), int(match.group(2) or 0))
        return text
    return value


class _ToolArgs(BaseModel):
    model_config = ConfigDict(extra="ignore")

    tool_name: ClassVar[str]


class ConfirmAppointment(_ToolArgs):
    tool_name: ClassVar[str] = "confirm_appointment"
    appointment_id: UUID


class CancelAppointment(_ToolArgs):
    tool_name: ClassVar[str] = "cancel_appointment"
    appointment_id: UUID


class RescheduleAppointment(_ToolArgs):
    tool_name: ClassVar[str] = "reschedule_appointment"
    appointment_id: UUID
    new_date: dt.date
    new_time: dt.time

    @field_validator("new_date", mode="before")
    @classmethod
    def _parse_date(cls, value):
        return _coerce_date(value)

    @field_validator("new_time", mode="before")
    @classmethod
    def _parse_time(cls, value):
        return _coerce_time(value)


class CheckAvailability(_ToolArgs):
    tool_name: ClassVar[str] = "check_availability"
    date: dt.date

    @field_validator("date", mode="before")
    @classmethod
    def _parse_date(cls, value):
        return _coerce_date(value)


class RequestHandoff(_ToolArgs):
    tool_name: ClassVar[str] = "request_handoff"


@dataclass
class UnknownTool:
    name: str
    arguments: str


ToolCall = Union[
    ConfirmAppointment,
    CancelAppointment,
    RescheduleAppointment,
    CheckAvailability,
    RequestHandoff,
    UnknownTool,
]

TOOL_MODELS: dict[str, type[_ToolArgs]] = {
    model.tool_name: model
    for model in (ConfirmAppointment, CancelAppointment, RescheduleAppointment, CheckAvailability, RequestHandoff)
}


def _function(name: str, description: str, properties: dict, required: list[str]) -> dict:
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": {"type": "object", "properties": properties, "required": required},
        },
    }


_APPOINTMENT_ID = {"type": "string", "description": "ID do agendamento (da lista de agendamentos do cliente)"}

TOOL_DEFINITIONS: list[dict] = [
    _function(
        "confirm_appointment",
        "Confirma um agendamento do cliente.",
        {"appointment_id": _APPOINTMENT_ID},
        ["appointment_id"],
    ),
    _function(
        "cancel_appointment",
        "Cancela um agendamento do cliente.",
        {"appointment_id": _APPOINTMENT_ID},
        ["appointment_id"],
    ),
    _function(
        "reschedule_appointment",
        "Remarca um agendamento do cliente para nova data e horário.",
        {
            "appointment_id": _APPOINTMENT_ID,
            "new_date": {"type": "string", "description": "Nova data no formato YYYY-MM-DD"},
            "new_time": {"type": "string", "description": "Novo horário no formato HH:MM"},
        },
        ["appointment_id", "new_date", "new_time"],
    ),
    _function(
        "check_availability",
        "Consulta horários livres em uma data.",
        {"date": {"type": "string", "description": "Data no formato YYYY-MM-DD"}},
        ["date"],
    ),
    _function(
        "request_handoff",
        "Transfere a conversa para um atendente humano.",
        {},
        [],
    ),
]


def decode_tool_call(name: str, arguments: str | dict | None) -> ToolCall:
    """Decode a model tool call into its typed variant.

    Unknown names become ``UnknownTool``; malformed arguments raise ``ToolArgumentError``.
    """
    model = TOOL_MODELS.get(name)
    if model is None:
        raw = arguments if isinstance(arguments, str) else json.dumps(arguments or {}, default=str)
        return UnknownTool(name=name, arguments=raw)

    if isinstance(arguments, dict):
        payload = arguments
    else:
        text = (arguments or "").strip() or "{}"
        try:
            payload = json.loads(text)
        except ValueError as exc:
            raise ToolArgumentError(name, f"arguments are not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise ToolArgumentError(name, "arguments must be a JSON object")

    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise ToolArgumentError(name, str(exc.errors(include_url=False))) from exc


@dataclass
class ToolOutcome:
    ok: bool
    reply: str
    details: dict = field(default_factory=dict)


def _update_status(db: Session, company_id: UUID, appointment_id: UUID, status: str) -> int:
    return (
        db.query(Appointment)
        .filter(Appointment.id == appointment_id, Appointment.company_id == company_id)
        .update(
            {"status": status, "updated_at": dt.datetime.now(dt.timezone.utc)},
            synchronize_session=False,
        )
    )


def _confirm(db: Session, call: ConfirmAppointment, company_id: UUID, conversation: Conversation) -> ToolOutcome:
    rows = _update_status(db, company_id, call.appointment_id, "confirmed")
    if not rows:
        return ToolOutcome(False, MSG_TOOL_FAILED, {"rows_affected": 0, "error": "not_found"})
    return ToolOutcome(True, MSG_CONFIRMED, {"rows_affected": rows})


def _cancel(db: Session, call: CancelAppointment, company_id: UUID, conversation: Conversation) -> ToolOutcome:
    rows = _update_status(db, company_id, call.appointment_id, "canceled")
    if not rows:
        return ToolOutcome(False, MSG_TOOL_FAILED, {"rows_affected": 0, "error": "not_found"})
    return ToolOutcome(True, MSG_CANCELED, {"rows_affected": rows})


def _reschedule(
    db: Session, call: RescheduleAppointment, company_id: UUID, conversation: Conversation
) -> ToolOutcome:
    appointment = (
        db.query(Appointment)
        .filter(Appointment.id == call.appointment_id, Appointment.company_id == company_id)
        .first()
    )
    if not appointment:
        return ToolOutcome(False, MSG_TOOL_FAILED, {"rows_affected": 0, "error": "not_found"})

    duration = DEFAULT_SERVICE_DURATION
    if appointment.service is not None and appointment.service.duration:
        duration = appointment.service.duration
    start_at = dt.datetime.combine(call.new_date, call.new_time.replace(second=0, microsecond=0))
    end_at = start_at + dt.timedelta(minutes=duration)
    # Appointments live within a single day; an end past midnight would wrap below the start.
    if end_at.date() != call.new_date:
        return ToolOutcome(False, MSG_SLOT_TAKEN, {"rows_affected": 0, "error": "crosses_midnight"})
    new_start = start_at.time()
    new_end = end_at.time()

    if not has_capacity(db, company_id, call.new_date, new_start, new_end, exclude_appointment_id=appointment.id):
        return ToolOutcome(False, MSG_SLOT_TAKEN, {"rows_affected": 0, "error": "slot_full"})

    appointment.appointment_date = call.new_date
    appointment.start_time = new_start
    appointment.end_time = new_end
    appointment.status = "pending"
    appointment.updated_at = dt.datetime.now(dt.timezone.utc)
    db.flush()

    return ToolOutcome(
        True,
        MSG_RESCHEDULED.format(date=format_date(call.new_date), time=format_time(new_start)),
        {"rows_affected": 1, "end_time": format_time(new_end), "duration": duration},
    )


def _check_availability(
    db: Session, call: CheckAvailability, company_id: UUID, conversation: Conversation
) -> ToolOutcome:
    slots = check_availability(db, company_id, call.date)
    shown = slots[:MAX_SURFACED_SLOTS]
    if not shown:
        return ToolOutcome(True, MSG_NO_SLOTS.format(date=format_date(call.date)), {"slots": []})
    reply = MSG_SLOTS.format(date=format_date(call.date), slots=", ".join(shown))
    return ToolOutcome(True, reply, {"slots": shown, "total_free": len(slots)})


def _handoff(db: Session, call: RequestHandoff, company_id: UUID, conversation: Conversation) -> ToolOutcome:
    request_handoff(db, conversation)
    return ToolOutcome(True, MSG_HANDOFF, {"status": conversation.status})


TOOL_HANDLERS: dict[type, Callable[..., ToolOutcome]] = {
    ConfirmAppointment: _confirm,
    CancelAppointment: _cancel,
    RescheduleAppointment: _reschedule,
    CheckAvailability: _check_availability,
    RequestHandoff: _handoff,
}


def execute_tool(db: Session, call: ToolCall, *, company_id: UUID, conversation: Conversation) -> ToolOutcome:
    handler = TOOL_HANDLERS.get(type(call))
    if handler is None:
        return ToolOutcome(False, MSG_TOOL_FAILED, {"error": "unknown_tool"})
    return handler(db, call, company_id, conversation)


def tool_arguments(call: ToolCall) -> dict:
    if isinstance(call, UnknownTool):
        return {"raw_arguments": call.arguments}
    return call.model_dump(mode="json")


def log_agent_action(
    db: Session,
    *,
    company_id: UUID,
    conversation_id: UUID | None,
    action: str,
    details: dict,
) -> AgentActionLog:
    entry = AgentActionLog(
        company_id=company_id,
        conversation_id=conversation_id,
        action=action,
        details=details,
        created_at=dt.datetime.now(dt.timezone.utc),
    )
    db.add(entry)
    db.flush()
    return entry
