import random
from datetime import date, datetime, time, timezone
from types import SimpleNamespace
from typing import List, Optional
from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import wa_agent.models  # noqa: F401  registers tables on Base.metadata
from wa_agent.database import Base
from wa_agent.errors import TransportError
from wa_agent.models import (
    AgentSettings,
    Appointment,
    BusinessHours,
    Company,
    CompanySettings,
    Service,
    WhatsAppSettings,
)
from wa_agent.services.conversation_service import ConversationLocks
from wa_agent.services.llm import LLMProvider, LLMResponse, ToolCallRequest


class FakeLLM(LLMProvider):
    """Scripted provider: returns queued responses, or raises ``error``."""

    def __init__(self, responses: Optional[List[LLMResponse]] = None, error: Optional[Exception] = None):
        self.responses = list(responses or [])
        self.error = error
        self.calls: List[dict] = []

    async def complete(self, messages, tools=None, model=None, temperature=None, max_tokens=None):
        self.calls.append({"messages": messages, "tools": tools, "temperature": temperature, "max_tokens": max_tokens})
        if self.error is not None:
            raise self.error
        if self.responses:
            return self.responses.pop(0)
        return LLMResponse(content="Claro, posso ajudar!", model="fake-model")


class FakeTransport:
    """Records sends; can fail text sends after ``fail_after`` chunks or fail every presence call."""

    def __init__(self, fail_after: Optional[int] = None, presence_error: Optional[Exception] = None):
        self.sent: List[tuple] = []
        self.presence: List[tuple] = []
        self.fail_after = fail_after
        self.presence_error = presence_error

    async def send_text(self, phone, text):
        if self.fail_after is not None and len(self.sent) >= self.fail_after:
            raise TransportError("gateway down", status_code=503)
        self.sent.append((phone, text))
        return {"status": "ok"}

    async def send_presence(self, phone, presence):
        if self.presence_error is not None:
            raise self.presence_error
        self.presence.append((phone, presence))
        return True


def llm_reply(content: str = "", *tool_calls: tuple) -> LLMResponse:
    """Build an ``LLMResponse``; each tool call is ``(name, arguments_json)``."""
    return LLMResponse(
        content=content,
        model="fake-model",
        tool_calls=[ToolCallRequest(name=name, arguments=arguments) for name, arguments in tool_calls],
    )


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def locks():
    return ConversationLocks()


@pytest.fixture
def rng():
    return random.Random(42)


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def no_sleep():
    delays: List[float] = []

    async def _sleep(seconds: float) -> None:
        delays.append(seconds)

    _sleep.delays = delays
    return _sleep


def create_tenant(db, *, name="Studio Bella", enabled=True, greeting=None, capacity=1, interval=30):
    """Company open Monday-Saturday 09:00-18:00, one 45 minute service, agent enabled."""
    company = Company(
        id=uuid4(),
        name=name,
        address="Rua das Flores, 100",
        phone="551130000000",
        created_at=datetime.now(timezone.utc),
    )
    db.add(company)
    db.add(CompanySettings(company_id=company.id, slot_interval=interval, max_capacity_per_slot=capacity))
    for day in range(7):
        db.add(
            BusinessHours(
                company_id=company.id,
                day_of_week=day,
                open_time=time(9, 0),
                close_time=time(18, 0),
                is_open=day != 0,
            )
        )
    service = Service(id=uuid4(), company_id=company.id, name="Corte", duration=45, price=80, active=True)
    db.add(service)
    db.add(AgentSettings(company_id=company.id, enabled=enabled, greeting_message=greeting))
    db.add(WhatsAppSettings(company_id=company.id, base_url="https://gw.example.com", token="tok", active=True))
    db.commit()
    return SimpleNamespace(company_id=company.id, service_id=service.id)


def create_appointment(
    db,
    company_id,
    *,
    day: date,
    start: time,
    end: time,
    phone="5511999990000",
    status="pending",
    service_id=None,
):
    appointment = Appointment(
        id=uuid4(),
        company_id=company_id,
        client_name="Maria",
        client_phone=phone,
        appointment_date=day,
        start_time=start,
        end_time=end,
        status=status,
        service_id=service_id,
        created_at=datetime.now(timezone.utc),
    )
    db.add(appointment)
    db.commit()
    return appointment


@pytest.fixture
def tenant(db):
    return create_tenant(db)
