from datetime import date, time

from wa_agent.services.context_service import ConversationContext
from wa_agent.services.prompt_builder import (
    FIRST_CONTACT_RULE,
    ONGOING_RULE,
    build_messages,
    build_system_prompt,
)

TODAY = date(2026, 10, 19)


def _context(**overrides) -> ConversationContext:
    values = dict(
        today=TODAY,
        company={"name": "Studio Bella", "address": "Rua das Flores, 100", "phone": "551130000000"},
        services=[{"name": "Corte", "description": None, "duration": 45, "price": 80.0}],
        business_hours=[
            {"day_of_week": 0, "open_time": time(9, 0), "close_time": time(12, 0), "is_open": False},
            {"day_of_week": 1, "open_time": time(9, 0), "close_time": time(18, 0), "is_open": True},
        ],
        appointments=[
            {
                "id": "0b8c3f5e-0000-4000-8000-000000000001",
                "date": date(2026, 10, 20),
                "start_time": time(14, 0),
                "end_time": time(14, 45),
                "status": "pending",
                "service": "Corte",
                "staff": "Carla",
            }
        ],
    )
    values.update(overrides)
    return ConversationContext(**values)


class TestAntiRepetition:
    def test_first_contact_asks_for_greeting(self):
        prompt = build_system_prompt(_context(), "5511999990000")

        assert FIRST_CONTACT_RULE in prompt
        assert ONGOING_RULE not in prompt

    def test_ongoing_conversation_forbids_greeting(self):
        context = _context(history=[{"role": "user", "content": "Oi"}, {"role": "assistant", "content": "Olá!"}])

        prompt = build_system_prompt(context, "5511999990000")

        assert ONGOING_RULE in prompt
        assert FIRST_CONTACT_RULE not in prompt
        assert "saudação breve" not in prompt

    def test_tenant_greeting_only_on_first_contact(self):
        greeting = "Bem-vinda ao Studio Bella!"

        first = build_system_prompt(_context(greeting_message=greeting), "5511999990000")
        ongoing = build_system_prompt(
            _context(greeting_message=greeting, history=[{"role": "user", "content": "Oi"}]), "5511999990000"
        )

        assert greeting in first
        assert greeting not in ongoing


class TestSystemPromptContent:
    def test_business_data_and_appointments(self):
        prompt = build_system_prompt(_context(), "5511999990000")

        assert "Studio Bella" in prompt
        assert "Corte (45 min, R$ 80,00)" in prompt
        assert "Domingo: fechado" in prompt
        assert "Segunda-feira: 09:00 às 18:00" in prompt
        assert "ID 0b8c3f5e-0000-4000-8000-000000000001: 20/10/2026 às 14:00, Corte, com Carla, pendente" in prompt
        assert "Hoje é Segunda-feira, 19/10/2026 (2026-10-19)." in prompt

    def test_missing_company_profile(self):
        prompt = build_system_prompt(_context(company={}, appointments=[]), "5511999990000")

        assert "nossa empresa" in prompt
        assert "Nenhum agendamento futuro." in prompt


class TestBuildMessages:
    def test_history_then_new_message(self):
        history = [{"role": "user", "content": "Oi"}, {"role": "assistant", "content": "Olá! Como posso ajudar?"}]

        messages = build_messages(_context(history=history), "Quero remarcar", "5511999990000")

        assert messages[0]["role"] == "system"
        assert messages[1:3] == history
        assert messages[-1] == {"role": "user", "content": "Quero remarcar"}
