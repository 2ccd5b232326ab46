from typing import List, Optional

from wa_agent.services.availability_service import day_of_week
from wa_agent.services.context_service import ConversationContext

DAY_NAMES = ("Domingo", "Segunda-feira", "Terça-feira", "Quarta-feira", "Quinta-feira", "Sexta-feira", "Sábado")

STATUS_LABELS = {"pending": "pendente", "confirmed": "confirmado"}

PERSONA_TEMPLATE = """Você é a assistente virtual de {company_name} no WhatsApp.
Você atende clientes de forma simpática, objetiva e natural, como uma pessoa da equipe.
Você pode confirmar, cancelar e remarcar agendamentos, consultar horários livres e transferir para um atendente humano."""

FORMAT_RULES = """REGRAS DE FORMATO:
- Responda em no máximo 2 a 3 frases curtas.
- Não use markdown (nada de asteriscos, listas numeradas, títulos ou links formatados).
- Use emoji com moderação, no máximo um por resposta.
- Cada parágrafo separado por linha em branco vira uma mensagem separada.
- Nunca invente horários, preços ou serviços que não estejam nos dados abaixo."""

FIRST_CONTACT_RULE = """PRIMEIRO CONTATO:
Esta é a primeira mensagem do cliente nesta conversa. Comece com uma saudação breve e calorosa antes de responder."""

GREETING_HINT = "Saudação sugerida pela empresa: {greeting}"

ONGOING_RULE = """CONVERSA EM ANDAMENTO:
Já existe histórico com este cliente. Não cumprimente de novo e não se apresente outra vez.
Não peça informações que o cliente já forneceu no histórico; continue exatamente de onde a conversa parou."""

TOOL_RULES = """AÇÕES:
- Use as ferramentas somente com os IDs de agendamento listados abaixo.
- Para remarcar, verifique a disponibilidade antes quando o cliente não tiver escolhido um horário livre.
- Se o cliente pedir para falar com uma pessoa ou estiver muito insatisfeito, use request_handoff."""


def _format_money(value: Optional[float]) -> str:
    if value is None:
        return "sob consulta"
    return f"R$ {value:.2f}".replace(".", ",")


def _business_block(context: ConversationContext) -> str:
    company = context.company
    lines = ["DADOS DA EMPRESA:"]
    lines.append(f"Nome: {company.get('name') or 'não informado'}")
    if company.get("address"):
        lines.append(f"Endereço: {company['address']}")
    if company.get("phone"):
        lines.append(f"Telefone: {company['phone']}")

    if context.services:
        lines.append("")
        lines.append("Serviços:")
        for service in context.services:
            line = f"- {service['name']} ({service['duration']} min, {_format_money(service['price'])})"
            if service.get("description"):
                line += f": {service['description']}"
            lines.append(line)

    if context.business_hours:
        lines.append("")
        lines.append("Horário de funcionamento:")
        for hours in context.business_hours:
            day = DAY_NAMES[hours["day_of_week"] % 7]
            if hours["is_open"]:
                lines.append(f"- {day}: {hours['open_time']:%H:%M} às {hours['close_time']:%H:%M}")
            else:
                lines.append(f"- {day}: fechado")

    lines.append("")
    lines.append(
        f"Agenda: intervalos de {context.scheduling.slot_interval} min, "
        f"até {context.scheduling.max_capacity_per_slot} atendimento(s) por horário."
    )

    if context.knowledge:
        lines.append("")
        lines.append("Base de conhecimento:")
        for entry in context.knowledge:
            lines.append(f"- {entry['title']}: {entry['content']}")

    return "\n".join(lines)


def _appointments_block(context: ConversationContext, customer_phone: str) -> str:
    lines = [f"AGENDAMENTOS DO CLIENTE ({customer_phone}):"]
    if not context.appointments:
        lines.append("Nenhum agendamento futuro.")
        return "\n".join(lines)

    for appointment in context.appointments:
        details = [f"{appointment['date']:%d/%m/%Y} às {appointment['start_time']:%H:%M}"]
        if appointment.get("service"):
            details.append(appointment["service"])
        if appointment.get("staff"):
            details.append(f"com {appointment['staff']}")
        details.append(STATUS_LABELS.get(appointment["status"], appointment["status"]))
        lines.append(f"- ID {appointment['id']}: {', '.join(details)}")
    return "\n".join(lines)


def build_system_prompt(context: ConversationContext, customer_phone: str) -> str:
    company_name = context.company.get("name") or "nossa empresa"
    sections = [PERSONA_TEMPLATE.format(company_name=company_name), FORMAT_RULES]

    if context.is_first_contact:
        rule = FIRST_CONTACT_RULE
        if context.greeting_message:
            rule += "\n" + GREETING_HINT.format(greeting=context.greeting_message)
        sections.append(rule)
    else:
        sections.append(ONGOING_RULE)

    sections.append(TOOL_RULES)
    sections.append(_business_block(context))
    sections.append(_appointments_block(context, customer_phone))
    today = context.today
    sections.append(f"Hoje é {DAY_NAMES[day_of_week(today)]}, {today:%d/%m/%Y} ({today.isoformat()}).")
    return "\n\n".join(sections)


def build_messages(context: ConversationContext, user_text: str, customer_phone: str) -> List[dict]:
    """System prompt, then the bounded history, then the new message."""
    messages = [{"role": "system", "content": build_system_prompt(context, customer_phone)}]
    messages.extend({"role": turn["role"], "content": turn["content"]} for turn in context.history)
    messages.append({"role": "user", "content": user_text})
    return messages
