"""One agent turn: prompt, a single LLM call, at most one round of tools, reply."""

import time
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from wa_agent.config import settings
from wa_agent.errors import ToolArgumentError
from wa_agent.logging_config import LoggerAdapter, bind_logger
from wa_agent.models import Conversation
from wa_agent.services.context_service import ConversationContext
from wa_agent.services.llm import LLMProvider, OpenAIProvider, ToolCallRequest
from wa_agent.services.prompt_builder import build_messages
from wa_agent.services.tools import (
    MSG_TOOL_FAILED,
    TOOL_DEFINITIONS,
    ToolOutcome,
    UnknownTool,
    decode_tool_call,
    execute_tool,
    log_agent_action,
    tool_arguments,
)

_llm_provider: Optional[OpenAIProvider] = None


def _build_provider(api_key: Optional[str]) -> OpenAIProvider:
    return OpenAIProvider(
        api_key=api_key,
        default_model=settings.llm_model,
        base_url=settings.llm_base_url,
        timeout_seconds=settings.llm_timeout_seconds,
        temperature=settings.llm_temperature,
        max_tokens=settings.llm_max_tokens,
    )


def get_llm_provider(api_key: Optional[str] = None) -> OpenAIProvider:
    """Get or create LLM provider instance. A tenant key gets its own provider."""
    global _llm_provider
    if api_key and api_key != settings.llm_api_key:
        return _build_provider(api_key)
    if _llm_provider is None:
        _llm_provider = _build_provider(settings.llm_api_key)
    return _llm_provider


@dataclass
class AgentTurnResult:
    reply: str
    model: Optional[str] = None
    outcomes: List[ToolOutcome] = field(default_factory=list)

    @property
    def used_tools(self) -> bool:
        return bool(self.outcomes)


def _run_tool_call(
    db: Session,
    request: ToolCallRequest,
    conversation: Conversation,
    log: LoggerAdapter,
) -> ToolOutcome:
    """Decode, execute and audit one tool call. Failures become a failed outcome."""
    company_id = conversation.company_id
    conversation_id = conversation.id
    arguments: dict = {"raw_arguments": request.arguments}

    try:
        call = decode_tool_call(request.name, request.arguments)
        arguments = tool_arguments(call)
        if isinstance(call, UnknownTool):
            log.warning("Unknown tool requested", context={"tool": request.name})
        outcome = execute_tool(db, call, company_id=company_id, conversation=conversation)
        db.commit()
    except ToolArgumentError as exc:
        log.warning(f"Invalid tool arguments: {exc.message}", context={"tool": request.name})
        outcome = ToolOutcome(False, MSG_TOOL_FAILED, {"error": "invalid_arguments", "message": exc.message})
    except SQLAlchemyError as exc:
        db.rollback()
        log.error(f"Tool execution failed: {exc}", context={"tool": request.name})
        outcome = ToolOutcome(False, MSG_TOOL_FAILED, {"error": "database_error"})
    except Exception as exc:
        db.rollback()
        log.error(f"Tool handler crashed: {exc}", context={"tool": request.name}, exc_info=True)
        outcome = ToolOutcome(False, MSG_TOOL_FAILED, {"error": "tool_error", "message": str(exc)[:200]})

    log_agent_action(
        db,
        company_id=company_id,
        conversation_id=conversation_id,
        action=request.name,
        details={"arguments": arguments, "ok": outcome.ok, **outcome.details},
    )
    db.commit()

    log.info(
        "Tool executed",
        context={"tool": request.name, "ok": outcome.ok, "details": outcome.details},
    )
    return outcome


def resolve_reply(content: str, outcomes: List[ToolOutcome]) -> str:
    """Model text wins; otherwise the tools' fallback sentences, one paragraph each."""
    if content and content.strip():
        return content.strip()
    return "\n\n".join(outcome.reply for outcome in outcomes if outcome.reply)


async def run_agent_turn(
    db: Session,
    llm: LLMProvider,
    context: ConversationContext,
    conversation: Conversation,
    user_text: str,
    *,
    log: Optional[LoggerAdapter] = None,
) -> AgentTurnResult:
    """Run one turn for ``user_text``. ``LLMError`` propagates untouched."""
    log = log or bind_logger("agent", {"conversation_id": str(conversation.id)})
    messages = build_messages(context, user_text, conversation.phone)

    started = time.monotonic()
    response = await llm.complete(messages, tools=TOOL_DEFINITIONS)
    log.info(
        "LLM responded",
        context={
            "model": response.model,
            "tool_calls": [call.name for call in response.tool_calls],
            "has_content": bool(response.content),
            "elapsed_ms": round((time.monotonic() - started) * 1000, 2),
        },
    )

    outcomes = [_run_tool_call(db, request, conversation, log) for request in response.tool_calls]
    return AgentTurnResult(
        reply=resolve_reply(response.content, outcomes),
        model=response.model,
        outcomes=outcomes,
    )
