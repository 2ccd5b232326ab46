from wa_agent.services.llm.base import LLMProvider, LLMResponse, ToolCallRequest
from wa_agent.services.llm.openai_provider import OpenAIProvider

__all__ = ["LLMProvider", "LLMResponse", "ToolCallRequest", "OpenAIProvider"]
