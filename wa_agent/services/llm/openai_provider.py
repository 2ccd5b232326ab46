from typing import List, Optional

import httpx

from wa_agent.errors import LLMError
from wa_agent.logging_config import get_logger
from wa_agent.services.llm.base import LLMProvider, LLMResponse, ToolCallRequest

logger = get_logger("llm.openai")


def parse_completion(data: dict, model: str) -> LLMResponse:
    """Extract content and tool calls from an OpenAI-style chat completion body."""
    choices = data.get("choices") if isinstance(data, dict) else None
    if not choices:
        raise LLMError("LLM response has no choices")

    message = choices[0].get("message") or {}
    content = message.get("content") or ""

    tool_calls: List[ToolCallRequest] = []
    for raw_call in message.get("tool_calls") or []:
        function = raw_call.get("function") or {}
        name = function.get("name")
        if not name:
            continue
        arguments = function.get("arguments")
        if not isinstance(arguments, str):
            arguments = "{}" if arguments is None else str(arguments)
        tool_calls.append(ToolCallRequest(name=name, arguments=arguments, id=raw_call.get("id")))

    return LLMResponse(
        content=content.strip(),
        model=data.get("model", model),
        tool_calls=tool_calls,
        usage=data.get("usage"),
    )


class OpenAIProvider(LLMProvider):
    """Chat-completions provider (OpenAI or any compatible gateway)."""

    def __init__(
        self,
        api_key: Optional[str],
        default_model: str = "gpt-4o-mini",
        base_url: str = "https://api.openai.com/v1/chat/completions",
        timeout_seconds: float = 30.0,
        temperature: float = 0.4,
        max_tokens: int = 500,
    ):
        self.api_key = api_key
        self.default_model = default_model
        self.base_url = base_url
        self.timeout_seconds = timeout_seconds
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def complete(
        self,
        messages: List[dict],
        tools: Optional[List[dict]] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse:
        if not self.api_key:
            raise LLMError("LLM API key is not configured")

        model = model or self.default_model
        payload = {
            "model": model,
            "messages": messages,
            "temperature": self.temperature if temperature is None else temperature,
            "max_tokens": max_tokens or self.max_tokens,
        }
        if tools:
            payload["tools"] = tools

        logger.debug(f"LLM request: model={model}, messages_count={len(messages)}, tools={len(tools or [])}")

        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(
                    self.base_url,
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json=payload,
                )
        except httpx.HTTPError as exc:
            logger.error(f"LLM request failed: {exc}")
            raise LLMError(f"LLM request failed: {exc}") from exc

        if response.status_code != 200:
            logger.error(f"LLM error: {response.status_code} - {response.text[:300]}")
            raise LLMError(f"LLM API error: {response.status_code}", status_code=response.status_code)

        try:
            data = response.json()
        except ValueError as exc:
            raise LLMError("LLM response is not valid JSON") from exc

        result = parse_completion(data, model)
        logger.debug(
            f"LLM content: {result.content[:100] if result.content else 'EMPTY'}, tool_calls={len(result.tool_calls)}"
        )
        return result
