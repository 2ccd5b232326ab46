from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class ToolCallRequest:
    name: str
    arguments: str  # raw JSON string as produced by the model
    id: Optional[str] = None


@dataclass
class LLMResponse:
    content: str
    model: str
    tool_calls: List[ToolCallRequest] = field(default_factory=list)
    usage: Optional[dict] = None


class LLMProvider(ABC):
    """Abstract base class for chat-completion providers."""

    @abstractmethod
    async def complete(
        self,
        messages: List[dict],
        tools: Optional[List[dict]] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> LLMResponse:
        """Run one chat completion. Raises LLMError on any failure."""
        pass
