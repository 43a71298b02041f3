"""Base LLM backend interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass
class LLMRequest:
    """Request to LLM backend."""
    prompt: str
    model: str
    max_tokens: int = 4096
    temperature: float = 0.2
    system_prompt: Optional[str] = None


@dataclass
class LLMResponse:
    """Response from LLM backend.

    ``success=False`` marks a transport/backend failure; an empty ``content``
    with ``success=True`` is a legitimate (if useless) completion.
    """
    content: str
    model_used: str
    input_tokens: int
    output_tokens: int
    finish_reason: str
    latency_ms: float
    success: bool = True
    error: Optional[str] = None
    total_tokens: Optional[int] = None

    @property
    def tokens_used(self) -> int:
        if self.total_tokens is not None:
            return self.total_tokens
        return self.input_tokens + self.output_tokens


class LLMBackend(ABC):
    """Abstract base class for LLM backends."""

    @abstractmethod
    async def complete(
        self,
        request: LLMRequest,
        task_id: Optional[str] = None,
    ) -> LLMResponse:
        """
        Send a completion request to the LLM.

        Args:
            request: The LLM request with prompt and model.
            task_id: Optional task identifier for per-task transcript logs.
        """
        pass
