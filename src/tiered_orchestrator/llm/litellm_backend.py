"""LiteLLM backend for the tier models.

fast-coder, deep-coder and reviewer are served by a LiteLLM proxy that speaks
the OpenAI chat API, so every call is ``litellm.acompletion`` against
``api_base`` with the "openai" provider.
"""

import asyncio
import logging
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, TextIO

import litellm

from .base import LLMBackend, LLMRequest, LLMResponse

logger = logging.getLogger(__name__)


def _build_messages(request: LLMRequest) -> List[Dict[str, str]]:
    messages = []
    if request.system_prompt:
        messages.append({"role": "system", "content": request.system_prompt})
    messages.append({"role": "user", "content": request.prompt})
    return messages


def _to_response(raw: Any, model: str, latency_ms: float) -> LLMResponse:
    """Map a litellm ModelResponse onto LLMResponse."""
    choice = raw.choices[0] if raw.choices else None
    usage = getattr(raw, "usage", None)
    return LLMResponse(
        content=(choice.message.content if choice else None) or "",
        model_used=model,
        input_tokens=(usage.prompt_tokens or 0) if usage else 0,
        output_tokens=(usage.completion_tokens or 0) if usage else 0,
        total_tokens=(usage.total_tokens or 0) if usage else None,
        finish_reason=(choice.finish_reason if choice else None) or "stop",
        latency_ms=latency_ms,
    )


def _failure(model: str, error: str, latency_ms: float) -> LLMResponse:
    return LLMResponse(
        content="",
        model_used=model,
        input_tokens=0,
        output_tokens=0,
        finish_reason="error",
        latency_ms=latency_ms,
        success=False,
        error=error,
    )


class _Transcript:
    """Per-task request/response log at logs/litellm-<task_id>.log."""

    def __init__(self, logs_dir: Optional[Path], task_id: Optional[str]):
        self._file: Optional[TextIO] = None
        if logs_dir and task_id:
            logs_dir.mkdir(parents=True, exist_ok=True)
            self._file = open(logs_dir / f"litellm-{task_id}.log", "a")

    def write(self, text: str) -> None:
        if self._file:
            self._file.write(text)
            self._file.flush()

    def close(self) -> None:
        if self._file:
            self._file.close()
            self._file = None


class LiteLLMBackend(LLMBackend):
    """Chat completions through litellm.

    Never raises for transport problems: timeouts, connection errors and
    non-2xx replies come back as ``LLMResponse(success=False)``.
    """

    def __init__(
        self,
        api_base: str,
        api_key: Optional[str] = None,
        provider: str = "openai",
        logs_dir: Optional[Path] = None,
        timeout: int = 300,
    ):
        self.api_base = api_base
        self.api_key = api_key
        self.provider = provider
        self.logs_dir = logs_dir
        self.timeout = timeout

    @classmethod
    def from_config(cls, llm_config, logs_dir: Optional[Path] = None) -> "LiteLLMBackend":
        return cls(
            api_base=llm_config.api_base,
            api_key=llm_config.api_key,
            provider=llm_config.provider,
            logs_dir=logs_dir,
            timeout=llm_config.timeout,
        )

    def _completion_kwargs(self, request: LLMRequest) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "model": request.model,
            "messages": _build_messages(request),
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
            "api_base": self.api_base,
            "custom_llm_provider": self.provider,
        }
        if self.api_key:
            kwargs["api_key"] = self.api_key
        return kwargs

    async def complete(
        self,
        request: LLMRequest,
        task_id: Optional[str] = None,
    ) -> LLMResponse:
        start = time.monotonic()
        transcript = _Transcript(self.logs_dir, task_id)
        transcript.write(f"=== {request.model} @ {time.strftime('%Y-%m-%d %H:%M:%S')} ===\n")

        try:
            raw = await asyncio.wait_for(
                litellm.acompletion(**self._completion_kwargs(request)),
                timeout=self.timeout,
            )
            response = _to_response(raw, request.model, (time.monotonic() - start) * 1000)
            transcript.write(
                f"{response.content}\n--- {response.latency_ms / 1000:.1f}s, "
                f"{response.input_tokens} in / {response.output_tokens} out\n\n"
            )
            return response

        except asyncio.TimeoutError:
            transcript.write(f"TIMEOUT after {self.timeout}s\n\n")
            return _failure(
                request.model,
                f"LiteLLM call timed out after {self.timeout} seconds",
                (time.monotonic() - start) * 1000,
            )

        except Exception as e:
            # litellm raises its own hierarchy (APIConnectionError, RateLimitError, ...)
            logger.error(f"LiteLLM call to {request.model} failed: {e}")
            transcript.write(f"ERROR: {e}\n\n")
            return _failure(request.model, str(e), (time.monotonic() - start) * 1000)

        finally:
            transcript.close()
