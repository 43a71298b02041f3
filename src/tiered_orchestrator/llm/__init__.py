"""LLM backend implementations."""

from .base import LLMBackend, LLMRequest, LLMResponse
from .litellm_backend import LiteLLMBackend

__all__ = [
    "LLMBackend",
    "LLMRequest",
    "LLMResponse",
    "LiteLLMBackend",
]
