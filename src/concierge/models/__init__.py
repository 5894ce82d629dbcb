"""Language-model client implementations."""

from .llm_client import (
    LLMClient,
    LLMClientError,
    LLMRequest,
    LLMResponseFormatError,
    LLMTransportError,
)
from .openai_responses import OpenAIResponsesClient

__all__ = [
    "LLMClient",
    "LLMClientError",
    "LLMRequest",
    "LLMResponseFormatError",
    "LLMTransportError",
    "OpenAIResponsesClient",
]
