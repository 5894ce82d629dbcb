"""Production client for the OpenAI Responses API with JSON-schema output."""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Callable, Dict, Optional

from ..transport import HTTPTransportError, send_json
from .llm_client import LLMClient, LLMResponseFormatError, LLMTransportError

__all__ = ["OpenAIResponsesClient", "output_text"]

LOGGER = logging.getLogger(__name__)

Transport = Callable[[Dict[str, Any]], str]

DEFAULT_BASE_URL = "https://api.openai.com/v1/responses"


class OpenAIResponsesClient(LLMClient):
    """``transport`` receives the request payload and returns the raw response body."""

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        base_url: str = DEFAULT_BASE_URL,
        model: str = "gpt-4o-2024-08-06",
        transport: Optional[Transport] = None,
        timeout: float = 60.0,
        max_attempts: int = 3,
        retry_delay: float = 0.5,
    ) -> None:
        super().__init__(model=model, max_attempts=max_attempts, retry_delay=retry_delay)
        self._api_key = api_key or os.getenv("OPENAI_API_KEY")
        self._base_url = base_url
        self._timeout = timeout
        self._transport = transport or self._http_transport

        if transport is None and not self._api_key:
            raise ValueError("An API key is required when using the default transport.")

    def _raw_invoke(self, payload: Dict[str, Any]) -> str:
        return output_text(self._transport(payload))

    def _http_transport(self, payload: Dict[str, Any]) -> str:
        if LOGGER.isEnabledFor(logging.DEBUG):
            LOGGER.debug("Responses API request for schema %s", payload["text"]["format"]["name"])
        try:
            status, text = send_json(
                "POST",
                self._base_url,
                headers={"Authorization": f"Bearer {self._api_key}"},
                body=payload,
                timeout=self._timeout,
            )
        except HTTPTransportError as error:
            raise LLMTransportError(str(error)) from error
        if status >= 400:
            raise LLMTransportError(f"HTTP {status}: {text[:200]}")
        return text


def output_text(body: str) -> str:
    """Return the first answer in a Responses API body.

    Only ``message`` output items are read; reasoning and tool items are
    skipped. A refusal, or a body with no answer at all, is a format error so
    the caller retries.
    """
    try:
        data = json.loads(body)
    except json.JSONDecodeError as error:
        raise LLMResponseFormatError("Responses API returned a non-JSON body.", raw=body) from error
    if not isinstance(data, dict):
        raise LLMResponseFormatError("Responses API returned an unexpected body.", raw=body)

    for item in data.get("output") or []:
        if not isinstance(item, dict) or item.get("type", "message") != "message":
            continue
        for part in item.get("content") or []:
            if not isinstance(part, dict):
                continue
            kind = part.get("type")
            if kind == "refusal":
                raise LLMResponseFormatError(f"Model refused to answer: {part.get('refusal') or 'no reason given'}")
            if kind == "output_json" and isinstance(part.get("json"), (dict, list)):
                return json.dumps(part["json"])
            text = part.get("text")
            if kind == "output_text" and isinstance(text, str) and text.strip():
                return text

    status = data.get("status") or "unknown"
    raise LLMResponseFormatError(f"Response with status {status} carried no output text.", raw=body)
