"""Structured JSON client shared by the language-model integrations."""

from __future__ import annotations

import copy
import json
import re
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, fields, is_dataclass
from functools import lru_cache
from typing import Any, Callable, Dict, Generic, Optional, Type, TypeVar, Union, get_args, get_origin, get_type_hints

from pydantic.type_adapter import TypeAdapter

__all__ = [
    "LLMClient",
    "LLMClientError",
    "LLMRequest",
    "LLMResponseFormatError",
    "LLMTransportError",
    "coerce_response",
]


T = TypeVar("T")

AttemptLogger = Callable[[Dict[str, Any], Optional[str], Optional[Any], Optional[Exception], int], None]

METADATA_VALUE_LIMIT = 512

_FENCE = re.compile(r"^```[a-zA-Z]*\s*\n(?P<body>.*?)\n?```", re.DOTALL)
_TRAILING_COMMA = re.compile(r",(\s*[}\]])")
_TYPOGRAPHIC = str.maketrans(
    {
        "\u201c": '"',
        "\u201d": '"',
        "\u2018": "'",
        "\u2019": "'",
        "\u00a0": " ",
        "\ufeff": "",
    }
)


class LLMClientError(RuntimeError):
    """Base error raised for structured LLM client failures."""


class LLMTransportError(LLMClientError):
    """The model endpoint could not be reached or answered with an error."""


class LLMResponseFormatError(LLMClientError):
    """The model answered, but not with JSON."""

    def __init__(self, message: str, *, raw: str = "") -> None:
        super().__init__(message)
        self.raw = raw


def _close_schema(node: Any) -> Any:
    """Forbid unknown keys on every fixed-shape object and require all of its properties.

    Objects whose ``additionalProperties`` is a schema are maps and stay open.
    """
    if isinstance(node, list):
        return [_close_schema(item) for item in node]
    if not isinstance(node, dict):
        return node
    if node.get("type") == "object" and not isinstance(node.get("additionalProperties"), dict):
        node["additionalProperties"] = False
        properties = node.get("properties")
        if isinstance(properties, dict):
            required = [name for name in node.get("required") or [] if name in properties]
            node["required"] = required + [name for name in properties if name not in required]
    for key, child in node.items():
        node[key] = _close_schema(child)
    return node


def _has_open_map(node: Any) -> bool:
    if isinstance(node, dict):
        if node.get("type") == "object" and isinstance(node.get("additionalProperties"), dict):
            return True
        return any(_has_open_map(child) for child in node.values())
    if isinstance(node, list):
        return any(_has_open_map(item) for item in node)
    return False


@dataclass(slots=True)
class LLMRequest(Generic[T]):
    """One structured call: prompt, expected response type and schema name."""

    prompt: str
    response_model: Type[T]
    model: Optional[str] = None
    system_prompt: Optional[str] = None
    schema_name: Optional[str] = None
    schema: Optional[Dict[str, Any]] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    temperature: float = 0.0
    max_attempts: Optional[int] = None

    def json_schema(self) -> Dict[str, Any]:
        if self.schema is not None:
            return _close_schema(copy.deepcopy(self.schema))
        return _close_schema(TypeAdapter(self.response_model).json_schema())

    def to_payload(self, default_model: str) -> Dict[str, Any]:
        """Render the request body for a JSON-schema responses endpoint."""
        messages: list[Dict[str, Any]] = []
        if self.system_prompt:
            messages.append({"role": "system", "content": [{"type": "input_text", "text": self.system_prompt}]})
        messages.append({"role": "user", "content": [{"type": "input_text", "text": self.prompt}]})

        schema = self.json_schema()
        payload: Dict[str, Any] = {
            "model": self.model or default_model,
            "input": messages,
            "text": {
                "format": {
                    "type": "json_schema",
                    "name": self.schema_name or getattr(self.response_model, "__name__", "concierge_response"),
                    "schema": schema,
                    "strict": not _has_open_map(schema),
                }
            },
        }
        if self.temperature:
            payload["temperature"] = self.temperature
        if self.metadata:
            payload["metadata"] = {key: _metadata_value(value) for key, value in self.metadata.items()}
        return payload


def _metadata_value(value: Any) -> str:
    text = value if isinstance(value, str) else json.dumps(value, separators=(",", ":"), sort_keys=True)
    if len(text) > METADATA_VALUE_LIMIT:
        text = text[: METADATA_VALUE_LIMIT - 3] + "..."
    return text


class LLMClient:
    """Base client that keeps asking until the model answers with JSON.

    Subclasses implement ``_raw_invoke``. Validation against the response
    type is left to the caller so a partially valid answer can still be used.
    """

    def __init__(self, model: str, *, max_attempts: int = 3, retry_delay: float = 0.5) -> None:
        self._model = model
        self._max_attempts = max_attempts
        self._retry_delay = retry_delay

    @property
    def model(self) -> str:
        return self._model

    def invoke_json(
        self,
        request: LLMRequest[Any],
        *,
        logger: Optional[AttemptLogger] = None,
    ) -> tuple[Any, str]:
        """Return ``(parsed_json, raw_text)`` for the first usable answer.

        Raises ``LLMTransportError`` when the last attempt failed in transport
        and ``LLMResponseFormatError`` when no attempt produced JSON.
        """
        attempts = request.max_attempts or self._max_attempts
        payload = request.to_payload(self._model)
        last_error: Optional[LLMClientError] = None
        last_raw = ""

        for attempt in range(1, attempts + 1):
            raw: Optional[str] = None
            try:
                raw = self._raw_invoke(payload)
                last_raw = raw
                data = parse_json_text(raw)
            except (LLMResponseFormatError, LLMTransportError) as error:
                last_error = error
                if logger:
                    logger(payload, raw, None, error, attempt)
                if attempt < attempts:
                    time.sleep(self._retry_delay)
                continue
            if logger:
                logger(payload, raw, data, None, attempt)
            return data, raw

        model_name = request.model or self._model
        if isinstance(last_error, LLMTransportError):
            raise LLMTransportError(
                f"Transport failed after {attempts} attempt(s) for model {model_name}: {last_error}"
            ) from last_error
        raise LLMResponseFormatError(
            f"No JSON after {attempts} attempt(s) for model {model_name}",
            raw=last_raw,
        ) from last_error

    def _raw_invoke(self, payload: Dict[str, Any]) -> str:
        raise NotImplementedError("Subclasses must implement _raw_invoke().")


def parse_json_text(raw: str) -> Any:
    """Decode model output, tolerating code fences, smart quotes and trailing commas."""
    text = raw.strip().translate(_TYPOGRAPHIC)
    if not text:
        raise LLMResponseFormatError("Model returned an empty response.", raw=raw)
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    fenced = _FENCE.match(text)
    candidate = _first_json_block(fenced.group("body") if fenced else text)
    if candidate is not None:
        try:
            return json.loads(_TRAILING_COMMA.sub(r"\1", candidate))
        except json.JSONDecodeError:
            pass
    raise LLMResponseFormatError(f"Model returned invalid JSON: {text[:200]}", raw=raw)


def _first_json_block(text: str) -> Optional[str]:
    """Return the first balanced ``{...}`` or ``[...]`` span in ``text``."""
    start: Optional[int] = None
    closers: list[str] = []
    for index, char in enumerate(text):
        if char in "{[":
            if start is None:
                start = index
            closers.append("}" if char == "{" else "]")
        elif closers and char == closers[-1]:
            closers.pop()
            if not closers and start is not None:
                return text[start : index + 1]
    return None


def coerce_response(annotation: Any, value: Any) -> Any:
    """Nudge a near-miss answer towards ``annotation`` before it is validated again.

    Scalars are converted where the intent is obvious (``42`` for a string
    field becomes ``"42"``), single items are wrapped for list fields, and
    unknown keys on dataclasses are dropped. Values that cannot be converted
    are returned unchanged so validation still reports them.
    """
    if value is None:
        return None
    if isinstance(annotation, type) and is_dataclass(annotation):
        if not isinstance(value, Mapping):
            return value
        hints = _type_hints(annotation)
        return {
            item.name: coerce_response(hints.get(item.name, Any), value[item.name])
            for item in fields(annotation)
            if item.name in value
        }

    origin = get_origin(annotation)
    args = get_args(annotation)
    if origin is Union:
        options = [arg for arg in args if arg is not type(None)]
        return coerce_response(options[0], value) if len(options) == 1 else value
    if origin in (list, Sequence):
        if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
            value = [value]
        return [coerce_response(args[0] if args else Any, item) for item in value]
    if origin in (dict, Mapping):
        if not isinstance(value, Mapping):
            return value
        value_type = args[1] if len(args) == 2 else Any
        return {str(key): coerce_response(value_type, item) for key, item in value.items()}
    return _coerce_scalar(annotation, value)


def _coerce_scalar(annotation: Any, value: Any) -> Any:
    if annotation is str and not isinstance(value, str):
        if isinstance(value, (list, tuple)):
            return "\n".join(str(item) for item in value)
        return str(value)
    if annotation in (int, float) and not isinstance(value, bool):
        try:
            return annotation(value)
        except (TypeError, ValueError):
            return value
    if annotation is bool and isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
    return value


@lru_cache(maxsize=None)
def _type_hints(model: type[Any]) -> dict[str, Any]:
    return get_type_hints(model)
