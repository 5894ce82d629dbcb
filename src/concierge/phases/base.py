"""Shared helpers for invoking phases and emitting structured logs."""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import asdict, dataclass, field, is_dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Generic, List, Optional, TypeVar, Union

from pydantic import ValidationError
from pydantic.type_adapter import TypeAdapter

from ..models.llm_client import LLMClient, LLMRequest, LLMResponseFormatError, coerce_response
from ..telemetry import JSON_DESERIALIZATION_FALLBACK, SCHEMA_VIOLATION, emit_event
from ..utils.slug import slugify

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

Check = Callable[[Any], List[str]]


@dataclass(slots=True)
class Ok(Generic[T]):
    value: T


@dataclass(slots=True)
class PartialOk(Generic[T]):
    """A usable value that did not fully satisfy the response contract."""

    value: T
    violations: List[str] = field(default_factory=list)


@dataclass(slots=True)
class Failed:
    """No usable value; ``raw`` holds the last model output, if any."""

    raw: str
    reason: str


PhaseOutcome = Union[Ok[T], PartialOk[T], Failed]


def unwrap(outcome: PhaseOutcome[T], default: T) -> T:
    """Return the carried value, or ``default`` when the phase failed."""
    if isinstance(outcome, (Ok, PartialOk)):
        return outcome.value
    return default


def invoke_phase(
    phase: str,
    request: Any,
    llm_request: LLMRequest[T],
    *,
    client: LLMClient,
    logs_dir: Optional[Path] = None,
    check: Optional[Check] = None,
) -> PhaseOutcome[T]:
    """Call the model for ``phase`` and classify the answer.

    Unparseable output becomes ``Failed``. Output that only validates after
    coercion, or that ``check`` objects to, becomes ``PartialOk``. Transport
    errors are not caught.
    """
    attempts: list[dict[str, Any]] = []

    def _attempt_logger(
        payload: dict[str, Any],
        raw: str | None,
        parsed: Any,
        error: Exception | None,
        attempt: int,
    ) -> None:
        attempts.append(
            {
                "attempt": attempt,
                "payload": _json_safe(payload),
                "raw": raw,
                "parsed": _json_safe(parsed),
                "error": str(error) if error else None,
            }
        )

    schema_name = llm_request.schema_name or phase
    try:
        data, raw = client.invoke_json(llm_request, logger=_attempt_logger)
    except LLMResponseFormatError as error:
        emit_event(JSON_DESERIALIZATION_FALLBACK, schema=schema_name, error=str(error))
        outcome: PhaseOutcome[T] = Failed(raw=error.raw, reason=str(error))
        _write_phase_log(logs_dir, phase, request, llm_request, attempts, outcome)
        return outcome

    outcome = _validate(schema_name, llm_request.response_model, data, raw)
    if check is not None and isinstance(outcome, (Ok, PartialOk)):
        violations = check(outcome.value)
        if violations:
            emit_event(SCHEMA_VIOLATION, schema=schema_name, violations=violations)
            previous = outcome.violations if isinstance(outcome, PartialOk) else []
            outcome = PartialOk(value=outcome.value, violations=[*previous, *violations])

    _write_phase_log(logs_dir, phase, request, llm_request, attempts, outcome)
    return outcome


def _validate(schema_name: str, response_model: Any, data: Any, raw: str) -> PhaseOutcome[Any]:
    adapter = TypeAdapter(response_model)
    try:
        return Ok(adapter.validate_python(data))
    except ValidationError as error:
        first_error = error

    violations = [_describe_error(item) for item in first_error.errors()]
    try:
        value = adapter.validate_python(coerce_response(response_model, data))
    except ValidationError as error:
        emit_event(SCHEMA_VIOLATION, schema=schema_name, violations=violations, recovered=False)
        return Failed(raw=raw, reason=f"Response did not match {schema_name}: {error}")

    emit_event(SCHEMA_VIOLATION, schema=schema_name, violations=violations, recovered=True)
    return PartialOk(value=value, violations=violations)


def _describe_error(item: dict[str, Any]) -> str:
    location = ".".join(str(part) for part in item.get("loc", ())) or "<root>"
    return f"{location}: {item.get('msg', 'invalid value')}"


def _write_phase_log(
    logs_dir: Optional[Path],
    phase: str,
    request: Any,
    llm_request: LLMRequest[Any],
    attempts: list[dict[str, Any]],
    outcome: PhaseOutcome[Any],
) -> None:
    """Persist a structured phase execution log for later debugging."""
    if logs_dir is None:
        return
    logs_root = logs_dir / "phases"
    try:
        logs_root.mkdir(parents=True, exist_ok=True)
    except OSError as error:
        LOGGER.debug("Cannot create phase log directory %s: %s", logs_root, error)
        return

    entry: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "phase": phase,
        "request": _json_safe(request),
        "context": {
            "system_prompt": llm_request.system_prompt,
            "user_prompt": llm_request.prompt,
            "metadata": _json_safe(llm_request.metadata),
        },
        "attempts": attempts,
        "outcome": type(outcome).__name__,
    }
    if isinstance(outcome, Failed):
        entry["error"] = outcome.reason
    else:
        entry["result"] = _json_safe(outcome.value)
        if isinstance(outcome, PartialOk):
            entry["violations"] = list(outcome.violations)

    parts = ["phase", slugify(phase, fallback="phase")]
    issue_number = llm_request.metadata.get("issue_number")
    if issue_number:
        parts.append(f"issue-{slugify(str(issue_number))}")
    parts.append(datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ"))
    parts.append(uuid.uuid4().hex[:8])
    log_path = logs_root / ("__".join(parts) + ".json")
    try:
        with log_path.open("w", encoding="utf-8") as handle:
            json.dump(entry, handle, indent=2, sort_keys=True, ensure_ascii=False)
    except OSError as error:
        LOGGER.debug("Cannot write phase log %s: %s", log_path, error)


def _json_safe(value: Any) -> Any:
    """Coerce complex objects into JSON-serialisable representations."""
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Path):
        return value.as_posix()
    if is_dataclass(value) and not isinstance(value, type):
        return _json_safe(asdict(value))
    if hasattr(value, "model_dump"):
        return _json_safe(value.model_dump())
    if isinstance(value, dict):
        return {str(key): _json_safe(val) for key, val in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_json_safe(item) for item in value]
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="ignore")
    return str(value)


__all__ = ["Failed", "Ok", "PartialOk", "PhaseOutcome", "invoke_phase", "unwrap"]
