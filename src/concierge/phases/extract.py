"""Extract phase: pull checklist fields out of free-form issue text."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from ..models.llm_client import LLMClient, LLMRequest
from ..prompts import TRIAGE_SYSTEM_PROMPT, render_extraction_prompt
from .base import Failed, Ok, PartialOk, PhaseOutcome, invoke_phase

ExtractedValues = Dict[str, Optional[str]]


@dataclass(slots=True)
class ExtractRequest:
    """Input payload for the Extract phase."""

    body: str
    comments: str = ""
    fields: list[tuple[str, str]] = field(default_factory=list)
    issue_number: int = 0


@dataclass(slots=True)
class ExtractResponse:
    """Non-empty extracted values keyed by checklist field name."""

    fields: Dict[str, str] = field(default_factory=dict)


def _schema(field_names: list[str]) -> Dict[str, Any]:
    return {
        "type": "object",
        "properties": {name: {"type": "string"} for name in field_names},
        "required": list(field_names),
    }


def run(
    request: ExtractRequest,
    *,
    client: LLMClient,
    logs_dir: Optional[Path] = None,
) -> PhaseOutcome[ExtractResponse]:
    """Execute the Extract phase; blank values are dropped from the result."""
    names = [name for name, _ in request.fields]
    llm_request: LLMRequest[ExtractedValues] = LLMRequest(
        prompt=render_extraction_prompt(request.body, request.comments, request.fields),
        system_prompt=TRIAGE_SYSTEM_PROMPT,
        response_model=ExtractedValues,
        schema_name="case_packet",
        schema=_schema(names),
        metadata={"issue_number": request.issue_number},
    )
    outcome = invoke_phase("extract", request, llm_request, client=client, logs_dir=logs_dir)
    if isinstance(outcome, Failed):
        return outcome

    values = {
        name: value.strip()
        for name, value in outcome.value.items()
        if isinstance(value, str) and value.strip()
    }
    response = ExtractResponse(fields=values)
    missing_keys = [name for name in names if name not in outcome.value]
    violations = list(outcome.violations) if isinstance(outcome, PartialOk) else []
    if missing_keys:
        violations.append(f"missing keys: {', '.join(missing_keys)}")
    if violations:
        return PartialOk(value=response, violations=violations)
    return Ok(response)
