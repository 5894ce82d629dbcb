"""Classify phase: pick one of the configured categories for an issue."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from ..models.llm_client import LLMClient, LLMRequest
from ..prompts import TRIAGE_SYSTEM_PROMPT, render_classification_prompt
from .base import PhaseOutcome, invoke_phase


@dataclass(slots=True)
class ClassifyRequest:
    """Input payload for the Classify phase."""

    title: str
    body: str
    categories: list[tuple[str, str]] = field(default_factory=list)
    issue_number: int = 0


@dataclass(slots=True)
class ClassifyResponse:
    """Structured result returned by the Classify phase."""

    category: str
    confidence: float = 0.5
    reasoning: str = ""


def _schema(category_names: list[str]) -> Dict[str, Any]:
    category: Dict[str, Any] = {"type": "string"}
    if category_names:
        category["enum"] = category_names
    return {
        "type": "object",
        "properties": {
            "category": category,
            "confidence": {"type": "number", "minimum": 0, "maximum": 1},
            "reasoning": {"type": "string"},
        },
        "required": ["category", "confidence", "reasoning"],
    }


def run(
    request: ClassifyRequest,
    *,
    client: LLMClient,
    logs_dir: Optional[Path] = None,
) -> PhaseOutcome[ClassifyResponse]:
    """Execute the Classify phase via the shared LLM client."""
    names = [name for name, _ in request.categories]
    known = {name.lower() for name in names}

    def _check(response: ClassifyResponse) -> list[str]:
        violations: list[str] = []
        if not response.category.strip():
            violations.append("category: empty")
        elif known and response.category.strip().lower() not in known:
            violations.append(f"category: '{response.category}' is not configured")
        return violations

    llm_request = LLMRequest(
        prompt=render_classification_prompt(request.title, request.body, request.categories),
        system_prompt=TRIAGE_SYSTEM_PROMPT,
        response_model=ClassifyResponse,
        schema_name="category_classification",
        schema=_schema(names),
        metadata={"issue_number": request.issue_number},
    )
    return invoke_phase("classify", request, llm_request, client=client, logs_dir=logs_dir, check=_check)
