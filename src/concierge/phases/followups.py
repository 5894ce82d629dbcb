"""Follow-up phase: targeted questions for the fields an issue is missing."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from ..models.llm_client import LLMClient, LLMRequest
from ..prompts import TRIAGE_SYSTEM_PROMPT, looks_like_credential_field, render_follow_up_prompt
from .base import PhaseOutcome, invoke_phase

MAX_QUESTIONS = 3


@dataclass(slots=True)
class FollowUpRequest:
    """Input payload for the follow-up phase."""

    body: str
    category: str
    missing_fields: list[tuple[str, str]] = field(default_factory=list)
    asked_before: list[str] = field(default_factory=list)
    issue_number: int = 0


@dataclass(slots=True)
class FollowUpQuestion:
    field: str
    question: str
    why_needed: str = ""


@dataclass(slots=True)
class FollowUpResponse:
    """Structured result returned by the follow-up phase."""

    questions: list[FollowUpQuestion] = field(default_factory=list)


def run(
    request: FollowUpRequest,
    *,
    client: LLMClient,
    logs_dir: Optional[Path] = None,
) -> PhaseOutcome[FollowUpResponse]:
    """Execute the follow-up phase; at most three questions survive."""
    allowed = {name.lower() for name, _ in request.missing_fields}

    def _check(response: FollowUpResponse) -> list[str]:
        violations: list[str] = []
        usable = [item for item in response.questions if item.question.strip()]
        if not usable:
            violations.append("questions: no usable questions")
        if len(response.questions) > MAX_QUESTIONS:
            violations.append(f"questions: {len(response.questions)} returned, keeping {MAX_QUESTIONS}")
        stray = [item.field for item in usable if item.field.lower() not in allowed]
        if stray:
            violations.append(f"questions: unknown fields {', '.join(stray)}")
        response.questions = usable[:MAX_QUESTIONS]
        return violations

    llm_request = LLMRequest(
        prompt=render_follow_up_prompt(
            request.body,
            request.category,
            request.missing_fields,
            request.asked_before,
        ),
        system_prompt=TRIAGE_SYSTEM_PROMPT,
        response_model=FollowUpResponse,
        schema_name="follow_up_questions",
        schema={
            "type": "object",
            "properties": {
                "questions": {
                    "type": "array",
                    "maxItems": MAX_QUESTIONS,
                    "items": {
                        "type": "object",
                        "properties": {
                            "field": {"type": "string"},
                            "question": {"type": "string"},
                            "why_needed": {"type": "string"},
                        },
                    },
                }
            },
        },
        metadata={"issue_number": request.issue_number},
    )
    return invoke_phase("follow_ups", request, llm_request, client=client, logs_dir=logs_dir, check=_check)


def fallback_questions(missing_fields: list[tuple[str, str]]) -> list[FollowUpQuestion]:
    """Plain questions built from checklist descriptions when the model gives none."""
    questions: list[FollowUpQuestion] = []
    for name, description in missing_fields[:MAX_QUESTIONS]:
        label = name.replace("_", " ")
        detail = description.strip().rstrip(".") or label
        if looks_like_credential_field(name):
            question = f"Can you confirm that your {label} is configured? Please don't paste the actual value."
        else:
            question = f"Could you share the {label}? ({detail})"
        questions.append(FollowUpQuestion(field=name, question=question, why_needed=detail))
    return questions


__all__ = [
    "FollowUpQuestion",
    "FollowUpRequest",
    "FollowUpResponse",
    "MAX_QUESTIONS",
    "fallback_questions",
    "run",
]
