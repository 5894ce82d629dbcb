"""Brief phases: write, and on disagreement rewrite, the engineer hand-off brief."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from ..models.llm_client import LLMClient, LLMRequest
from ..prompts import ENGINEER_SYSTEM_PROMPT, render_brief_prompt, render_revision_prompt
from .base import PhaseOutcome, invoke_phase

MIN_CONFIRMATIONS = 2
MAX_CONFIRMATIONS = 3


@dataclass(slots=True)
class DuplicateCandidate:
    number: int
    title: str
    url: str = ""


@dataclass(slots=True)
class DuplicateReference:
    issue_number: int
    similarity_reason: str = ""


@dataclass(slots=True)
class EngineerBrief:
    """Structured brief handed to maintainers."""

    summary: str
    symptoms: List[str] = field(default_factory=list)
    repro_steps: List[str] = field(default_factory=list)
    environment: Dict[str, str] = field(default_factory=dict)
    key_evidence: List[str] = field(default_factory=list)
    next_steps: List[str] = field(default_factory=list)
    validation_confirmations: List[str] = field(default_factory=list)
    possible_duplicates: List[DuplicateReference] = field(default_factory=list)


@dataclass(slots=True)
class BriefRequest:
    """Input payload for the Brief phase."""

    body: str
    category: str
    comments: str = ""
    fields: Dict[str, str] = field(default_factory=dict)
    playbook: str = ""
    docs: str = ""
    duplicates: List[DuplicateCandidate] = field(default_factory=list)
    issue_number: int = 0


@dataclass(slots=True)
class RevisionRequest:
    """Input payload for the Revise Brief phase."""

    previous_brief: str
    feedback: str
    category: str
    fields: Dict[str, str] = field(default_factory=dict)
    playbook: str = ""
    issue_number: int = 0


def _check_brief(known_duplicates: Optional[set[int]]):
    def _check(brief: EngineerBrief) -> list[str]:
        violations: list[str] = []
        if not brief.summary.strip():
            violations.append("summary: empty")
        if len(brief.validation_confirmations) < MIN_CONFIRMATIONS:
            violations.append(
                f"validation_confirmations: {len(brief.validation_confirmations)} given, "
                f"at least {MIN_CONFIRMATIONS} expected"
            )
        brief.validation_confirmations = brief.validation_confirmations[:MAX_CONFIRMATIONS]
        if known_duplicates is not None:
            unknown = [item.issue_number for item in brief.possible_duplicates if item.issue_number not in known_duplicates]
            if unknown:
                violations.append(f"possible_duplicates: dropped unknown issues {unknown}")
                brief.possible_duplicates = [
                    item for item in brief.possible_duplicates if item.issue_number in known_duplicates
                ]
        return violations

    return _check


def render_duplicates(candidates: List[DuplicateCandidate]) -> str:
    return "\n".join(f"- #{item.number}: {item.title}" for item in candidates)


def run(
    request: BriefRequest,
    *,
    client: LLMClient,
    logs_dir: Optional[Path] = None,
) -> PhaseOutcome[EngineerBrief]:
    """Execute the Brief phase via the shared LLM client."""
    llm_request = LLMRequest(
        prompt=render_brief_prompt(
            body=request.body,
            comments=request.comments,
            category=request.category,
            fields=request.fields,
            playbook=request.playbook,
            docs=request.docs,
            duplicates=render_duplicates(request.duplicates),
        ),
        system_prompt=ENGINEER_SYSTEM_PROMPT,
        response_model=EngineerBrief,
        schema_name="engineer_brief",
        metadata={"issue_number": request.issue_number},
    )
    known = {item.number for item in request.duplicates}
    return invoke_phase("brief", request, llm_request, client=client, logs_dir=logs_dir, check=_check_brief(known))


def run_revision(
    request: RevisionRequest,
    *,
    client: LLMClient,
    logs_dir: Optional[Path] = None,
) -> PhaseOutcome[EngineerBrief]:
    """Execute the Revise Brief phase via the shared LLM client."""
    llm_request = LLMRequest(
        prompt=render_revision_prompt(
            previous_brief=request.previous_brief,
            feedback=request.feedback,
            fields=request.fields,
            playbook=request.playbook,
            category=request.category,
        ),
        system_prompt=ENGINEER_SYSTEM_PROMPT,
        response_model=EngineerBrief,
        schema_name="engineer_brief",
        metadata={"issue_number": request.issue_number},
    )
    return invoke_phase(
        "revise_brief",
        request,
        llm_request,
        client=client,
        logs_dir=logs_dir,
        check=_check_brief(None),
    )


def fallback_brief(title: str, category: str, fields: Dict[str, str]) -> EngineerBrief:
    """Deterministic brief assembled from the extracted fields alone."""
    summary = title.strip() or f"{category} report"
    symptoms = [value for name, value in fields.items() if name in ("actual_behavior", "error_message") and value]
    repro = [line.strip() for line in fields.get("steps_to_reproduce", "").splitlines() if line.strip()]
    environment = {
        name: value
        for name, value in fields.items()
        if name in ("operating_system", "version", "runtime_version", "build_tool_version", "installation_method")
    }
    evidence = [value.splitlines()[0] for name, value in fields.items() if name in ("stack_trace", "build_log") and value]
    return EngineerBrief(
        summary=summary,
        symptoms=symptoms,
        repro_steps=repro,
        environment=environment,
        key_evidence=evidence,
        next_steps=["Review the extracted details above and reproduce locally."],
    )


__all__ = [
    "BriefRequest",
    "DuplicateCandidate",
    "DuplicateReference",
    "EngineerBrief",
    "RevisionRequest",
    "fallback_brief",
    "render_duplicates",
    "run",
    "run_revision",
]
