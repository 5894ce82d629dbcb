"""Routing logic that maps phase requests to their concrete implementations."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Optional

from pydantic import ValidationError
from pydantic.type_adapter import TypeAdapter

from .models.llm_client import LLMClient
from .phases import PhaseName
from .phases.base import PhaseOutcome
from .phases.brief import BriefRequest, EngineerBrief, RevisionRequest, run as run_brief, run_revision
from .phases.classify import ClassifyRequest, ClassifyResponse, run as run_classify
from .phases.extract import ExtractRequest, ExtractResponse, run as run_extract
from .phases.followups import FollowUpRequest, FollowUpResponse, run as run_follow_ups

PhaseRunner = Callable[..., PhaseOutcome[Any]]


@dataclass(slots=True)
class PhaseEntry:
    """Metadata describing how to execute a single phase."""

    request_model: type[Any]
    response_model: type[Any]
    runner: PhaseRunner


class PhaseRouter:
    """Dispatch table mapping phase names to their concrete handlers."""

    def __init__(self, *, client: LLMClient, logs_dir: Optional[Path] = None) -> None:
        self._client = client
        self._logs_dir = logs_dir
        self._registry: Dict[PhaseName, PhaseEntry] = {
            PhaseName.CLASSIFY: PhaseEntry(ClassifyRequest, ClassifyResponse, run_classify),
            PhaseName.EXTRACT: PhaseEntry(ExtractRequest, ExtractResponse, run_extract),
            PhaseName.FOLLOW_UPS: PhaseEntry(FollowUpRequest, FollowUpResponse, run_follow_ups),
            PhaseName.BRIEF: PhaseEntry(BriefRequest, EngineerBrief, run_brief),
            PhaseName.REVISE_BRIEF: PhaseEntry(RevisionRequest, EngineerBrief, run_revision),
        }

    def dispatch(self, phase: PhaseName | str, payload: Any) -> PhaseOutcome[Any]:
        """Coerce the payload into the expected request type and execute the phase."""
        phase_name = self._normalize_phase(phase)
        entry = self._registry[phase_name]
        request = self._coerce_payload(payload, entry.request_model)
        return entry.runner(request, client=self._client, logs_dir=self._logs_dir)

    def available_phases(self) -> Iterable[PhaseName]:
        """Return the phases currently registered with the router."""
        return self._registry.keys()

    @staticmethod
    def _normalize_phase(phase: PhaseName | str) -> PhaseName:
        """Resolve ``phase`` into a concrete ``PhaseName`` enum member."""
        if isinstance(phase, PhaseName):
            return phase
        try:
            return PhaseName(phase)
        except ValueError as error:
            valid = ", ".join(item.value for item in PhaseName)
            raise KeyError(f"Unknown phase '{phase}'. Expected one of: {valid}") from error

    @staticmethod
    def _coerce_payload(payload: Any, request_type: type[Any]) -> Any:
        """Validate or convert ``payload`` into the ``request_type`` instance."""
        if isinstance(payload, request_type):
            return payload

        adapter = TypeAdapter(request_type)
        try:
            return adapter.validate_python(payload)
        except ValidationError as error:
            raise ValueError(
                f"Payload for {request_type.__name__} did not validate: {error}"
            ) from error


__all__ = ["PhaseEntry", "PhaseRouter"]
