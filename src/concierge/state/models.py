"""Persisted conversation state and the phases it can be in."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

MAX_ASKED_FIELDS_HISTORY = 20


def utc_now() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


class ConversationPhase(str, Enum):
    """Closed set of phases a participant's conversation moves through."""

    NEW = "new"
    LOOPING = "looping"
    REVISING = "revising"
    OFF_TOPIC_FINAL = "off_topic_final"
    ACTIONABLE_FINAL = "actionable_final"
    ESCALATED_FINAL = "escalated_final"
    OPTED_OUT_FINAL = "opted_out_final"


FINAL_PHASES = frozenset(
    {
        ConversationPhase.OFF_TOPIC_FINAL,
        ConversationPhase.ACTIONABLE_FINAL,
        ConversationPhase.ESCALATED_FINAL,
        ConversationPhase.OPTED_OUT_FINAL,
    }
)


class FinalOutcome(str, Enum):
    """Which terminal phase a finalized conversation reached."""

    ACTIONABLE = "actionable"
    ESCALATED = "escalated"
    OFF_TOPIC = "off_topic"
    OPTED_OUT = "opted_out"


_OUTCOME_PHASES = {
    FinalOutcome.ACTIONABLE: ConversationPhase.ACTIONABLE_FINAL,
    FinalOutcome.ESCALATED: ConversationPhase.ESCALATED_FINAL,
    FinalOutcome.OFF_TOPIC: ConversationPhase.OFF_TOPIC_FINAL,
    FinalOutcome.OPTED_OUT: ConversationPhase.OPTED_OUT_FINAL,
}


class ConversationState(BaseModel):
    """State embedded in bot comments; the JSON keys are the wire format.

    The PascalCase aliases match what earlier deployments wrote, so existing
    threads keep decoding. Unknown keys are ignored.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    category: str = Field(default="", alias="Category")
    loop_count: int = Field(default=0, ge=0, alias="LoopCount")
    asked_fields: List[str] = Field(default_factory=list, alias="AskedFields")
    last_updated: datetime = Field(default_factory=utc_now, alias="LastUpdated")
    is_actionable: bool = Field(default=False, alias="IsActionable")
    completeness_score: int = Field(default=0, alias="CompletenessScore")
    participant_id: str = Field(default="", alias="IssueAuthor")
    is_finalized: bool = Field(default=False, alias="IsFinalized")
    finalized_at: Optional[datetime] = Field(default=None, alias="FinalizedAt")
    engineer_brief_comment_id: Optional[int] = Field(default=None, alias="EngineerBriefCommentId")
    brief_iteration_count: int = Field(default=0, ge=0, alias="BriefIterationCount")
    final_outcome: Optional[FinalOutcome] = Field(default=None, alias="FinalOutcome")

    @property
    def phase(self) -> ConversationPhase:
        if self.is_finalized:
            if self.final_outcome is not None:
                return _OUTCOME_PHASES[self.final_outcome]
            # States written before outcomes were recorded.
            return ConversationPhase.ACTIONABLE_FINAL if self.is_actionable else ConversationPhase.ESCALATED_FINAL
        if self.loop_count > 0 or self.asked_fields:
            return ConversationPhase.LOOPING
        return ConversationPhase.NEW

    def belongs_to(self, participant: str) -> bool:
        return self.participant_id.lower() == (participant or "").lower()

    def touch(self, now: datetime | None = None) -> None:
        self.last_updated = now or utc_now()

    def finalize(self, outcome: FinalOutcome, now: datetime | None = None) -> None:
        timestamp = now or utc_now()
        self.is_finalized = True
        self.final_outcome = outcome
        self.finalized_at = timestamp
        self.last_updated = timestamp

    def record_asked(self, field_names: List[str], *, limit: int = MAX_ASKED_FIELDS_HISTORY) -> None:
        """Append newly asked fields and keep only the most recent ``limit``."""
        self.asked_fields.extend(field_names)
        self.prune(limit=limit)

    def prune(self, *, limit: int = MAX_ASKED_FIELDS_HISTORY) -> None:
        if len(self.asked_fields) > limit:
            self.asked_fields = self.asked_fields[-limit:]

    def has_asked(self, field_name: str) -> bool:
        lowered = field_name.lower()
        return any(asked.lower() == lowered for asked in self.asked_fields)


__all__ = [
    "ConversationPhase",
    "ConversationState",
    "FINAL_PHASES",
    "FinalOutcome",
    "MAX_ASKED_FIELDS_HISTORY",
    "utc_now",
]
