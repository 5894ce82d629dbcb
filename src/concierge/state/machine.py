"""Pure transition function deciding what to do with each inbound event.

The orchestrator feeds signals in as it learns them: commands and
disagreement first, then the category, then the scoring verdict. Whenever the
function needs something it has not been given yet it returns ``CLASSIFY`` or
``SCORE`` and leaves the phase unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from ..classifier import Command
from ..scoring.completeness import ScoringResult
from ..specpack.schema import OFF_TOPIC_CATEGORY
from .models import FINAL_PHASES, ConversationPhase, ConversationState

MAX_FOLLOW_UP_ROUNDS = 3
MAX_BRIEF_ITERATIONS = 2

REVISABLE_PHASES = frozenset(
    {
        ConversationPhase.ACTIONABLE_FINAL,
        ConversationPhase.ESCALATED_FINAL,
        ConversationPhase.OFF_TOPIC_FINAL,
    }
)


class Action(str, Enum):
    ACKNOWLEDGE_OPT_OUT = "acknowledge_opt_out"
    RESTART = "restart"
    REVISE_BRIEF = "revise_brief"
    ESCALATE_REVISIONS = "escalate_revisions"
    IGNORE = "ignore"
    CLASSIFY = "classify"
    FINALIZE_OFF_TOPIC = "finalize_off_topic"
    SCORE = "score"
    FINALIZE_ACTIONABLE = "finalize_actionable"
    ESCALATE = "escalate"
    ASK_FOLLOW_UPS = "ask_follow_ups"


@dataclass(slots=True)
class Signals:
    """What is known about the current event so far."""

    command: Command = Command.NONE
    disagreement: bool = False
    category: Optional[str] = None
    scoring: Optional[ScoringResult] = None
    pending_fields: List[str] = field(default_factory=list)


@dataclass(slots=True)
class Transition:
    phase: ConversationPhase
    action: Action


def phase_of(state: ConversationState | None) -> ConversationPhase:
    if state is None:
        return ConversationPhase.NEW
    return state.phase


def transition(state: ConversationState | None, signals: Signals) -> Transition:
    phase = phase_of(state)

    if signals.command is Command.OPT_OUT and phase is not ConversationPhase.OPTED_OUT_FINAL:
        return Transition(ConversationPhase.OPTED_OUT_FINAL, Action.ACKNOWLEDGE_OPT_OUT)

    if phase in FINAL_PHASES:
        if phase is ConversationPhase.OPTED_OUT_FINAL:
            if signals.command is Command.REACTIVATE:
                return Transition(ConversationPhase.NEW, Action.RESTART)
            return Transition(phase, Action.IGNORE)
        iterations = state.brief_iteration_count if state is not None else 0
        if signals.disagreement and phase in REVISABLE_PHASES and iterations < MAX_BRIEF_ITERATIONS:
            if iterations + 1 >= MAX_BRIEF_ITERATIONS:
                return Transition(ConversationPhase.ESCALATED_FINAL, Action.ESCALATE_REVISIONS)
            return Transition(ConversationPhase.REVISING, Action.REVISE_BRIEF)
        return Transition(phase, Action.IGNORE)

    category = (state.category if state is not None and state.category else None) or signals.category
    if not category:
        return Transition(phase, Action.CLASSIFY)
    if category.lower() == OFF_TOPIC_CATEGORY:
        return Transition(ConversationPhase.OFF_TOPIC_FINAL, Action.FINALIZE_OFF_TOPIC)

    scoring = signals.scoring
    if scoring is None:
        return Transition(phase, Action.SCORE)
    if scoring.is_actionable:
        return Transition(ConversationPhase.ACTIONABLE_FINAL, Action.FINALIZE_ACTIONABLE)
    loop_count = state.loop_count if state is not None else 0
    if loop_count >= MAX_FOLLOW_UP_ROUNDS:
        return Transition(ConversationPhase.ESCALATED_FINAL, Action.ESCALATE)
    if not signals.pending_fields:
        if loop_count > 0:
            # Every missing or invalid field has been asked about already.
            return Transition(ConversationPhase.ESCALATED_FINAL, Action.ESCALATE)
        return Transition(phase, Action.IGNORE)
    return Transition(ConversationPhase.LOOPING, Action.ASK_FOLLOW_UPS)


__all__ = [
    "Action",
    "MAX_BRIEF_ITERATIONS",
    "MAX_FOLLOW_UP_ROUNDS",
    "REVISABLE_PHASES",
    "Signals",
    "Transition",
    "phase_of",
    "transition",
]
