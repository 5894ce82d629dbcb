from __future__ import annotations

import pytest

from concierge.classifier import Command
from concierge.scoring.completeness import ScoringResult
from concierge.state.machine import MAX_FOLLOW_UP_ROUNDS, Action, Signals, Transition, transition
from concierge.state.models import ConversationPhase, ConversationState, FinalOutcome


def _scoring(actionable: bool) -> ScoringResult:
    return ScoringResult(category="bug", score=90 if actionable else 30, threshold=70, is_actionable=actionable)


def _final(outcome: FinalOutcome, **values) -> ConversationState:
    state = ConversationState(category="bug", participant_id="reporter", **values)
    state.finalize(outcome)
    return state


def test_new_conversation_requests_classification_then_scoring() -> None:
    assert transition(None, Signals()).action is Action.CLASSIFY

    result = transition(None, Signals(category="bug"))
    assert result.action is Action.SCORE
    assert result.phase is ConversationPhase.NEW


def test_stored_category_is_reused() -> None:
    state = ConversationState(category="bug", loop_count=1)

    assert transition(state, Signals()).action is Action.SCORE


def test_off_topic_finalizes() -> None:
    result = transition(None, Signals(category="Off_Topic"))

    assert result == Transition(ConversationPhase.OFF_TOPIC_FINAL, Action.FINALIZE_OFF_TOPIC)


def test_actionable_finalizes() -> None:
    result = transition(None, Signals(category="bug", scoring=_scoring(True)))

    assert result.phase is ConversationPhase.ACTIONABLE_FINAL
    assert result.action is Action.FINALIZE_ACTIONABLE


def test_incomplete_asks_follow_ups_while_fields_are_pending() -> None:
    result = transition(None, Signals(category="bug", scoring=_scoring(False), pending_fields=["os"]))

    assert result.phase is ConversationPhase.LOOPING
    assert result.action is Action.ASK_FOLLOW_UPS


def test_escalates_at_the_round_limit() -> None:
    state = ConversationState(category="bug", loop_count=MAX_FOLLOW_UP_ROUNDS)

    result = transition(state, Signals(scoring=_scoring(False), pending_fields=["os"]))

    assert result.phase is ConversationPhase.ESCALATED_FINAL
    assert result.action is Action.ESCALATE


def test_escalates_when_everything_missing_was_already_asked() -> None:
    state = ConversationState(category="bug", loop_count=1, asked_fields=["os"])

    result = transition(state, Signals(scoring=_scoring(False), pending_fields=[]))

    assert result.action is Action.ESCALATE


def test_nothing_pending_before_any_round_is_ignored() -> None:
    result = transition(None, Signals(category="bug", scoring=_scoring(False), pending_fields=[]))

    assert result == Transition(ConversationPhase.NEW, Action.IGNORE)


@pytest.mark.parametrize("phase_state", [None, ConversationState(category="bug", loop_count=2)])
def test_opt_out_from_any_open_phase(phase_state) -> None:
    result = transition(phase_state, Signals(command=Command.OPT_OUT))

    assert result.phase is ConversationPhase.OPTED_OUT_FINAL
    assert result.action is Action.ACKNOWLEDGE_OPT_OUT


def test_opt_out_beats_finalized_phases() -> None:
    state = _final(FinalOutcome.ACTIONABLE)

    assert transition(state, Signals(command=Command.OPT_OUT)).action is Action.ACKNOWLEDGE_OPT_OUT


def test_opted_out_ignores_everything_but_reactivation() -> None:
    state = _final(FinalOutcome.OPTED_OUT)

    assert transition(state, Signals(command=Command.OPT_OUT)).action is Action.IGNORE
    assert transition(state, Signals(disagreement=True)).action is Action.IGNORE
    restart = transition(state, Signals(command=Command.REACTIVATE))
    assert restart.action is Action.RESTART
    assert restart.phase is ConversationPhase.NEW


def test_reactivation_outside_opt_out_is_ignored_when_final() -> None:
    state = _final(FinalOutcome.ACTIONABLE)

    assert transition(state, Signals(command=Command.REACTIVATE)).action is Action.IGNORE


def test_disagreement_revises_once_then_escalates() -> None:
    state = _final(FinalOutcome.ACTIONABLE)

    first = transition(state, Signals(disagreement=True))
    assert first.phase is ConversationPhase.REVISING
    assert first.action is Action.REVISE_BRIEF

    state.brief_iteration_count = 1
    second = transition(state, Signals(disagreement=True))
    assert second.phase is ConversationPhase.ESCALATED_FINAL
    assert second.action is Action.ESCALATE_REVISIONS

    state.brief_iteration_count = 2
    assert transition(state, Signals(disagreement=True)).action is Action.IGNORE


def test_finalized_without_disagreement_is_ignored() -> None:
    for outcome in (FinalOutcome.ACTIONABLE, FinalOutcome.ESCALATED, FinalOutcome.OFF_TOPIC):
        assert transition(_final(outcome), Signals()).action is Action.IGNORE


def test_legacy_finalized_state_derives_phase_from_actionable_flag() -> None:
    escalated = ConversationState(is_finalized=True, is_actionable=False)
    actionable = ConversationState(is_finalized=True, is_actionable=True)

    assert escalated.phase is ConversationPhase.ESCALATED_FINAL
    assert actionable.phase is ConversationPhase.ACTIONABLE_FINAL
