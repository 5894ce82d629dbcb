from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from conftest import ScriptedLLMClient
from concierge.phases import PhaseName
from concierge.phases.base import Failed, Ok, PartialOk, unwrap
from concierge.phases.brief import (
    BriefRequest,
    DuplicateCandidate,
    EngineerBrief,
    RevisionRequest,
    fallback_brief,
    run as run_brief,
    run_revision,
)
from concierge.phases.extract import ExtractRequest, run as run_extract
from concierge.phases.followups import FollowUpRequest, fallback_questions, run as run_follow_ups
from concierge.router import PhaseRouter

BRIEF_ANSWER = {
    "summary": "Crash on start",
    "validation_confirmations": ["One?", "Two?", "Three?", "Four?"],
    "possible_duplicates": [{"issue_number": 3, "similarity_reason": "same"}],
}


def test_extract_drops_blank_values_and_flags_missing_keys() -> None:
    llm = ScriptedLLMClient({"case_packet": [{"os": " Linux ", "error_message": None, "shell": "   "}]})
    request = ExtractRequest(
        body="body",
        fields=[("os", "Operating system"), ("error_message", "Error"), ("version", "Version")],
    )

    outcome = run_extract(request, client=llm)

    assert isinstance(outcome, PartialOk)
    assert outcome.value.fields == {"os": "Linux"}
    assert outcome.violations == ["missing keys: version"]


def test_extract_complete_answer_is_ok() -> None:
    llm = ScriptedLLMClient({"case_packet": [{"os": "Linux"}]})

    outcome = run_extract(ExtractRequest(body="body", fields=[("os", "")]), client=llm)

    assert outcome == Ok(outcome.value)
    assert outcome.value.fields == {"os": "Linux"}


def test_unparseable_answer_fails_and_emits_telemetry(caplog: pytest.LogCaptureFixture) -> None:
    llm = ScriptedLLMClient({"case_packet": ["I could not find anything"]})

    with caplog.at_level(logging.WARNING, logger="concierge.telemetry"):
        outcome = run_extract(ExtractRequest(body="body", fields=[("os", "")]), client=llm)

    assert isinstance(outcome, Failed)
    assert outcome.raw == "I could not find anything"
    assert "json_deserialization_fallback" in caplog.text
    assert unwrap(outcome, "default") == "default"


def test_shape_mismatch_is_coerced_into_partial_ok(caplog: pytest.LogCaptureFixture) -> None:
    llm = ScriptedLLMClient({"follow_up_questions": [{"questions": [{"field": "os", "question": 42}]}]})
    request = FollowUpRequest(body="", category="bug", missing_fields=[("os", "Operating system")])

    with caplog.at_level(logging.WARNING, logger="concierge.telemetry"):
        outcome = run_follow_ups(request, client=llm)

    assert isinstance(outcome, PartialOk)
    assert outcome.value.questions[0].question == "42"
    assert "schema_violation" in caplog.text


def test_follow_up_check_keeps_three_usable_questions() -> None:
    answer = {
        "questions": [
            {"field": "os", "question": ""},
            {"field": "os", "question": "Which OS?"},
            {"field": "version", "question": "Which version?"},
            {"field": "shell", "question": "Which shell?"},
            {"field": "os", "question": "Which OS build?"},
        ]
    }
    llm = ScriptedLLMClient({"follow_up_questions": [answer]})
    request = FollowUpRequest(body="", category="bug", missing_fields=[("os", ""), ("version", "")])

    outcome = run_follow_ups(request, client=llm)

    assert isinstance(outcome, PartialOk)
    assert [item.question for item in outcome.value.questions] == ["Which OS?", "Which version?", "Which shell?"]
    assert any("unknown fields shell" in violation for violation in outcome.violations)


def test_brief_check_trims_confirmations_and_unknown_duplicates() -> None:
    llm = ScriptedLLMClient({"engineer_brief": [dict(BRIEF_ANSWER, possible_duplicates=[{"issue_number": 8}])]})
    request = BriefRequest(body="boom", category="bug", duplicates=[DuplicateCandidate(number=3, title="Crash")])

    outcome = run_brief(request, client=llm)

    assert isinstance(outcome, PartialOk)
    assert outcome.value.validation_confirmations == ["One?", "Two?", "Three?"]
    assert outcome.value.possible_duplicates == []
    assert outcome.violations == ["possible_duplicates: dropped unknown issues [8]"]


def test_brief_with_known_duplicate_is_ok() -> None:
    llm = ScriptedLLMClient({"engineer_brief": [BRIEF_ANSWER]})
    request = BriefRequest(body="boom", category="bug", duplicates=[DuplicateCandidate(number=3, title="Crash")])

    outcome = run_brief(request, client=llm)

    assert isinstance(outcome, Ok)
    assert outcome.value.possible_duplicates[0].issue_number == 3
    assert "- #3: Crash" in llm.calls[0]["input"][-1]["content"][0]["text"]


def test_revision_requires_confirmations() -> None:
    llm = ScriptedLLMClient({"engineer_brief": [{"summary": "Revised", "validation_confirmations": ["Only one?"]}]})
    request = RevisionRequest(previous_brief="old", feedback="not my case", category="bug")

    outcome = run_revision(request, client=llm)

    assert isinstance(outcome, PartialOk)
    assert outcome.value.summary == "Revised"
    assert outcome.violations == ["validation_confirmations: 1 given, at least 2 expected"]


def test_phase_logs_are_written(tmp_path: Path) -> None:
    llm = ScriptedLLMClient({"case_packet": [{"os": "Linux"}]})

    run_extract(ExtractRequest(body="body", fields=[("os", "")], issue_number=42), client=llm, logs_dir=tmp_path)

    logs = list((tmp_path / "phases").glob("phase__extract__issue-42__*.json"))
    assert len(logs) == 1
    entry = json.loads(logs[0].read_text(encoding="utf-8"))
    assert entry["phase"] == "extract"
    assert entry["outcome"] == "Ok"
    assert entry["request"]["issue_number"] == 42
    assert entry["attempts"][0]["parsed"] == {"os": "Linux"}


def test_fallback_questions_do_not_ask_for_secrets() -> None:
    questions = fallback_questions(
        [("api_credentials", "API key configured"), ("os", "Operating system."), ("log", ""), ("extra", "")]
    )

    assert len(questions) == 3
    assert "Please don't paste the actual value" in questions[0].question
    assert questions[1].question == "Could you share the os? (Operating system)"
    assert questions[2].question == "Could you share the log? (log)"


def test_fallback_brief_uses_known_fields() -> None:
    brief = fallback_brief(
        "",
        "build",
        {
            "error_message": "ld: symbol not found",
            "operating_system": "macOS",
            "build_log": "line one\nline two",
            "steps_to_reproduce": "1. make\n\n2. make install",
        },
    )

    assert isinstance(brief, EngineerBrief)
    assert brief.summary == "build report"
    assert brief.symptoms == ["ld: symbol not found"]
    assert brief.environment == {"operating_system": "macOS"}
    assert brief.key_evidence == ["line one"]
    assert brief.repro_steps == ["1. make", "2. make install"]


def test_router_coerces_mapping_payloads() -> None:
    llm = ScriptedLLMClient({"category_classification": [{"category": "bug", "confidence": 1, "reasoning": ""}]})
    router = PhaseRouter(client=llm)

    outcome = router.dispatch("classify", {"title": "Crash", "body": "boom", "categories": [["bug", "Broken"]]})

    assert isinstance(outcome, Ok)
    assert outcome.value.category == "bug"
    assert set(router.available_phases()) == set(PhaseName)


def test_router_rejects_unknown_phase_and_bad_payload() -> None:
    router = PhaseRouter(client=ScriptedLLMClient())

    with pytest.raises(KeyError, match="Unknown phase 'triage'"):
        router.dispatch("triage", {})
    with pytest.raises(ValueError, match="ClassifyRequest"):
        router.dispatch(PhaseName.CLASSIFY, {"categories": "nope"})
