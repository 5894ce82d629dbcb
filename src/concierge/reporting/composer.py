"""Markdown bodies for every comment the bot posts."""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import List, Optional, Sequence

from ..phases.brief import EngineerBrief
from ..phases.followups import FollowUpQuestion
from ..scoring.completeness import ScoringResult
from ..state.machine import MAX_FOLLOW_UP_ROUNDS

COMMANDS_SECTION = (
    "### Quick Commands\n"
    "- **`/stop`** stops follow-up questions on this issue.\n"
    "- **`/diagnose`** starts a fresh diagnosis for your own sub-issue or a different problem."
)

REVISION_PREFIX = "Thanks for the clarification! Here's a revised approach:"


def _mention(username: Optional[str]) -> List[str]:
    if not username:
        return []
    return [f"@{username}", ""]


class CommentComposer:
    """Builds comment bodies; state markers are appended by the state store."""

    def follow_up(self, questions: Sequence[FollowUpQuestion], loop_count: int, username: Optional[str] = None) -> str:
        lines = _mention(username)
        lines.append("Hi! I need a bit more information to route this issue.")
        lines.append("")
        for index, item in enumerate(questions, start=1):
            lines.append(f"**{index}. {item.question}**")
            if item.why_needed:
                lines.append(f"   _{item.why_needed}_")
            lines.append("")
        lines.append("---")
        lines.append(
            f"_Follow-up round {loop_count} of {MAX_FOLLOW_UP_ROUNDS}. Please include as much detail as you can._"
        )
        lines.append("")
        lines.append(COMMANDS_SECTION)
        return "\n".join(lines)

    def engineer_brief(
        self,
        brief: EngineerBrief,
        scoring: Optional[ScoringResult],
        fields: Mapping[str, str],
        secret_findings: Sequence[str] = (),
        username: Optional[str] = None,
    ) -> str:
        """Render the hand-off brief with the case packet and score appended."""
        lines = _mention(username)
        lines.append(f"**Summary:** {brief.summary}")
        lines.append("")

        if brief.symptoms:
            lines.append("### Symptoms")
            lines.extend(f"- {symptom}" for symptom in brief.symptoms)
            lines.append("")
        if brief.environment:
            lines.append("### Environment")
            lines.extend(f"- **{name}:** {value}" for name, value in brief.environment.items())
            lines.append("")
        if brief.repro_steps:
            lines.append("### Reproduction Steps")
            lines.extend(f"{index}. {step}" for index, step in enumerate(brief.repro_steps, start=1))
            lines.append("")
        if brief.key_evidence:
            lines.append("### Key Evidence")
            lines.append("```")
            lines.extend(brief.key_evidence)
            lines.append("```")
            lines.append("")

        warnings = list(scoring.warnings) if scoring is not None else []
        if warnings or secret_findings:
            lines.append("### Warnings")
            lines.extend(f"- {warning}" for warning in warnings)
            lines.extend(f"- {finding}" for finding in secret_findings)
            lines.append("")

        if brief.next_steps:
            lines.append("### Suggested Next Steps")
            lines.extend(f"- {step}" for step in brief.next_steps)
            lines.append("")
        if brief.validation_confirmations:
            lines.append("### Please Confirm")
            lines.append("Before trying the steps above, please confirm:")
            lines.extend(f"- {item}" for item in brief.validation_confirmations)
            lines.append("")
        if brief.possible_duplicates:
            lines.append("### Possibly Related Issues")
            lines.extend(
                f"- #{item.issue_number}: {item.similarity_reason}" for item in brief.possible_duplicates
            )
            lines.append("")

        lines.append(COMMANDS_SECTION)
        lines.append("")
        lines.append(
            "If this brief doesn't fit your situation, reply saying so (for example \"I disagree\") "
            "and I'll revise it once before asking a maintainer to step in."
        )
        lines.append("")
        lines.append("---")
        lines.append("<details>")
        lines.append("<summary>Case Packet (JSON)</summary>")
        lines.append("")
        lines.append("```json")
        lines.append(json.dumps(dict(fields), indent=2, ensure_ascii=False))
        lines.append("```")
        lines.append("</details>")
        if scoring is not None:
            lines.append("")
            lines.append(f"**Completeness Score:** {scoring.score}/100 (threshold: {scoring.threshold})")
        return "\n".join(lines)

    def revised_brief(self, brief_body: str) -> str:
        return f"{REVISION_PREFIX}\n\n{brief_body}"

    def escalation(self, scoring: ScoringResult, mentions: Sequence[str], *, rounds: int) -> str:
        lines = ["## Escalation Notice", ""]
        if rounds >= MAX_FOLLOW_UP_ROUNDS:
            lines.append(
                f"After {rounds} rounds of follow-up questions this issue still lacks the information "
                "needed to act on it."
            )
        else:
            lines.append(
                "I've already asked about everything this issue is still missing, "
                "so I'm handing it to a maintainer."
            )
        lines.append("")
        if scoring.missing_fields:
            lines.append("### Still Missing")
            lines.extend(f"- {name}" for name in scoring.missing_fields)
            lines.append("")
        if scoring.issues:
            lines.append("### Issues Identified")
            lines.extend(f"- {issue}" for issue in scoring.issues)
            lines.append("")
        lines.append(f"**Current Completeness Score:** {scoring.score}/100 (needs {scoring.threshold})")
        lines.append("")
        lines.append(f"Tagging for manual review: {' '.join(mentions)}".rstrip())
        return "\n".join(lines)

    def revision_escalation(self, mentions: Sequence[str]) -> str:
        return (
            "I've attempted to provide guidance twice, but it seems we're not addressing your specific "
            "situation yet.\n\n"
            "This issue may benefit from human review. I'm adding the escalation label for a maintainer "
            "to take a closer look.\n\n"
            f"{' '.join(mentions)}"
        ).rstrip()

    def off_topic(self, username: Optional[str] = None) -> str:
        lines = _mention(username)
        lines.append(
            "Thanks for reaching out! This looks like a question or discussion rather than a problem report, "
            "so I won't run the support checklist on it."
        )
        lines.append("")
        lines.append(
            "If you're actually hitting an error, please describe what fails and comment `/diagnose` "
            "to start a diagnosis."
        )
        return "\n".join(lines)

    def opt_out(self, username: str) -> str:
        return (
            f"@{username}\n\n"
            "You've opted out with /stop. I won't ask further questions on this issue. "
            "If you need to restart, comment with /diagnose."
        )


__all__ = ["COMMANDS_SECTION", "CommentComposer", "REVISION_PREFIX"]
