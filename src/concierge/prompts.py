"""Prompt templates for the language-model phases of the triage flow."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Sequence

JSON_RESPONSE_INSTRUCTION = (
    "Return only JSON. Emit a single JSON object that satisfies the documented response schema. "
    "Do not include markdown fences, explanations, or trailing text."
)

TRIAGE_SYSTEM_PROMPT = (
    "You are a GitHub issue triage assistant for an open source project. "
    "You read support requests, keep to the facts the reporter actually gave, "
    f"and answer in structured JSON. {JSON_RESPONSE_INSTRUCTION}"
)

ENGINEER_SYSTEM_PROMPT = (
    "You are an experienced support engineer writing hand-off briefs for maintainers. "
    "Ground every recommendation in the playbook and repository documentation you are given "
    f"and never invent commands, file paths or procedures. {JSON_RESPONSE_INSTRUCTION}"
)

CREDENTIAL_HINTS = ("credential", "api_key", "apikey", "token", "password", "secret", "auth")

FOLLOW_UP_GUARDRAILS = (
    "## Guardrails\n"
    "- Never ask for passwords, API keys, tokens, secrets or any other credential.\n"
    "- When a field name suggests credentials (for example `reddit_credentials`), ask the user to confirm "
    "the value is configured, never for the value itself.\n"
    "- Never ask for connection strings or database URLs that contain real values.\n"
    "- Never ask for bearer tokens, authorization codes or session cookies.\n"
    "- Ask for diagnostic material only: logs, error text, versions, configuration names.\n"
    "- Stay friendly and respectful."
)


def render_bullets(items: Sequence[str], *, empty: str = "(none)") -> str:
    """Format ``items`` as a markdown bullet list."""
    lines = [f"- {item.strip()}" for item in items if item and item.strip()]
    if not lines:
        return empty
    return "\n".join(lines)


def render_field_lines(fields: Mapping[str, str], *, empty: str = "(none)") -> str:
    lines = [f"- {name}: {value}" for name, value in fields.items() if value]
    if not lines:
        return empty
    return "\n".join(lines)


def render_classification_prompt(title: str, body: str, categories: Sequence[tuple[str, str]]) -> str:
    """Ask for one of the configured categories with a confidence and a short rationale."""
    category_lines = render_bullets([f"{name}: {description}" for name, description in categories])
    return (
        "## Task\n"
        "Classify this issue into exactly one of the categories below.\n\n"
        f"## Categories\n{category_lines}\n\n"
        f"## Issue Title\n{title}\n\n"
        f"## Issue Body\n{body or '(empty)'}\n\n"
        "Report the category name, a confidence between 0 and 1, and one or two sentences of reasoning."
    )


def render_extraction_prompt(body: str, comments: str, fields: Sequence[tuple[str, str]]) -> str:
    """Ask for a verbatim extraction of the checklist fields."""
    field_lines = render_bullets([f"{name}: {description}" for name, description in fields])
    return (
        "## Task\n"
        "Extract the fields below from the issue and its follow-up comments.\n\n"
        f"## Fields\n{field_lines}\n\n"
        f"## Issue Body\n{body or '(empty)'}\n\n"
        f"## Follow-up Comments\n{comments or '(none)'}\n\n"
        "Copy text exactly as the user wrote it. Leave a field as an empty string when it is absent or "
        "ambiguous; do not infer or invent values."
    )


def looks_like_credential_field(name: str) -> bool:
    lowered = name.lower()
    return any(hint in lowered for hint in CREDENTIAL_HINTS)


def render_follow_up_prompt(
    body: str,
    category: str,
    missing_fields: Sequence[tuple[str, str]],
    asked_before: Sequence[str],
) -> str:
    """Ask for at most three targeted questions about the missing fields."""
    missing_lines = render_bullets([f"{name}: {description}" for name, description in missing_fields])
    sections = [
        "## Task\n"
        f"The user opened a `{category}` issue that is missing information maintainers need. "
        "Write up to 3 short, friendly follow-up questions that collect it.",
        f"## Issue So Far\n{body or '(empty)'}",
        f"## Missing Fields\n{missing_lines}",
    ]
    if asked_before:
        sections.append(f"## Already Asked (do not ask again)\n{', '.join(asked_before)}")
    credential_fields = [name for name, _ in missing_fields if looks_like_credential_field(name)]
    if credential_fields:
        sections.append(
            "## Credential Fields\n"
            f"Only ask the user to confirm these are configured: {', '.join(credential_fields)}"
        )
    sections.append(
        "Be specific about the format you need (for example the full error text including the stack trace, "
        "or an exact version number). Set `field` to the missing field each question targets."
    )
    sections.append(FOLLOW_UP_GUARDRAILS)
    return "\n\n".join(sections)


def render_brief_prompt(
    *,
    body: str,
    comments: str,
    category: str,
    fields: Mapping[str, str],
    playbook: str,
    docs: str,
    duplicates: str,
) -> str:
    """Ask for the engineer brief handed to maintainers once an issue is actionable."""
    sections = [
        "## Task\n"
        f"Write a concise, actionable brief so an engineer can investigate this `{category}` issue.",
        f"## Original Issue\n{body or '(empty)'}",
        f"## Follow-up Information\n{comments or '(none)'}",
        f"## Extracted Fields\n{render_field_lines(fields)}",
        f"## Playbook\n{playbook or '(no playbook for this category)'}",
        f"## Repository Documentation\n{docs or '(none)'}",
    ]
    if duplicates:
        sections.append(f"## Potentially Related Issues\n{duplicates}")
    sections.append(
        "## Brief Contents\n"
        "- summary: one sentence.\n"
        "- symptoms: what the user observes.\n"
        "- repro_steps: reproduction steps when the user gave them.\n"
        "- environment: platform and version details as name/value pairs.\n"
        "- key_evidence: short snippets, two or three lines each at most.\n"
        "- next_steps: drawn only from the playbook and documentation above; never contradict the documentation.\n"
        "- validation_confirmations: two or three yes/no questions that let the user confirm the next steps "
        "fit their situation (for example \"Your error happens during `npm run build`, correct?\").\n"
        "- possible_duplicates: only issues listed under Potentially Related Issues, as issue number plus a "
        "short similarity reason; leave the list empty otherwise."
    )
    return "\n\n".join(sections)


def render_revision_prompt(
    *,
    previous_brief: str,
    feedback: str,
    fields: Mapping[str, str],
    playbook: str,
    category: str,
) -> str:
    """Ask for a revised brief after the user said the previous one did not fit."""
    return "\n\n".join(
        [
            "## Task\n"
            f"The user said the previous brief for this `{category}` issue does not match their situation. "
            "Write a revised brief that takes their clarification into account.",
            f"## Previous Brief\n{previous_brief or '(unavailable)'}",
            f"## User Feedback\n{feedback or '(empty)'}",
            f"## Known Fields\n{render_field_lines(fields)}",
            f"## Playbook\n{playbook or '(no playbook for this category)'}",
            "## Revision Rules\n"
            "- Propose next steps that differ from the previous brief.\n"
            "- Align symptoms and evidence with the error the user describes now.\n"
            "- Include two or three new validation_confirmations for the revised approach.\n"
            "- Use only commands and procedures the playbook mentions.",
        ]
    )


__all__ = [
    "ENGINEER_SYSTEM_PROMPT",
    "FOLLOW_UP_GUARDRAILS",
    "JSON_RESPONSE_INSTRUCTION",
    "TRIAGE_SYSTEM_PROMPT",
    "looks_like_credential_field",
    "render_brief_prompt",
    "render_bullets",
    "render_classification_prompt",
    "render_extraction_prompt",
    "render_field_lines",
    "render_follow_up_prompt",
    "render_revision_prompt",
]
