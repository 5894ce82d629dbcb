"""Detect and mask credentials before issue text is scored, stored or echoed."""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import List, Pattern

REDACTION_PLACEHOLDER = "[REDACTED]"

_BASE64_BLOB = re.compile(r"^[A-Za-z0-9+/]{40,}={0,2}$")
_HEX_DIGEST = re.compile(r"^[0-9a-f]{32,}$")
_PREVIEW_LIMIT = 6


@dataclass(slots=True)
class RedactionResult:
    """Redacted text plus human-readable findings that never echo the secret."""

    text: str
    findings: List[str] = field(default_factory=list)


class SecretRedactor:
    """Replace every match of the configured secret patterns with a placeholder."""

    def __init__(self, patterns: Iterable[str]) -> None:
        self._patterns: List[Pattern[str]] = [re.compile(pattern, re.IGNORECASE) for pattern in patterns]

    def redact(self, text: str | None) -> RedactionResult:
        if not text or not text.strip():
            return RedactionResult(text=text or "")

        findings: List[str] = []
        current = text
        for pattern in self._patterns:
            current = self._apply(pattern, current, findings)
        return RedactionResult(text=current, findings=findings)

    def redact_text(self, text: str | None) -> str:
        return self.redact(text).text

    @staticmethod
    def _apply(pattern: Pattern[str], text: str, findings: List[str]) -> str:
        # Spans already holding a placeholder are left alone so a second pass is a no-op.
        protected = [match.span() for match in re.finditer(re.escape(REDACTION_PLACEHOLDER), text)]

        def _replace(match: re.Match[str]) -> str:
            value = match.group(0)
            if not value.strip():
                return value
            start, end = match.span()
            if any(start < p_end and p_start < end for p_start, p_end in protected):
                return value
            findings.append(f"Found {classify_secret(value)}: {_preview(value)}...")
            return REDACTION_PLACEHOLDER

        return pattern.sub(_replace, text)


def classify_secret(value: str) -> str:
    """Name the kind of secret ``value`` most likely is."""
    if not value or not value.strip():
        return "unknown"
    lowered = value.lower()
    if "api" in lowered or "key" in lowered or "token" in lowered:
        return "API Key"
    if "password" in lowered or "passwd" in lowered or "pwd" in lowered:
        return "Password"
    if "secret" in lowered:
        return "Secret"
    if "credential" in lowered:
        return "Credential"
    if "bearer" in lowered:
        return "Bearer Token"
    if _BASE64_BLOB.match(value):
        return "Base64 Encoded Secret"
    if _HEX_DIGEST.match(lowered):
        return "Hash/Token"
    return "Sensitive Data"


def _preview(value: str) -> str:
    return value[: min(_PREVIEW_LIMIT, len(value) // 4)]


__all__ = ["REDACTION_PLACEHOLDER", "RedactionResult", "SecretRedactor", "classify_secret"]
