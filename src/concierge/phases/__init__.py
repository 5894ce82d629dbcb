"""Language-model phases of the triage flow."""

from __future__ import annotations

from enum import Enum


class PhaseName(str, Enum):
    """Enumeration of the supported language-model phases."""

    CLASSIFY = "classify"
    EXTRACT = "extract"
    FOLLOW_UPS = "follow_ups"
    BRIEF = "brief"
    REVISE_BRIEF = "revise_brief"


__all__ = ["PhaseName"]
