"""Weighted completeness scoring of extracted fields against a category checklist."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import List, Optional

from ..parsing.fields import FieldMap
from ..specpack.schema import CategoryChecklist, RequiredField
from .validators import FieldValidator

INVALID_FIELD_CREDIT = 1 / 3


@dataclass(slots=True)
class ScoringResult:
    """Verdict for one scoring pass; derived on demand and never persisted."""

    category: str
    score: int = 0
    threshold: int = 0
    is_actionable: bool = False
    missing_fields: List[str] = field(default_factory=list)
    invalid_fields: List[str] = field(default_factory=list)
    issues: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


class CompletenessScorer:
    def __init__(self, validator: FieldValidator) -> None:
        self._validator = validator

    def score(self, fields: Mapping[str, str], checklist: CategoryChecklist) -> ScoringResult:
        """Score ``fields`` against ``checklist``.

        Present-but-invalid required fields earn a third of their weight so a
        bad answer still ranks above no answer. Optional fields count towards
        the total weight but never produce issues when missing.
        """
        lookup = fields if isinstance(fields, FieldMap) else FieldMap(fields)
        result = ScoringResult(category=checklist.category, threshold=checklist.completeness_threshold)

        total_weight = 0.0
        earned_weight = 0.0
        for required in checklist.required_fields:
            total_weight += required.weight
            value = find_field_value(lookup, required)
            if value is None:
                result.missing_fields.append(required.name)
                if not required.optional:
                    result.issues.append(f"Required field '{required.name}' is missing")
                continue

            validation = self._validator.validate(required.name, value)
            if not validation.valid:
                result.invalid_fields.append(required.name)
                result.issues.append(f"Field '{required.name}': {validation.message}")
                if not required.optional:
                    earned_weight += required.weight * INVALID_FIELD_CREDIT
                continue
            earned_weight += required.weight

        result.score = round(earned_weight / total_weight * 100) if total_weight > 0 else 0
        result.is_actionable = result.score >= checklist.completeness_threshold
        result.warnings.extend(self._validator.check_contradictions(lookup))
        return result


def find_field_value(fields: FieldMap, required: RequiredField) -> Optional[str]:
    """Resolve ``required`` by its canonical name, then each alias in order."""
    entry = fields.lookup(required.name, *required.aliases)
    if entry is None:
        return None
    return entry[1]


__all__ = ["CompletenessScorer", "INVALID_FIELD_CREDIT", "ScoringResult", "find_field_value"]
