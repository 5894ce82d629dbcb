"""Field-level validity checks and cross-field contradiction rules."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import List, Optional, Pattern, Tuple

from ..parsing.fields import FieldMap
from ..specpack.schema import ContradictionRule, ValidatorRules

LOGGER = logging.getLogger(__name__)

_FIRST_INTEGER = re.compile(r"(\d+)")
_MAX_MAJOR_VERSION_GAP = 2


@dataclass(slots=True)
class ValidationResult:
    field_name: str
    valid: bool = True
    message: str = ""


class FieldValidator:
    """Apply junk-value, format and contradiction rules from the spec pack."""

    def __init__(self, rules: ValidatorRules) -> None:
        self._junk_patterns: List[Pattern[str]] = [
            re.compile(pattern, re.IGNORECASE) for pattern in rules.junk_patterns
        ]
        self._format_rules: List[Tuple[str, Pattern[str]]] = [
            (key, re.compile(pattern)) for key, pattern in rules.format_validators.items()
        ]
        self._contradiction_rules: List[ContradictionRule] = list(rules.contradiction_rules)

    def is_junk(self, value: str | None) -> bool:
        if not value or not value.strip():
            return True
        trimmed = value.strip()
        return any(pattern.search(trimmed) for pattern in self._junk_patterns)

    def validate(self, field_name: str, value: str | None) -> ValidationResult:
        """Check one value; only the first format rule whose key appears in the name applies."""
        result = ValidationResult(field_name=field_name)
        if not value or not value.strip():
            result.valid = False
            result.message = "Field is empty"
            return result
        if self.is_junk(value):
            result.valid = False
            result.message = "Field contains placeholder or junk value"
            return result

        lowered_name = field_name.lower()
        for key, pattern in self._format_rules:
            if key.lower() not in lowered_name:
                continue
            if not pattern.search(value):
                result.valid = False
                result.message = f"Field does not match expected format for {key}"
            break
        return result

    def check_contradictions(self, fields: Mapping[str, str]) -> List[str]:
        """Return a warning per contradiction rule that fires; never raises."""
        lookup = fields if isinstance(fields, FieldMap) else FieldMap(fields)
        warnings: List[str] = []
        for rule in self._contradiction_rules:
            if rule.field1 not in lookup or rule.field2 not in lookup:
                continue
            value1 = lookup[rule.field1].lower()
            value2 = lookup[rule.field2].lower()
            condition = rule.condition.lower()
            if condition == "version_mismatch":
                version1 = _first_integer(value1)
                version2 = _first_integer(value2)
                if version1 is not None and version2 is not None and abs(version1 - version2) > _MAX_MAJOR_VERSION_GAP:
                    warnings.append(
                        f"{rule.description}: {rule.field1} ({value1}) may be incompatible with {rule.field2} ({value2})"
                    )
            elif condition == "windows_with_bash_native":
                if "windows" in value1 and "bash" in value2 and "wsl" not in value2:
                    warnings.append(f"{rule.description}: Windows typically requires WSL for bash")
            else:
                LOGGER.debug("Skipping contradiction rule %s with unknown condition %s", rule.name, rule.condition)
        return warnings


def _first_integer(text: str) -> Optional[int]:
    match = _FIRST_INTEGER.search(text)
    if not match:
        return None
    return int(match.group(1))


__all__ = ["FieldValidator", "ValidationResult"]
