"""Redaction, validation and completeness scoring."""

from .completeness import CompletenessScorer, ScoringResult
from .redactor import REDACTION_PLACEHOLDER, RedactionResult, SecretRedactor
from .validators import FieldValidator, ValidationResult

__all__ = [
    "CompletenessScorer",
    "FieldValidator",
    "REDACTION_PLACEHOLDER",
    "RedactionResult",
    "ScoringResult",
    "SecretRedactor",
    "ValidationResult",
]
