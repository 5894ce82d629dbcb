"""Field parsing helpers for issue bodies and replies."""

from .fields import (
    FieldMap,
    extract_key_value_lines,
    merge_fields,
    normalize_field_name,
    parse_issue_fields,
    parse_sections,
)

__all__ = [
    "FieldMap",
    "extract_key_value_lines",
    "merge_fields",
    "normalize_field_name",
    "parse_issue_fields",
    "parse_sections",
]
