from __future__ import annotations

from concierge.scoring.validators import FieldValidator
from concierge.specpack.schema import ContradictionRule, ValidatorRules


def _validator(**overrides) -> FieldValidator:
    values = {
        "junk_patterns": [r"^(n/?a|none|tbd|\?+)$"],
        "format_validators": {"version": r"^\d+(\.\d+)*$", "os_version": r"^never$"},
        "contradiction_rules": [
            ContradictionRule(
                name="node",
                description="Runtime mismatch",
                field1="runtime_version",
                field2="engine_version",
                condition="version_mismatch",
            ),
            ContradictionRule(
                name="shell",
                description="Shell mismatch",
                field1="os",
                field2="command",
                condition="windows_with_bash_native",
            ),
            ContradictionRule(name="odd", field1="os", field2="command", condition="no_such_check"),
        ],
    }
    values.update(overrides)
    return FieldValidator(ValidatorRules(**values))


def test_empty_and_junk_values_are_invalid() -> None:
    validator = _validator()

    assert validator.validate("os", "  ").message == "Field is empty"
    junk = validator.validate("os", " N/A ")
    assert not junk.valid
    assert junk.message == "Field contains placeholder or junk value"


def test_first_matching_format_rule_only() -> None:
    validator = _validator()

    # "os_version" contains "version", which is configured first.
    assert validator.validate("os_version", "22.04").valid
    bad = validator.validate("package_version", "latest")
    assert not bad.valid
    assert bad.message == "Field does not match expected format for version"


def test_fields_without_format_rule_are_valid() -> None:
    assert _validator().validate("error_message", "boom").valid


def test_version_mismatch_warns_above_two_majors() -> None:
    validator = _validator()

    warnings = validator.check_contradictions({"runtime_version": "v20.1", "engine_version": "16.0"})
    assert len(warnings) == 1
    assert warnings[0].startswith("Runtime mismatch")
    assert validator.check_contradictions({"runtime_version": "18", "engine_version": "16"}) == []


def test_windows_with_bash_requires_wsl() -> None:
    validator = _validator()

    assert validator.check_contradictions({"OS": "Windows 11", "command": "bash build.sh"})
    assert validator.check_contradictions({"os": "Windows 11", "command": "wsl bash build.sh"}) == []


def test_missing_fields_and_unknown_conditions_are_skipped() -> None:
    assert _validator().check_contradictions({"os": "Linux"}) == []
