from __future__ import annotations

import json
from pathlib import Path

import yaml
from typer.testing import CliRunner

from conftest import ROOT, SPEC_PACK_DATA, issue_payload, run_cli
from concierge.cli import app

runner = CliRunner()

CLEAN_ENV = {
    "GITHUB_TOKEN": None,
    "OPENAI_API_KEY": None,
    "GITHUB_EVENT_PATH": None,
    "GITHUB_EVENT_NAME": None,
    "SUPPORTBOT_SPEC_DIR": None,
}


def _write_spec_pack(root: Path) -> Path:
    spec_dir = root / ".supportbot"
    (spec_dir / "playbooks").mkdir(parents=True)
    files = {
        "categories.yaml": {"categories": SPEC_PACK_DATA["categories"]},
        "checklists.yaml": {"checklists": SPEC_PACK_DATA["checklists"]},
        "validators.yaml": SPEC_PACK_DATA["validators"],
        "routing.yaml": SPEC_PACK_DATA["routing"],
    }
    for name, data in files.items():
        (spec_dir / name).write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
    for name, text in SPEC_PACK_DATA["playbooks"].items():
        (spec_dir / "playbooks" / f"{name}.md").write_text(text, encoding="utf-8")
    return spec_dir


def test_spec_command_summarizes_sample_pack() -> None:
    result = runner.invoke(app, ["spec", "--spec-dir", str(ROOT / ".supportbot")], catch_exceptions=False)

    assert result.exit_code == 0, result.output
    assert "Categories (5):" in result.output
    assert "- off_topic: no checklist, no playbook" in result.output
    assert "Escalation mentions: @maintainers" in result.output


def test_score_command_reports_missing_fields_and_redactions(tmp_path: Path) -> None:
    spec_dir = _write_spec_pack(tmp_path)
    issue = tmp_path / "issue.md"
    issue.write_text("OS: Ubuntu 22.04\npassword: hunter2hunter2\n", encoding="utf-8")

    result = runner.invoke(
        app,
        ["score", str(issue), "--category", "bug", "--spec-dir", str(spec_dir)],
        catch_exceptions=False,
    )

    assert result.exit_code == 0, result.output
    assert "Score: 33/100 (threshold 70) - needs more information" in result.output
    assert "Missing: error_message" in result.output
    assert "Redacted: Found Password: passwo..." in result.output
    assert "hunter2" not in result.output


def test_score_command_rejects_unknown_category(tmp_path: Path) -> None:
    spec_dir = _write_spec_pack(tmp_path)
    issue = tmp_path / "issue.md"
    issue.write_text("anything", encoding="utf-8")

    result = runner.invoke(app, ["score", str(issue), "--category", "docs", "--spec-dir", str(spec_dir)])

    assert result.exit_code == 1
    assert "No checklist configured for category 'docs'." in result.output


def test_run_requires_an_event(tmp_path: Path) -> None:
    result = runner.invoke(app, ["run", "--config", str(tmp_path / "concierge.yaml")], env=CLEAN_ENV)

    assert result.exit_code == 1
    assert "An event payload path and event name are required" in result.output


def test_run_reports_missing_credentials(tmp_path: Path) -> None:
    event = tmp_path / "event.json"
    event.write_text(json.dumps(issue_payload("The widget crashes")), encoding="utf-8")

    result = runner.invoke(
        app,
        ["run", str(event), "--event-name", "issues", "--config", str(tmp_path / "concierge.yaml")],
        env=CLEAN_ENV,
    )

    assert result.exit_code == 1
    assert "Triage failed: Missing required environment variables: GITHUB_TOKEN, OPENAI_API_KEY" in result.output


def test_run_rejects_unreadable_event(tmp_path: Path) -> None:
    event = tmp_path / "event.json"
    event.write_text("[1, 2", encoding="utf-8")

    result = runner.invoke(
        app,
        ["run", str(event), "--event-name", "issues", "--config", str(tmp_path / "concierge.yaml")],
        env=CLEAN_ENV,
    )

    assert result.exit_code == 1
    assert "Failed to read event payload" in result.output


def test_module_entry_point(tmp_path: Path) -> None:
    spec_dir = _write_spec_pack(tmp_path)

    result = run_cli("spec", "--spec-dir", str(spec_dir), cwd=tmp_path)

    assert result.returncode == 0, result.stderr
    assert "Categories (3):" in result.stdout
    assert "- bug: 2 field(s), threshold 70, playbook" in result.stdout
    assert "- build: 2 field(s), threshold 70, no playbook" in result.stdout
