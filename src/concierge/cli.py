"""CLI commands for running the support concierge and inspecting spec packs."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import typer

from .github.client import GitHubError
from .models.llm_client import LLMClientError
from .orchestrator import Orchestrator, TriageOutcome
from .parsing.fields import parse_issue_fields
from .scoring.completeness import CompletenessScorer
from .scoring.redactor import SecretRedactor
from .scoring.validators import FieldValidator
from .settings import DEFAULT_CONFIG_NAME, DEFAULT_SPEC_DIR, ConfigurationError, RuntimeSettings, load_config_file
from .specpack.loader import load_spec_pack
from .specpack.schema import SpecPack

APP_HELP = "Support Concierge: issue triage driven by a YAML spec pack."

LOGGER = logging.getLogger(__name__)

app = typer.Typer(help=APP_HELP)


def _configure_logging(level: str) -> None:
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        raise typer.BadParameter(f"Unknown log level: {level}")
    logging.basicConfig(level=numeric, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def load_config(config_path: Path) -> Dict[str, Any]:
    """Load YAML configuration from disk; a missing file yields the defaults."""
    try:
        return load_config_file(config_path)
    except ConfigurationError as error:
        typer.echo(f"Failed to load config: {error}")
        raise typer.Exit(code=1) from error


def _load_spec_pack(spec_dir: Path) -> SpecPack:
    try:
        return load_spec_pack(spec_dir)
    except ConfigurationError as error:
        typer.echo(f"Failed to load spec pack: {error}")
        raise typer.Exit(code=1) from error


def _read_event(event_path: Path) -> Dict[str, Any]:
    try:
        with event_path.open("r", encoding="utf-8") as handle:
            payload = json.load(handle)
    except (OSError, json.JSONDecodeError) as error:
        typer.echo(f"Failed to read event payload {event_path}: {error}")
        raise typer.Exit(code=1) from error
    if not isinstance(payload, dict):
        typer.echo("Event payload must be a JSON object.")
        raise typer.Exit(code=1)
    return payload


def _describe(outcome: TriageOutcome) -> None:
    typer.echo(f"Action: {outcome.action.value}")
    if outcome.reason:
        typer.echo(f"Reason: {outcome.reason}")
    if outcome.participant:
        typer.echo(f"Participant: {outcome.participant}")
    if outcome.phase is not None:
        typer.echo(f"Phase: {outcome.phase.value}")
    if outcome.scoring is not None:
        typer.echo(f"Score: {outcome.scoring.score}/100 (threshold {outcome.scoring.threshold})")
    if outcome.comment is not None:
        typer.echo(f"Posted comment {outcome.comment.id}")
    if outcome.labels:
        typer.echo(f"Labels: {', '.join(outcome.labels)}")
    if outcome.assignees:
        typer.echo(f"Assignees: {', '.join(outcome.assignees)}")


@app.command()
def run(
    event_path: Optional[Path] = typer.Argument(
        None,
        help="Path to the webhook payload JSON (defaults to GITHUB_EVENT_PATH).",
    ),
    event_name: Optional[str] = typer.Option(
        None,
        "--event-name",
        help="GitHub event name such as issues or issue_comment (defaults to GITHUB_EVENT_NAME).",
    ),
    config: str = typer.Option(
        DEFAULT_CONFIG_NAME,
        "--config",
        "-c",
        help="Path to the concierge configuration file.",
    ),
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level."),
) -> None:
    """Process one GitHub issue event end to end."""
    _configure_logging(log_level)
    config_path = Path(config)
    settings = RuntimeSettings.from_sources(load_config(config_path), base_dir=config_path.resolve().parent)

    path = event_path or settings.event_path
    name = event_name or settings.event_name
    if path is None or not name:
        typer.echo("An event payload path and event name are required (GITHUB_EVENT_PATH / GITHUB_EVENT_NAME).")
        raise typer.Exit(code=1)
    payload = _read_event(path)

    try:
        orchestrator = Orchestrator.from_settings(settings)
        outcome = orchestrator.process_event(name, payload)
    except (ConfigurationError, GitHubError, LLMClientError) as error:
        LOGGER.error("Triage run failed: %s", error)
        typer.echo(f"Triage failed: {error}")
        raise typer.Exit(code=1) from error

    _describe(outcome)


@app.command()
def score(
    text_file: Path = typer.Argument(..., help="File holding an issue body to score."),
    category: str = typer.Option(..., "--category", help="Category whose checklist is applied."),
    spec_dir: Path = typer.Option(Path(DEFAULT_SPEC_DIR), "--spec-dir", help="Spec pack directory."),
) -> None:
    """Score an issue body offline, without calling GitHub or a model."""
    spec_pack = _load_spec_pack(spec_dir)
    checklist = spec_pack.checklist_for(category)
    if checklist is None:
        typer.echo(f"No checklist configured for category '{category}'.")
        raise typer.Exit(code=1)

    try:
        text = text_file.read_text(encoding="utf-8")
    except OSError as error:
        typer.echo(f"Failed to read {text_file}: {error}")
        raise typer.Exit(code=1) from error

    redaction = SecretRedactor(spec_pack.validators.secret_patterns).redact(text)
    fields = parse_issue_fields(redaction.text)
    result = CompletenessScorer(FieldValidator(spec_pack.validators)).score(fields, checklist)

    verdict = "actionable" if result.is_actionable else "needs more information"
    typer.echo(f"Category: {checklist.category}")
    typer.echo(f"Score: {result.score}/100 (threshold {result.threshold}) - {verdict}")
    if result.missing_fields:
        typer.echo(f"Missing: {', '.join(result.missing_fields)}")
    if result.invalid_fields:
        typer.echo(f"Invalid: {', '.join(result.invalid_fields)}")
    for issue in result.issues:
        typer.echo(f"- {issue}")
    for warning in result.warnings:
        typer.echo(f"Warning: {warning}")
    for finding in redaction.findings:
        typer.echo(f"Redacted: {finding}")


@app.command()
def spec(
    spec_dir: Path = typer.Option(Path(DEFAULT_SPEC_DIR), "--spec-dir", help="Spec pack directory."),
) -> None:
    """Load a spec pack and summarize what it configures."""
    spec_pack = _load_spec_pack(spec_dir)
    typer.echo(f"Categories ({len(spec_pack.categories)}):")
    for item in spec_pack.categories:
        checklist = spec_pack.checklist_for(item.name)
        if checklist is None:
            detail = "no checklist"
        else:
            detail = f"{len(checklist.required_fields)} field(s), threshold {checklist.completeness_threshold}"
        playbook = "playbook" if spec_pack.playbook_for(item.name) else "no playbook"
        typer.echo(f"- {item.name}: {detail}, {playbook}")
    typer.echo(f"Secret patterns: {len(spec_pack.validators.secret_patterns)}")
    typer.echo(f"Junk patterns: {len(spec_pack.validators.junk_patterns)}")
    typer.echo(f"Contradiction rules: {len(spec_pack.validators.contradiction_rules)}")
    mentions = " ".join(spec_pack.routing.escalation_mentions) or "(none)"
    typer.echo(f"Escalation mentions: {mentions}")


if __name__ == "__main__":
    app()
