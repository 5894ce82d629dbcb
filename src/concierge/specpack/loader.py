"""Load the YAML spec pack that configures categories, checklists and routing."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict

import yaml
from pydantic import ValidationError

from ..settings import ConfigurationError
from .schema import SpecPack

LOGGER = logging.getLogger(__name__)

CATEGORIES_FILE = "categories.yaml"
CHECKLISTS_FILE = "checklists.yaml"
VALIDATORS_FILE = "validators.yaml"
ROUTING_FILE = "routing.yaml"
PLAYBOOKS_DIR = "playbooks"


def load_spec_pack(spec_dir: Path) -> SpecPack:
    """Read every spec pack file under ``spec_dir`` into a validated ``SpecPack``.

    Missing files contribute empty sections. A missing directory, malformed
    YAML or records that fail validation raise ``ConfigurationError``.
    """
    if not spec_dir.is_dir():
        raise ConfigurationError(f"Spec pack directory not found: {spec_dir}")

    categories = _read_yaml(spec_dir / CATEGORIES_FILE).get("categories") or []
    checklists = _read_yaml(spec_dir / CHECKLISTS_FILE).get("checklists") or []
    validators = _read_yaml(spec_dir / VALIDATORS_FILE)
    routing = _read_yaml(spec_dir / ROUTING_FILE)
    playbooks = _read_playbooks(spec_dir / PLAYBOOKS_DIR)

    try:
        pack = SpecPack.model_validate(
            {
                "categories": categories,
                "checklists": checklists,
                "validators": validators,
                "routing": routing,
                "playbooks": playbooks,
            }
        )
    except ValidationError as error:
        raise ConfigurationError(f"Spec pack at {spec_dir} is invalid: {error}") from error

    LOGGER.info(
        "Loaded spec pack from %s (%d categories, %d checklists, %d playbooks)",
        spec_dir,
        len(pack.categories),
        len(pack.checklists),
        len(pack.playbooks),
    )
    return pack


def _read_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        LOGGER.info("Spec pack file %s not found; using empty defaults", path.name)
        return {}
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except yaml.YAMLError as error:
        raise ConfigurationError(f"Failed to parse {path}: {error}") from error
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path} must contain a mapping at the top level.")
    return data


def _read_playbooks(directory: Path) -> Dict[str, str]:
    if not directory.is_dir():
        return {}
    playbooks: Dict[str, str] = {}
    for path in sorted(directory.glob("*.md")):
        playbooks[path.stem] = path.read_text(encoding="utf-8")
    return playbooks


__all__ = ["load_spec_pack"]
