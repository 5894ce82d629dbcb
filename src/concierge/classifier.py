"""Deterministic signals read from issue text: commands, categories and disagreement."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from .parsing.fields import FieldMap
from .specpack.schema import OFF_TOPIC_CATEGORY, SpecPack

LOGGER = logging.getLogger(__name__)

OPT_OUT_COMMAND = "/stop"
REACTIVATE_COMMAND = "/diagnose"

PROBLEM_TERMS = (
    "error message",
    "exception",
    "fail",
    "failed",
    "failure",
    "crash",
    "crashed",
    "stack trace",
    "not working",
    "doesn't work",
    "doesnt work",
    "unable to",
    "cannot",
    "can't",
    "can not",
    "won't",
    "wont",
    "bug",
    "regression",
    "broken",
    "issue with",
    "problem with",
)

NEGATED_PROBLEM_TERMS = ("no error", "no errors", "no exception", "no crash", "no fail")

DISAGREEMENT_PHRASES = (
    "doesn't apply",
    "don't apply",
    "does not apply",
    "do not apply",
    "already tried",
    "already did",
    "already done",
    "didn't work",
    "did not work",
    "doesn't work",
    "does not work",
    "still broken",
    "still failing",
    "still see",
    "still getting",
    "not working",
    "not relevant",
    "not applicable",
    "different error",
    "different issue",
    "different problem",
    "need clarification",
    "not sure how",
    "unclear how",
    "not my case",
    "not my situation",
    "doesn't match",
    "disagree",
    "disagrees",
    "disagreed",
    "disagreement",
)

EXPLICIT_TYPE_FIELDS = ("issue_type", "type")


class Command(str, Enum):
    NONE = "none"
    OPT_OUT = "opt_out"
    REACTIVATE = "reactivate"


def detect_command(text: str | None) -> Command:
    """Opt-out wins when a reply carries both commands."""
    lowered = (text or "").lower()
    if OPT_OUT_COMMAND in lowered:
        return Command.OPT_OUT
    if REACTIVATE_COMMAND in lowered:
        return Command.REACTIVATE
    return Command.NONE


def detect_disagreement(text: str | None) -> bool:
    lowered = (text or "").lower()
    return any(phrase in lowered for phrase in DISAGREEMENT_PHRASES)


@dataclass(slots=True)
class CategoryMatch:
    """Outcome of deterministic category resolution; ``category`` is ``None`` when undecided."""

    category: Optional[str]
    source: str
    scores: Dict[str, int]


def keyword_scores(text: str, spec_pack: SpecPack) -> Dict[str, int]:
    """Count the keywords of each category that occur in ``text``, in configuration order."""
    lowered = text.lower()
    return {
        category.name: sum(1 for keyword in category.keywords if keyword.lower() in lowered)
        for category in spec_pack.categories
    }


def looks_off_topic(text: str, scores: Dict[str, int]) -> bool:
    """Off-topic keywords with no problem vocabulary, or only negated problem vocabulary."""
    off_topic_score = next((score for name, score in scores.items() if name.lower() == OFF_TOPIC_CATEGORY), 0)
    if off_topic_score <= 0:
        return False
    lowered = text.lower()
    has_problem_terms = any(term in lowered for term in PROBLEM_TERMS)
    has_negation = any(term in lowered for term in NEGATED_PROBLEM_TERMS)
    return not has_problem_terms or has_negation


def resolve_category(title: str, body: str, parsed_fields: FieldMap, spec_pack: SpecPack) -> CategoryMatch:
    """Resolve a category without the language model.

    Precedence: an explicit ``issue_type``/``type`` form field naming a
    configured category, then the off-topic heuristic, then the best keyword
    score (ties go to the category configured first).
    """
    explicit = parsed_fields.lookup(*EXPLICIT_TYPE_FIELDS)
    if explicit is not None:
        configured = spec_pack.find_category(explicit[1].strip())
        if configured is not None:
            return CategoryMatch(category=configured.name, source="explicit", scores={})

    text = f"{title} {body}"
    scores = keyword_scores(text, spec_pack)
    LOGGER.debug("Category keyword scores: %s", {name: score for name, score in scores.items() if score})

    if looks_off_topic(text, scores):
        return CategoryMatch(category=OFF_TOPIC_CATEGORY, source="off_topic_heuristic", scores=scores)

    best_name: Optional[str] = None
    best_score = 0
    for name, score in scores.items():
        if score > best_score:
            best_name, best_score = name, score
    if best_name is not None:
        return CategoryMatch(category=best_name, source="keywords", scores=scores)
    return CategoryMatch(category=None, source="undecided", scores=scores)


__all__ = [
    "Command",
    "CategoryMatch",
    "DISAGREEMENT_PHRASES",
    "NEGATED_PROBLEM_TERMS",
    "PROBLEM_TERMS",
    "detect_command",
    "detect_disagreement",
    "keyword_scores",
    "looks_off_topic",
    "resolve_category",
]
