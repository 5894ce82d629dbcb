"""Typed records describing a repository's triage spec pack."""

from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

OFF_TOPIC_CATEGORY = "off_topic"


class SpecModel(BaseModel):
    """Base model for spec pack records; unknown YAML keys are ignored."""

    model_config = ConfigDict(extra="ignore", frozen=False)


class Category(SpecModel):
    """Issue category with the keywords used for deterministic matching."""

    name: str
    description: str = ""
    keywords: List[str] = Field(default_factory=list)


class RequiredField(SpecModel):
    """A checklist entry that contributes ``weight`` to the completeness score."""

    name: str
    description: str = ""
    weight: int = Field(default=10, ge=0)
    optional: bool = False
    aliases: List[str] = Field(default_factory=list)


class CategoryChecklist(SpecModel):
    category: str
    completeness_threshold: int = Field(default=70, ge=0, le=100)
    required_fields: List[RequiredField] = Field(default_factory=list)


class ContradictionRule(SpecModel):
    """Cross-field rule; ``condition`` names one of the known checks."""

    name: str = ""
    description: str = ""
    field1: str
    field2: str
    condition: str


class ValidatorRules(SpecModel):
    junk_patterns: List[str] = Field(default_factory=list)
    format_validators: Dict[str, str] = Field(default_factory=dict)
    secret_patterns: List[str] = Field(default_factory=list)
    contradiction_rules: List[ContradictionRule] = Field(default_factory=list)


class CategoryRoute(SpecModel):
    category: str
    labels: List[str] = Field(default_factory=list)
    assignees: List[str] = Field(default_factory=list)


class RoutingRules(SpecModel):
    routes: List[CategoryRoute] = Field(default_factory=list)
    escalation_mentions: List[str] = Field(default_factory=list)


class SpecPack(SpecModel):
    """Aggregate of every configuration file that drives triage decisions."""

    categories: List[Category] = Field(default_factory=list)
    checklists: List[CategoryChecklist] = Field(default_factory=list)
    validators: ValidatorRules = Field(default_factory=ValidatorRules)
    routing: RoutingRules = Field(default_factory=RoutingRules)
    playbooks: Dict[str, str] = Field(default_factory=dict)

    def category_names(self) -> List[str]:
        return [category.name for category in self.categories]

    def find_category(self, name: str) -> Optional[Category]:
        lowered = (name or "").strip().lower()
        for category in self.categories:
            if category.name.lower() == lowered:
                return category
        return None

    def checklist_for(self, category: str) -> Optional[CategoryChecklist]:
        lowered = (category or "").strip().lower()
        for checklist in self.checklists:
            if checklist.category.lower() == lowered:
                return checklist
        return None

    def route_for(self, category: str) -> Optional[CategoryRoute]:
        lowered = (category or "").strip().lower()
        for route in self.routing.routes:
            if route.category.lower() == lowered:
                return route
        return None

    def playbook_for(self, category: str) -> str:
        lowered = (category or "").strip().lower()
        for name, content in self.playbooks.items():
            if name.lower() == lowered:
                return content
        return ""


__all__ = [
    "Category",
    "CategoryChecklist",
    "CategoryRoute",
    "ContradictionRule",
    "OFF_TOPIC_CATEGORY",
    "RequiredField",
    "RoutingRules",
    "SpecPack",
    "ValidatorRules",
]
