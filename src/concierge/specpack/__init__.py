"""Spec pack records and loader."""

from .loader import load_spec_pack
from .schema import (
    OFF_TOPIC_CATEGORY,
    Category,
    CategoryChecklist,
    CategoryRoute,
    ContradictionRule,
    RequiredField,
    RoutingRules,
    SpecPack,
    ValidatorRules,
)

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
    "load_spec_pack",
]
