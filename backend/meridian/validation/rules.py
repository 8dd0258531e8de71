"""Plausibility rules as data.

Each rule is a tagged variant selected by ``kind`` and knows how to evaluate
itself against one facility. The scorer folds over the list; adding a rule
means adding an entry to ``anomaly_rules.yaml``.
"""

from __future__ import annotations

import logging
import os
import re
from functools import lru_cache
from typing import Annotated, Iterable, List, Literal, Optional, Union

import yaml
from pydantic import BaseModel, Field, TypeAdapter

from meridian.shared.models import Facility, FacilityType, Violation, ViolationSeverity

logger = logging.getLogger(__name__)

RULES_PATH = os.path.join(os.path.dirname(__file__), "anomaly_rules.yaml")

TagField = Literal["specialties", "procedures", "equipment"]
CountField = Literal["capacity", "num_doctors"]

FIELD_LABELS = {
    "capacity": "bed count",
    "num_doctors": "doctor count",
    "procedures": "procedure list",
    "equipment": "equipment list",
    "email": "email",
}


@lru_cache(maxsize=512)
def _keyword_pattern(keyword: str) -> re.Pattern:
    return re.compile(r"(?<![a-z0-9])" + re.escape(keyword.lower()) + r"(?![a-z0-9])")


def find_mention(values: Iterable[str], keywords: Iterable[str]) -> Optional[str]:
    """First tag in ``values`` that mentions one of ``keywords`` as a whole word."""
    ordered = sorted(values)
    for keyword in keywords:
        pattern = _keyword_pattern(keyword)
        for value in ordered:
            if pattern.search(value.lower()):
                return value
    return None


class ClaimTrigger(BaseModel):
    keywords: List[str]
    fields: List[TagField] = Field(default_factory=lambda: ["specialties", "procedures"])

    def claimed(self, facility: Facility) -> Optional[str]:
        for field in self.fields:
            hit = find_mention(getattr(facility, field), self.keywords)
            if hit:
                return hit
        return None


class EquipmentPrerequisite(BaseModel):
    kind: Literal["equipment"]
    label: str
    any_of: List[str]

    def unmet(self, facility: Facility) -> Optional[str]:
        if find_mention(facility.equipment, self.any_of):
            return None
        return f"no {self.label} listed in equipment"


class MinimumPrerequisite(BaseModel):
    kind: Literal["minimum"]
    field: CountField
    value: int

    def unmet(self, facility: Facility) -> Optional[str]:
        actual = getattr(facility, self.field)
        if actual is None or actual >= self.value:
            return None
        return f"{FIELD_LABELS[self.field]} is {actual} (minimum {self.value} expected)"


Prerequisite = Annotated[
    Union[EquipmentPrerequisite, MinimumPrerequisite], Field(discriminator="kind")
]


class RequiresRule(BaseModel):
    """A claimed service implies supporting infrastructure."""

    kind: Literal["requires"]
    rule: str
    severity: ViolationSeverity
    claim: ClaimTrigger
    prerequisites: List[Prerequisite]
    when_equipment_listed: bool = False

    def evaluate(self, facility: Facility) -> List[Violation]:
        if self.when_equipment_listed and not facility.equipment:
            return []
        claimed = self.claim.claimed(facility)
        if not claimed:
            return []
        missing = [reason for reason in (item.unmet(facility) for item in self.prerequisites) if reason]
        if not missing:
            return []
        return [
            Violation(
                rule=self.rule,
                severity=self.severity,
                explanation=f'Claims "{claimed}" but {"; ".join(missing)}.',
            )
        ]


class CompareRule(BaseModel):
    """``left`` must not exceed ``right`` when both are known."""

    kind: Literal["compare"]
    rule: str
    severity: ViolationSeverity
    left: CountField
    right: CountField
    message: str

    def evaluate(self, facility: Facility) -> List[Violation]:
        left = getattr(facility, self.left)
        right = getattr(facility, self.right)
        if left is None or right is None or left <= right:
            return []
        return [
            Violation(
                rule=self.rule,
                severity=self.severity,
                explanation=self.message.format(left=left, right=right),
            )
        ]


class RatioRule(BaseModel):
    kind: Literal["ratio"]
    rule: str
    severity: ViolationSeverity
    numerator: CountField
    denominator: CountField
    maximum: float
    message: str

    def evaluate(self, facility: Facility) -> List[Violation]:
        numerator = getattr(facility, self.numerator)
        denominator = getattr(facility, self.denominator)
        if not numerator or not denominator:
            return []
        ratio = numerator / denominator
        if ratio <= self.maximum:
            return []
        return [
            Violation(
                rule=self.rule,
                severity=self.severity,
                explanation=self.message.format(ratio=round(ratio, 1), maximum=self.maximum),
            )
        ]


class MissingFieldRule(BaseModel):
    kind: Literal["missing_field"]
    rule: str
    severity: ViolationSeverity
    facility_types: List[FacilityType]
    fields: List[CountField]

    def evaluate(self, facility: Facility) -> List[Violation]:
        if facility.facility_type not in self.facility_types:
            return []
        return [
            Violation(
                rule=self.rule,
                severity=self.severity,
                explanation=(
                    f"Classified as a {facility.facility_type} but has no {FIELD_LABELS[field]} "
                    "on record, so related claims cannot be verified."
                ),
            )
            for field in self.fields
            if getattr(facility, field) is None
        ]


class BreadthTier(BaseModel):
    label: str
    below_capacity: Optional[int] = None
    max_procedures: int


class BreadthRule(BaseModel):
    """Procedure count against what a facility of its size can sustain."""

    kind: Literal["breadth"]
    rule: str
    severity: ViolationSeverity
    tiers: List[BreadthTier]

    def evaluate(self, facility: Facility) -> List[Violation]:
        count = len(facility.procedures)
        if count == 0:
            return []
        tier = self._tier(facility.capacity)
        if tier is None or count <= tier.max_procedures:
            return []
        size = f"{facility.capacity} beds" if facility.capacity is not None else "unknown size"
        return [
            Violation(
                rule=self.rule,
                severity=self.severity,
                explanation=(
                    f"Lists {count} procedures but at most {tier.max_procedures} are expected "
                    f"for a {tier.label} facility ({size})."
                ),
            )
        ]

    def _tier(self, capacity: Optional[int]) -> Optional[BreadthTier]:
        fallback = None
        for tier in self.tiers:
            if tier.below_capacity is None:
                fallback = tier
                continue
            if capacity is not None and capacity < tier.below_capacity:
                return tier
        return fallback


AnomalyRule = Annotated[
    Union[RequiresRule, CompareRule, RatioRule, MissingFieldRule, BreadthRule],
    Field(discriminator="kind"),
]

RULES_ADAPTER = TypeAdapter(List[AnomalyRule])


def load_rules(path: str = RULES_PATH) -> List[AnomalyRule]:
    with open(path, "r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    rules = RULES_ADAPTER.validate_python(data.get("rules") or [])
    logger.debug("Loaded %s anomaly rules from %s", len(rules), path)
    return rules


@lru_cache(maxsize=1)
def default_rules() -> tuple:
    return tuple(load_rules())
