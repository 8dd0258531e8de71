"""Completeness and plausibility scoring for a single facility."""

from __future__ import annotations

import logging
import math
from typing import Dict, List, Optional, Sequence, Tuple

from meridian.shared.models import AnomalyReport, ConfidenceLevel, Facility, Violation
from meridian.validation.rules import AnomalyRule, default_rules

logger = logging.getLogger(__name__)

COMPLETENESS_VERSION = "v1"

# Published versions are frozen; a different field list gets a new key.
TRACKED_FIELDS: Dict[str, Tuple[str, ...]] = {
    "v1": ("num_doctors", "capacity", "procedures", "equipment", "email"),
}

FIELD_NAMES = {
    "num_doctors": "numDoctors",
    "capacity": "capacity",
    "procedures": "procedures",
    "equipment": "equipment",
    "email": "email",
}

SEVERITY_WEIGHT = {"high": 20, "medium": 10, "low": 5}


def completeness(facility: Facility, version: str = COMPLETENESS_VERSION) -> Tuple[int, List[str]]:
    """Percent of tracked fields present, and the names of the missing ones.

    A field is present when it is neither absent nor empty; zero counts are
    present.
    """
    fields = TRACKED_FIELDS[version]
    missing = [FIELD_NAMES.get(name, name) for name in fields if not _is_present(getattr(facility, name))]
    present = len(fields) - len(missing)
    score = int(math.floor(100 * present / len(fields) + 0.5))
    return score, missing


def score(facility: Facility, rules: Optional[Sequence[AnomalyRule]] = None) -> AnomalyReport:
    """Build the anomaly report; never rejects a facility."""
    rules = default_rules() if rules is None else rules
    completeness_score, missing = completeness(facility)

    violations: List[Violation] = []
    for rule in rules:
        violations.extend(rule.evaluate(facility))

    confidence = 100
    for violation in violations:
        confidence -= SEVERITY_WEIGHT[violation.severity]
    confidence = max(0, min(100, confidence))

    if violations:
        logger.debug("Facility %s flagged: %s", facility.id, [item.rule for item in violations])
    return AnomalyReport(
        facility_id=facility.id,
        completeness_score=completeness_score,
        completeness_version=COMPLETENESS_VERSION,
        missing_fields=missing,
        violations=violations,
        confidence_score=confidence,
        level=_level(confidence),
        summary=_summary(violations),
    )


def _is_present(value: object) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (set, frozenset, list, tuple)):
        return len(value) > 0
    return True


def _level(confidence: int) -> ConfidenceLevel:
    if confidence < 40:
        return "red"
    if confidence < 70:
        return "yellow"
    return "green"


def _summary(violations: List[Violation]) -> str:
    if not violations:
        return "No misrepresentation signals detected. Claims appear consistent with reported infrastructure."
    high = sum(1 for item in violations if item.severity == "high")
    if high:
        return (
            f"{high} high-severity issue{'' if high == 1 else 's'} found. "
            "Some claims may not be supported by the facility's reported capacity."
        )
    return (
        f"{len(violations)} minor issue{'' if len(violations) == 1 else 's'} noted. "
        "Claims are mostly consistent but some data gaps exist."
    )
