"""Plausibility rules and anomaly scoring for facility records."""

from meridian.validation.rules import AnomalyRule, default_rules, load_rules
from meridian.validation.scorer import COMPLETENESS_VERSION, completeness, score

__all__ = ["AnomalyRule", "COMPLETENESS_VERSION", "completeness", "default_rules", "load_rules", "score"]
