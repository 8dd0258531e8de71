from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

NOMINATIM_URL = "https://nominatim.openstreetmap.org/search"


class EngineSettings(BaseModel):
    """Policy constants for the analysis engine.

    Defaults are overridden by the YAML file named in ``MERIDIAN_CONFIG`` and
    then by individual ``MERIDIAN_*`` environment variables.
    """

    nearby_default_radius_km: float = Field(default=50.0, gt=0)
    nearby_max_results: int = Field(default=20, ge=1, le=20)

    gap_grid_resolution_km: float = Field(default=10.0, gt=0)
    gap_threshold_km: float = Field(default=30.0, gt=0)
    gap_max_grid_points: int = Field(default=20000, ge=1)
    gap_merge_cell_km: float = Field(default=50.0, gt=0)
    gap_severe_ratio: float = Field(default=1.5, ge=1)
    gap_critical_ratio: float = Field(default=2.0, ge=1)

    rate_limit_max: int = Field(default=10, ge=1)
    rate_limit_window_ms: int = Field(default=60000, ge=1)

    # Off unless asked for; each traced call writes one JSONL file.
    trace_export: str = "none"
    nominatim_enabled: bool = False
    nominatim_url: str = NOMINATIM_URL
    facility_data_path: Optional[str] = None


ENV_OVERRIDES = {
    "MERIDIAN_NEARBY_RADIUS_KM": "nearby_default_radius_km",
    "MERIDIAN_NEARBY_MAX_RESULTS": "nearby_max_results",
    "MERIDIAN_GAP_GRID_KM": "gap_grid_resolution_km",
    "MERIDIAN_GAP_THRESHOLD_KM": "gap_threshold_km",
    "MERIDIAN_GAP_MAX_POINTS": "gap_max_grid_points",
    "MERIDIAN_GAP_MERGE_CELL_KM": "gap_merge_cell_km",
    "MERIDIAN_RATE_LIMIT_MAX": "rate_limit_max",
    "MERIDIAN_RATE_LIMIT_WINDOW_MS": "rate_limit_window_ms",
    "TRACE_EXPORT": "trace_export",
    "MERIDIAN_NOMINATIM_ENABLED": "nominatim_enabled",
    "MERIDIAN_NOMINATIM_URL": "nominatim_url",
    "FACILITY_DATA_PATH": "facility_data_path",
}


def load_settings(overrides: Optional[Dict[str, Any]] = None) -> EngineSettings:
    values: Dict[str, Any] = {}

    config_path = os.getenv("MERIDIAN_CONFIG", "").strip()
    if config_path:
        values.update(_read_yaml(config_path))

    for env_name, field_name in ENV_OVERRIDES.items():
        raw = os.getenv(env_name)
        if raw is not None and raw.strip():
            values[field_name] = raw.strip()

    if overrides:
        values.update(overrides)

    try:
        return EngineSettings.model_validate(values)
    except ValidationError as exc:
        logger.warning("Invalid engine settings, using defaults: %s", exc)
        return EngineSettings()


def _read_yaml(path: str) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
    except (OSError, yaml.YAMLError) as exc:
        logger.warning("Could not read settings file %s: %s", path, exc)
        return {}
    if not isinstance(data, dict):
        logger.warning("Settings file %s is not a mapping; ignored", path)
        return {}
    return data
