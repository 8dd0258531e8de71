"""Facility loaders for JSON records and the Virtue Foundation Ghana CSV export."""

from __future__ import annotations

import csv
import json
import logging
import math
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError

from meridian.shared.models import Facility

logger = logging.getLogger(__name__)

NULL_TOKENS = {"", "null", "none", "nan", "n/a"}

TYPE_ALIASES = {
    "hospital": "hospital",
    "teaching hospital": "hospital",
    "clinic": "clinic",
    "health centre": "clinic",
    "health center": "clinic",
    "chps": "clinic",
    "pharmacy": "pharmacy",
    "chemist": "pharmacy",
}


def load_facilities(path: str | Path) -> List[Facility]:
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Facility data missing: {path}")
    suffix = path.suffix.lower()
    if suffix == ".csv":
        records = _read_csv(path)
    elif suffix == ".json":
        records = _read_json(path)
    else:
        raise ValueError(f"Unsupported facility data format: {path.suffix}")
    facilities = facilities_from_records(records)
    logger.info("Loaded %s facilities from %s", len(facilities), path)
    return facilities


def facilities_from_records(records: Iterable[Dict[str, Any]]) -> List[Facility]:
    facilities: List[Facility] = []
    for idx, record in enumerate(records):
        try:
            facilities.append(facility_from_record(record, fallback_id=idx + 1))
        except (ValidationError, ValueError, TypeError) as exc:
            logger.warning("Skipping malformed facility row %s: %s", idx + 1, exc)
    return facilities


def facility_from_record(record: Dict[str, Any], fallback_id: Optional[int] = None) -> Facility:
    facility_id = _first_int(record, "id", "pk_unique_id", "pkUniqueId", "unique_id")
    if facility_id is None:
        if fallback_id is None:
            raise ValueError("facility record has no id")
        facility_id = fallback_id

    name = _first_text(record, "name")
    if not name:
        raise ValueError(f"facility {facility_id} has no name")

    return Facility(
        id=facility_id,
        name=name,
        location=_location(record),
        region=_first_text(record, "region", "address_stateOrRegion", "addressRegion"),
        city=_first_text(record, "city", "address_city", "addressCity"),
        facility_type=_facility_type(_first_text(record, "facilityType", "facility_type", "facilityTypeId")),
        specialties=_first_list(record, "specialties"),
        procedures=_first_list(record, "procedures", "procedure"),
        equipment=_first_list(record, "equipment"),
        num_doctors=_first_int(record, "numDoctors", "num_doctors", "numberDoctors"),
        capacity=_first_int(record, "capacity"),
        email=_first_text(record, "email"),
        phone=_first_text(record, "phone", "phone_numbers"),
        website=_first_text(record, "website", "websites", "officialWebsite"),
    )


def parse_list_field(raw: Any) -> List[str]:
    if raw is None:
        return []
    if isinstance(raw, (list, tuple, set, frozenset)):
        return [str(item).strip() for item in raw if item is not None and str(item).strip()]
    text = str(raw).strip()
    if text.lower() in NULL_TOKENS:
        return []
    if text.startswith("[") and text.endswith("]"):
        try:
            parsed = json.loads(text)
            if isinstance(parsed, list):
                return [str(item).strip() for item in parsed if item is not None and str(item).strip()]
        except json.JSONDecodeError:
            pass
    return [part.strip() for part in text.split(",") if part.strip()]


def _read_csv(path: Path) -> List[Dict[str, Any]]:
    rows: List[Dict[str, Any]] = []
    with path.open("r", encoding="utf-8", newline="") as handle:
        reader = csv.DictReader(handle)
        for row in reader:
            rows.append({key: (value or "").strip() for key, value in row.items() if key})
    return rows


def _read_json(path: Path) -> List[Dict[str, Any]]:
    with path.open("r", encoding="utf-8") as handle:
        payload = json.load(handle)
    if isinstance(payload, dict):
        payload = payload.get("facilities", [])
    if not isinstance(payload, list):
        raise ValueError(f"Expected a list of facilities in {path}")
    return [item for item in payload if isinstance(item, dict)]


def _location(record: Dict[str, Any]) -> Optional[Dict[str, float]]:
    nested = record.get("location")
    if isinstance(nested, dict):
        lat = _to_float(nested.get("lat", nested.get("latitude")))
        lng = _to_float(nested.get("lng", nested.get("lon", nested.get("longitude"))))
    else:
        lat = _to_float(_first_value(record, "lat", "latitude"))
        lng = _to_float(_first_value(record, "lng", "lon", "longitude"))
    if lat is None or lng is None:
        return None
    return {"lat": lat, "lng": lng}


def _facility_type(raw: Optional[str]) -> str:
    if not raw:
        return "other"
    return TYPE_ALIASES.get(raw.strip().lower(), "other")


def _first_value(record: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = record.get(key)
        if value is None:
            continue
        if isinstance(value, str) and value.strip().lower() in NULL_TOKENS:
            continue
        return value
    return None


def _first_text(record: Dict[str, Any], *keys: str) -> Optional[str]:
    value = _first_value(record, *keys)
    if value is None:
        return None
    if isinstance(value, list):
        value = value[0] if value else None
        if value is None:
            return None
    text = str(value).strip()
    if text.startswith("[") and text.endswith("]"):
        items = parse_list_field(text)
        text = items[0] if items else ""
    return text or None


def _first_list(record: Dict[str, Any], *keys: str) -> List[str]:
    return parse_list_field(_first_value(record, *keys))


def _first_int(record: Dict[str, Any], *keys: str) -> Optional[int]:
    value = _first_value(record, *keys)
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value) if isinstance(value, (int, float)) else float(str(value).strip())
    except ValueError:
        return None
    # Counts that are not finite or are negative are treated as unknown.
    if not math.isfinite(number) or number < 0:
        return None
    return int(number)


def _to_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    if text.lower() in NULL_TOKENS:
        return None
    try:
        return float(text)
    except ValueError:
        return None
