"""Tool-call boundary over the analysis engine.

Every operation takes a JSON-style argument object and returns a JSON-style
result. Failures come back as ``{"error": "..."}`` payloads and are never
raised to the caller.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Type

from pydantic import BaseModel, ValidationError

from meridian.analytics import deserts, proximity
from meridian.config.settings import EngineSettings, load_settings
from meridian.errors import EngineError, InvalidQuery, NotFound, RateLimited
from meridian.geo.geocoding import (
    Gazetteer,
    GeocodingResolver,
    PlaceNotFound,
    default_gazetteer,
    parse_coordinate_pair,
)
from meridian.guard.rate_guard import RateGuard
from meridian.observability.tracing import create_trace_id, trace_event
from meridian.shared.models import BoundingBox, Coordinates, Facility
from meridian.store.facility_store import FacilityStore
from meridian.tools.schemas import (
    DetectAnomaliesArgs,
    FindMedicalDesertsArgs,
    FindNearbyArgs,
    GetFacilityArgs,
    ScanAnomaliesArgs,
)
from meridian.validation.rules import AnomalyRule, default_rules
from meridian.validation.scorer import score

logger = logging.getLogger(__name__)

Payload = Dict[str, Any]

INTERNAL_ERROR = "The analysis could not be completed. Please try again."

OPERATIONS: Dict[str, Tuple[Type[BaseModel], str]] = {
    "findNearby": (FindNearbyArgs, "find_nearby"),
    "findMedicalDeserts": (FindMedicalDesertsArgs, "find_medical_deserts"),
    "detectAnomalies": (DetectAnomaliesArgs, "detect_anomalies"),
    "scanAnomalies": (ScanAnomaliesArgs, "scan_anomalies"),
    "getFacility": (GetFacilityArgs, "get_facility"),
}


class AnalysisService:
    def __init__(
        self,
        store: FacilityStore,
        settings: Optional[EngineSettings] = None,
        gazetteer: Optional[Gazetteer] = None,
        resolver: Optional[GeocodingResolver] = None,
        rules: Optional[Sequence[AnomalyRule]] = None,
        rate_guard: Optional[RateGuard] = None,
    ) -> None:
        self.store = store
        self.settings = settings or load_settings()
        self.gazetteer = gazetteer or default_gazetteer()
        self.resolver = resolver or GeocodingResolver(
            self.gazetteer,
            remote_enabled=self.settings.nominatim_enabled,
            remote_url=self.settings.nominatim_url,
        )
        self.rules = tuple(rules) if rules is not None else default_rules()
        self.rate_guard = rate_guard or RateGuard(
            max_requests=self.settings.rate_limit_max,
            window_ms=self.settings.rate_limit_window_ms,
        )

    def admit(self, caller_key: str) -> bool:
        return self.rate_guard.check(caller_key)

    def invoke(self, operation: str, arguments: Optional[Dict[str, Any]] = None, caller_key: Optional[str] = None) -> Payload:
        trace_id = create_trace_id()
        arguments = arguments or {}
        trace_event(
            trace_id,
            "tool_call",
            inputs_ref={"operation": operation, "arguments": arguments},
            export=self.settings.trace_export,
        )
        result = self._dispatch(operation, arguments, caller_key)
        trace_event(
            trace_id,
            "tool_result",
            outputs_ref={"operation": operation, "error": result.get("error")},
            export=self.settings.trace_export,
        )
        return result

    def _dispatch(self, operation: str, arguments: Dict[str, Any], caller_key: Optional[str]) -> Payload:
        entry = OPERATIONS.get(operation)
        if entry is None:
            return {"error": f'Unknown operation "{operation}". Available: {", ".join(OPERATIONS)}.'}
        if caller_key is not None and not self.admit(caller_key):
            return RateLimited().to_payload()

        args_model, method_name = entry
        handler: Callable[[Any], Payload] = getattr(self, method_name)
        try:
            args = args_model.model_validate(arguments)
            return handler(args)
        except ValidationError as exc:
            return {"error": format_validation_error(exc)}
        except EngineError as exc:
            logger.info("%s rejected: %s", operation, exc.message)
            return exc.to_payload()
        except Exception:
            logger.exception("%s failed", operation)
            return {"error": INTERNAL_ERROR}

    def find_nearby(self, args: FindNearbyArgs) -> Payload:
        label, center = self._resolve_center(args)
        radius = self.settings.nearby_default_radius_km if args.radius_km is None else args.radius_km
        results = proximity.search(
            self.store,
            center,
            radius_km=radius,
            specialty=args.specialty,
            facility_type=args.facility_type,
            limit=min(args.limit, self.settings.nearby_max_results),
        )
        return {
            "center": {"label": label, "lat": center.lat, "lng": center.lng},
            "radiusKm": radius,
            "count": len(results),
            "facilities": [result.to_payload() for result in results],
        }

    def find_medical_deserts(self, args: FindMedicalDesertsArgs) -> Payload:
        scope, label = self._resolve_scope(args.region, args.bounding_box)
        report = deserts.find_gaps(
            self.store,
            args.specialty,
            scope,
            grid_resolution_km=args.grid_resolution_km,
            threshold_km=args.threshold_km,
            scope_label=label,
            settings=self.settings,
            gazetteer=self.gazetteer,
        )
        return report.to_payload()

    def detect_anomalies(self, args: DetectAnomaliesArgs) -> Payload:
        facility = self._fetch(args.facility_id)
        return score(facility, self.rules).to_payload()

    def scan_anomalies(self, args: ScanAnomaliesArgs) -> Payload:
        snapshot = self.store.snapshot()
        region_key = _region_key(args.region) if args.region else None
        candidates = [
            facility
            for facility in snapshot.all()
            if region_key is None or _region_key(facility.region) == region_key
        ]

        flagged: List[Tuple[int, int, Payload]] = []
        for facility in candidates:
            report = score(facility, self.rules)
            violations = report.violations
            if args.rule:
                violations = [item for item in violations if item.rule == args.rule]
            if not violations:
                continue
            flagged.append(
                (
                    report.confidence_score,
                    facility.id,
                    {
                        "id": facility.id,
                        "name": facility.name,
                        "region": facility.region,
                        "confidenceScore": report.confidence_score,
                        "level": report.level,
                        "completenessScore": report.completeness_score,
                        "violations": [item.to_payload() for item in violations],
                    },
                )
            )
        flagged.sort(key=lambda item: (item[0], item[1]))
        return {
            "region": args.region,
            "rule": args.rule,
            "scanned": len(candidates),
            "flaggedCount": len(flagged),
            "facilities": [item[2] for item in flagged[: args.limit]],
        }

    def get_facility(self, args: GetFacilityArgs) -> Payload:
        facility = self._fetch(args.facility_id)
        payload = facility.profile()
        payload["anomalies"] = score(facility, self.rules).to_payload()
        return payload

    def _fetch(self, facility_id: int) -> Facility:
        facility = self.store.fetch(facility_id)
        if facility is None:
            raise NotFound(str(facility_id), f"Facility {facility_id} was not found.")
        return facility

    def _resolve_center(self, args: FindNearbyArgs) -> Tuple[str, Optional[Coordinates]]:
        if args.lat is not None or args.lng is not None:
            if args.lat is None or args.lng is None:
                raise InvalidQuery("Provide both lat and lng, or a known place name.")
            return f"{args.lat},{args.lng}", _coordinates(args.lat, args.lng)

        city = (args.city or "").strip()
        if not city:
            return "", None

        pair = parse_coordinate_pair(city)
        if pair is not None:
            return city, _coordinates(*pair)

        resolved = self.resolver.resolve(city)
        if isinstance(resolved, PlaceNotFound):
            raise NotFound(resolved.query, resolved.message)
        return resolved.name, Coordinates(lat=resolved.lat, lng=resolved.lng)

    def _resolve_scope(self, region: Optional[str], bounding_box: Optional[BoundingBox]) -> Tuple[BoundingBox, str]:
        if bounding_box is not None:
            return bounding_box, "bounding box"
        name = (region or "Ghana").strip() or "Ghana"
        info = self.gazetteer.region(name)
        if info is None:
            raise NotFound(
                name,
                f'Unknown region "{name}". Use a Ghana region name or provide a boundingBox.',
            )
        return info.bounds, info.name


def format_validation_error(exc: ValidationError) -> str:
    problems = []
    for item in exc.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "arguments"
        problems.append(f"{location}: {item.get('msg', 'invalid value')}")
    return "Invalid arguments: " + "; ".join(problems)


def _coordinates(lat: float, lng: float) -> Coordinates:
    try:
        return Coordinates(lat=lat, lng=lng)
    except ValidationError as exc:
        raise InvalidQuery(
            f"Coordinates ({lat}, {lng}) are out of range; latitude must be within -90..90 "
            "and longitude within -180..180."
        ) from exc


def _region_key(value: Optional[str]) -> str:
    key = (value or "").strip().lower()
    if key.endswith(" region"):
        key = key[: -len(" region")].strip()
    return key
