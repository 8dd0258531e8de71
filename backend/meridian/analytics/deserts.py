"""Coverage-gap ("medical desert") detection over a sample grid.

A uniform grid of sample points is laid over the scope. Each point is scored
by its distance to the nearest facility offering the specialty; points beyond
the threshold are gaps. Gaps are merged per merge cell, a fixed partition of
the scope at least two grid steps wide, so a larger threshold can only empty
cells and never split one zone into several. When no facility offers the
specialty at all, every gap joins a single zone.
"""

from __future__ import annotations

import logging
import math
from typing import Dict, List, Optional, Tuple

from pydantic import Field

from meridian.config.settings import EngineSettings
from meridian.errors import InvalidQuery
from meridian.geo.geocoding import Gazetteer, default_gazetteer
from meridian.geo.haversine import EARTH_RADIUS_KM, KM_PER_DEGREE, haversine_km
from meridian.shared.models import BoundingBox, CamelModel, Coordinates, GapSeverity, GapZone
from meridian.store.facility_store import FacilitySnapshot, FacilityStore

logger = logging.getLogger(__name__)

SEVERITY_RANK: Dict[str, int] = {"moderate": 1, "severe": 2, "critical": 3}
MERGE_CELL_MIN_STEPS = 2


class CoverageReport(CamelModel):
    specialty: str
    scope: str
    bounding_box: BoundingBox
    threshold_km: float
    grid_resolution_km: float
    provider_count: int
    sampled_points: int
    data_absent: bool = False
    zones: List[GapZone] = Field(default_factory=list)
    message: str


class _Sample:
    __slots__ = ("row", "col", "lat", "lng", "distance")

    def __init__(self, row: int, col: int, lat: float, lng: float, distance: Optional[float]) -> None:
        self.row = row
        self.col = col
        self.lat = lat
        self.lng = lng
        self.distance = distance


def classify_severity(
    distance_km: Optional[float],
    threshold_km: float,
    severe_ratio: float = 1.5,
    critical_ratio: float = 2.0,
) -> GapSeverity:
    """Bucket a gap by how far beyond the threshold it lies.

    moderate: up to ``severe_ratio`` x threshold; severe: up to
    ``critical_ratio`` x threshold; critical: beyond that, or no facility.
    """
    if distance_km is None:
        return "critical"
    ratio = distance_km / threshold_km
    if ratio > critical_ratio:
        return "critical"
    if ratio > severe_ratio:
        return "severe"
    return "moderate"


def find_gaps(
    store: FacilityStore | FacilitySnapshot,
    specialty: str,
    scope: BoundingBox,
    grid_resolution_km: Optional[float] = None,
    threshold_km: Optional[float] = None,
    scope_label: Optional[str] = None,
    settings: Optional[EngineSettings] = None,
    gazetteer: Optional[Gazetteer] = None,
) -> CoverageReport:
    settings = settings or EngineSettings()
    gazetteer = gazetteer or default_gazetteer()
    specialty = (specialty or "").strip()
    if not specialty:
        raise InvalidQuery("specialty is required.")

    resolution = settings.gap_grid_resolution_km if grid_resolution_km is None else float(grid_resolution_km)
    threshold = settings.gap_threshold_km if threshold_km is None else float(threshold_km)
    if not math.isfinite(resolution) or resolution <= 0:
        raise InvalidQuery("gridResolutionKm must be a positive number.")
    if not math.isfinite(threshold) or threshold <= 0:
        raise InvalidQuery("thresholdKm must be a positive number.")

    lat_axis, lng_axis = _grid_axes(scope, resolution)
    point_count = lat_axis[0] * lng_axis[0]
    if point_count > settings.gap_max_grid_points:
        raise InvalidQuery(
            f"Resolution too fine for scope: {point_count} sample points exceeds the "
            f"limit of {settings.gap_max_grid_points}. Use a larger gridResolutionKm or a smaller scope."
        )

    lat_values = _axis_values(scope.min_lat, *lat_axis)
    lng_values = _axis_values(scope.min_lng, *lng_axis)

    snapshot = store.snapshot() if isinstance(store, FacilityStore) else store
    providers = snapshot.scan(match=lambda facility: specialty in facility.specialties)
    provider_points = [_prepare(facility.point.lat, facility.point.lng) for facility in providers]
    geocoded_in_scope = snapshot.scan(where=scope.contains)

    samples = [
        _Sample(row, col, lat, lng, _nearest_km(lat, lng, provider_points))
        for row, lat in enumerate(lat_values)
        for col, lng in enumerate(lng_values)
    ]
    label = scope_label or "bounding box"

    if not geocoded_in_scope:
        zone = _data_absent_zone(scope, samples, provider_points, resolution, gazetteer)
        logger.info("Coverage scan %s/%s: no geocoded facilities in scope", specialty, label)
        return CoverageReport(
            specialty=specialty,
            scope=label,
            bounding_box=scope,
            threshold_km=threshold,
            grid_resolution_km=resolution,
            provider_count=len(providers),
            sampled_points=len(samples),
            data_absent=True,
            zones=[zone],
            message=(
                f"No geocoded facilities in scope ({label}); coverage for {specialty} "
                "cannot be verified, so the whole scope is reported as a critical gap."
            ),
        )

    gaps = [sample for sample in samples if sample.distance is None or sample.distance > threshold]
    if not providers:
        # Nothing qualifies anywhere: the whole scope is one gap.
        groups = [gaps]
    else:
        cells: Dict[Tuple[int, int], List[_Sample]] = {}
        cell_km = merge_cell_km(resolution, settings.gap_merge_cell_km)
        for sample in gaps:
            key = (int(sample.row * resolution // cell_km), int(sample.col * resolution // cell_km))
            cells.setdefault(key, []).append(sample)
        groups = list(cells.values())

    zones = [
        _build_zone(members, threshold, resolution, settings, gazetteer)
        for members in groups
    ]
    zones.sort(key=_zone_sort_key)

    logger.info(
        "Coverage scan %s/%s: providers=%s samples=%s gaps=%s zones=%s",
        specialty,
        label,
        len(providers),
        len(samples),
        len(gaps),
        len(zones),
    )
    return CoverageReport(
        specialty=specialty,
        scope=label,
        bounding_box=scope,
        threshold_km=threshold,
        grid_resolution_km=resolution,
        provider_count=len(providers),
        sampled_points=len(samples),
        zones=zones,
        message=_build_message(specialty, label, threshold, providers, zones),
    )


def merge_cell_km(resolution_km: float, configured_km: float) -> float:
    """Merge cell edge; always at least two grid steps so neighbouring samples share or touch a cell."""
    return max(configured_km, MERGE_CELL_MIN_STEPS * resolution_km)


def _grid_axes(
    scope: BoundingBox, resolution_km: float
) -> Tuple[Tuple[int, float, float], Tuple[int, float, float]]:
    """(count, step, offset) per axis; samples are centred inside the scope."""
    mid_lat = math.radians((scope.min_lat + scope.max_lat) / 2)
    lat_step = resolution_km / KM_PER_DEGREE
    lng_step = resolution_km / (KM_PER_DEGREE * max(math.cos(mid_lat), 1e-6))
    return (
        _axis(scope.max_lat - scope.min_lat, lat_step),
        _axis(scope.max_lng - scope.min_lng, lng_step),
    )


def _axis(span: float, step: float) -> Tuple[int, float, float]:
    count = int(math.floor(span / step + 1e-9)) + 1
    offset = (span - (count - 1) * step) / 2
    return count, step, offset


def _axis_values(low: float, count: int, step: float, offset: float) -> List[float]:
    return [low + offset + idx * step for idx in range(count)]


def _prepare(lat: float, lng: float) -> Tuple[float, float, float]:
    phi = math.radians(lat)
    return phi, math.radians(lng), math.cos(phi)


def _nearest_km(lat: float, lng: float, providers: List[Tuple[float, float, float]]) -> Optional[float]:
    if not providers:
        return None
    phi1 = math.radians(lat)
    lam1 = math.radians(lng)
    cos1 = math.cos(phi1)
    best = None
    for phi2, lam2, cos2 in providers:
        a = math.sin((phi2 - phi1) / 2) ** 2 + cos1 * cos2 * math.sin((lam2 - lam1) / 2) ** 2
        if best is None or a < best:
            best = a
    best = min(1.0, max(0.0, best))
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(best), math.sqrt(1 - best))


def _build_zone(
    members: List[_Sample],
    threshold_km: float,
    resolution_km: float,
    settings: EngineSettings,
    gazetteer: Gazetteer,
) -> GapZone:
    center_lat = sum(sample.lat for sample in members) / len(members)
    center_lng = sum(sample.lng for sample in members) / len(members)
    radius = _covering_radius(center_lat, center_lng, members, resolution_km)

    distances = [sample.distance for sample in members]
    no_provider = any(distance is None for distance in distances)
    worst = None if no_provider else max(distances)
    severity = max(
        (
            classify_severity(distance, threshold_km, settings.gap_severe_ratio, settings.gap_critical_ratio)
            for distance in distances
        ),
        key=lambda value: SEVERITY_RANK[value],
    )
    return GapZone(
        center=Coordinates(lat=round(center_lat, 4), lng=round(center_lng, 4)),
        radius_km=radius,
        nearest_facility_distance_km=None if worst is None else round(worst, 1),
        severity=severity,
        estimated_population_affected=_population(members, resolution_km, gazetteer),
        sample_count=len(members),
        population_centers=gazetteer.places_within(center_lat, center_lng, radius),
        reason="no_qualifying_facility" if no_provider else "beyond_threshold",
    )


def _data_absent_zone(
    scope: BoundingBox,
    samples: List[_Sample],
    provider_points: List[Tuple[float, float, float]],
    resolution_km: float,
    gazetteer: Gazetteer,
) -> GapZone:
    center = scope.center
    radius = round(haversine_km(center.lat, center.lng, scope.max_lat, scope.max_lng) + resolution_km / 2, 1)
    nearest = _nearest_km(center.lat, center.lng, provider_points)
    return GapZone(
        center=Coordinates(lat=round(center.lat, 4), lng=round(center.lng, 4)),
        radius_km=radius,
        nearest_facility_distance_km=None if nearest is None else round(nearest, 1),
        severity="critical",
        estimated_population_affected=_population(samples, resolution_km, gazetteer),
        sample_count=len(samples),
        population_centers=gazetteer.places_within(center.lat, center.lng, radius),
        reason="no_geocoded_facilities_in_scope",
    )


def _covering_radius(lat: float, lng: float, members: List[_Sample], resolution_km: float) -> float:
    farthest = max(haversine_km(lat, lng, sample.lat, sample.lng) for sample in members)
    return round(farthest + resolution_km / 2, 1)


def _population(members: List[_Sample], resolution_km: float, gazetteer: Gazetteer) -> int:
    cell_area = resolution_km * resolution_km
    return int(round(sum(cell_area * gazetteer.density_at(sample.lat, sample.lng) for sample in members)))


def _zone_sort_key(zone: GapZone):
    distance = zone.nearest_facility_distance_km
    return (
        -SEVERITY_RANK[zone.severity],
        0 if distance is None else 1,
        -(distance or 0.0),
        zone.center.lat,
        zone.center.lng,
    )


def _build_message(specialty: str, label: str, threshold_km: float, providers, zones: List[GapZone]) -> str:
    if not providers:
        return f"CRITICAL GAP: no geocoded facility offers {specialty}; every sampled point in {label} is uncovered."
    if not zones:
        return f"No coverage gaps: every sampled point in {label} is within {threshold_km:g} km of {specialty}."
    worst = zones[0]
    where = f" near {', '.join(worst.population_centers[:3])}" if worst.population_centers else ""
    return (
        f"Found {len(zones)} zone(s) in {label} farther than {threshold_km:g} km from {specialty}. "
        f"Worst: {worst.severity}{where}."
    )
