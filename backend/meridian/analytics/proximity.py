from __future__ import annotations

import logging
import math
from typing import List, Optional, Tuple

from meridian.errors import InvalidQuery
from meridian.geo.haversine import KM_PER_DEGREE, haversine_km
from meridian.shared.models import Coordinates, Facility, ProximityResult
from meridian.store.facility_store import FacilitySnapshot, FacilityStore

logger = logging.getLogger(__name__)

MAX_RESULTS = 20
DEFAULT_RADIUS_KM = 50.0


def search(
    store: FacilityStore | FacilitySnapshot,
    center: Optional[Coordinates],
    radius_km: float = DEFAULT_RADIUS_KM,
    specialty: Optional[str] = None,
    facility_type: Optional[str] = None,
    limit: int = MAX_RESULTS,
) -> List[ProximityResult]:
    """Facilities strictly closer than ``radius_km`` to ``center``.

    Ordered by distance, ties by id, at most 20 entries. The specialty filter
    is an exact, case-sensitive tag match.
    """
    if center is None:
        raise InvalidQuery("No usable center: provide lat and lng or a known place name.")
    if radius_km is None or not math.isfinite(radius_km) or radius_km <= 0:
        raise InvalidQuery("radiusKm must be a positive number.")
    limit = max(1, min(int(limit), MAX_RESULTS))

    snapshot = store.snapshot() if isinstance(store, FacilityStore) else store
    type_filter = facility_type.strip().lower() if facility_type and facility_type.strip() else None

    def _eligible(facility: Facility) -> bool:
        if specialty is not None and specialty not in facility.specialties:
            return False
        if type_filter is not None and facility.facility_type != type_filter:
            return False
        return True

    candidates = snapshot.scan(where=_latitude_band(center, radius_km), match=_eligible)

    scored: List[Tuple[float, Facility]] = []
    for facility in candidates:
        point = facility.point
        distance = haversine_km(center.lat, center.lng, point.lat, point.lng)
        if distance < radius_km:
            scored.append((distance, facility))

    # Ties are judged on the reported (rounded) distance.
    scored.sort(key=lambda item: (round(item[0], 1), item[1].id))
    logger.debug(
        "Proximity search center=(%s, %s) radius=%s matched=%s",
        center.lat,
        center.lng,
        radius_km,
        len(scored),
    )
    return [
        ProximityResult(rank=idx + 1, distance_km=round(distance, 1), facility=facility)
        for idx, (distance, facility) in enumerate(scored[:limit])
    ]


def _latitude_band(center: Coordinates, radius_km: float):
    # Cheap prefilter; the haversine check decides membership.
    span = radius_km / KM_PER_DEGREE + 1e-6

    def _within(lat: float, lng: float) -> bool:
        return abs(lat - center.lat) <= span

    return _within
