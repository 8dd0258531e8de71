"""Read-only access to the facility collection.

Readers always work against one ``FacilitySnapshot``. A refresh builds a new
snapshot and swaps a single reference, so a scan that started on the old
collection never sees rows from the new one.
"""

from __future__ import annotations

import itertools
import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from meridian.shared.models import Facility

logger = logging.getLogger(__name__)

SpatialPredicate = Callable[[float, float], bool]
FacilityPredicate = Callable[[Facility], bool]

_versions = itertools.count(1)


class FacilitySnapshot:
    def __init__(self, facilities: Iterable[Facility], version: int = 0) -> None:
        by_id: Dict[int, Facility] = {}
        for facility in facilities:
            if facility.id in by_id:
                logger.warning("Duplicate facility id %s; keeping the first record", facility.id)
                continue
            by_id[facility.id] = facility
        self._facilities: Tuple[Facility, ...] = tuple(sorted(by_id.values(), key=lambda item: item.id))
        self._by_id = by_id
        self.version = version

    def __len__(self) -> int:
        return len(self._facilities)

    def all(self) -> Tuple[Facility, ...]:
        return self._facilities

    def fetch(self, facility_id: int) -> Optional[Facility]:
        return self._by_id.get(facility_id)

    def scan(
        self,
        where: Optional[SpatialPredicate] = None,
        match: Optional[FacilityPredicate] = None,
    ) -> List[Facility]:
        """Geocoded facilities whose point satisfies ``where`` and which pass ``match``.

        Facilities without a usable location are never returned.
        """
        results: List[Facility] = []
        for facility in self._facilities:
            point = facility.point
            if point is None:
                continue
            if where is not None and not where(point.lat, point.lng):
                continue
            if match is not None and not match(facility):
                continue
            results.append(facility)
        return results


class FacilityStore(ABC):
    @abstractmethod
    def snapshot(self) -> FacilitySnapshot:
        """Return the current immutable view of the collection."""

    def scan(
        self,
        where: Optional[SpatialPredicate] = None,
        match: Optional[FacilityPredicate] = None,
    ) -> List[Facility]:
        return self.snapshot().scan(where=where, match=match)

    def fetch(self, facility_id: int) -> Optional[Facility]:
        return self.snapshot().fetch(facility_id)


class InMemoryFacilityStore(FacilityStore):
    def __init__(self, facilities: Iterable[Facility] = ()) -> None:
        self._lock = threading.Lock()
        self._snapshot = FacilitySnapshot(facilities, version=next(_versions))

    def snapshot(self) -> FacilitySnapshot:
        return self._snapshot

    def replace(self, facilities: Iterable[Facility]) -> FacilitySnapshot:
        """Publish a new collection; in-flight readers keep their old snapshot."""
        snapshot = FacilitySnapshot(facilities, version=next(_versions))
        with self._lock:
            self._snapshot = snapshot
        logger.info("Facility store refreshed: version=%s facilities=%s", snapshot.version, len(snapshot))
        return snapshot
