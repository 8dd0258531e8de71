"""Place-name resolution against a fixed gazetteer (optional Nominatim fallback)."""

from __future__ import annotations

import logging
import os
import threading
from functools import lru_cache
from typing import Dict, List, Literal, Optional, Tuple, Union

import requests
import yaml
from pydantic import BaseModel

from meridian.config.settings import NOMINATIM_URL
from meridian.geo.haversine import haversine_km, is_valid_coordinate
from meridian.shared.models import BoundingBox

logger = logging.getLogger(__name__)

GAZETTEER_PATH = os.path.join(os.path.dirname(__file__), "gazetteer.yaml")
USER_AGENT = "MeridianEngine/0.1 (facility coverage analysis)"
DEFAULT_NATIONAL_DENSITY = 129.0


class ResolvedPlace(BaseModel):
    name: str
    lat: float
    lng: float
    source: Literal["gazetteer", "nominatim", "coordinates"] = "gazetteer"


class PlaceNotFound(BaseModel):
    query: str

    @property
    def message(self) -> str:
        return (
            f'Could not resolve location "{self.query}". Provide coordinates '
            '(lat, lng) or a known Ghana city name.'
        )


class RegionInfo(BaseModel):
    name: str
    capital: Optional[str] = None
    density: float
    bounds: BoundingBox


Resolution = Union[ResolvedPlace, PlaceNotFound]


class Gazetteer:
    def __init__(
        self,
        places: Dict[str, Tuple[float, float]],
        regions: Optional[List[RegionInfo]] = None,
        national_density: float = DEFAULT_NATIONAL_DENSITY,
    ) -> None:
        self._places: Dict[str, ResolvedPlace] = {}
        for name, (lat, lng) in places.items():
            if not is_valid_coordinate(lat, lng):
                logger.warning("Gazetteer entry %s has invalid coordinates; skipped", name)
                continue
            self._places[_key(name)] = ResolvedPlace(name=name, lat=float(lat), lng=float(lng))
        self._regions = list(regions or [])
        self._regions_by_key = {_key(region.name): region for region in self._regions}
        self.national_density = float(national_density)

    @classmethod
    def from_yaml(cls, path: str = GAZETTEER_PATH) -> "Gazetteer":
        with open(path, "r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
        places = {
            str(name): (float(coords[0]), float(coords[1]))
            for name, coords in (data.get("places") or {}).items()
        }
        regions = []
        for entry in data.get("regions") or []:
            min_lat, min_lng, max_lat, max_lng = entry["bounds"]
            regions.append(
                RegionInfo(
                    name=entry["name"],
                    capital=entry.get("capital"),
                    density=float(entry.get("density", DEFAULT_NATIONAL_DENSITY)),
                    bounds=BoundingBox(
                        min_lat=min_lat, min_lng=min_lng, max_lat=max_lat, max_lng=max_lng
                    ),
                )
            )
        return cls(
            places,
            regions=regions,
            national_density=float(data.get("national_density", DEFAULT_NATIONAL_DENSITY)),
        )

    def lookup(self, name: str) -> Optional[ResolvedPlace]:
        return self._places.get(_key(name))

    def region(self, name: str) -> Optional[RegionInfo]:
        return self._regions_by_key.get(_key(name))

    def region_at(self, lat: float, lng: float) -> Optional[RegionInfo]:
        for region in self._regions:
            if region.bounds.contains(lat, lng):
                return region
        return None

    def density_at(self, lat: float, lng: float) -> float:
        region = self.region_at(lat, lng)
        return region.density if region else self.national_density

    def places_within(self, lat: float, lng: float, radius_km: float) -> List[str]:
        names = {
            place.name
            for place in self._places.values()
            if haversine_km(lat, lng, place.lat, place.lng) <= radius_km
        }
        return sorted(names)


@lru_cache(maxsize=1)
def default_gazetteer() -> Gazetteer:
    return Gazetteer.from_yaml()


class GeocodingResolver:
    """Resolves place names; a miss is returned as ``PlaceNotFound``, never raised."""

    def __init__(
        self,
        gazetteer: Optional[Gazetteer] = None,
        remote_enabled: bool = False,
        remote_url: str = NOMINATIM_URL,
        timeout: float = 5.0,
    ) -> None:
        self.gazetteer = gazetteer or default_gazetteer()
        self.remote_enabled = remote_enabled
        self.remote_url = remote_url
        self.timeout = timeout
        self._cache: Dict[str, Optional[ResolvedPlace]] = {}
        self._lock = threading.Lock()

    def resolve(self, place_name: str) -> Resolution:
        query = (place_name or "").strip()
        if not query:
            return PlaceNotFound(query=query)

        place = self.gazetteer.lookup(query)
        if place is not None:
            return place

        if self.remote_enabled:
            remote = self._resolve_remote(query)
            if remote is not None:
                return remote
        return PlaceNotFound(query=query)

    def _resolve_remote(self, query: str) -> Optional[ResolvedPlace]:
        key = _key(query)
        with self._lock:
            if key in self._cache:
                return self._cache[key]

        params = {"q": query, "format": "json", "limit": "1", "addressdetails": "0"}
        headers = {"User-Agent": USER_AGENT, "Accept": "application/json"}
        try:
            response = requests.get(self.remote_url, params=params, headers=headers, timeout=self.timeout)
            response.raise_for_status()
            payload = response.json()
        except (requests.RequestException, ValueError) as exc:
            logger.warning("Nominatim lookup failed for %r: %s", query, exc)
            return None

        result: Optional[ResolvedPlace] = None
        if payload:
            item = payload[0]
            try:
                lat = float(item.get("lat"))
                lng = float(item.get("lon"))
            except (TypeError, ValueError):
                lat = lng = float("nan")
            if is_valid_coordinate(lat, lng):
                result = ResolvedPlace(
                    name=str(item.get("display_name") or query),
                    lat=lat,
                    lng=lng,
                    source="nominatim",
                )

        with self._lock:
            self._cache[key] = result
        return result


def parse_coordinate_pair(text: str) -> Optional[Tuple[float, float]]:
    """Parse a "lat,lng" string; None when it is not one."""
    parts = (text or "").split(",")
    if len(parts) != 2:
        return None
    try:
        return float(parts[0].strip()), float(parts[1].strip())
    except ValueError:
        return None


def _key(name: str) -> str:
    return (name or "").strip().lower()
