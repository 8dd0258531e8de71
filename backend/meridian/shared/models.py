from __future__ import annotations

from typing import Any, Dict, FrozenSet, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from meridian.geo.haversine import is_valid_coordinate

FacilityType = Literal["hospital", "clinic", "pharmacy", "other"]
GapSeverity = Literal["moderate", "severe", "critical"]
ViolationSeverity = Literal["low", "medium", "high"]
ConfidenceLevel = Literal["green", "yellow", "red"]

FACILITY_TYPES = ("hospital", "clinic", "pharmacy", "other")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class Coordinates(CamelModel):
    """A validated query point."""

    model_config = ConfigDict(frozen=True)

    lat: float = Field(ge=-90, le=90, allow_inf_nan=False)
    lng: float = Field(ge=-180, le=180, allow_inf_nan=False)


class GeoPoint(CamelModel):
    """A stored facility location; may hold bad data and is checked before use."""

    model_config = ConfigDict(frozen=True)

    lat: float
    lng: float

    def is_valid(self) -> bool:
        return is_valid_coordinate(self.lat, self.lng)


class BoundingBox(CamelModel):
    model_config = ConfigDict(frozen=True)

    min_lat: float = Field(ge=-90, le=90, allow_inf_nan=False)
    min_lng: float = Field(ge=-180, le=180, allow_inf_nan=False)
    max_lat: float = Field(ge=-90, le=90, allow_inf_nan=False)
    max_lng: float = Field(ge=-180, le=180, allow_inf_nan=False)

    @model_validator(mode="after")
    def _check_order(self) -> "BoundingBox":
        if self.min_lat > self.max_lat or self.min_lng > self.max_lng:
            raise ValueError("bounding box minimum must not exceed maximum")
        return self

    def contains(self, lat: float, lng: float) -> bool:
        return self.min_lat <= lat <= self.max_lat and self.min_lng <= lng <= self.max_lng

    @property
    def center(self) -> Coordinates:
        return Coordinates(
            lat=(self.min_lat + self.max_lat) / 2,
            lng=(self.min_lng + self.max_lng) / 2,
        )


class Facility(CamelModel):
    """A facility record as read from the store. Never mutated by the engine."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    location: Optional[GeoPoint] = None
    region: Optional[str] = None
    city: Optional[str] = None
    facility_type: FacilityType = "other"
    specialties: FrozenSet[str] = frozenset()
    procedures: FrozenSet[str] = frozenset()
    equipment: FrozenSet[str] = frozenset()
    num_doctors: Optional[int] = Field(default=None, ge=0)
    capacity: Optional[int] = Field(default=None, ge=0)
    email: Optional[str] = None
    phone: Optional[str] = None
    website: Optional[str] = None

    @field_validator("facility_type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> str:
        text = str(value or "").strip().lower()
        return text if text in FACILITY_TYPES else "other"

    @field_validator("specialties", "procedures", "equipment", mode="before")
    @classmethod
    def _normalize_tags(cls, value: Any) -> FrozenSet[str]:
        if value is None:
            return frozenset()
        if isinstance(value, str):
            value = [value]
        return frozenset(str(item).strip() for item in value if item is not None and str(item).strip())

    @property
    def point(self) -> Optional[GeoPoint]:
        """The location, or None when it is missing or out of range."""
        if self.location is None or not self.location.is_valid():
            return None
        return self.location

    def summary(self) -> Dict[str, Any]:
        point = self.point
        return {
            "id": self.id,
            "name": self.name,
            "facilityType": self.facility_type,
            "city": self.city,
            "region": self.region,
            "lat": point.lat if point else None,
            "lng": point.lng if point else None,
            "numDoctors": self.num_doctors,
            "capacity": self.capacity,
            "specialties": sorted(self.specialties),
        }

    def profile(self) -> Dict[str, Any]:
        payload = self.summary()
        payload.update(
            {
                "procedures": sorted(self.procedures),
                "equipment": sorted(self.equipment),
                "email": self.email,
                "phone": self.phone,
                "website": self.website,
            }
        )
        return payload


class ProximityResult(CamelModel):
    rank: int
    distance_km: float
    facility: Facility

    def to_payload(self) -> Dict[str, Any]:
        payload = {"rank": self.rank}
        payload.update(self.facility.summary())
        payload["distanceKm"] = self.distance_km
        return payload


class GapZone(CamelModel):
    center: Coordinates
    radius_km: float
    nearest_facility_distance_km: Optional[float] = None
    severity: GapSeverity
    estimated_population_affected: Optional[int] = None
    sample_count: int
    population_centers: List[str] = Field(default_factory=list)
    reason: Literal["beyond_threshold", "no_qualifying_facility", "no_geocoded_facilities_in_scope"]


class Violation(CamelModel):
    rule: str
    severity: ViolationSeverity
    explanation: str


class AnomalyReport(CamelModel):
    facility_id: int
    completeness_score: int = Field(ge=0, le=100)
    completeness_version: str
    missing_fields: List[str] = Field(default_factory=list)
    violations: List[Violation] = Field(default_factory=list)
    confidence_score: int = Field(ge=0, le=100)
    level: ConfidenceLevel
    summary: str
