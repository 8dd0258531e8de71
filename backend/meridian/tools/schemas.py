from __future__ import annotations

from typing import Optional

from pydantic import Field

from meridian.shared.models import BoundingBox, CamelModel


class FindNearbyArgs(CamelModel):
    city: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    radius_km: Optional[float] = None
    specialty: Optional[str] = None
    facility_type: Optional[str] = None
    limit: int = Field(20, ge=1, le=20)


class FindMedicalDesertsArgs(CamelModel):
    specialty: str
    region: Optional[str] = None
    bounding_box: Optional[BoundingBox] = None
    grid_resolution_km: Optional[float] = None
    threshold_km: Optional[float] = None


class DetectAnomaliesArgs(CamelModel):
    facility_id: int


class ScanAnomaliesArgs(CamelModel):
    region: Optional[str] = None
    rule: Optional[str] = None
    limit: int = Field(20, ge=1, le=100)


class GetFacilityArgs(CamelModel):
    facility_id: int
