"""Pytest setup for backend tests: puts backend/ on the path and keeps trace export off."""
import os
import sys
from pathlib import Path

backend_dir = Path(__file__).resolve().parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

os.environ.setdefault("TRACE_EXPORT", "none")

import pytest

from meridian.config.settings import EngineSettings
from meridian.shared.models import Facility, GeoPoint
from meridian.store.facility_store import InMemoryFacilityStore


@pytest.fixture
def settings():
    return EngineSettings(trace_export="none")


@pytest.fixture
def ghana_facilities():
    return [
        Facility(
            id=1,
            name="Korle Bu Teaching Hospital",
            location=GeoPoint(lat=5.5364, lng=-0.2275),
            region="Greater Accra",
            city="Accra",
            facility_type="hospital",
            specialties=["cardiology", "neurosurgery"],
            procedures=["craniotomy"],
            equipment=["CT scanner", "ICU", "operating theatre", "ECG"],
            num_doctors=250,
            capacity=2000,
            email="info@kbth.gov.gh",
        ),
        Facility(
            id=2,
            name="Komfo Anokye Teaching Hospital",
            location=GeoPoint(lat=6.6970, lng=-1.6300),
            region="Ashanti",
            city="Kumasi",
            facility_type="hospital",
            specialties=["cardiology"],
            equipment=["ECG"],
            num_doctors=180,
            capacity=1200,
        ),
        Facility(
            id=3,
            name="Tamale Teaching Hospital",
            location=GeoPoint(lat=9.4075, lng=-0.8533),
            region="Northern",
            city="Tamale",
            facility_type="hospital",
            specialties=["pediatrics"],
            num_doctors=40,
            capacity=800,
        ),
        Facility(
            id=4,
            name="Ridge Eye Clinic",
            location=GeoPoint(lat=5.5600, lng=-0.1969),
            region="Greater Accra",
            city="Accra",
            facility_type="clinic",
            specialties=["ophthalmology"],
            procedures=["Cataract surgery"],
            equipment=["Autoclave"],
            num_doctors=3,
            capacity=12,
        ),
        Facility(
            id=5,
            name="Unmapped Clinic",
            region="Greater Accra",
            facility_type="clinic",
            specialties=["cardiology"],
        ),
    ]


@pytest.fixture
def store(ghana_facilities):
    return InMemoryFacilityStore(ghana_facilities)
