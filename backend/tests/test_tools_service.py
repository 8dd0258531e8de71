import json

import pytest

from meridian.guard.rate_guard import RateGuard
from meridian.tools.service import AnalysisService


@pytest.fixture
def service(store, settings):
    return AnalysisService(store, settings=settings)


def test_find_nearby_by_city(service):
    result = service.invoke("findNearby", {"city": "Accra", "radiusKm": 20})
    assert result["center"]["label"] == "Accra"
    assert result["radiusKm"] == 20
    assert [item["id"] for item in result["facilities"]] == [4, 1]
    assert result["count"] == 2


def test_find_nearby_unknown_city_names_it(service):
    result = service.invoke("findNearby", {"city": "Atlantis"})
    assert "Atlantis" in result["error"]


def test_find_nearby_coordinates_win_over_city(service):
    result = service.invoke("findNearby", {"city": "Atlantis", "lat": 6.6885, "lng": -1.6244})
    assert "error" not in result
    assert [item["id"] for item in result["facilities"]] == [2]


def test_find_nearby_coordinate_string(service):
    result = service.invoke("findNearby", {"city": "9.4008,-0.8393", "radiusKm": 10})
    assert [item["id"] for item in result["facilities"]] == [3]


def test_find_nearby_specialty_and_default_radius(service):
    result = service.invoke("findNearby", {"city": "Accra", "specialty": "cardiology"})
    assert result["radiusKm"] == 50
    assert [item["id"] for item in result["facilities"]] == [1]


@pytest.mark.parametrize(
    "arguments, fragment",
    [
        ({}, "No usable center"),
        ({"lat": 5.6}, "both lat and lng"),
        ({"lat": 95, "lng": 0}, "out of range"),
        ({"city": "Accra", "radiusKm": 0}, "radiusKm"),
        ({"city": "Accra", "radiusKm": "far"}, "Invalid arguments"),
        ({"city": "Accra", "limit": 50}, "Invalid arguments"),
    ],
)
def test_find_nearby_errors(service, arguments, fragment):
    result = service.invoke("findNearby", arguments)
    assert fragment in result["error"]


def test_find_medical_deserts_by_region(service):
    result = service.invoke("findMedicalDeserts", {"specialty": "cardiology", "region": "northern"})
    assert result["scope"] == "Northern"
    assert result["zones"]
    assert {"center", "radiusKm", "nearestFacilityDistanceKm", "severity"} <= set(result["zones"][0])


def test_find_medical_deserts_bounding_box(service):
    box = {"minLat": 5.4, "minLng": -0.6, "maxLat": 5.8, "maxLng": 0.0}
    result = service.invoke("findMedicalDeserts", {"specialty": "cardiology", "boundingBox": box, "thresholdKm": 100})
    assert result["scope"] == "bounding box"
    assert result["zones"] == []


@pytest.mark.parametrize(
    "arguments, fragment",
    [
        ({"specialty": "cardiology", "region": "Narnia"}, "Narnia"),
        ({"specialty": "  ", "region": "Ashanti"}, "specialty is required"),
        ({"specialty": "cardiology", "gridResolutionKm": 0.5}, "Resolution too fine"),
        (
            {"specialty": "cardiology", "boundingBox": {"minLat": 7, "minLng": 0, "maxLat": 6, "maxLng": 1}},
            "Invalid arguments",
        ),
        ({"region": "Ashanti"}, "specialty"),
    ],
)
def test_find_medical_deserts_errors(service, arguments, fragment):
    result = service.invoke("findMedicalDeserts", arguments)
    assert fragment in result["error"]


def test_detect_anomalies(service):
    result = service.invoke("detectAnomalies", {"facilityId": 4})
    assert result["facilityId"] == 4
    assert [item["rule"] for item in result["violations"]] == ["equipment_mismatch"]
    assert result["completenessVersion"] == "v1"


def test_detect_anomalies_unknown_facility(service):
    result = service.invoke("detectAnomalies", {"facilityId": 999})
    assert "999" in result["error"]


def test_scan_anomalies_orders_by_confidence(service):
    result = service.invoke("scanAnomalies", {})
    scores = [(item["confidenceScore"], item["id"]) for item in result["facilities"]]
    assert scores == sorted(scores)
    assert result["scanned"] == 5


def test_scan_anomalies_filters(service):
    result = service.invoke("scanAnomalies", {"region": "greater accra region", "rule": "equipment_mismatch"})
    assert [item["id"] for item in result["facilities"]] == [4]
    assert result["scanned"] == 3


def test_get_facility_includes_report(service):
    result = service.invoke("getFacility", {"facilityId": 1})
    assert result["name"] == "Korle Bu Teaching Hospital"
    assert result["anomalies"]["facilityId"] == 1


def test_unknown_operation(service):
    assert "Unknown operation" in service.invoke("rebuildIndex", {})["error"]


def test_rate_limited_caller(store, settings):
    service = AnalysisService(store, settings=settings, rate_guard=RateGuard(max_requests=2, window_ms=60_000))
    for _ in range(2):
        assert "error" not in service.invoke("detectAnomalies", {"facilityId": 1}, caller_key="caller")
    result = service.invoke("detectAnomalies", {"facilityId": 1}, caller_key="caller")
    assert result["error"].startswith("Too many requests")
    assert "error" not in service.invoke("detectAnomalies", {"facilityId": 1}, caller_key="other")


def test_internal_failure_is_a_safe_error(service, monkeypatch):
    def boom():
        raise RuntimeError("store offline at 10.0.0.3")

    monkeypatch.setattr(service.store, "snapshot", boom)
    result = service.invoke("findNearby", {"city": "Accra"})
    assert "error" in result
    assert "10.0.0.3" not in result["error"]


@pytest.mark.parametrize(
    "operation, arguments",
    [
        ("findNearby", {"city": "Kumasi", "radiusKm": 300}),
        ("findMedicalDeserts", {"specialty": "cardiology", "region": "Ghana"}),
        ("detectAnomalies", {"facilityId": 1}),
        ("scanAnomalies", {"limit": 100}),
        ("findNearby", {"city": "Atlantis"}),
    ],
)
def test_repeated_calls_are_byte_identical(service, operation, arguments):
    first = json.dumps(service.invoke(operation, arguments), sort_keys=True)
    second = json.dumps(service.invoke(operation, arguments), sort_keys=True)
    assert first == second
