import pytest

from meridian.analytics.deserts import classify_severity, find_gaps, merge_cell_km
from meridian.errors import InvalidQuery
from meridian.geo.geocoding import default_gazetteer
from meridian.shared.models import BoundingBox, Facility, GeoPoint
from meridian.store.facility_store import InMemoryFacilityStore


def _scope(name):
    return default_gazetteer().region(name).bounds


def _provider(facility_id, lat, lng, specialties=("cardiology",)):
    return Facility(
        id=facility_id,
        name=f"Provider {facility_id}",
        location=GeoPoint(lat=lat, lng=lng),
        specialties=list(specialties),
    )


def test_blank_specialty_is_invalid(store):
    with pytest.raises(InvalidQuery):
        find_gaps(store, "   ", _scope("Greater Accra"))


def test_too_fine_resolution_is_rejected(store):
    with pytest.raises(InvalidQuery) as exc:
        find_gaps(store, "cardiology", _scope("Ghana"), grid_resolution_km=1)
    assert "Resolution too fine" in exc.value.message


@pytest.mark.parametrize("kwargs", [{"grid_resolution_km": 0}, {"threshold_km": -1}])
def test_non_positive_parameters_are_invalid(store, kwargs):
    with pytest.raises(InvalidQuery):
        find_gaps(store, "cardiology", _scope("Greater Accra"), **kwargs)


def test_no_geocoded_facilities_in_scope_is_one_critical_zone():
    store = InMemoryFacilityStore([_provider(1, 6.6885, -1.6244)])
    report = find_gaps(store, "cardiology", _scope("Greater Accra"), scope_label="Greater Accra")
    assert report.data_absent is True
    assert len(report.zones) == 1
    zone = report.zones[0]
    assert zone.severity == "critical"
    assert zone.reason == "no_geocoded_facilities_in_scope"
    assert "No geocoded facilities" in report.message


def test_no_qualifying_provider_is_critical():
    store = InMemoryFacilityStore([_provider(1, 5.6037, -0.1870, ["pediatrics"])])
    report = find_gaps(store, "cardiology", _scope("Greater Accra"))
    assert report.data_absent is False
    assert report.provider_count == 0
    assert report.zones
    for zone in report.zones:
        assert zone.severity == "critical"
        assert zone.nearest_facility_distance_km is None
        assert zone.reason == "no_qualifying_facility"
    assert report.message.startswith("CRITICAL GAP")


@pytest.mark.parametrize("resolution", [10, 60])
def test_no_qualifying_provider_is_one_zone(resolution):
    store = InMemoryFacilityStore([_provider(1, 5.6037, -0.1870, ["pediatrics"])])
    report = find_gaps(store, "cardiology", _scope("Ghana"), grid_resolution_km=resolution)
    assert len(report.zones) == 1
    assert report.zones[0].sample_count == report.sampled_points
    assert report.zones[0].reason == "no_qualifying_facility"


def test_neighbouring_gaps_merge_at_coarse_resolution(ghana_facilities):
    store = InMemoryFacilityStore(ghana_facilities)
    report = find_gaps(store, "cardiology", _scope("Ghana"), grid_resolution_km=60, threshold_km=30)
    assert report.zones
    assert len(report.zones) < report.sampled_points
    assert max(zone.sample_count for zone in report.zones) > 1


def test_merge_cell_spans_at_least_two_grid_steps():
    assert merge_cell_km(10, 50) == 50
    assert merge_cell_km(60, 50) == 120


def test_full_coverage_reports_no_zones():
    store = InMemoryFacilityStore([_provider(1, 5.6037, -0.1870)])
    report = find_gaps(store, "cardiology", _scope("Greater Accra"), threshold_km=500)
    assert report.zones == []
    assert report.message.startswith("No coverage gaps")


def test_gap_count_never_increases_with_threshold(ghana_facilities):
    store = InMemoryFacilityStore(ghana_facilities)
    counts = [
        len(find_gaps(store, "cardiology", _scope("Ghana"), threshold_km=threshold).zones)
        for threshold in (10, 20, 30, 50, 80, 120, 200, 400, 800)
    ]
    assert counts == sorted(counts, reverse=True)
    assert counts[0] > 0
    assert counts[-1] == 0


def test_zones_are_sorted_by_severity(ghana_facilities):
    store = InMemoryFacilityStore(ghana_facilities)
    report = find_gaps(store, "cardiology", _scope("Ghana"), threshold_km=30)
    ranks = {"moderate": 1, "severe": 2, "critical": 3}
    severities = [ranks[zone.severity] for zone in report.zones]
    assert severities == sorted(severities, reverse=True)
    for zone in report.zones:
        assert zone.nearest_facility_distance_km >= 30
        assert zone.radius_km >= report.grid_resolution_km / 2
        assert zone.estimated_population_affected >= 0
        assert zone.sample_count >= 1


def test_scan_ignores_facilities_without_location():
    store = InMemoryFacilityStore(
        [
            _provider(1, 5.6037, -0.1870, ["pediatrics"]),
            Facility(id=2, name="Unmapped", specialties=["cardiology"]),
        ]
    )
    report = find_gaps(store, "cardiology", _scope("Greater Accra"))
    assert report.provider_count == 0


def test_results_are_deterministic(ghana_facilities):
    store = InMemoryFacilityStore(ghana_facilities)
    scope = BoundingBox(min_lat=5.0, min_lng=-2.0, max_lat=7.0, max_lng=0.5)
    first = find_gaps(store, "cardiology", scope).to_payload()
    second = find_gaps(store, "cardiology", scope).to_payload()
    assert first == second


@pytest.mark.parametrize(
    "distance, expected",
    [
        (31, "moderate"),
        (45, "moderate"),
        (45.1, "severe"),
        (60, "severe"),
        (60.1, "critical"),
        (None, "critical"),
    ],
)
def test_classify_severity(distance, expected):
    assert classify_severity(distance, 30) == expected
