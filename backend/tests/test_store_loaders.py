import csv
import json

import pytest

from meridian.shared.models import Facility, GeoPoint
from meridian.store.facility_store import InMemoryFacilityStore
from meridian.store.loaders import facility_from_record, load_facilities, parse_list_field

VIRTUE_COLUMNS = [
    "pk_unique_id",
    "name",
    "facilityTypeId",
    "address_city",
    "address_stateOrRegion",
    "specialties",
    "procedure",
    "equipment",
    "numberDoctors",
    "capacity",
    "email",
    "phone_numbers",
    "websites",
    "latitude",
    "longitude",
]


def _write_csv(path, rows):
    with path.open("w", encoding="utf-8", newline="") as handle:
        writer = csv.writer(handle)
        writer.writerow(VIRTUE_COLUMNS)
        writer.writerows(rows)


def test_load_virtue_csv(tmp_path):
    path = tmp_path / "facilities.csv"
    _write_csv(
        path,
        [
            [
                "1",
                "Korle Bu Teaching Hospital",
                "hospital",
                "Accra",
                "Greater Accra",
                '["cardiology", "neurosurgery"]',
                '["Cataract surgery"]',
                '["CT scanner"]',
                "250",
                "2000",
                "info@kbth.gov.gh",
                '["+233 30 267 4000"]',
                "",
                "5.5364",
                "-0.2275",
            ],
            ["2", "", "clinic", "", "", "", "", "", "", "", "", "", "", "", ""],
            ["3", "Tamale Clinic", "Clinic", "Tamale", "Northern", "", "", "", "-4", "null", "", "", "", "", ""],
        ],
    )
    facilities = load_facilities(path)
    assert [facility.id for facility in facilities] == [1, 3]

    korle_bu = facilities[0]
    assert korle_bu.facility_type == "hospital"
    assert korle_bu.specialties == frozenset({"cardiology", "neurosurgery"})
    assert korle_bu.procedures == frozenset({"Cataract surgery"})
    assert korle_bu.num_doctors == 250
    assert korle_bu.phone == "+233 30 267 4000"
    assert korle_bu.point.lat == 5.5364

    tamale = facilities[1]
    assert tamale.facility_type == "clinic"
    assert tamale.num_doctors is None
    assert tamale.capacity is None
    assert tamale.point is None


def test_load_json_records(tmp_path):
    path = tmp_path / "facilities.json"
    path.write_text(
        json.dumps(
            {
                "facilities": [
                    {
                        "id": 7,
                        "name": "Ho Municipal Hospital",
                        "facilityType": "hospital",
                        "location": {"lat": 6.6008, "lng": 0.4727},
                        "specialties": ["pediatrics"],
                        "numDoctors": 12,
                    }
                ]
            }
        ),
        encoding="utf-8",
    )
    facilities = load_facilities(path)
    assert len(facilities) == 1
    assert facilities[0].point.lng == 0.4727
    assert facilities[0].num_doctors == 12


def test_missing_file_and_unknown_format(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_facilities(tmp_path / "absent.csv")
    other = tmp_path / "facilities.txt"
    other.write_text("", encoding="utf-8")
    with pytest.raises(ValueError):
        load_facilities(other)


def test_parse_list_field_variants():
    assert parse_list_field('["a", " b ", ""]') == ["a", "b"]
    assert parse_list_field("a, b,,c") == ["a", "b", "c"]
    assert parse_list_field("null") == []
    assert parse_list_field(None) == []


def test_record_without_id_uses_fallback():
    facility = facility_from_record({"name": "No id"}, fallback_id=42)
    assert facility.id == 42


def test_unknown_type_becomes_other():
    facility = facility_from_record({"id": 1, "name": "Dental", "facilityTypeId": "dentist"})
    assert facility.facility_type == "other"


def test_duplicate_ids_keep_first_record():
    store = InMemoryFacilityStore([Facility(id=1, name="First"), Facility(id=1, name="Second")])
    assert len(store.snapshot()) == 1
    assert store.fetch(1).name == "First"


def test_replace_publishes_new_snapshot_atomically():
    store = InMemoryFacilityStore([Facility(id=1, name="Old", location=GeoPoint(lat=5.6, lng=-0.2))])
    before = store.snapshot()
    store.replace([Facility(id=2, name="New", location=GeoPoint(lat=5.6, lng=-0.2))])
    after = store.snapshot()
    assert after.version > before.version
    assert [facility.id for facility in before.scan()] == [1]
    assert [facility.id for facility in after.scan()] == [2]
    assert store.fetch(1) is None


def test_scan_skips_unusable_locations():
    store = InMemoryFacilityStore(
        [
            Facility(id=1, name="Valid", location=GeoPoint(lat=5.6, lng=-0.2)),
            Facility(id=2, name="Out of range", location=GeoPoint(lat=5.6, lng=200.0)),
            Facility(id=3, name="Unknown"),
        ]
    )
    assert [facility.id for facility in store.scan()] == [1]
    assert [facility.id for facility in store.scan(where=lambda lat, lng: lat > 6)] == []
    assert len(store.snapshot().all()) == 3
