from __future__ import annotations

import os
import sys
import traceback


def _bootstrap_path() -> None:
    base_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
    if base_dir not in sys.path:
        sys.path.insert(0, base_dir)


def main() -> int:
    _bootstrap_path()
    os.environ.setdefault("TRACE_EXPORT", "none")
    try:
        from meridian.geo.haversine import haversine_km
        from meridian.shared.models import Facility, GeoPoint
        from meridian.store.facility_store import InMemoryFacilityStore
        from meridian.tools.service import AnalysisService

        distance = haversine_km(5.6037, -0.1870, 6.6885, -1.6244)
        if not 190 <= distance <= 210:
            raise RuntimeError(f"Unexpected Accra-Kumasi distance: {distance:.1f} km")

        store = InMemoryFacilityStore(
            [
                Facility(
                    id=1,
                    name="Facility",
                    location=GeoPoint(lat=5.6037, lng=-0.1870),
                    facility_type="hospital",
                    specialties=["cardiology"],
                    capacity=120,
                    num_doctors=12,
                )
            ]
        )
        service = AnalysisService(store)
        nearby = service.invoke("findNearby", {"city": "Accra", "specialty": "cardiology"})
        if nearby.get("count") != 1:
            raise RuntimeError(f"findNearby failed: {nearby}")
        deserts = service.invoke(
            "findMedicalDeserts", {"specialty": "cardiology", "region": "Greater Accra"}
        )
        if "zones" not in deserts:
            raise RuntimeError(f"findMedicalDeserts failed: {deserts}")
        report = service.invoke("detectAnomalies", {"facilityId": 1})
        if "completenessScore" not in report:
            raise RuntimeError(f"detectAnomalies failed: {report}")
    except Exception:
        traceback.print_exc()
        return 1
    print("health_check: ok")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
