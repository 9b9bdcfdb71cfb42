import uuid

import pytest

from hm_core.beds.models import BedStatus
from hm_core.beds.services import BedService

pytestmark = pytest.mark.django_db


def test_list_beds_filters_by_status(client_for, nurse, make_bed, scope):
    make_bed("1")
    reserved = make_bed("2")
    BedService.reserve_bed(bed_id=reserved.id, actor_user_id=nurse.id, **scope)

    resp = client_for(nurse).get("/api/v1/beds/", {"status": "reserved"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["count"] == 1
    assert body["results"][0]["id"] == str(reserved.id)
    assert body["results"][0]["room_number"] == "101"


def test_beds_from_other_facility_are_invisible(client_for, nurse, bed):
    resp = client_for(nurse, facility_id=uuid.uuid4()).get("/api/v1/beds/")

    assert resp.status_code == 200
    assert resp.json()["count"] == 0

    resp = client_for(nurse, facility_id=uuid.uuid4()).get(f"/api/v1/beds/{bed.id}/")
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "not_found"


def test_available_endpoint_supports_feature_filter(client_for, readonly_user, make_bed):
    o2 = make_bed("1", features=["oxygen"])
    make_bed("2")

    resp = client_for(readonly_user).get("/api/v1/beds/available/", {"feature": "oxygen"})

    assert resp.status_code == 200
    assert [r["id"] for r in resp.json()["results"]] == [str(o2.id)]


def test_available_rejects_bad_floor(client_for, nurse, bed):
    resp = client_for(nurse).get("/api/v1/beds/available/", {"floor": "top"})

    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "validation_error"


def test_nurse_reserves_bed(client_for, nurse, bed):
    resp = client_for(nurse).post(f"/api/v1/beds/{bed.id}/reserve/", {"reason": "ER handover"}, format="json")

    assert resp.status_code == 200, resp.content
    assert resp.json()["status"] == BedStatus.RESERVED


def test_doctor_cannot_change_bed_status(client_for, doctor, bed):
    resp = client_for(doctor).post(f"/api/v1/beds/{bed.id}/reserve/", {}, format="json")

    assert resp.status_code == 403
    assert resp.json()["error"]["code"] == "permission_denied"


def test_maintenance_without_reason_is_400(client_for, bed_manager, bed):
    resp = client_for(bed_manager).post(f"/api/v1/beds/{bed.id}/maintenance/", {}, format="json")

    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "validation_error"


def test_occupied_bed_maintenance_returns_conflict_with_occupant(client_for, bed_manager, admission, bed):
    resp = client_for(bed_manager).post(
        f"/api/v1/beds/{bed.id}/maintenance/", {"reason": "Leaking drip stand"}, format="json"
    )

    assert resp.status_code == 409
    err = resp.json()["error"]
    assert err["code"] == "invalid_state_transition"
    assert err["details"]["admission_id"] == str(admission.id)


def test_mark_cleaned_on_available_bed_conflicts(client_for, nurse, bed):
    resp = client_for(nurse).post(f"/api/v1/beds/{bed.id}/mark-cleaned/", {}, format="json")

    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "invalid_state_transition"


def test_history_and_occupant(client_for, nurse, admission, bed):
    client = client_for(nurse)

    history = client.get(f"/api/v1/beds/{bed.id}/history/")
    assert history.status_code == 200
    rows = history.json()
    assert rows[0]["new_status"] == BedStatus.OCCUPIED
    assert rows[0]["admission_id"] == str(admission.id)
    assert rows[-1]["old_status"] is None

    occupant = client.get(f"/api/v1/beds/{bed.id}/occupant/")
    assert occupant.status_code == 200
    assert occupant.json()["occupant"]["admission_number"] == admission.admission_number


def test_recent_changes_and_floors(client_for, nurse, admission):
    client = client_for(nurse)

    recent = client.get("/api/v1/beds/recent-changes/", {"hours": 1})
    assert recent.status_code == 200
    assert {r["new_status"] for r in recent.json()} == {BedStatus.AVAILABLE, BedStatus.OCCUPIED}

    floors = client.get("/api/v1/beds/floors/")
    assert floors.json() == [{"floor_number": 1, "total_beds": 1, "available_beds": 0, "occupied_beds": 1}]


def test_staff_activity_lists_one_users_changes_in_window(client_for, bed_manager, nurse, bed, bed2, scope):
    BedService.reserve_bed(bed_id=bed.id, actor_user_id=nurse.id, **scope)
    BedService.reserve_bed(bed_id=bed2.id, actor_user_id=nurse.id, **scope)
    client = client_for(bed_manager)

    resp = client.get("/api/v1/beds/staff-activity/", {"user_id": nurse.id})
    assert resp.status_code == 200, resp.content
    rows = resp.json()
    assert {r["bed"] for r in rows} == {str(bed.id), str(bed2.id)}
    assert {r["new_status"] for r in rows} == {BedStatus.RESERVED}
    assert {r["changed_by_id"] for r in rows} == {nurse.id}

    earlier = client.get(
        "/api/v1/beds/staff-activity/",
        {"user_id": nurse.id, "start": "2000-01-01", "end": "2000-01-02T00:00:00"},
    )
    assert earlier.status_code == 200
    assert earlier.json() == []


def test_staff_activity_validates_query_and_role(client_for, bed_manager, nurse):
    client = client_for(bed_manager)

    missing_user = client.get("/api/v1/beds/staff-activity/")
    assert missing_user.status_code == 400
    assert "user_id" in missing_user.json()["error"]["details"]

    bad_date = client.get("/api/v1/beds/staff-activity/", {"user_id": nurse.id, "start": "yesterday"})
    assert bad_date.status_code == 400

    reversed_window = client.get(
        "/api/v1/beds/staff-activity/",
        {"user_id": nurse.id, "start": "2000-01-02", "end": "2000-01-01"},
    )
    assert reversed_window.status_code == 400

    assert client_for(nurse).get("/api/v1/beds/staff-activity/", {"user_id": nurse.id}).status_code == 403


def test_bed_manager_creates_room_and_beds(client_for, bed_manager):
    client = client_for(bed_manager)

    room = client.post(
        "/api/v1/rooms/",
        {
            "room_number": "ICU-7",
            "room_type": "icu",
            "floor_number": 4,
            "department_id": str(uuid.uuid4()),
            "max_capacity": 1,
        },
        format="json",
    )
    assert room.status_code == 201, room.content
    room_id = room.json()["id"]

    bed = client.post(f"/api/v1/rooms/{room_id}/beds/", {"bed_number": "1", "features": ["monitor"]}, format="json")
    assert bed.status_code == 201, bed.content
    assert bed.json()["bed_type"] == "icu"

    full = client.post(f"/api/v1/rooms/{room_id}/beds/", {"bed_number": "2"}, format="json")
    assert full.status_code == 400

    detail = client.get(f"/api/v1/rooms/{room_id}/")
    assert detail.json()["occupancy"]["total_beds"] == 1


def test_doctor_cannot_create_rooms(client_for, doctor):
    resp = client_for(doctor).post("/api/v1/rooms/", {"room_number": "1"}, format="json")

    assert resp.status_code == 403


def test_closing_room_hides_it_from_room_list(client_for, bed_manager, room):
    client = client_for(bed_manager)

    resp = client.post(f"/api/v1/rooms/{room.id}/operational/", {"is_operational": False}, format="json")
    assert resp.status_code == 200
    assert resp.json()["is_operational"] is False

    listing = client.get("/api/v1/rooms/")
    assert listing.json()["count"] == 0
