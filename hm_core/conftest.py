# backend/hm_core/conftest.py
import uuid

import pytest
from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from rest_framework.test import APIClient

from hm_core.common.permissions import (
    ROLE_ADMIN,
    ROLE_BED_MANAGER,
    ROLE_DOCTOR,
    ROLE_NURSE,
    ROLE_READONLY,
    ROLE_RECEPTION,
)

TENANT_ID = uuid.UUID("00000000-0000-0000-0000-000000000001")
FACILITY_ID = uuid.UUID("00000000-0000-0000-0000-000000000101")
DEPARTMENT_ID = uuid.UUID("00000000-0000-0000-0000-00000000d001")


def scope_headers(tenant_id=TENANT_ID, facility_id=FACILITY_ID):
    """
    Standard scope headers used by the scope resolver.
    DRF test client requires HTTP_ prefix.
    """
    return {
        "HTTP_X_TENANT_ID": str(tenant_id),
        "HTTP_X_FACILITY_ID": str(facility_id),
    }


@pytest.fixture
def tenant_id():
    return TENANT_ID


@pytest.fixture
def facility_id():
    return FACILITY_ID


@pytest.fixture
def scope(tenant_id, facility_id):
    return {"tenant_id": tenant_id, "facility_id": facility_id}


# ---------------------------------------------------------------------
# Users + roles
# ---------------------------------------------------------------------
@pytest.fixture
def make_user(db):
    User = get_user_model()

    def _make(username: str, *roles: str):
        user = User.objects.create_user(username=username, password="testpass", is_active=True)
        for role in roles:
            group, _ = Group.objects.get_or_create(name=role)
            user.groups.add(group)
        return user

    return _make


@pytest.fixture
def admin_user(make_user):
    return make_user("admin", ROLE_ADMIN)


@pytest.fixture
def doctor(make_user):
    return make_user("dr_attending", ROLE_DOCTOR)


@pytest.fixture
def other_doctor(make_user):
    return make_user("dr_other", ROLE_DOCTOR)


@pytest.fixture
def nurse(make_user):
    return make_user("nurse", ROLE_NURSE)


@pytest.fixture
def bed_manager(make_user):
    return make_user("bed_manager", ROLE_BED_MANAGER)


@pytest.fixture
def receptionist(make_user):
    return make_user("reception", ROLE_RECEPTION)


@pytest.fixture
def readonly_user(make_user):
    return make_user("viewer", ROLE_READONLY)


@pytest.fixture
def client_for():
    """APIClient authenticated as `user` with scope headers preset."""

    def _client(user, *, tenant_id=TENANT_ID, facility_id=FACILITY_ID):
        c = APIClient()
        c.force_authenticate(user=user)
        c.credentials(**scope_headers(tenant_id, facility_id))
        return c

    return _client


# ---------------------------------------------------------------------
# Rooms + beds
# ---------------------------------------------------------------------
@pytest.fixture
def make_room(db, tenant_id, facility_id):
    from hm_core.beds.services import RoomService

    def _make(room_number: str = "101", **overrides):
        data = {
            "room_type": "ward",
            "floor_number": 1,
            "department_id": DEPARTMENT_ID,
            "max_capacity": 4,
        }
        data.update(overrides)
        return RoomService.create_room(
            tenant_id=tenant_id,
            facility_id=facility_id,
            room_number=room_number,
            **data,
        )

    return _make


@pytest.fixture
def room(make_room):
    return make_room("101")


@pytest.fixture
def make_bed(db, tenant_id, facility_id, room, bed_manager):
    from hm_core.beds.services import RoomService

    def _make(bed_number: str, *, in_room=None, **overrides):
        return RoomService.create_bed(
            tenant_id=tenant_id,
            facility_id=facility_id,
            room_id=(in_room or room).id,
            bed_number=bed_number,
            actor_user_id=bed_manager.id,
            **overrides,
        )

    return _make


@pytest.fixture
def bed(make_bed):
    return make_bed("B-1")


@pytest.fixture
def bed2(make_bed):
    return make_bed("B-2")


# ---------------------------------------------------------------------
# Admissions
# ---------------------------------------------------------------------
@pytest.fixture
def make_admission(db, tenant_id, facility_id, doctor, nurse):
    """
    Create admissions through AdmissionService so numbers, events and bed
    assignment go through the real unit of work.
    """
    from hm_core.admissions.services.lifecycle import AdmissionService

    def _make(*, bed=None, **overrides):
        data = {
            "patient_id": uuid.uuid4(),
            "attending_doctor_id": doctor.id,
            "admission_type": "emergency",
            "admission_source": "er",
            "diagnosis": "Community acquired pneumonia",
            "actor_user_id": nurse.id,
        }
        data.update(overrides)
        return AdmissionService.create(
            tenant_id=tenant_id,
            facility_id=facility_id,
            bed_id=bed.id if bed is not None else None,
            **data,
        )

    return _make


@pytest.fixture
def admission(make_admission, bed):
    """Active admission occupying `bed`."""
    return make_admission(bed=bed)
