import threading
import uuid
from collections import defaultdict

import pytest
from django.db import connection, connections
from rest_framework.exceptions import NotFound

from hm_core.admissions.models import AdmissionEvent, BedAssignment
from hm_core.admissions.services.allocation import AllocationService
from hm_core.admissions.services.lifecycle import AdmissionService
from hm_core.beds.models import Bed, BedStatus, BedStatusLog
from hm_core.beds.services import BedService, RoomService
from hm_core.common import events
from hm_core.common.api.exceptions import BedUnavailable, ConcurrentUpdate, InvalidStateTransition


def assert_ledger_consistent():
    """Each bed: occupied iff exactly one open assignment. Each admission: at most one open row."""
    open_rows = BedAssignment.objects.filter(released_at__isnull=True)
    assert open_rows.values("bed_id").distinct().count() == open_rows.count()
    assert open_rows.values("admission_id").distinct().count() == open_rows.count()
    for bed in Bed.objects.all():
        held = open_rows.filter(bed=bed).exists()
        assert held == (bed.status == BedStatus.OCCUPIED), bed


def _status(bed):
    return Bed.objects.get(id=bed.id).status


@pytest.mark.django_db
def test_admit_with_bed_occupies_it(admission, bed):
    assert _status(bed) == BedStatus.OCCUPIED

    assignment = BedAssignment.objects.get(admission=admission)
    assert assignment.is_current
    log = BedStatusLog.objects.filter(bed=bed).order_by("-changed_at").first()
    assert log.new_status == BedStatus.OCCUPIED
    assert log.admission_id == admission.id
    assert log.assignment_id == assignment.id
    assert_ledger_consistent()


@pytest.mark.django_db
def test_assign_bed_to_admission_without_one(scope, make_admission, bed, nurse):
    admission = make_admission()

    assignment = AllocationService.assign_bed(
        admission_id=admission.id, bed_id=bed.id, actor_user_id=nurse.id, **scope
    )

    assert assignment.bed_id == bed.id
    assert _status(bed) == BedStatus.OCCUPIED
    assert AllocationService.get_current_bed(admission_id=admission.id, **scope).id == bed.id
    assert AdmissionEvent.objects.filter(admission_id=admission.id, code="BED_ASSIGNED").count() == 1
    assert_ledger_consistent()


@pytest.mark.django_db
def test_occupied_bed_cannot_be_assigned_again(scope, admission, make_admission, bed, nurse):
    other = make_admission()

    with pytest.raises(BedUnavailable) as exc:
        AllocationService.assign_bed(admission_id=other.id, bed_id=bed.id, actor_user_id=nurse.id, **scope)

    assert exc.value.context["status"] == BedStatus.OCCUPIED
    assert exc.value.context["bed_number"] == bed.bed_number
    assert not BedAssignment.objects.filter(admission=other).exists()
    assert_ledger_consistent()


@pytest.mark.django_db
@pytest.mark.parametrize("action", ["reserve", "maintenance"])
def test_non_available_bed_is_rejected(scope, make_admission, bed, nurse, action):
    if action == "reserve":
        BedService.reserve_bed(bed_id=bed.id, actor_user_id=nurse.id, **scope)
    else:
        BedService.mark_maintenance(bed_id=bed.id, actor_user_id=nurse.id, reason="Broken", **scope)
    admission = make_admission()

    with pytest.raises(BedUnavailable):
        AllocationService.assign_bed(admission_id=admission.id, bed_id=bed.id, actor_user_id=nurse.id, **scope)


@pytest.mark.django_db
def test_bed_in_closed_room_is_rejected(scope, make_admission, room, bed, nurse):
    RoomService.set_room_operational(room_id=room.id, is_operational=False, **scope)
    admission = make_admission()

    with pytest.raises(BedUnavailable):
        AllocationService.assign_bed(admission_id=admission.id, bed_id=bed.id, actor_user_id=nurse.id, **scope)

    assert _status(bed) == BedStatus.AVAILABLE


@pytest.mark.django_db
def test_unknown_bed_is_not_found(scope, make_admission, nurse):
    admission = make_admission()

    with pytest.raises(NotFound):
        AllocationService.assign_bed(admission_id=admission.id, bed_id=uuid.uuid4(), actor_user_id=nurse.id, **scope)


@pytest.mark.django_db
def test_assigning_current_bed_again_is_invalid(scope, admission, bed, nurse):
    with pytest.raises(InvalidStateTransition):
        AllocationService.assign_bed(admission_id=admission.id, bed_id=bed.id, actor_user_id=nurse.id, **scope)


@pytest.mark.django_db
def test_bed_taken_between_check_and_insert_maps_to_bed_unavailable(scope, make_admission, bed, nurse):
    winner = make_admission()
    loser = make_admission()
    # The winner's ledger row exists but the bed row has not flipped yet.
    BedAssignment.objects.create(
        tenant_id=winner.tenant_id,
        facility_id=winner.facility_id,
        admission=winner,
        bed=bed,
        assigned_by_id=nurse.id,
    )

    with pytest.raises(BedUnavailable) as exc:
        AllocationService.assign_bed(admission_id=loser.id, bed_id=bed.id, actor_user_id=nurse.id, **scope)

    assert "just assigned" in exc.value.message
    assert _status(bed) == BedStatus.AVAILABLE
    assert not BedAssignment.objects.filter(admission=loser).exists()


@pytest.mark.django_db
def test_transfer_moves_patient_and_sends_old_bed_to_cleaning(scope, admission, bed, bed2, nurse, monkeypatch):
    monkeypatch.setattr(events, "_registry", defaultdict(list))
    published = []
    events.subscribe("admission.bed_transferred")(published.append)

    new = AllocationService.transfer_bed(
        admission_id=admission.id, new_bed_id=bed2.id, actor_user_id=nurse.id, reason="Needs isolation", **scope
    )

    assert _status(bed) == BedStatus.CLEANING
    assert _status(bed2) == BedStatus.OCCUPIED
    assert new.transfer_reason == "Needs isolation"

    history = list(AllocationService.assignment_history(admission_id=admission.id, **scope))
    assert [a.bed_id for a in history] == [bed.id, bed2.id]
    assert history[0].released_at is not None
    assert history[0].transfer_reason == "Needs isolation"
    assert history[1].is_current

    cleaning_log = BedStatusLog.objects.get(bed=bed, new_status=BedStatus.CLEANING)
    assert cleaning_log.assignment_id == history[0].id

    assert AdmissionEvent.objects.filter(admission_id=admission.id, code="BED_TRANSFERRED").count() == 1
    assert published and published[0]["bed_id"] == str(bed2.id)
    assert_ledger_consistent()


@pytest.mark.django_db
def test_transfer_requires_a_current_bed(scope, make_admission, bed, nurse):
    admission = make_admission()

    with pytest.raises(InvalidStateTransition):
        AllocationService.transfer_bed(
            admission_id=admission.id, new_bed_id=bed.id, actor_user_id=nurse.id, reason="x", **scope
        )


@pytest.mark.django_db
def test_transfer_to_unavailable_bed_leaves_everything_in_place(scope, admission, bed, bed2, nurse):
    BedService.reserve_bed(bed_id=bed2.id, actor_user_id=nurse.id, **scope)

    with pytest.raises(BedUnavailable):
        AllocationService.transfer_bed(
            admission_id=admission.id, new_bed_id=bed2.id, actor_user_id=nurse.id, reason="x", **scope
        )

    assert _status(bed) == BedStatus.OCCUPIED
    assert BedAssignment.objects.get(admission=admission).is_current


@pytest.mark.django_db
def test_release_frees_bed_to_cleaning(scope, admission, bed, nurse):
    released = AllocationService.release_bed(admission_id=admission.id, actor_user_id=nurse.id, reason="Day leave", **scope)

    assert released.released_at is not None
    assert _status(bed) == BedStatus.CLEANING
    assert AllocationService.get_current_bed(admission_id=admission.id, **scope) is None

    assert AllocationService.release_bed(admission_id=admission.id, actor_user_id=nurse.id, **scope) is None
    assert_ledger_consistent()


@pytest.mark.django_db
def test_pending_discharge_admission_cannot_take_a_new_bed(scope, make_admission, bed, doctor, nurse):
    admission = make_admission()
    AdmissionService.request_discharge(admission_id=admission.id, doctor_id=doctor.id, summary="Stable", **scope)

    with pytest.raises(InvalidStateTransition):
        AllocationService.assign_bed(admission_id=admission.id, bed_id=bed.id, actor_user_id=nurse.id, **scope)


@pytest.mark.django_db
def test_release_after_discharge_is_invalid(scope, admission, doctor, nurse):
    AdmissionService.request_discharge(admission_id=admission.id, doctor_id=doctor.id, summary="Stable", **scope)
    AdmissionService.finalize_discharge(admission_id=admission.id, actor_user_id=nurse.id, discharge_type="routine", **scope)

    with pytest.raises(InvalidStateTransition):
        AllocationService.release_bed(admission_id=admission.id, actor_user_id=nurse.id, **scope)


@pytest.mark.skipif(connection.vendor != "postgresql", reason="needs real row locks")
@pytest.mark.django_db(transaction=True)
def test_concurrent_assignments_of_one_bed_have_a_single_winner(scope, make_admission, bed, nurse):
    admissions = [make_admission() for _ in range(4)]
    barrier = threading.Barrier(len(admissions))
    outcomes = []

    def worker(admission):
        try:
            barrier.wait()
            AllocationService.assign_bed(admission_id=admission.id, bed_id=bed.id, actor_user_id=nurse.id, **scope)
            outcomes.append("won")
        except (BedUnavailable, ConcurrentUpdate) as exc:
            outcomes.append(type(exc).__name__)
        finally:
            connections.close_all()

    threads = [threading.Thread(target=worker, args=(a,)) for a in admissions]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sorted(outcomes) == ["BedUnavailable"] * 3 + ["won"]
    assert _status(bed) == BedStatus.OCCUPIED
    assert_ledger_consistent()
