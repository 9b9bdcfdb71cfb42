import uuid
from datetime import timedelta

import pytest
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from hm_core.admissions.models import (
    Admission,
    AdmissionEvent,
    AdmissionStatus,
    BedAssignment,
    DischargeSyncOutbox,
    compute_length_of_stay,
)
from hm_core.admissions.selectors import AdmissionSelectors
from hm_core.admissions.services.lifecycle import AdmissionService
from hm_core.beds.models import Bed, BedStatus, BedStatusLog
from hm_core.beds.services import BedService
from hm_core.common.api.exceptions import AccessDenied, BedUnavailable, InvalidStateTransition
from hm_core.sequences.models import SequenceType
from hm_core.sequences.services import SequenceService

pytestmark = pytest.mark.django_db


def _codes(admission, scope):
    return [e.code for e in AdmissionSelectors.timeline(admission_id=admission.id, **scope)]


def test_length_of_stay_rounds_partial_days_up():
    start = timezone.now()

    assert compute_length_of_stay(start, start + timedelta(days=3, hours=4)) == 4
    assert compute_length_of_stay(start, start + timedelta(days=2)) == 2
    assert compute_length_of_stay(start, start + timedelta(minutes=5)) == 1
    assert compute_length_of_stay(start, start) == 0
    assert compute_length_of_stay(start, start - timedelta(hours=1)) == 0


def test_create_issues_sequential_admission_numbers(make_admission):
    year = timezone.localdate().year

    first = make_admission()
    second = make_admission()

    assert first.admission_number == f"ADM-{year}-000001"
    assert second.admission_number == f"ADM-{year}-000002"
    assert first.status == AdmissionStatus.ACTIVE
    assert first.length_of_stay_days is None


def test_failed_create_does_not_consume_a_number(scope, make_admission, bed, nurse):
    make_admission()
    BedService.reserve_bed(bed_id=bed.id, actor_user_id=nurse.id, **scope)

    with pytest.raises(BedUnavailable):
        make_admission(bed=bed)

    seq = SequenceService.peek(sequence_type=SequenceType.ADMISSION, **scope)
    assert seq.current_value == 1
    assert Admission.objects.count() == 1
    assert make_admission().admission_number.endswith("-000002")


def test_unknown_attending_doctor_is_rejected(make_admission):
    with pytest.raises(ValidationError):
        make_admission(attending_doctor_id=999999)

    assert Admission.objects.count() == 0


def test_patient_has_at_most_one_open_admission(make_admission, doctor, scope, nurse):
    patient_id = uuid.uuid4()
    first = make_admission(patient_id=patient_id)

    with pytest.raises(ValidationError):
        make_admission(patient_id=patient_id)

    AdmissionService.request_discharge(admission_id=first.id, doctor_id=doctor.id, summary="ok", **scope)
    AdmissionService.finalize_discharge(admission_id=first.id, actor_user_id=nurse.id, discharge_type="routine", **scope)

    again = make_admission(patient_id=patient_id)
    assert again.status == AdmissionStatus.ACTIVE


def test_admit_request_and_finalize_discharge(scope, admission, bed, doctor, nurse):
    pending = AdmissionService.request_discharge(
        admission_id=admission.id,
        doctor_id=doctor.id,
        summary="Afebrile for 48h, tolerating oral antibiotics.",
        follow_up_instructions="Clinic review in 7 days.",
        **scope,
    )
    assert pending.status == AdmissionStatus.PENDING_DISCHARGE
    assert pending.discharge_requested_by_id == doctor.id
    assert pending.expected_discharge_date == timezone.localdate()
    assert Bed.objects.get(id=bed.id).status == BedStatus.OCCUPIED

    held = BedAssignment.objects.get(admission=admission, released_at__isnull=True)
    log_ids_before = set(BedStatusLog.objects.filter(bed=bed).values_list("id", flat=True))

    done = AdmissionService.finalize_discharge(
        admission_id=admission.id,
        actor_user_id=nurse.id,
        discharge_type="routine",
        condition_on_discharge="Stable",
        **scope,
    )

    assert done.status == AdmissionStatus.DISCHARGED
    assert done.discharge_date is not None
    assert done.length_of_stay_days == 1
    assert done.follow_up_instructions == "Clinic review in 7 days."
    assert Bed.objects.get(id=bed.id).status == BedStatus.CLEANING
    assert not BedAssignment.objects.filter(admission=admission, released_at__isnull=True).exists()

    new_rows = BedStatusLog.objects.filter(bed=bed).exclude(id__in=log_ids_before)
    assert new_rows.count() == 1
    row = new_rows.get()
    assert (row.old_status, row.new_status) == (BedStatus.OCCUPIED, BedStatus.CLEANING)
    assert row.admission_id == admission.id
    assert row.assignment_id == held.id
    assert row.changed_by_id == nurse.id

    outbox = DischargeSyncOutbox.objects.get(admission=admission)
    assert outbox.payload["admission_number"] == admission.admission_number
    assert outbox.payload["discharge_type"] == "routine"

    assert _codes(admission, scope) == [
        "ADMISSION_CREATED",
        "BED_ASSIGNED",
        "DISCHARGE_REQUESTED",
        "BED_RELEASED",
        "ADMISSION_DISCHARGED",
    ]


def test_only_attending_doctor_can_request_discharge(scope, admission, other_doctor):
    with pytest.raises(AccessDenied):
        AdmissionService.request_discharge(admission_id=admission.id, doctor_id=other_doctor.id, summary="x", **scope)

    admission.refresh_from_db()
    assert admission.status == AdmissionStatus.ACTIVE


def test_state_is_checked_before_attending(scope, admission, doctor, other_doctor):
    AdmissionService.request_discharge(admission_id=admission.id, doctor_id=doctor.id, summary="x", **scope)

    with pytest.raises(InvalidStateTransition) as exc:
        AdmissionService.request_discharge(admission_id=admission.id, doctor_id=other_doctor.id, summary="x", **scope)

    assert exc.value.context["current_status"] == AdmissionStatus.PENDING_DISCHARGE


def test_cancel_discharge_request_returns_to_active(scope, admission, doctor, nurse):
    AdmissionService.request_discharge(admission_id=admission.id, doctor_id=doctor.id, summary="x", **scope)

    back = AdmissionService.cancel_discharge_request(
        admission_id=admission.id, actor_user_id=nurse.id, reason="Spiked a fever", **scope
    )

    assert back.status == AdmissionStatus.ACTIVE
    assert back.discharge_requested_at is None
    assert back.discharge_requested_by_id is None
    assert "DISCHARGE_CANCELLED" in _codes(admission, scope)

    # A second request after cancelling gets its own timeline entry.
    AdmissionService.request_discharge(admission_id=admission.id, doctor_id=doctor.id, summary="y", **scope)
    assert _codes(admission, scope).count("DISCHARGE_REQUESTED") == 2


def test_finalize_requires_pending_discharge(scope, admission, nurse):
    with pytest.raises(InvalidStateTransition):
        AdmissionService.finalize_discharge(
            admission_id=admission.id, actor_user_id=nurse.id, discharge_type="routine", **scope
        )


def test_finalize_rejects_unknown_discharge_type(scope, admission, doctor, nurse):
    AdmissionService.request_discharge(admission_id=admission.id, doctor_id=doctor.id, summary="x", **scope)

    with pytest.raises(ValidationError):
        AdmissionService.finalize_discharge(
            admission_id=admission.id, actor_user_id=nurse.id, discharge_type="escaped", **scope
        )


@pytest.mark.parametrize(
    "discharge_type, expected",
    [
        ("routine", AdmissionStatus.DISCHARGED),
        ("against_advice", AdmissionStatus.DISCHARGED),
        ("transferred", AdmissionStatus.TRANSFERRED),
        ("deceased", AdmissionStatus.DECEASED),
    ],
)
def test_discharge_type_decides_terminal_status(scope, admission, doctor, nurse, discharge_type, expected):
    AdmissionService.request_discharge(admission_id=admission.id, doctor_id=doctor.id, summary="x", **scope)

    done = AdmissionService.finalize_discharge(
        admission_id=admission.id, actor_user_id=nurse.id, discharge_type=discharge_type, **scope
    )

    assert done.status == expected
    assert done.discharge_type == discharge_type


def test_length_of_stay_is_frozen_at_discharge(scope, admission, doctor, nurse):
    Admission.objects.filter(id=admission.id).update(admission_date=timezone.now() - timedelta(days=3, hours=4))
    AdmissionService.request_discharge(admission_id=admission.id, doctor_id=doctor.id, summary="x", **scope)

    done = AdmissionService.finalize_discharge(
        admission_id=admission.id, actor_user_id=nurse.id, discharge_type="routine", **scope
    )

    assert done.length_of_stay_days == 4
    assert AdmissionSelectors.get_admission(admission_id=admission.id, **scope).length_of_stay == 4


def test_discharged_admission_is_read_only(scope, admission, doctor, nurse):
    AdmissionService.request_discharge(admission_id=admission.id, doctor_id=doctor.id, summary="x", **scope)
    AdmissionService.finalize_discharge(admission_id=admission.id, actor_user_id=nurse.id, discharge_type="routine", **scope)

    stored = Admission.objects.get(id=admission.id)
    stored.diagnosis_at_admission = "rewritten"
    with pytest.raises(InvalidStateTransition):
        stored.save()

    with pytest.raises(InvalidStateTransition):
        AdmissionService.request_discharge(admission_id=admission.id, doctor_id=doctor.id, summary="x", **scope)
    with pytest.raises(InvalidStateTransition):
        AdmissionService.cancel_discharge_request(admission_id=admission.id, actor_user_id=nurse.id, **scope)


def test_update_clinical_details(scope, admission, doctor, other_doctor):
    tomorrow = timezone.localdate() + timedelta(days=1)

    updated = AdmissionService.update_clinical_details(
        admission_id=admission.id,
        doctor_id=doctor.id,
        diagnosis="Lobar pneumonia, right lower lobe",
        expected_discharge_date=tomorrow,
        **scope,
    )

    assert updated.diagnosis_at_admission == "Lobar pneumonia, right lower lobe"
    assert updated.expected_discharge_date == tomorrow
    event = AdmissionEvent.objects.get(admission_id=admission.id, code="CLINICAL_DETAILS_UPDATED")
    assert set(event.meta["changed"]) == {"diagnosis_at_admission", "expected_discharge_date"}

    with pytest.raises(AccessDenied):
        AdmissionService.update_clinical_details(
            admission_id=admission.id, doctor_id=other_doctor.id, diagnosis="x", **scope
        )


def test_timeline_is_scoped(scope, admission):
    other = {"tenant_id": scope["tenant_id"], "facility_id": uuid.uuid4()}

    assert list(AdmissionSelectors.timeline(admission_id=admission.id, **other)) == []
    with pytest.raises(Admission.DoesNotExist):
        AdmissionSelectors.get_admission(admission_id=admission.id, **other)
