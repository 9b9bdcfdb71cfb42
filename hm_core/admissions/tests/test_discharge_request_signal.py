from datetime import date

import pytest

from hm_core.admissions.models import Admission, AdmissionStatus
from hm_core.common.api.exceptions import AccessDenied
from hm_core.common.events import publish

pytestmark = pytest.mark.django_db


def _payload(admission, doctor, **extra):
    payload = {
        "tenant_id": str(admission.tenant_id),
        "facility_id": str(admission.facility_id),
        "admission_id": str(admission.id),
        "doctor_id": doctor.id,
        "summary": "Discharge note filed",
    }
    payload.update(extra)
    return payload


def test_filed_discharge_note_moves_admission_to_pending(admission, doctor):
    publish(
        "clinical_docs.discharge_request_filed",
        _payload(admission, doctor, expected_discharge_date="2026-11-02"),
    )

    stored = Admission.objects.get(id=admission.id)
    assert stored.status == AdmissionStatus.PENDING_DISCHARGE
    assert stored.expected_discharge_date == date(2026, 11, 2)
    assert stored.discharge_summary == "Discharge note filed"


def test_note_from_non_attending_doctor_is_refused(admission, other_doctor):
    with pytest.raises(AccessDenied):
        publish("clinical_docs.discharge_request_filed", _payload(admission, other_doctor))

    assert Admission.objects.get(id=admission.id).status == AdmissionStatus.ACTIVE
