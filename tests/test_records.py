"""
Unit tests for medical record visibility.
"""

from datetime import datetime

import pytest

from portal.exceptions import Forbidden, NotFound, ValidationError
from portal.memory_store import InMemoryMedicalRecordStore
from portal.models import MedicalRecord, Principal, RecordFilter
from portal.rbac import Role
from portal.records import (
    add_medical_record,
    can_delete_record,
    delete_medical_record,
    get_medical_record,
    is_record_visible,
    list_visible_medical_records,
    record_to_dict,
    redact_record,
    update_medical_record,
)


# ── Helpers / Fakes ──────────────────────────────────────────────────

def rec(rid, doctor_id, approved, day, patient_id=1, pin=False):
    return MedicalRecord(
        id=rid, patient_id=patient_id, doctor_id=doctor_id,
        title=f"Record {rid}", type="consultation",
        date=datetime(2026, 1, day), description="notes",
        is_approved=approved, pin_protected=pin,
    )


class UnfilteredRecordStore(InMemoryMedicalRecordStore):
    """Ignores the filter hint and returns rows in insertion order."""
    def __init__(self, records):
        super().__init__(records)
        self.filters = []

    def find_records_by_patient(self, patient_id, record_filter):
        self.filters.append(record_filter)
        return [r for r in self.records if r.patient_id == patient_id]


DOCTOR = Principal(id=20, role=Role.DOCTOR, display_name="Dr D", doctor_id=5)
PATIENT = Principal(id=10, role=Role.PATIENT, display_name="Pat", patient_id=1)
NURSE = Principal(id=30, role=Role.NURSE, display_name="Nia")
SECRETARY = Principal(id=40, role=Role.SECRETARY, display_name="Sam")


# ── Tests: doctors ───────────────────────────────────────────────────

def test_doctor_sees_own_and_approved_records_most_recent_first():
    own = rec("a", doctor_id=5, approved=False, day=3)
    approved = rec("b", doctor_id=9, approved=True, day=7)
    hidden = rec("c", doctor_id=9, approved=False, day=9)
    store = UnfilteredRecordStore([own, approved, hidden])

    result = list_visible_medical_records(store, DOCTOR, 1)

    assert result == [approved, own]
    assert store.filters == [RecordFilter(doctor_id=5, approved_only=True)]


def test_doctor_without_doctor_profile_is_forbidden():
    store = UnfilteredRecordStore([rec("a", 5, True, 1)])
    orphan = Principal(id=21, role=Role.DOCTOR, display_name="Dr ?")
    with pytest.raises(Forbidden):
        list_visible_medical_records(store, orphan, 1)


# ── Tests: patients ──────────────────────────────────────────────────

def test_patient_sees_all_own_records():
    records = [rec("a", 5, False, 1), rec("b", 9, True, 2), rec("c", None, False, 3)]
    store = UnfilteredRecordStore(records)

    result = list_visible_medical_records(store, PATIENT, 1)

    assert [r.id for r in result] == ["c", "b", "a"]


def test_patient_cannot_list_another_patient():
    store = UnfilteredRecordStore([rec("x", 5, True, 1, patient_id=2)])
    with pytest.raises(Forbidden):
        list_visible_medical_records(store, PATIENT, 2)
    assert store.filters == []


# ── Tests: other roles ───────────────────────────────────────────────

def test_nurse_sees_approved_records_only():
    store = UnfilteredRecordStore([rec("a", 5, False, 1), rec("b", 9, True, 2)])
    assert [r.id for r in list_visible_medical_records(store, NURSE, 1)] == ["b"]


def test_role_without_grant_is_forbidden():
    store = UnfilteredRecordStore([rec("a", 5, True, 1)])
    with pytest.raises(Forbidden):
        list_visible_medical_records(store, SECRETARY, 1)


def test_listing_does_not_change_records():
    records = [rec("a", 5, False, 1), rec("b", 9, True, 2)]
    store = UnfilteredRecordStore(list(records))
    list_visible_medical_records(store, DOCTOR, 1)
    assert store.records == records


def test_memory_store_applies_filter_itself():
    store = InMemoryMedicalRecordStore([
        rec("a", 5, False, 1), rec("b", 9, True, 2), rec("c", 9, False, 3),
        rec("d", 5, True, 4, patient_id=2),
    ])
    rows = store.find_records_by_patient(1, RecordFilter(doctor_id=5, approved_only=True))
    assert [r.id for r in rows] == ["b", "a"]


# ── Tests: single record ─────────────────────────────────────────────

def test_get_medical_record_visible():
    store = InMemoryMedicalRecordStore([rec("a", 5, False, 1)])
    assert get_medical_record(store, DOCTOR, 1, "a").id == "a"


def test_get_medical_record_invisible_is_not_found():
    store = InMemoryMedicalRecordStore([rec("c", 9, False, 1)])
    with pytest.raises(NotFound):
        get_medical_record(store, DOCTOR, 1, "c")


def test_get_medical_record_wrong_patient_is_not_found():
    store = InMemoryMedicalRecordStore([rec("a", 5, True, 1, patient_id=2)])
    with pytest.raises(NotFound):
        get_medical_record(store, DOCTOR, 1, "a")


def test_is_record_visible_for_patient_checks_ownership():
    assert is_record_visible(PATIENT, rec("a", 5, False, 1, patient_id=1))
    assert not is_record_visible(PATIENT, rec("b", 5, True, 1, patient_id=2))


# ── Tests: serialisation ─────────────────────────────────────────────

def test_redact_record_hides_description():
    r = rec("a", 5, True, 1, pin=True)
    data = redact_record(r)
    assert data["locked"] is True
    assert data["description"] is None
    assert data["title"] == r.title
    assert record_to_dict(r)["description"] == "notes"


# ── Tests: adding records ────────────────────────────────────────────

ADMIN = Principal(id=50, role=Role.ADMIN, display_name="Ada")
OTHER_DOCTOR = Principal(id=22, role=Role.DOCTOR, display_name="Dr O", doctor_id=8)


def test_patient_adds_unapproved_record_to_own_history():
    store = InMemoryMedicalRecordStore()

    record = add_medical_record(store, PATIENT, "Flu shot", "vaccination",
                                "Left arm", "2026-02-10T09:00:00Z", pin_protected=True)

    assert store.records == [record]
    assert record.patient_id == 1
    assert record.doctor_id is None
    assert record.is_approved is False
    assert record.pin_protected is True
    assert record.date == datetime(2026, 2, 10, 9, 0)


def test_added_record_is_hidden_from_doctor_until_approved():
    store = InMemoryMedicalRecordStore()
    add_medical_record(store, PATIENT, "Flu shot", "vaccination", "Left arm", "2026-02-10")
    assert list_visible_medical_records(store, DOCTOR, 1) == []
    assert len(list_visible_medical_records(store, PATIENT, 1)) == 1


@pytest.mark.parametrize("principal", [DOCTOR, NURSE, SECRETARY, ADMIN])
def test_only_patients_add_records(principal):
    store = InMemoryMedicalRecordStore()
    with pytest.raises(Forbidden):
        add_medical_record(store, principal, "t", "lab", "d", "2026-02-10")
    assert store.records == []


@pytest.mark.parametrize("title, record_type, description, date", [
    ("", "lab", "d", "2026-02-10"),
    ("t", "  ", "d", "2026-02-10"),
    ("t", "lab", None, "2026-02-10"),
    ("t", "lab", "d", "last tuesday"),
    ("t", "lab", "d", None),
])
def test_add_record_validates_fields(title, record_type, description, date):
    store = InMemoryMedicalRecordStore()
    with pytest.raises(ValidationError):
        add_medical_record(store, PATIENT, title, record_type, description, date)
    assert store.records == []


def test_add_record_rejects_non_boolean_pin_flag():
    with pytest.raises(ValidationError):
        add_medical_record(InMemoryMedicalRecordStore(), PATIENT, "t", "lab", "d",
                           "2026-02-10", pin_protected="yes")


# ── Tests: editing records ───────────────────────────────────────────

def test_patient_edit_resets_approval_and_keeps_owner():
    store = InMemoryMedicalRecordStore([rec("a", 5, True, 1)])

    updated = update_medical_record(store, PATIENT, "a", "New title", "lab",
                                    "new notes", "2026-01-02")

    assert updated.is_approved is False
    assert updated.doctor_id == 5
    assert store.find_record("a") == updated
    assert store.find_record("a").title == "New title"


def test_patient_cannot_edit_another_patients_record():
    original = rec("x", 5, True, 1, patient_id=2)
    store = InMemoryMedicalRecordStore([original])
    with pytest.raises(NotFound):
        update_medical_record(store, PATIENT, "x", "t", "lab", "d", "2026-01-02")
    assert store.find_record("x") == original


def test_edit_missing_record_is_not_found():
    with pytest.raises(NotFound):
        update_medical_record(InMemoryMedicalRecordStore(), PATIENT, "nope",
                              "t", "lab", "d", "2026-01-02")


@pytest.mark.parametrize("principal", [DOCTOR, ADMIN, NURSE])
def test_only_patients_edit_records(principal):
    store = InMemoryMedicalRecordStore([rec("a", 5, False, 1)])
    with pytest.raises(Forbidden):
        update_medical_record(store, principal, "a", "t", "lab", "d", "2026-01-02")


# ── Tests: deleting records ──────────────────────────────────────────

def test_patient_deletes_own_record():
    store = InMemoryMedicalRecordStore([rec("a", 5, True, 1)])
    assert delete_medical_record(store, PATIENT, 1, "a").id == "a"
    assert store.records == []


def test_patient_cannot_delete_for_another_patient():
    store = InMemoryMedicalRecordStore([rec("x", 5, True, 1, patient_id=2)])
    with pytest.raises(Forbidden):
        delete_medical_record(store, PATIENT, 2, "x")
    assert len(store.records) == 1


def test_patient_record_id_from_another_patient_is_not_found():
    store = InMemoryMedicalRecordStore([rec("x", 5, True, 1, patient_id=2)])
    with pytest.raises(NotFound):
        delete_medical_record(store, PATIENT, 1, "x")
    assert len(store.records) == 1


def test_doctor_deletes_authored_record():
    store = InMemoryMedicalRecordStore([rec("a", 5, False, 1)])
    delete_medical_record(store, DOCTOR, 1, "a")
    assert store.records == []


def test_doctor_deletes_approved_record_by_another_doctor():
    store = InMemoryMedicalRecordStore([rec("b", 9, True, 1)])
    delete_medical_record(store, DOCTOR, 1, "b")
    assert store.records == []


def test_doctor_cannot_delete_unapproved_record_by_another_doctor():
    store = InMemoryMedicalRecordStore([rec("c", 9, False, 1)])
    with pytest.raises(NotFound):
        delete_medical_record(store, DOCTOR, 1, "c")
    assert len(store.records) == 1


def test_doctor_without_profile_cannot_delete():
    orphan = Principal(id=21, role=Role.DOCTOR, display_name="Dr ?")
    store = InMemoryMedicalRecordStore([rec("b", 9, True, 1)])
    with pytest.raises(Forbidden):
        delete_medical_record(store, orphan, 1, "b")


def test_admin_deletes_any_record():
    store = InMemoryMedicalRecordStore([rec("c", 9, False, 1)])
    delete_medical_record(store, ADMIN, 1, "c")
    assert store.records == []


@pytest.mark.parametrize("principal", [NURSE, SECRETARY])
def test_roles_without_edit_permission_cannot_delete(principal):
    store = InMemoryMedicalRecordStore([rec("b", 9, True, 1)])
    with pytest.raises(Forbidden):
        delete_medical_record(store, principal, 1, "b")
    assert len(store.records) == 1


def test_delete_checks_edit_permission(monkeypatch):
    monkeypatch.setattr("portal.guard.has_permission", lambda role, permission: False)
    store = InMemoryMedicalRecordStore([rec("a", 5, False, 1)])
    with pytest.raises(Forbidden):
        delete_medical_record(store, DOCTOR, 1, "a")


def test_delete_missing_record_is_not_found():
    with pytest.raises(NotFound):
        delete_medical_record(InMemoryMedicalRecordStore(), ADMIN, 1, "nope")


def test_can_delete_record_rules():
    authored = rec("a", 5, False, 1)
    foreign = rec("c", 9, False, 1)
    assert can_delete_record(DOCTOR, authored)
    assert not can_delete_record(DOCTOR, foreign)
    assert not can_delete_record(OTHER_DOCTOR, authored)
    assert can_delete_record(ADMIN, foreign)
    assert not can_delete_record(NURSE, rec("b", 9, True, 1))
