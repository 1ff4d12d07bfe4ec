"""
Medical record access – which records a principal may see for a patient,
and who may add, edit or delete them.

These functions only apply role and ownership rules. Pages that show the
full content of a PIN-protected record run the PIN gate first.
"""

import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Dict, List

from portal.exceptions import Forbidden, NotFound, ValidationError
from portal.guard import require_permission
from portal.models import MedicalRecord, Principal, RecordFilter
from portal.rbac import Permission, Role, has_permission
from portal.stores import MedicalRecordStore


def is_record_visible(principal: Principal, record: MedicalRecord) -> bool:
    """
    Patients see their own records. Doctors see records they authored plus
    approved ones. Other roles holding VIEW_MEDICAL_RECORD see approved ones.
    """
    if not has_permission(principal.role, Permission.VIEW_MEDICAL_RECORD):
        return False
    if principal.role == Role.PATIENT:
        return principal.patient_id is not None and record.patient_id == principal.patient_id
    if principal.role == Role.DOCTOR:
        if principal.doctor_id is None:
            return False
        return record.doctor_id == principal.doctor_id or record.is_approved
    return record.is_approved


def _filter_for(principal: Principal, patient_id: int) -> RecordFilter:
    if principal.role == Role.PATIENT:
        if principal.patient_id is None or principal.patient_id != patient_id:
            raise Forbidden()
        return RecordFilter()
    if principal.role == Role.DOCTOR:
        if principal.doctor_id is None:
            raise Forbidden()
        return RecordFilter(doctor_id=principal.doctor_id, approved_only=True)
    return RecordFilter(approved_only=True)


def list_visible_medical_records(record_store: MedicalRecordStore, principal: Principal,
                                 patient_id: int) -> List[MedicalRecord]:
    """Records of *patient_id* visible to *principal*, most recent first."""
    require_permission(principal, Permission.VIEW_MEDICAL_RECORD)
    record_filter = _filter_for(principal, patient_id)

    records = record_store.find_records_by_patient(patient_id, record_filter)
    visible = [
        r for r in records
        if r.patient_id == patient_id and is_record_visible(principal, r)
    ]
    return sorted(visible, key=lambda r: r.date, reverse=True)


def get_medical_record(record_store: MedicalRecordStore, principal: Principal,
                       patient_id: int, record_id: str) -> MedicalRecord:
    require_permission(principal, Permission.VIEW_MEDICAL_RECORD)
    _filter_for(principal, patient_id)

    record = record_store.find_record(record_id)
    if record is None or record.patient_id != patient_id or not is_record_visible(principal, record):
        raise NotFound("Medical record not found.")
    return record


# ── Writes ───────────────────────────────────────────────────────────

def _required_text(value, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"Record {field} is required.")
    return value.strip()


def _record_date(value) -> datetime:
    """Accept a datetime or an ISO 8601 string. Stored naive, in UTC."""
    parsed = None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        raw = value.strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            parsed = None
    if parsed is None:
        raise ValidationError("Record date must be an ISO 8601 date.")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _record_fields(title, record_type, description, date, pin_protected) -> Dict[str, Any]:
    if not isinstance(pin_protected, bool):
        raise ValidationError("pin_protected must be true or false.")
    return {
        "title": _required_text(title, "title"),
        "type": _required_text(record_type, "type"),
        "description": _required_text(description, "description"),
        "date": _record_date(date),
        "pin_protected": pin_protected,
    }


def _own_patient_id(principal: Principal) -> int:
    if principal.role != Role.PATIENT or principal.patient_id is None:
        raise Forbidden()
    return principal.patient_id


def add_medical_record(record_store: MedicalRecordStore, principal: Principal,
                       title, record_type, description, date,
                       pin_protected=False) -> MedicalRecord:
    """
    A patient adds an entry to their own history.

    New entries carry no authoring doctor and start unapproved, so doctors and
    staff only see them once approved.
    """
    patient_id = _own_patient_id(principal)
    fields = _record_fields(title, record_type, description, date, pin_protected)

    record = MedicalRecord(
        id=uuid.uuid4().hex,
        patient_id=patient_id,
        doctor_id=None,
        is_approved=False,
        **fields,
    )
    record_store.create_record(record)
    return record


def update_medical_record(record_store: MedicalRecordStore, principal: Principal,
                          record_id: str, title, record_type, description, date,
                          pin_protected=False) -> MedicalRecord:
    """A patient edits one of their own records. The edit clears approval."""
    patient_id = _own_patient_id(principal)
    fields = _record_fields(title, record_type, description, date, pin_protected)

    record = record_store.find_record(record_id)
    if record is None or record.patient_id != patient_id:
        raise NotFound("Medical record not found.")

    updated = replace(record, is_approved=False, **fields)
    if not record_store.update_record(updated):
        raise NotFound("Medical record not found.")
    return updated


def can_delete_record(principal: Principal, record: MedicalRecord) -> bool:
    """
    Patients delete their own records. Doctors need EDIT_MEDICAL_RECORD and may
    delete records they authored or approved ones. Admins delete any record.
    """
    if principal.role == Role.PATIENT:
        return principal.patient_id is not None and record.patient_id == principal.patient_id
    if not has_permission(principal.role, Permission.EDIT_MEDICAL_RECORD):
        return False
    if principal.role == Role.DOCTOR:
        if principal.doctor_id is None:
            return False
        return record.doctor_id == principal.doctor_id or record.is_approved
    return principal.role == Role.ADMIN


def delete_medical_record(record_store: MedicalRecordStore, principal: Principal,
                          patient_id: int, record_id: str) -> MedicalRecord:
    if principal.role == Role.PATIENT:
        if principal.patient_id is None or principal.patient_id != patient_id:
            raise Forbidden()
    else:
        require_permission(principal, Permission.EDIT_MEDICAL_RECORD)
        if principal.role not in (Role.DOCTOR, Role.ADMIN):
            raise Forbidden()
        if principal.role == Role.DOCTOR and principal.doctor_id is None:
            raise Forbidden()

    record = record_store.find_record(record_id)
    if record is None or record.patient_id != patient_id or not can_delete_record(principal, record):
        raise NotFound("Medical record not found.")

    if not record_store.delete_record(record.id):
        raise NotFound("Medical record not found.")
    return record


# ── Serialisation ────────────────────────────────────────────────────

def record_to_dict(record: MedicalRecord) -> Dict[str, Any]:
    return {
        "id": record.id,
        "patient_id": record.patient_id,
        "doctor_id": record.doctor_id,
        "title": record.title,
        "type": record.type,
        "date": record.date.isoformat(),
        "description": record.description,
        "is_approved": record.is_approved,
        "pin_protected": record.pin_protected,
        "locked": False,
    }


def redact_record(record: MedicalRecord) -> Dict[str, Any]:
    """Summary of a PIN-protected record: no description until unlocked."""
    data = record_to_dict(record)
    data["description"] = None
    data["locked"] = True
    return data
