"""
Role-Based Access Control – the static role → permission registry.
"""

from enum import Enum
from typing import FrozenSet, Iterable, Optional, Union


class Role(str, Enum):
    PATIENT = "patient"
    DOCTOR = "doctor"
    NURSE = "nurse"
    SECRETARY = "secretary"
    ADMIN = "admin"


class Permission(str, Enum):
    VIEW_APPOINTMENTS = "view_appointments"
    CREATE_APPOINTMENT = "create_appointment"
    CANCEL_APPOINTMENT = "cancel_appointment"
    APPROVE_APPOINTMENT = "approve_appointment"
    RESCHEDULE_APPOINTMENT = "reschedule_appointment"
    VIEW_MEDICAL_RECORD = "view_medical_record"
    EDIT_MEDICAL_RECORD = "edit_medical_record"
    VIEW_MEDICATIONS = "view_medications"
    PRESCRIBE_MEDICATION = "prescribe_medication"
    ADMINISTER_MEDICATION = "administer_medication"
    REQUEST_PRESCRIPTION = "request_prescription"
    VIEW_BLOOD_DONATION = "view_blood_donation"
    DONATE_BLOOD = "donate_blood"
    REQUEST_BLOOD = "request_blood"
    APPROVE_BLOOD_DONATION = "approve_blood_donation"
    APPROVE_BLOOD_REQUEST = "approve_blood_request"
    COLLECT_BLOOD = "collect_blood"
    DISTRIBUTE_BLOOD = "distribute_blood"
    VIEW_PATIENT_LIST = "view_patient_list"
    MANAGE_USERS = "manage_users"
    MANAGE_ROLES = "manage_roles"
    VIEW_ANALYTICS = "view_analytics"


P = Permission

ROLE_PERMISSIONS = {
    Role.PATIENT: frozenset({
        P.VIEW_APPOINTMENTS, P.CREATE_APPOINTMENT, P.CANCEL_APPOINTMENT,
        P.VIEW_MEDICAL_RECORD, P.VIEW_MEDICATIONS, P.REQUEST_PRESCRIPTION,
        P.VIEW_BLOOD_DONATION, P.DONATE_BLOOD, P.REQUEST_BLOOD,
    }),
    Role.DOCTOR: frozenset({
        P.VIEW_APPOINTMENTS, P.CREATE_APPOINTMENT, P.CANCEL_APPOINTMENT,
        P.APPROVE_APPOINTMENT, P.VIEW_MEDICAL_RECORD, P.EDIT_MEDICAL_RECORD,
        P.VIEW_MEDICATIONS, P.PRESCRIBE_MEDICATION, P.VIEW_BLOOD_DONATION,
        P.APPROVE_BLOOD_DONATION, P.APPROVE_BLOOD_REQUEST,
    }),
    Role.NURSE: frozenset({
        P.VIEW_APPOINTMENTS, P.VIEW_MEDICAL_RECORD, P.VIEW_MEDICATIONS,
        P.ADMINISTER_MEDICATION, P.VIEW_BLOOD_DONATION, P.COLLECT_BLOOD,
        P.DISTRIBUTE_BLOOD,
    }),
    Role.SECRETARY: frozenset({
        P.VIEW_APPOINTMENTS, P.CREATE_APPOINTMENT, P.CANCEL_APPOINTMENT,
        P.RESCHEDULE_APPOINTMENT, P.VIEW_PATIENT_LIST,
    }),
    Role.ADMIN: frozenset({
        P.VIEW_APPOINTMENTS, P.CREATE_APPOINTMENT, P.CANCEL_APPOINTMENT,
        P.APPROVE_APPOINTMENT, P.VIEW_MEDICAL_RECORD, P.EDIT_MEDICAL_RECORD,
        P.VIEW_MEDICATIONS, P.PRESCRIBE_MEDICATION, P.VIEW_BLOOD_DONATION,
        P.APPROVE_BLOOD_DONATION, P.APPROVE_BLOOD_REQUEST, P.MANAGE_USERS,
        P.MANAGE_ROLES, P.VIEW_ANALYTICS,
    }),
}

del P


def _check_registry():
    """Every role must map to a non-empty permission set."""
    missing = [r.value for r in Role if not ROLE_PERMISSIONS.get(r)]
    if missing:
        raise RuntimeError(f"Roles without permissions in ROLE_PERMISSIONS: {missing}")


_check_registry()


# ── Parsing ──────────────────────────────────────────────────────────

def parse_role(value) -> Optional[Role]:
    """Map a stored role value onto a Role, ignoring case. None if unknown."""
    if isinstance(value, Role):
        return value
    if not isinstance(value, str):
        return None
    try:
        return Role(value.strip().lower())
    except ValueError:
        return None


def parse_permission(value) -> Optional[Permission]:
    """Accept a Permission, its value ("view_medical_record") or its name."""
    if isinstance(value, Permission):
        return value
    if not isinstance(value, str):
        return None
    try:
        return Permission(value.strip().lower())
    except ValueError:
        return None


# ── Lookups ──────────────────────────────────────────────────────────

RoleLike = Union[Role, str, None]


def permissions_for(role: RoleLike) -> FrozenSet[Permission]:
    parsed = parse_role(role)
    if parsed is None:
        return frozenset()
    return ROLE_PERMISSIONS[parsed]


def has_permission(role: RoleLike, permission) -> bool:
    """True only when *role* is known and its set contains *permission*."""
    parsed = parse_permission(permission)
    if parsed is None:
        return False
    return parsed in permissions_for(role)


def has_all_permissions(role: RoleLike, permissions: Iterable) -> bool:
    if parse_role(role) is None:
        return False
    return all(has_permission(role, p) for p in permissions)


def has_any_permission(role: RoleLike, permissions: Iterable) -> bool:
    return any(has_permission(role, p) for p in permissions)
