"""
Domain dataclasses used across the application.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from portal.rbac import Role


@dataclass(frozen=True)
class Principal:
    """The authenticated actor for one request."""
    id: int
    role: Role
    display_name: str
    patient_id: Optional[int] = None   # set for patient users
    doctor_id: Optional[int] = None    # set for doctor users


@dataclass(frozen=True)
class Session:
    token: str
    principal_id: int
    expires_at: datetime


@dataclass(frozen=True)
class Credentials:
    """Login lookup row: the user's id, password hash and active flag."""
    user_id: int
    password_hash: str
    is_active: bool


@dataclass(frozen=True)
class PatientSecret:
    """A patient's PIN hash. The plaintext PIN is never held here."""
    patient_id: int
    pin_hash: str


@dataclass(frozen=True)
class MedicalRecord:
    id: str
    patient_id: int
    doctor_id: Optional[int]
    title: str
    type: str
    date: datetime
    description: str
    is_approved: bool = False
    pin_protected: bool = False


@dataclass(frozen=True)
class RecordFilter:
    """
    Storage-side narrowing hint for record lookups.

    With ``approved_only`` set, rows must be approved, unless ``doctor_id`` is
    also set, in which case rows authored by that doctor are included as well.
    """
    doctor_id: Optional[int] = None
    approved_only: bool = False


@dataclass(frozen=True)
class PinCheckResult:
    success: bool
    message: str = ""
    reason: Optional[str] = None  # "validation", "not_found", "mismatch", "storage"


@dataclass(frozen=True)
class ActivityEntry:
    """One recorded access event, as kept by an activity store."""
    timestamp: datetime
    activity_type: str
    target: str
    user_id: Optional[int] = None
    role: Optional[str] = None
    target_id: Optional[str] = None
    success: bool = True
    details: Optional[str] = None
    error_message: Optional[str] = None


@dataclass(frozen=True)
class ActivityFilter:
    user_id: Optional[int] = None
    activity_type: Optional[str] = None
    target: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    limit: int = 100
