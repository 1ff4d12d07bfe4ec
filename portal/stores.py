"""
Storage interfaces consumed by the access core, and their SQL implementations.

The SQL stores expect these tables (schema management lives elsewhere):

    portal_users(id, display_name, role, email, password_hash,
                 patient_id, doctor_id, is_active)
    portal_sessions(token, user_id, expires_at)
    patients(id, pin_hash, ...)
    medical_records(id, patient_id, doctor_id, title, type, date,
                    description, is_approved, pin_protected)
    portal_activity_logs(id, timestamp, activity_type, target, target_id,
                         user_id, role, success, details, error_message)
"""

import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import asdict
from datetime import datetime
from typing import List, Optional

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from portal.exceptions import StorageUnavailable
from portal.models import (
    ActivityEntry,
    ActivityFilter,
    Credentials,
    MedicalRecord,
    PatientSecret,
    Principal,
    RecordFilter,
    Session,
)
from portal.rbac import parse_role

logger = logging.getLogger(__name__)


# ── Interfaces ───────────────────────────────────────────────────────

class SessionStore(ABC):
    @abstractmethod
    def find_session_by_token(self, token: str) -> Optional[Session]:
        ...

    @abstractmethod
    def create_session(self, session: Session) -> None:
        ...

    @abstractmethod
    def delete_session(self, token: str) -> None:
        ...


class UserStore(ABC):
    @abstractmethod
    def find_principal_by_id(self, user_id: int) -> Optional[Principal]:
        ...

    @abstractmethod
    def find_credentials_by_email(self, email: str) -> Optional[Credentials]:
        ...


class PatientStore(ABC):
    @abstractmethod
    def find_patient_by_id(self, patient_id: int) -> Optional[PatientSecret]:
        ...

    @abstractmethod
    def update_pin_hash(self, patient_id: int, new_hash: str,
                        expected_hash: Optional[str] = None) -> bool:
        """
        Replace the stored hash. When *expected_hash* is given the write only
        happens if the stored hash still equals it. Returns whether a row changed.
        """


class MedicalRecordStore(ABC):
    @abstractmethod
    def find_records_by_patient(self, patient_id: int,
                                record_filter: RecordFilter) -> List[MedicalRecord]:
        ...

    @abstractmethod
    def find_record(self, record_id: str) -> Optional[MedicalRecord]:
        ...

    @abstractmethod
    def create_record(self, record: MedicalRecord) -> None:
        ...

    @abstractmethod
    def update_record(self, record: MedicalRecord) -> bool:
        """
        Overwrite the editable fields of the row with ``record.id``. Owner
        columns (patient_id, doctor_id) are never changed. Returns whether a
        row changed.
        """

    @abstractmethod
    def delete_record(self, record_id: str) -> bool:
        ...


class ActivityStore(ABC):
    @abstractmethod
    def append(self, entry: ActivityEntry) -> None:
        ...

    @abstractmethod
    def list_entries(self, activity_filter: ActivityFilter) -> List[ActivityEntry]:
        """Matching entries, most recent first, at most ``activity_filter.limit``."""


# ── SQL implementations ──────────────────────────────────────────────

@contextmanager
def _storage_errors(operation: str):
    """Re-raise driver/SQLAlchemy failures as StorageUnavailable."""
    try:
        yield
    except SQLAlchemyError as e:
        logger.error("Storage error during %s: %s", operation, e)
        raise StorageUnavailable() from e


def _as_datetime(value) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _row_to_record(row) -> MedicalRecord:
    return MedicalRecord(
        id=str(row["id"]),
        patient_id=int(row["patient_id"]),
        doctor_id=int(row["doctor_id"]) if row["doctor_id"] is not None else None,
        title=str(row["title"]),
        type=str(row["type"]),
        date=_as_datetime(row["date"]),
        description=str(row["description"] or ""),
        is_approved=bool(row["is_approved"]),
        pin_protected=bool(row["pin_protected"]),
    )


class SqlSessionStore(SessionStore):
    def __init__(self, engine):
        self.engine = engine

    def find_session_by_token(self, token: str) -> Optional[Session]:
        sql = text("""
            SELECT token, user_id, expires_at
            FROM portal_sessions
            WHERE token = :t
        """)
        with _storage_errors("session lookup"):
            with self.engine.connect() as conn:
                row = conn.execute(sql, {"t": token}).mappings().first()
        if not row:
            return None
        return Session(
            token=str(row["token"]),
            principal_id=int(row["user_id"]),
            expires_at=_as_datetime(row["expires_at"]),
        )

    def create_session(self, session: Session) -> None:
        sql = text("""
            INSERT INTO portal_sessions (token, user_id, expires_at)
            VALUES (:t, :u, :e)
        """)
        with _storage_errors("session create"):
            with self.engine.begin() as conn:
                conn.execute(sql, {"t": session.token, "u": session.principal_id,
                                   "e": session.expires_at})

    def delete_session(self, token: str) -> None:
        with _storage_errors("session delete"):
            with self.engine.begin() as conn:
                conn.execute(text("DELETE FROM portal_sessions WHERE token = :t"), {"t": token})


class SqlUserStore(UserStore):
    def __init__(self, engine):
        self.engine = engine

    def find_principal_by_id(self, user_id: int) -> Optional[Principal]:
        sql = text("""
            SELECT id, display_name, role, patient_id, doctor_id
            FROM portal_users
            WHERE id = :id AND is_active = :active
        """)
        with _storage_errors("user lookup"):
            with self.engine.connect() as conn:
                row = conn.execute(sql, {"id": user_id, "active": True}).mappings().first()
        if not row:
            return None

        role = parse_role(row["role"])
        if role is None:
            raise ValueError(f"Unsupported role '{row['role']}' in portal_users.")

        return Principal(
            id=int(row["id"]),
            role=role,
            display_name=str(row["display_name"]),
            patient_id=int(row["patient_id"]) if row["patient_id"] is not None else None,
            doctor_id=int(row["doctor_id"]) if row["doctor_id"] is not None else None,
        )

    def find_credentials_by_email(self, email: str) -> Optional[Credentials]:
        sql = text("""
            SELECT id, password_hash, is_active
            FROM portal_users
            WHERE lower(email) = lower(:e)
        """)
        with _storage_errors("credentials lookup"):
            with self.engine.connect() as conn:
                row = conn.execute(sql, {"e": email}).mappings().first()
        if not row:
            return None
        return Credentials(
            user_id=int(row["id"]),
            password_hash=str(row["password_hash"]),
            is_active=bool(row["is_active"]),
        )


class SqlPatientStore(PatientStore):
    def __init__(self, engine):
        self.engine = engine

    def find_patient_by_id(self, patient_id: int) -> Optional[PatientSecret]:
        sql = text("SELECT id, pin_hash FROM patients WHERE id = :id")
        with _storage_errors("patient lookup"):
            with self.engine.connect() as conn:
                row = conn.execute(sql, {"id": patient_id}).mappings().first()
        if not row:
            return None
        return PatientSecret(patient_id=int(row["id"]), pin_hash=str(row["pin_hash"] or ""))

    def update_pin_hash(self, patient_id: int, new_hash: str,
                        expected_hash: Optional[str] = None) -> bool:
        params = {"id": patient_id, "h": new_hash}
        where = "id = :id"
        if expected_hash is not None:
            where += " AND pin_hash = :old"
            params["old"] = expected_hash
        sql = text(f"UPDATE patients SET pin_hash = :h WHERE {where}")
        with _storage_errors("PIN update"):
            with self.engine.begin() as conn:
                result = conn.execute(sql, params)
        return result.rowcount == 1


class SqlMedicalRecordStore(MedicalRecordStore):
    _columns = (
        "id, patient_id, doctor_id, title, type, date, description, "
        "is_approved, pin_protected"
    )

    def __init__(self, engine):
        self.engine = engine

    def find_records_by_patient(self, patient_id: int,
                                record_filter: RecordFilter) -> List[MedicalRecord]:
        clauses = ["patient_id = :pid"]
        params = {"pid": patient_id}
        if record_filter.approved_only and record_filter.doctor_id is not None:
            clauses.append("(is_approved = :approved OR doctor_id = :did)")
            params.update(approved=True, did=record_filter.doctor_id)
        elif record_filter.approved_only:
            clauses.append("is_approved = :approved")
            params["approved"] = True
        elif record_filter.doctor_id is not None:
            clauses.append("doctor_id = :did")
            params["did"] = record_filter.doctor_id

        sql = text(
            f"SELECT {self._columns} FROM medical_records "
            f"WHERE {' AND '.join(clauses)} ORDER BY date DESC"
        )
        with _storage_errors("record listing"):
            with self.engine.connect() as conn:
                rows = conn.execute(sql, params).mappings().all()
        return [_row_to_record(r) for r in rows]

    def find_record(self, record_id: str) -> Optional[MedicalRecord]:
        sql = text(f"SELECT {self._columns} FROM medical_records WHERE id = :id")
        with _storage_errors("record lookup"):
            with self.engine.connect() as conn:
                row = conn.execute(sql, {"id": record_id}).mappings().first()
        return _row_to_record(row) if row else None

    def create_record(self, record: MedicalRecord) -> None:
        sql = text(f"""
            INSERT INTO medical_records ({self._columns})
            VALUES (:id, :patient_id, :doctor_id, :title, :type, :date,
                    :description, :is_approved, :pin_protected)
        """)
        with _storage_errors("record create"):
            with self.engine.begin() as conn:
                conn.execute(sql, asdict(record))

    def update_record(self, record: MedicalRecord) -> bool:
        sql = text("""
            UPDATE medical_records
            SET title = :title, type = :type, date = :date,
                description = :description, is_approved = :is_approved,
                pin_protected = :pin_protected
            WHERE id = :id
        """)
        params = {
            "id": record.id, "title": record.title, "type": record.type,
            "date": record.date, "description": record.description,
            "is_approved": record.is_approved, "pin_protected": record.pin_protected,
        }
        with _storage_errors("record update"):
            with self.engine.begin() as conn:
                result = conn.execute(sql, params)
        return result.rowcount == 1

    def delete_record(self, record_id: str) -> bool:
        with _storage_errors("record delete"):
            with self.engine.begin() as conn:
                result = conn.execute(
                    text("DELETE FROM medical_records WHERE id = :id"), {"id": record_id})
        return result.rowcount == 1


class SqlActivityStore(ActivityStore):
    _columns = (
        "timestamp, activity_type, target, target_id, user_id, role, "
        "success, details, error_message"
    )

    def __init__(self, engine):
        self.engine = engine

    def append(self, entry: ActivityEntry) -> None:
        sql = text(f"""
            INSERT INTO portal_activity_logs ({self._columns})
            VALUES (:timestamp, :activity_type, :target, :target_id, :user_id,
                    :role, :success, :details, :error_message)
        """)
        with _storage_errors("activity append"):
            with self.engine.begin() as conn:
                conn.execute(sql, asdict(entry))

    def list_entries(self, activity_filter: ActivityFilter) -> List[ActivityEntry]:
        clauses = []
        params = {"limit": activity_filter.limit}
        if activity_filter.user_id is not None:
            clauses.append("user_id = :uid")
            params["uid"] = activity_filter.user_id
        if activity_filter.activity_type:
            clauses.append("activity_type = :atype")
            params["atype"] = activity_filter.activity_type
        if activity_filter.target:
            clauses.append("target = :target")
            params["target"] = activity_filter.target
        if activity_filter.start is not None:
            clauses.append("timestamp >= :start")
            params["start"] = activity_filter.start
        if activity_filter.end is not None:
            clauses.append("timestamp <= :end")
            params["end"] = activity_filter.end

        where = f"WHERE {' AND '.join(clauses)} " if clauses else ""
        sql = text(
            f"SELECT {self._columns} FROM portal_activity_logs "
            f"{where}ORDER BY timestamp DESC LIMIT :limit"
        )
        with _storage_errors("activity listing"):
            with self.engine.connect() as conn:
                rows = conn.execute(sql, params).mappings().all()
        return [
            ActivityEntry(
                timestamp=_as_datetime(r["timestamp"]),
                activity_type=str(r["activity_type"]),
                target=str(r["target"]),
                target_id=str(r["target_id"]) if r["target_id"] is not None else None,
                user_id=int(r["user_id"]) if r["user_id"] is not None else None,
                role=r["role"],
                success=bool(r["success"]),
                details=r["details"],
                error_message=r["error_message"],
            )
            for r in rows
        ]
