"""
In-memory stores for local demos and tests.
"""

import threading
from collections import deque
from dataclasses import replace
from typing import Deque, Dict, Iterable, List, Optional, Set

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
from portal.stores import (
    ActivityStore,
    MedicalRecordStore,
    PatientStore,
    SessionStore,
    UserStore,
)


class InMemorySessionStore(SessionStore):
    def __init__(self, sessions: Iterable[Session] = ()):
        self.sessions: Dict[str, Session] = {s.token: s for s in sessions}

    def find_session_by_token(self, token: str) -> Optional[Session]:
        return self.sessions.get(token)

    def create_session(self, session: Session) -> None:
        self.sessions[session.token] = session

    def delete_session(self, token: str) -> None:
        self.sessions.pop(token, None)


class InMemoryUserStore(UserStore):
    def __init__(self):
        self.principals: Dict[int, Principal] = {}
        self.credentials: Dict[str, Credentials] = {}
        self.inactive: Set[int] = set()

    def add(self, principal: Principal, email: Optional[str] = None,
            password_hash: str = "", is_active: bool = True) -> Principal:
        self.principals[principal.id] = principal
        if is_active:
            self.inactive.discard(principal.id)
        else:
            self.inactive.add(principal.id)
        if email:
            self.credentials[email.lower()] = Credentials(
                user_id=principal.id, password_hash=password_hash, is_active=is_active,
            )
        return principal

    def find_principal_by_id(self, user_id: int) -> Optional[Principal]:
        if user_id in self.inactive:
            return None
        return self.principals.get(user_id)

    def find_credentials_by_email(self, email: str) -> Optional[Credentials]:
        return self.credentials.get((email or "").lower())


class InMemoryPatientStore(PatientStore):
    def __init__(self, patients: Iterable[PatientSecret] = ()):
        self.patients: Dict[int, PatientSecret] = {p.patient_id: p for p in patients}
        self._lock = threading.Lock()

    def find_patient_by_id(self, patient_id: int) -> Optional[PatientSecret]:
        return self.patients.get(patient_id)

    def update_pin_hash(self, patient_id: int, new_hash: str,
                        expected_hash: Optional[str] = None) -> bool:
        with self._lock:
            current = self.patients.get(patient_id)
            if current is None:
                return False
            if expected_hash is not None and current.pin_hash != expected_hash:
                return False
            self.patients[patient_id] = PatientSecret(patient_id=patient_id, pin_hash=new_hash)
            return True


class InMemoryMedicalRecordStore(MedicalRecordStore):
    def __init__(self, records: Iterable[MedicalRecord] = ()):
        self.records: List[MedicalRecord] = list(records)

    def find_records_by_patient(self, patient_id: int,
                                record_filter: RecordFilter) -> List[MedicalRecord]:
        def keep(r: MedicalRecord) -> bool:
            if r.patient_id != patient_id:
                return False
            authored = record_filter.doctor_id is not None and r.doctor_id == record_filter.doctor_id
            if record_filter.approved_only:
                return r.is_approved or authored
            if record_filter.doctor_id is not None:
                return authored
            return True

        return sorted(filter(keep, self.records), key=lambda r: r.date, reverse=True)

    def find_record(self, record_id: str) -> Optional[MedicalRecord]:
        for r in self.records:
            if r.id == record_id:
                return r
        return None

    def create_record(self, record: MedicalRecord) -> None:
        self.records.append(record)

    def update_record(self, record: MedicalRecord) -> bool:
        for i, current in enumerate(self.records):
            if current.id == record.id:
                self.records[i] = replace(
                    record, patient_id=current.patient_id, doctor_id=current.doctor_id)
                return True
        return False

    def delete_record(self, record_id: str) -> bool:
        before = len(self.records)
        self.records = [r for r in self.records if r.id != record_id]
        return len(self.records) < before


class InMemoryActivityStore(ActivityStore):
    """Keeps the most recent *max_entries* entries."""

    def __init__(self, max_entries: int = 1000):
        self.entries: Deque[ActivityEntry] = deque(maxlen=max_entries)
        self._lock = threading.Lock()

    def append(self, entry: ActivityEntry) -> None:
        with self._lock:
            self.entries.append(entry)

    def list_entries(self, activity_filter: ActivityFilter) -> List[ActivityEntry]:
        f = activity_filter

        def keep(e: ActivityEntry) -> bool:
            if f.user_id is not None and e.user_id != f.user_id:
                return False
            if f.activity_type and e.activity_type != f.activity_type:
                return False
            if f.target and e.target != f.target:
                return False
            if f.start is not None and e.timestamp < f.start:
                return False
            if f.end is not None and e.timestamp > f.end:
                return False
            return True

        with self._lock:
            matching = [e for e in self.entries if keep(e)]
        matching.sort(key=lambda e: e.timestamp, reverse=True)
        return matching[:f.limit]
