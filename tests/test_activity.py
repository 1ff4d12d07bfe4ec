"""
Unit tests for the activity log and its read-back store.
"""

from datetime import datetime, timedelta, timezone

import pytest

from portal.activity import ActivityTarget, ActivityType, list_activity, log_activity
from portal.exceptions import Forbidden, StorageUnavailable
from portal.memory_store import InMemoryActivityStore
from portal.models import ActivityEntry, ActivityFilter, Principal
from portal.rbac import Role

ADMIN = Principal(id=1, role=Role.ADMIN, display_name="Ada")
DOCTOR = Principal(id=2, role=Role.DOCTOR, display_name="Dr D", doctor_id=5)
T0 = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


# ── Helpers / Fakes ──────────────────────────────────────────────────

class DownActivityStore(InMemoryActivityStore):
    def append(self, entry):
        raise StorageUnavailable()


def entry(minutes, activity_type="VIEW", user_id=2, target="MEDICAL_RECORD"):
    return ActivityEntry(timestamp=T0 + timedelta(minutes=minutes),
                         activity_type=activity_type, target=target, user_id=user_id)


# ── Tests: log_activity ──────────────────────────────────────────────

def test_log_activity_writes_log_line(caplog):
    with caplog.at_level("INFO", logger="portal.activity"):
        log_activity(ActivityType.LOGIN, ActivityTarget.USER, DOCTOR, target_id=2)
    assert "type=LOGIN" in caplog.text
    assert "role=doctor" in caplog.text


def test_log_activity_keeps_entry_in_store():
    store = InMemoryActivityStore()
    log_activity(ActivityType.DELETE, ActivityTarget.MEDICAL_RECORD, DOCTOR,
                 target_id="a", success=False, error_message="NotFound", store=store)

    [kept] = store.entries
    assert kept.activity_type == "DELETE"
    assert kept.user_id == 2
    assert kept.role == "doctor"
    assert kept.target_id == "a"
    assert kept.success is False
    assert kept.timestamp.tzinfo is not None


def test_store_failure_does_not_break_logging(caplog):
    with caplog.at_level("ERROR", logger="portal.activity"):
        log_activity(ActivityType.LOGOUT, ActivityTarget.USER, DOCTOR, store=DownActivityStore())
    assert "Activity entry not stored" in caplog.text


# ── Tests: read-back ─────────────────────────────────────────────────

def test_admin_reads_entries_most_recent_first():
    store = InMemoryActivityStore()
    for e in (entry(1), entry(3), entry(2)):
        store.append(e)

    entries = list_activity(store, ADMIN, ActivityFilter())
    assert [e.timestamp for e in entries] == [entry(3).timestamp, entry(2).timestamp,
                                             entry(1).timestamp]


def test_reading_activity_requires_analytics_permission():
    with pytest.raises(Forbidden):
        list_activity(InMemoryActivityStore(), DOCTOR, ActivityFilter())


def test_memory_store_filters_and_limits():
    store = InMemoryActivityStore()
    store.append(entry(1, activity_type="LOGIN", target="USER"))
    store.append(entry(2, user_id=9))
    store.append(entry(3))
    store.append(entry(4))

    assert len(store.list_entries(ActivityFilter(activity_type="VIEW"))) == 3
    assert [e.user_id for e in store.list_entries(ActivityFilter(user_id=9))] == [9]
    assert len(store.list_entries(ActivityFilter(target="USER"))) == 1
    assert len(store.list_entries(ActivityFilter(limit=2))) == 2

    window = ActivityFilter(start=T0 + timedelta(minutes=2), end=T0 + timedelta(minutes=3))
    assert [e.timestamp for e in store.list_entries(window)] == [entry(3).timestamp,
                                                                 entry(2).timestamp]


def test_memory_store_drops_oldest_entries():
    store = InMemoryActivityStore(max_entries=2)
    for minutes in (1, 2, 3):
        store.append(entry(minutes))
    assert [e.timestamp for e in store.entries] == [entry(2).timestamp, entry(3).timestamp]
