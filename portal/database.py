"""
Database engine initialisation and table checks.
"""

import sys
from typing import List

from sqlalchemy import create_engine, inspect, text

from portal.config import get_env

REQUIRED_TABLES = (
    "portal_users", "portal_sessions", "patients", "medical_records", "portal_activity_logs",
)


def init_engine():
    """Create a SQLAlchemy engine and verify the connection."""
    db_uri = get_env("DB_URI")
    engine = create_engine(db_uri, echo=False, future=True)
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except Exception as e:
        print("ERROR: could not connect to DB:", e, file=sys.stderr)
        sys.exit(1)
    print("[init] Connected to DB.")
    return engine


def missing_tables(engine) -> List[str]:
    """Return the required tables that the database does not have."""
    present = {t.lower() for t in inspect(engine).get_table_names()}
    return [t for t in REQUIRED_TABLES if t not in present]
