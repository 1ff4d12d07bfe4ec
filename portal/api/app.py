"""
Flask application factory and server entry-point.
"""

import os
import sys
import traceback
from dataclasses import dataclass
from typing import Any, Optional

from flask import Flask
from flask_cors import CORS

from portal.api.routes import register_routes
from portal.assistant import init_llm
from portal.config import SECRET_KEY, SESSION_EXPIRY_HOURS
from portal.database import init_engine, missing_tables
from portal.logging_setup import configure_logging
from portal.sessions import SessionResolver
from portal.stores import (
    ActivityStore,
    MedicalRecordStore,
    PatientStore,
    SqlActivityStore,
    SqlMedicalRecordStore,
    SqlPatientStore,
    SqlSessionStore,
    SqlUserStore,
    UserStore,
)


@dataclass
class Services:
    """Everything the routes need, built once per application."""
    resolver: SessionResolver
    users: UserStore
    patients: PatientStore
    records: MedicalRecordStore
    activity: Optional[ActivityStore] = None
    llm: Optional[Any] = None
    engine: Optional[Any] = None


def build_sql_services(engine, llm=None) -> Services:
    users = SqlUserStore(engine)
    return Services(
        resolver=SessionResolver(SqlSessionStore(engine), users),
        users=users,
        patients=SqlPatientStore(engine),
        records=SqlMedicalRecordStore(engine),
        activity=SqlActivityStore(engine),
        llm=llm,
        engine=engine,
    )


def create_app(services: Optional[Services] = None):
    """Build and return a fully configured Flask application."""
    configure_logging()

    app = Flask(__name__)
    app.config["SECRET_KEY"] = SECRET_KEY
    CORS(app, supports_credentials=True)

    # ── Initialise shared resources ──────────────────────────────────
    if services is None:
        try:
            print("[init] Initializing database connection...")
            engine = init_engine()

            missing = missing_tables(engine)
            if missing:
                raise RuntimeError(f"Missing tables: {', '.join(missing)}")

            print("[init] Initializing LLM...")
            llm = init_llm()

            services = build_sql_services(engine, llm)
            print("[init] ✓ API server ready")
        except Exception as e:
            print(f"[FATAL] Failed to initialize: {e}", file=sys.stderr)
            traceback.print_exc()
            sys.exit(1)

    app.extensions["portal"] = services

    # ── Register routes ──────────────────────────────────────────────
    register_routes(app, services)

    return app


def main():
    """Run the development server."""
    print("=" * 60)
    print("Patient Portal – REST API Server")
    print("=" * 60)

    app = create_app()

    host = os.getenv("API_HOST", "0.0.0.0")
    port = int(os.getenv("API_PORT", "8000"))
    debug = os.getenv("FLASK_ENV") == "development"

    print(f"\n[server] Starting Flask API on {host}:{port}")
    print(f"[server] Debug mode: {debug}")
    print(f"[server] Session expiry: {SESSION_EXPIRY_HOURS} hours")
    print("\nAPI Endpoints:")
    print(f"  - POST http://{host}:{port}/api/auth/login")
    print(f"  - POST http://{host}:{port}/api/auth/logout")
    print(f"  - GET  http://{host}:{port}/api/user/profile")
    print(f"  - GET  http://{host}:{port}/api/patients/<id>/records")
    print(f"  - POST http://{host}:{port}/api/patients/<id>/records/<record_id>/unlock")
    print(f"  - DEL  http://{host}:{port}/api/patients/<id>/records/<record_id>")
    print(f"  - POST http://{host}:{port}/api/patients/me/records")
    print(f"  - PUT  http://{host}:{port}/api/patients/me/records/<record_id>")
    print(f"  - POST http://{host}:{port}/api/patients/<id>/pin/verify")
    print(f"  - POST http://{host}:{port}/api/patients/me/pin")
    print(f"  - POST http://{host}:{port}/api/assistant/chat")
    print(f"  - GET  http://{host}:{port}/api/admin/activity")
    print(f"  - GET  http://{host}:{port}/health")
    print("\n" + "=" * 60)

    app.run(host=host, port=port, debug=debug, threaded=True)


if __name__ == "__main__":
    main()
