"""
Flask route handlers for the REST API.
"""

import logging
from datetime import datetime, timezone
from functools import partial
from urllib.parse import quote

from flask import jsonify, request
from werkzeug.security import check_password_hash

from portal.activity import (
    MAX_LIST_LIMIT,
    ActivityTarget,
    ActivityType,
    activity_to_dict,
    list_activity,
    log_activity,
)
from portal.api.auth import encode_session_cookie, login_required, permission_required
from portal.assistant import generate_reply
from portal.config import DASHBOARD_URL, LOGIN_URL, SESSION_COOKIE_NAME
from portal.exceptions import (
    Forbidden,
    NotFound,
    PortalError,
    StorageUnavailable,
    Unauthenticated,
    ValidationError,
)
from portal.models import ActivityFilter
from portal.pin import update_pin, verify_pin
from portal.rbac import Permission, Role, permissions_for
from portal.records import (
    add_medical_record,
    delete_medical_record,
    get_medical_record,
    list_visible_medical_records,
    record_to_dict,
    redact_record,
    update_medical_record,
)

logger = logging.getLogger(__name__)


def principal_to_dict(principal):
    return {
        "id": principal.id,
        "display_name": principal.display_name,
        "role": principal.role.value,
        "patient_id": principal.patient_id,
        "doctor_id": principal.doctor_id,
    }


def _json_body():
    """The request's JSON object; {} when there is no JSON body at all."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Invalid request body.")
    return data


def _pin_failure_response(result):
    status = 503 if result.reason == "storage" else 400
    return jsonify({"success": False, "message": result.message}), status


def _require_own_patient(principal, patient_id):
    if principal.role != Role.PATIENT or principal.patient_id != patient_id:
        logger.info("PIN access refused: user_id=%s patient_id=%s", principal.id, patient_id)
        raise Forbidden()


def _query_int(name, default=None):
    value = request.args.get(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ValidationError(f"{name} must be an integer.")


def _query_enum(name, enum_cls):
    value = request.args.get(name)
    if not value:
        return None
    try:
        return enum_cls(value.strip().upper()).value
    except ValueError:
        raise ValidationError(f"Unknown {name} '{value}'.")


def _query_datetime(name):
    value = request.args.get(name)
    if not value:
        return None
    raw = value.strip()
    if raw.endswith("Z"):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO 8601 date.")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _record_payload(data):
    return {
        "title": data.get("title"),
        "record_type": data.get("type"),
        "description": data.get("description"),
        "date": data.get("date"),
        "pin_protected": data.get("pin_protected", False),
    }


def register_routes(app, services):
    """Register all API routes on the Flask *app*."""

    activity = partial(log_activity, store=services.activity)

    # ── Health / info ────────────────────────────────────────────────

    @app.route("/", methods=["GET"])
    def index():
        return jsonify({
            "service": "Patient Portal API",
            "version": "1.0.0",
            "status": "running",
            "endpoints": {
                "login": "/api/auth/login",
                "logout": "/api/auth/logout",
                "profile": "/api/user/profile",
                "records": "/api/patients/<patient_id>/records",
                "my_records": "/api/patients/me/records",
                "pin": "/api/patients/<patient_id>/pin/verify",
                "assistant": "/api/assistant/chat",
                "activity": "/api/admin/activity",
                "health": "/health",
            },
        })
    @app.route("/health", methods=["GET"])
    def health():
        from sqlalchemy import text as sa_text

        checks = {"database": services.engine is None, "llm": services.llm is not None}
        try:
            if services.engine is not None:
                with services.engine.connect() as conn:
                    conn.execute(sa_text("SELECT 1"))
                checks["database"] = True
        except Exception:
            logger.exception("Health check: database unreachable")

        all_healthy = all(checks.values())
        return jsonify({
            "status": "healthy" if all_healthy else "unhealthy",
            "checks": checks,
        }), 200 if all_healthy else 503

    # ── Auth ─────────────────────────────────────────────────────────

    @app.route("/api/auth/login", methods=["POST"])
    def login():
        if not request.is_json:
            return jsonify({"error": "Content-Type must be application/json"}), 400

        data = _json_body()
        email = str(data.get("email", "")).strip()
        password = str(data.get("password", ""))
        if not email or not password:
            return jsonify({"error": "email and password are required"}), 400

        try:
            creds = services.users.find_credentials_by_email(email)
            principal = None
            if creds and creds.is_active and check_password_hash(creds.password_hash, password):
                principal = services.users.find_principal_by_id(creds.user_id)
        except ValueError as e:
            logger.warning("Login rejected for stored user: %s", e)
            principal = None

        if principal is None:
            activity(ActivityType.LOGIN, ActivityTarget.USER, success=False,
                     error_message="invalid credentials")
            return jsonify({"error": "Invalid email or password"}), 401

        session = services.resolver.start_session(principal.id)
        cookie = encode_session_cookie(session)
        activity(ActivityType.LOGIN, ActivityTarget.USER, principal, target_id=principal.id)

        resp = jsonify({
            "success": True,
            "token": cookie,
            "user": principal_to_dict(principal),
            "expires_at": session.expires_at.isoformat(),
        })
        resp.set_cookie(
            SESSION_COOKIE_NAME, cookie,
            expires=session.expires_at, httponly=True, samesite="Lax",
            secure=not app.debug,
        )
        return resp, 200

    @app.route("/api/auth/logout", methods=["POST"])
    @login_required
    def logout():
        services.resolver.end_session(request.session_token)
        activity(ActivityType.LOGOUT, ActivityTarget.USER, request.principal,
                 target_id=request.principal.id)
        resp = jsonify({"success": True, "message": "Logged out successfully"})
        resp.delete_cookie(SESSION_COOKIE_NAME)
        return resp, 200

    @app.route("/api/user/profile", methods=["GET"])
    @login_required
    def get_profile():
        principal = request.principal
        return jsonify({
            "success": True,
            "user": principal_to_dict(principal),
            "permissions": sorted(p.value for p in permissions_for(principal.role)),
        }), 200

    # ── Medical records ──────────────────────────────────────────────

    @app.route("/api/patients/<int:patient_id>/records", methods=["GET"])
    @permission_required(Permission.VIEW_MEDICAL_RECORD)
    def list_records(patient_id):
        principal = request.principal
        records = list_visible_medical_records(services.records, principal, patient_id)

        is_patient = principal.role == Role.PATIENT
        payload = [
            redact_record(r) if is_patient and r.pin_protected else record_to_dict(r)
            for r in records
        ]
        activity(ActivityType.VIEW, ActivityTarget.MEDICAL_RECORD, principal,
                 target_id=patient_id, details=f"{len(payload)} records")
        return jsonify({"success": True, "records": payload}), 200

    @app.route("/api/patients/<int:patient_id>/records/<record_id>/unlock", methods=["POST"])
    @permission_required(Permission.VIEW_MEDICAL_RECORD)
    def unlock_record(patient_id, record_id):
        principal = request.principal
        record = get_medical_record(services.records, principal, patient_id, record_id)

        if principal.role == Role.PATIENT and record.pin_protected:
            data = _json_body()
            result = verify_pin(services.patients, patient_id, data.get("pin"))
            activity(ActivityType.VERIFY, ActivityTarget.PATIENT_PIN, principal,
                     target_id=patient_id, success=result.success,
                     error_message=result.reason)
            if not result.success:
                return _pin_failure_response(result)

        activity(ActivityType.VIEW, ActivityTarget.MEDICAL_RECORD, principal,
                 target_id=record.id)
        return jsonify({"success": True, "record": record_to_dict(record)}), 200

    @app.route("/api/patients/me/records", methods=["POST"])
    @login_required
    def create_record():
        principal = request.principal
        record = add_medical_record(services.records, principal, **_record_payload(_json_body()))
        activity(ActivityType.CREATE, ActivityTarget.MEDICAL_RECORD, principal,
                 target_id=record.id, details=record.title)
        return jsonify({"success": True, "record": record_to_dict(record)}), 201

    @app.route("/api/patients/me/records/<record_id>", methods=["PUT"])
    @login_required
    def edit_record(record_id):
        principal = request.principal
        record = update_medical_record(services.records, principal, record_id,
                                       **_record_payload(_json_body()))
        activity(ActivityType.UPDATE, ActivityTarget.MEDICAL_RECORD, principal,
                 target_id=record.id, details=record.title)
        return jsonify({"success": True, "record": record_to_dict(record)}), 200

    @app.route("/api/patients/<int:patient_id>/records/<record_id>", methods=["DELETE"])
    @login_required
    def remove_record(patient_id, record_id):
        principal = request.principal
        try:
            record = delete_medical_record(services.records, principal, patient_id, record_id)
        except (Forbidden, NotFound) as e:
            activity(ActivityType.DELETE, ActivityTarget.MEDICAL_RECORD, principal,
                     target_id=record_id, success=False, error_message=type(e).__name__)
            raise

        activity(ActivityType.DELETE, ActivityTarget.MEDICAL_RECORD, principal,
                 target_id=record.id, details=record.title)
        return jsonify({"success": True, "message": "Medical record deleted"}), 200

    # ── PIN ──────────────────────────────────────────────────────────

    @app.route("/api/patients/<int:patient_id>/pin/verify", methods=["POST"])
    @login_required
    def verify_patient_pin(patient_id):
        principal = request.principal
        _require_own_patient(principal, patient_id)

        data = _json_body()
        result = verify_pin(services.patients, patient_id, data.get("pin"))
        activity(ActivityType.VERIFY, ActivityTarget.PATIENT_PIN, principal,
                 target_id=patient_id, success=result.success,
                 error_message=result.reason)
        if not result.success:
            return _pin_failure_response(result)
        return jsonify({"success": True}), 200

    @app.route("/api/patients/me/pin", methods=["POST"])
    @login_required
    def update_patient_pin():
        principal = request.principal
        if principal.role != Role.PATIENT or principal.patient_id is None:
            raise Forbidden()

        data = _json_body()
        try:
            update_pin(
                services.patients, principal.patient_id,
                data.get("current_pin"), data.get("new_pin"), data.get("confirm_pin"),
            )
        except PortalError as e:
            activity(ActivityType.UPDATE, ActivityTarget.PATIENT_PIN, principal,
                     target_id=principal.patient_id, success=False,
                     error_message=type(e).__name__)
            raise

        activity(ActivityType.UPDATE, ActivityTarget.PATIENT_PIN, principal,
                 target_id=principal.patient_id)
        return jsonify({"success": True, "message": "PIN updated successfully"}), 200

    # ── AI assistant ─────────────────────────────────────────────────

    @app.route("/api/assistant/chat", methods=["POST"])
    @login_required
    def assistant_chat():
        if services.llm is None:
            return jsonify({"error": "Assistant unavailable"}), 503

        data = _json_body()
        try:
            content = generate_reply(services.llm, data.get("messages"))
        except ValidationError:
            raise
        except Exception:
            logger.exception("Assistant reply failed")
            return jsonify({"error": "The assistant could not answer. Please try again."}), 502

        activity(ActivityType.VIEW, ActivityTarget.ASSISTANT, request.principal)
        return jsonify({"content": content}), 200

    # ── Admin ────────────────────────────────────────────────────────

    @app.route("/api/admin/activity", methods=["GET"])
    @permission_required(Permission.VIEW_ANALYTICS)
    def activity_logs():
        if services.activity is None:
            return jsonify({"error": "Activity log unavailable"}), 503

        limit = _query_int("limit", 100)
        if limit < 1:
            raise ValidationError("limit must be positive.")
        activity_filter = ActivityFilter(
            user_id=_query_int("user_id"),
            activity_type=_query_enum("type", ActivityType),
            target=_query_enum("target", ActivityTarget),
            start=_query_datetime("start"),
            end=_query_datetime("end"),
            limit=min(limit, MAX_LIST_LIMIT),
        )
        entries = list_activity(services.activity, request.principal, activity_filter)
        return jsonify({"success": True, "entries": [activity_to_dict(e) for e in entries]}), 200

    # ── Error handlers ───────────────────────────────────────────────

    @app.errorhandler(Unauthenticated)
    def unauthenticated(e):
        return jsonify({
            "error": e.message,
            "redirect": f"{LOGIN_URL}?callbackUrl={quote(request.path, safe='')}",
        }), 401

    @app.errorhandler(Forbidden)
    def forbidden(e):
        return jsonify({"error": e.message, "redirect": DASHBOARD_URL}), 403

    @app.errorhandler(ValidationError)
    def validation_error(e):
        return jsonify({"success": False, "error": e.message}), 400

    @app.errorhandler(NotFound)
    def not_found_error(e):
        return jsonify({"error": e.message}), 404

    @app.errorhandler(StorageUnavailable)
    def storage_unavailable(e):
        return jsonify({"error": e.message}), 503

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "Endpoint not found", "message": str(e)}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"error": "Method not allowed", "message": str(e)}), 405

    @app.errorhandler(500)
    def internal_error(e):
        return jsonify({"error": "Internal server error"}), 500
