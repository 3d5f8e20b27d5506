"""
Flask route handlers for the REST API.
"""

import logging
import time
import traceback
from datetime import datetime

from flask import jsonify, request
from werkzeug.exceptions import HTTPException

from helper_tracker import forms
from helper_tracker.api.auth import (
    clamp_session_timeout,
    drop_user_sessions,
    open_session,
    refresh_user_sessions,
    require_permission,
    sessions,
    token_required,
)
from helper_tracker.cache import (
    INVALIDATION_GROUPS,
    AppCache,
    CacheKeys,
    invalidate_helpers,
    invalidate_incidents,
    invalidate_users,
)
from helper_tracker.dashboard import (
    compute_dashboard_metrics,
    employment_duration,
    incident_statistics,
    loan_breakdown,
    loan_category,
)
from helper_tracker.models import UserStatus
from helper_tracker.permissions import (
    Role,
    can_access_settings,
    can_create,
    can_delete,
    can_edit,
    can_manage_users,
    can_view,
    permissions_for,
)
from helper_tracker.sheets import (
    DuplicateRecordError,
    RecordNotFoundError,
    SheetStore,
    verify_password,
)

LOG = logging.getLogger(__name__)

STARTED_AT = time.time()

HELPER_FIELDS = (
    "name", "currentEmployer", "problem", "totalEmployers", "eaOfficer",
    "outstandingLoan", "employmentStartDate", "pt", "transferStatus",
)
STAFF_FIELDS = ("name", "role", "email", "contact")
INCIDENT_FIELDS = (
    "helperId", "incidentDate", "description", "severity", "reportedBy",
    "status", "resolution", "mediaUrls", "mediaFileIds",
)


def _body() -> dict:
    data = request.get_json(silent=True)
    # Only JSON objects carry fields; arrays and scalars are treated as empty.
    return data if isinstance(data, dict) else {}


def _pick(data: dict, fields) -> dict:
    return {k: data[k] for k in fields if k in data}


def _validation_error(errors: dict):
    return jsonify({"error": "Validation failed", "fields": errors}), 400


def register_routes(app, store: SheetStore, cache: AppCache):
    """Register all API routes on the Flask *app*."""

    # ── Cached reads ─────────────────────────────────────────────────

    def all_helpers():
        return cache.get_or_set(CacheKeys.HELPERS, store.list_helpers)

    def all_users():
        return cache.get_or_set(CacheKeys.USERS, store.list_users)

    def all_incidents():
        return cache.get_or_set(CacheKeys.INCIDENTS, store.list_incidents)

    def all_staff():
        return cache.get_or_set(CacheKeys.STAFF, store.list_staff)

    def helper_incidents(helper_id):
        return cache.get_or_set(
            CacheKeys.helper_incidents(helper_id),
            lambda: store.list_incidents(helper_id=helper_id),
        )

    def find_helper(helper_id):
        for helper in all_helpers():
            if helper.id == helper_id:
                return helper
        raise RecordNotFoundError(f"Helper with id {helper_id} not found")

    def find_incident(incident_id):
        for incident in all_incidents():
            if incident.id == incident_id:
                return incident
        raise RecordNotFoundError(f"Incident with id {incident_id} not found")

    def incidents_changed(helper_id):
        invalidate_incidents(cache)
        cache.delete(CacheKeys.helper_profile(helper_id))

    # ── Health / info ────────────────────────────────────────────────

    @app.route("/", methods=["GET"])
    def index():
        return jsonify({
            "service": "Helper Tracker API",
            "version": "1.0.0",
            "status": "running",
            "endpoints": {
                "auth": "/api/auth/login",
                "helpers": "/api/helpers",
                "incidents": "/api/incidents",
                "users": "/api/users",
                "staff": "/api/staff",
                "dashboard": "/api/dashboard/metrics",
                "health": "/health",
            },
        })

    @app.route("/health", methods=["GET"])
    def health():
        checks = {"spreadsheet": store is not None, "cache": cache is not None}
        all_healthy = all(checks.values())
        return jsonify({
            "status": "healthy" if all_healthy else "unhealthy",
            "checks": checks,
            "active_sessions": len(sessions),
        }), 200 if all_healthy else 503

    # ── Auth / session ───────────────────────────────────────────────

    @app.route("/api/auth/login", methods=["POST"])
    def login():
        data = _body()
        username = str(data.get("username", "")).strip()
        password = str(data.get("password", ""))
        if not username or not password:
            return jsonify({"error": "username and password are required"}), 400

        found = store.get_user_by_username(username)
        if found is None:
            return jsonify({"error": "Username not found"}), 404
        user, hashed = found
        if not verify_password(password, hashed):
            return jsonify({"error": "Incorrect password"}), 401
        if not user.is_active:
            return jsonify({"error": "Account is not active"}), 403

        token = open_session(user, data.get("sessionTimeout"))
        session_user = sessions[token]["user"]
        LOG.info("User %s logged in (role=%s)", user.username, user.role.value)
        return jsonify({
            "success": True,
            "token": token,
            "user": session_user.to_dict(),
            "permissions": permissions_for(user.role),
        }), 200

    @app.route("/api/auth/logout", methods=["POST"])
    @token_required
    def logout():
        sessions.pop(request.token, None)
        return jsonify({"success": True, "message": "Logged out successfully"}), 200

    @app.route("/api/session/check", methods=["GET"])
    @token_required
    def session_check():
        user = request.session_user
        return jsonify({
            "valid": True,
            "user": user.to_dict(),
            "permissions": permissions_for(user.role),
            "created_at": request.session_data["created_at"].isoformat(),
        }), 200

    @app.route("/api/session/settings", methods=["PUT"])
    @token_required
    def session_settings():
        data = _body()
        if "sessionTimeout" not in data:
            return jsonify({"error": "sessionTimeout is required"}), 400
        request.session_user.session_timeout = clamp_session_timeout(data["sessionTimeout"])
        return jsonify({
            "success": True,
            "sessionTimeout": request.session_user.session_timeout,
        }), 200

    # ── Helpers ──────────────────────────────────────────────────────

    @app.route("/api/helpers", methods=["GET"])
    @token_required
    @require_permission(can_view, "Authentication required")
    def list_helpers():
        return jsonify([h.to_dict() for h in all_helpers()]), 200

    @app.route("/api/helpers", methods=["POST"])
    @token_required
    @require_permission(can_create, "Insufficient permissions. Staff or Admin role required to create helpers.")
    def create_helper():
        data = _body()
        errors = forms.validate_new_helper_step(data, 0)

        first_incident = data.get("incident")
        if first_incident and not isinstance(first_incident, dict):
            errors["incident"] = "Incident must be an object"
        elif first_incident:
            # Helper id is not known yet, so skip the "select helper" step.
            for step in (1, 3):
                errors.update(forms.validate_add_incident_step(first_incident, step))
        if errors:
            return _validation_error(errors)

        helper = store.add_helper(_pick(data, HELPER_FIELDS))
        invalidate_helpers(cache)

        response = {"id": helper.id}
        if first_incident:
            incident = store.add_incident({**_pick(first_incident, INCIDENT_FIELDS), "helperId": helper.id})
            incidents_changed(helper.id)
            response["incidentId"] = incident.id
        return jsonify(response), 201

    @app.route("/api/helpers/<helper_id>", methods=["GET"])
    @token_required
    def get_helper(helper_id):
        return jsonify(find_helper(helper_id).to_dict()), 200

    @app.route("/api/helpers/<helper_id>", methods=["PUT"])
    @token_required
    @require_permission(can_edit, "Insufficient permissions. Staff or Admin role required to edit helpers.")
    def update_helper(helper_id):
        updates = _pick(_body(), HELPER_FIELDS)
        errors = {
            k: v for k, v in forms.validate_new_helper_step({**find_helper(helper_id).to_dict(), **updates}, 0).items()
            if k in updates
        }
        if errors:
            return _validation_error(errors)
        helper = store.update_helper(helper_id, updates)
        invalidate_helpers(cache)
        return jsonify({"message": "Updated", "helper": helper.to_dict()}), 200

    @app.route("/api/helpers/<helper_id>", methods=["DELETE"])
    @token_required
    @require_permission(can_delete, "Insufficient permissions. Staff or Admin role required to delete helpers.")
    def delete_helper(helper_id):
        store.delete_helper(helper_id)
        invalidate_helpers(cache)
        return "", 204

    @app.route("/api/helpers/<helper_id>/profile", methods=["GET"])
    @token_required
    def helper_profile(helper_id):
        def build():
            helper = find_helper(helper_id)
            incidents = helper_incidents(helper_id)
            return {
                "helper": helper.to_dict(),
                "incidents": [i.to_dict() for i in incidents],
                "statistics": incident_statistics(incidents),
                "employment": employment_duration(helper.employment_start_date),
                "loanCategory": loan_category(helper.outstanding_loan),
            }

        return jsonify(cache.get_or_set(CacheKeys.helper_profile(helper_id), build)), 200

    # ── Incidents ────────────────────────────────────────────────────

    @app.route("/api/incidents", methods=["GET"])
    @token_required
    def list_incidents():
        helper_id = request.args.get("helperId")
        incidents = helper_incidents(helper_id) if helper_id else all_incidents()
        return jsonify([i.to_dict() for i in incidents]), 200

    @app.route("/api/incidents", methods=["POST"])
    @token_required
    @require_permission(can_create, "Insufficient permissions. Staff or Admin role required to report incidents.")
    def create_incident():
        data = _pick(_body(), INCIDENT_FIELDS + ("id",))
        data.setdefault("reportedBy", request.session_user.username)
        errors = forms.validate_all(forms.validate_add_incident_step, data)
        if errors:
            return _validation_error(errors)
        try:
            find_helper(str(data["helperId"]))
        except RecordNotFoundError:
            return _validation_error({"helperId": "Selected helper does not exist"})

        incident = store.add_incident(data)
        incidents_changed(incident.helper_id)
        return jsonify({"id": incident.id}), 201

    @app.route("/api/incidents/<incident_id>", methods=["GET"])
    @token_required
    def get_incident(incident_id):
        incident = find_incident(incident_id)
        try:
            helper = find_helper(incident.helper_id).to_dict()
        except RecordNotFoundError:
            helper = None
        return jsonify({"incident": incident.to_dict(), "helper": helper}), 200

    @app.route("/api/incidents/<incident_id>", methods=["PUT"])
    @token_required
    @require_permission(can_edit, "Insufficient permissions. Staff or Admin role required to edit incidents.")
    def update_incident(incident_id):
        updates = _pick(_body(), INCIDENT_FIELDS)
        current = find_incident(incident_id)
        merged = {**current.to_dict(), **updates}
        errors = forms.validate_add_incident_step(merged, 1)
        errors.update(forms.validate_add_incident_step(merged, 3))
        if errors:
            return _validation_error(errors)
        if "helperId" in updates:
            try:
                find_helper(str(updates["helperId"]))
            except RecordNotFoundError:
                return _validation_error({"helperId": "Selected helper does not exist"})

        incident = store.update_incident(incident_id, updates)
        incidents_changed(current.helper_id)
        if incident.helper_id != current.helper_id:
            cache.delete(CacheKeys.helper_profile(incident.helper_id))
        return jsonify({"message": "Updated", "incident": incident.to_dict()}), 200

    @app.route("/api/incidents/<incident_id>", methods=["DELETE"])
    @token_required
    @require_permission(can_delete, "Insufficient permissions. Staff or Admin role required to delete incidents.")
    def delete_incident(incident_id):
        current = find_incident(incident_id)
        store.delete_incident(incident_id)
        incidents_changed(current.helper_id)
        return "", 204

    # ── Staff directory ──────────────────────────────────────────────

    def staff_errors(data: dict) -> dict:
        errors = {}
        if "name" in data:
            errors["name"] = forms.required(data.get("name"), "Name")
        if data.get("email"):
            errors["email"] = forms.email(data["email"])
        return {k: v for k, v in errors.items() if v}

    @app.route("/api/staff", methods=["GET"])
    @token_required
    def list_staff():
        return jsonify([s.to_dict() for s in all_staff()]), 200

    @app.route("/api/staff", methods=["POST"])
    @token_required
    @require_permission(can_create, "Insufficient permissions. Staff or Admin role required to add staff.")
    def create_staff():
        data = _pick(_body(), STAFF_FIELDS)
        data.setdefault("name", "")
        errors = staff_errors(data)
        if errors:
            return _validation_error(errors)
        staff = store.add_staff(data)
        cache.delete(CacheKeys.STAFF)
        return jsonify({"id": staff.id}), 201

    @app.route("/api/staff/<staff_id>", methods=["PUT"])
    @token_required
    @require_permission(can_edit, "Insufficient permissions. Staff or Admin role required to edit staff.")
    def update_staff(staff_id):
        updates = _pick(_body(), STAFF_FIELDS)
        errors = staff_errors(updates)
        if errors:
            return _validation_error(errors)
        staff = store.update_staff(staff_id, updates)
        cache.delete(CacheKeys.STAFF)
        return jsonify({"message": "Updated", "staff": staff.to_dict()}), 200

    @app.route("/api/staff/<staff_id>", methods=["DELETE"])
    @token_required
    @require_permission(can_delete, "Insufficient permissions. Staff or Admin role required to delete staff.")
    def delete_staff(staff_id):
        store.delete_staff(staff_id)
        cache.delete(CacheKeys.STAFF)
        return "", 204

    # ── Users ────────────────────────────────────────────────────────

    @app.route("/api/users/profile", methods=["GET"])
    @token_required
    def get_profile():
        found = store.get_user_by_username(request.session_user.username)
        if found is None:
            return jsonify({"error": "User not found"}), 404
        return jsonify(found[0].to_dict()), 200

    @app.route("/api/users/profile", methods=["PUT"])
    @token_required
    def update_profile():
        new_email = str(_body().get("email", "")).strip()
        problem = forms.email(new_email)
        if problem:
            return _validation_error({"email": problem})

        found = store.get_user_by_username(request.session_user.username)
        if found is None:
            return jsonify({"error": "User not found"}), 404
        user, _ = found
        if any(u.email == new_email and u.id != user.id for u in store.list_users()):
            return jsonify({"error": "Email already exists"}), 409

        user = store.update_user(user.id, email=new_email)
        refresh_user_sessions(user)
        invalidate_users(cache)
        return jsonify({"message": "Profile updated", "user": user.to_dict()}), 200

    @app.route("/api/users", methods=["GET"])
    @token_required
    def list_users():
        return jsonify([u.to_dict() for u in all_users()]), 200

    @app.route("/api/users", methods=["POST"])
    @token_required
    @require_permission(can_manage_users, "Admin access required")
    def create_user():
        data = _body()
        errors = {
            "username": forms.username(data.get("username")),
            "email": forms.email(data.get("email")),
            "password": forms.password(data.get("password")),
        }
        if data.get("role") not in {r.value for r in Role}:
            errors["role"] = "Role must be one of admin, staff, viewer"
        errors = {k: v for k, v in errors.items() if v}
        if errors:
            return _validation_error(errors)

        user = store.create_user(
            username=data["username"],
            email=data["email"],
            password=data["password"],
            role=Role(data["role"]),
            created_by=request.session_user.username,
        )
        invalidate_users(cache)
        return jsonify(user.to_dict()), 201

    @app.route("/api/users/<user_id>", methods=["PUT"])
    @token_required
    @require_permission(can_manage_users, "Admin access required")
    def update_user(user_id):
        data = _body()
        updates = {}
        if data.get("status"):
            if data["status"] not in {s.value for s in UserStatus}:
                return _validation_error({"status": "Status must be one of active, inactive, pending"})
            updates["status"] = data["status"]
        if data.get("role"):
            if data["role"] not in {r.value for r in Role}:
                return _validation_error({"role": "Role must be one of admin, staff, viewer"})
            updates["role"] = data["role"]
        if not updates:
            return jsonify({"error": "Nothing to update"}), 400

        user = store.update_user(user_id, **updates)
        if user.is_active:
            refresh_user_sessions(user)
        else:
            drop_user_sessions(user.id)
        invalidate_users(cache)
        return jsonify({"message": "User updated", "user": user.to_dict()}), 200

    @app.route("/api/users/<user_id>", methods=["DELETE"])
    @token_required
    @require_permission(can_manage_users, "Admin access required")
    def delete_user(user_id):
        if user_id == request.session_user.id:
            return jsonify({"error": "You cannot delete your own account"}), 400
        store.delete_user(user_id)
        drop_user_sessions(user_id)
        invalidate_users(cache)
        return "", 204

    @app.route("/api/users/change-password", methods=["POST"])
    @token_required
    def change_password():
        data = _body()
        current_password = data.get("currentPassword")
        new_password = data.get("newPassword")
        if not current_password or not new_password:
            return jsonify({"error": "Current and new passwords are required"}), 400

        found = store.get_user_by_username(request.session_user.username)
        if found is None:
            return jsonify({"error": "User not found"}), 404
        user, hashed = found
        if not verify_password(current_password, hashed):
            return jsonify({"error": "Current password is incorrect"}), 401

        problem = forms.password(new_password)
        if problem:
            return _validation_error({"newPassword": problem})

        store.set_password(user.id, new_password)
        # Force re-login everywhere.
        drop_user_sessions(user.id)
        LOG.info("Password changed for %s", user.username)
        return jsonify({"message": "Password updated successfully", "logout": True}), 200

    # ── Dashboard ────────────────────────────────────────────────────

    @app.route("/api/dashboard/metrics", methods=["GET"])
    @token_required
    def dashboard_metrics():
        def build():
            helpers = all_helpers()
            metrics = compute_dashboard_metrics(helpers, all_users()).to_dict()
            metrics["loanBreakdown"] = loan_breakdown(helpers)
            return metrics

        return jsonify(cache.get_or_set(CacheKeys.DASHBOARD_METRICS, build)), 200

    # ── Admin ────────────────────────────────────────────────────────

    @app.route("/api/admin/cache-stats", methods=["GET"])
    @token_required
    @require_permission(can_access_settings, "Admin access required")
    def cache_stats():
        return jsonify({
            "cache": cache.get_stats(),
            "uptime": round(time.time() - STARTED_AT, 1),
            "timestamp": datetime.utcnow().isoformat(),
        }), 200

    @app.route("/api/admin/cache-stats", methods=["DELETE"])
    @token_required
    @require_permission(can_access_settings, "Admin access required")
    def clear_cache():
        pattern = request.args.get("pattern", "")
        invalidate = INVALIDATION_GROUPS.get(pattern)
        if invalidate is None:
            return jsonify({"error": "Invalid pattern"}), 400
        invalidate(cache)
        label = "All" if pattern == "all" else pattern[:-1].capitalize()
        return jsonify({"message": f"{label} cache cleared"}), 200

    # ── Error handlers ───────────────────────────────────────────────

    @app.errorhandler(RecordNotFoundError)
    def record_not_found(e):
        return jsonify({"error": str(e)}), 404

    @app.errorhandler(DuplicateRecordError)
    def duplicate_record(e):
        return jsonify({"error": str(e)}), 409

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({"error": "Endpoint not found", "message": str(e)}), 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return jsonify({"error": "Method not allowed", "message": str(e)}), 405

    @app.errorhandler(Exception)
    def internal_error(e):
        if isinstance(e, HTTPException):
            return e
        LOG.error("Unhandled error on %s %s: %s", request.method, request.path, e)
        traceback.print_exc()
        return jsonify({"error": "Internal server error", "message": str(e)}), 500
