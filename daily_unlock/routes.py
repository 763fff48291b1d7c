"""JSON endpoints for today's tips plus an admin trigger for the unlock sweep."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Optional, Tuple, Union

from dateutil import parser as date_parser
from flask import Blueprint, jsonify, request

from daily_unlock.service import DailyUnlockError, DailyUnlockService

UserProvider = Callable[[], Optional[dict]]


def create_daily_unlock_blueprint(
    service: DailyUnlockService,
    current_user_provider: UserProvider,
) -> Blueprint:
    """Factory so the app can inject the service and its session-based user lookup."""

    bp = Blueprint("daily_unlock", __name__, url_prefix="/api/daily-unlock")

    def _require_user_id() -> Union[int, Tuple]:
        user = current_user_provider()
        if not user:
            return jsonify({"status": "error", "reason": "Please log in to see your tips."}), 401
        user_id = _extract_user_id(user)
        if user_id is None:
            return (
                jsonify({"status": "error", "reason": "User account is missing an ID."}),
                403,
            )
        return user_id

    @bp.errorhandler(DailyUnlockError)
    def _handle_service_error(exc: DailyUnlockError):
        return jsonify(exc.payload), exc.status_code

    @bp.get("/status")
    def today_status():
        user_id = _require_user_id()
        if not isinstance(user_id, int):
            return user_id
        status = service.get_today_status(user_id)
        return jsonify({"status": "ok", "data": status.to_dict()})

    @bp.route("/check", methods=["GET", "POST"])
    def check_and_unlock():
        user_id = _require_user_id()
        if not isinstance(user_id, int):
            return user_id
        result = service.reconcile(user_id)
        return jsonify({"status": "ok", "data": result.to_dict()})

    @bp.get("/history")
    def unlock_history():
        user_id = _require_user_id()
        if not isinstance(user_id, int):
            return user_id
        history = service.get_unlock_history(user_id, request.args.get("limit", 7))
        return jsonify({"status": "ok", "data": {"history": history}})

    return bp


def create_admin_daily_unlock_blueprint(
    service: DailyUnlockService,
    current_admin_provider: UserProvider,
) -> Blueprint:
    """Admin-only manual trigger; accepts a `now` override for testing schedules."""

    bp = Blueprint("admin_daily_unlock", __name__, url_prefix="/admin/daily-unlock")

    @bp.post("/sweep")
    def trigger_sweep():
        if not current_admin_provider():
            return jsonify({"status": "error", "reason": "Admin access required."}), 403

        body = request.get_json(silent=True)
        if not isinstance(body, dict):
            body = {}
        raw_now = body.get("now") or request.form.get("now") or request.args.get("now")
        now, error = _parse_now_override(raw_now)
        if error:
            return jsonify({"status": "error", "reason": error}), 400

        report = service.process_all_daily_unlocks(now)
        return jsonify({"status": "ok", "data": report.to_dict()})

    return bp


def _parse_now_override(raw_value: Optional[str]) -> Tuple[Optional[datetime], Optional[str]]:
    if raw_value is None or raw_value == "":
        return None, None
    try:
        parsed = date_parser.isoparse(str(raw_value))
    except (TypeError, ValueError):
        return None, "`now` must be an ISO-8601 timestamp."
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed, None


def _extract_user_id(user: dict) -> Optional[int]:
    try:
        return int(user.get("id"))
    except (TypeError, ValueError):
        return None
