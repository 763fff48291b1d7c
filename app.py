import os
from datetime import timedelta
from pathlib import Path
from typing import Optional

from flask import Flask, jsonify, session

from extensions import db
from models import User
from daily_unlock import (
    DailyUnlockService,
    ScheduleBuilder,
    create_admin_daily_unlock_blueprint,
    create_daily_unlock_blueprint,
    create_daily_unlock_cli,
)
from daily_unlock.settings import (
    DEFAULT_TIMEZONE,
    DEFAULT_UNLOCK_TIMES,
    InvalidUnlockSettings,
    format_unlock_times,
    parse_unlock_times,
    resolve_timezone,
)
from notifications import (
    InboxPushDispatcher,
    NotificationDispatcher,
    NullDispatcher,
    WebPushSender,
)

# ====== Feature toggle ======
def _env_flag(name: str, default: bool) -> bool:
    """Parse truthy feature-toggle values from the environment."""
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int, minimum: int) -> int:
    raw = os.environ.get(name)
    if not raw:
        return default
    try:
        return max(minimum, int(raw))
    except ValueError:
        print(f"⚠️ Invalid {name} value: {raw!r}. Using default {default}.")
        return default


USE_NOTIFICATIONS = _env_flag("USE_NOTIFICATIONS", True)  # 📬 Inbox records for unlocks and reminders
USE_PUSH_NOTIFICATIONS = _env_flag("USE_PUSH_NOTIFICATIONS", True)  # 🔔 Web push for unlock alerts

# ====== Daily unlock schedule ======
DAILY_UNLOCK_TIMES = os.environ.get("DAILY_UNLOCK_TIMES") or format_unlock_times(DEFAULT_UNLOCK_TIMES)
DAILY_UNLOCK_TIMEZONE = os.environ.get("DAILY_UNLOCK_TIMEZONE") or DEFAULT_TIMEZONE

# ====== Notifications ======
NOTIFICATION_TTL_DAYS = _env_int("NOTIFICATION_TTL_DAYS", 7, minimum=1)
PUSH_TIMEOUT_SECONDS = _env_int("PUSH_TIMEOUT_SECONDS", 5, minimum=1)

# ====== VAPID setup ======
VAPID_PUBLIC_KEY = os.environ.get("VAPID_PUBLIC_KEY")
VAPID_PRIVATE_KEY = os.environ.get("VAPID_PRIVATE_KEY")
VAPID_CLAIM_EMAIL = os.environ.get("VAPID_CLAIM_EMAIL", "support@speakcraft.app")

DATA_DIR = Path(__file__).resolve().parent / "data"


def create_app(
    config_overrides: Optional[dict] = None,
    dispatcher: Optional[NotificationDispatcher] = None,
    clock=None,
) -> Flask:
    """Build the Flask app; tests pass overrides, a dispatcher and a fixed clock."""
    app = Flask(__name__)
    app.secret_key = os.environ.get("SECRET_KEY") or os.urandom(24)
    app.permanent_session_lifetime = timedelta(days=365)

    app.config.setdefault("USE_NOTIFICATIONS", USE_NOTIFICATIONS)
    app.config.setdefault("USE_PUSH_NOTIFICATIONS", USE_PUSH_NOTIFICATIONS)
    app.config.setdefault("DAILY_UNLOCK_TIMES", DAILY_UNLOCK_TIMES)
    app.config.setdefault("DAILY_UNLOCK_TIMEZONE", DAILY_UNLOCK_TIMEZONE)
    app.config.setdefault("NOTIFICATION_TTL_DAYS", NOTIFICATION_TTL_DAYS)
    app.config.setdefault("PUSH_TIMEOUT_SECONDS", PUSH_TIMEOUT_SECONDS)
    app.config.setdefault("VAPID_PUBLIC_KEY", VAPID_PUBLIC_KEY)
    app.config.setdefault("VAPID_PRIVATE_KEY", VAPID_PRIVATE_KEY)
    app.config.setdefault("VAPID_CLAIM_EMAIL", VAPID_CLAIM_EMAIL)
    app.config.setdefault("SQLALCHEMY_TRACK_MODIFICATIONS", False)
    if config_overrides:
        app.config.update(config_overrides)

    if "SQLALCHEMY_DATABASE_URI" not in app.config:
        database_url = os.environ.get("DATABASE_URL")
        if not database_url:
            DATA_DIR.mkdir(parents=True, exist_ok=True)
            database_url = f"sqlite:///{DATA_DIR / 'app.db'}"
        app.config["SQLALCHEMY_DATABASE_URI"] = database_url
    db.init_app(app)

    builder = _build_schedule_builder(app)
    if dispatcher is None and not app.config["USE_NOTIFICATIONS"]:
        dispatcher = NullDispatcher()
    if dispatcher is None:
        push_sender = None
        if app.config["USE_PUSH_NOTIFICATIONS"]:
            push_sender = WebPushSender(
                vapid_private_key=app.config["VAPID_PRIVATE_KEY"],
                vapid_claim_email=app.config["VAPID_CLAIM_EMAIL"],
                timeout=app.config["PUSH_TIMEOUT_SECONDS"],
            )
        dispatcher = InboxPushDispatcher(push_sender, ttl_days=app.config["NOTIFICATION_TTL_DAYS"])
    service = DailyUnlockService(builder, dispatcher, clock=clock)
    app.extensions["daily_unlock"] = service

    app.register_blueprint(create_daily_unlock_blueprint(service, _current_user))
    app.register_blueprint(create_admin_daily_unlock_blueprint(service, _current_admin))
    app.cli.add_command(create_daily_unlock_cli(service))

    @app.get("/api/push/public-key")
    def push_public_key():
        return jsonify({"public_key": app.config.get("VAPID_PUBLIC_KEY")})

    with app.app_context():
        # Importing registers the feature tables on db.metadata.
        import daily_unlock.models  # noqa: F401

        db.create_all()

    return app


def _build_schedule_builder(app: Flask) -> ScheduleBuilder:
    try:
        unlock_times = parse_unlock_times(app.config["DAILY_UNLOCK_TIMES"])
    except InvalidUnlockSettings as exc:
        app.logger.warning("Invalid DAILY_UNLOCK_TIMES (%s); using defaults.", exc)
        unlock_times = DEFAULT_UNLOCK_TIMES
    try:
        tz = resolve_timezone(app.config["DAILY_UNLOCK_TIMEZONE"])
    except InvalidUnlockSettings as exc:
        app.logger.warning("Invalid DAILY_UNLOCK_TIMEZONE (%s); using %s.", exc, DEFAULT_TIMEZONE)
        tz = resolve_timezone(DEFAULT_TIMEZONE)
    return ScheduleBuilder(unlock_times, tz)


def _current_user() -> Optional[dict]:
    """Session-based lookup; the auth layer stores `user_id` on login."""
    user_id = session.get("user_id")
    if not user_id:
        return None
    user = db.session.get(User, user_id)
    if user is None:
        return None
    return {"id": user.id, "email": user.email, "level": user.level}


def _current_admin() -> Optional[dict]:
    if not session.get("admin"):
        return None
    return {"username": session.get("admin")}
