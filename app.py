# app.py
"""
MediTrack Flask app.
Features:
 - Conditions, medications and health journal backed by Supabase
 - Supabase Auth sign-up / sign-in
 - Today's medication reminders with browser notifications
 - AI greeting, health-log insights, symptom checker, drug interaction
   checker, missed-dose advisor and weekly/monthly summaries
   (Groq preferred, OpenAI fallback)
 - Health endpoint for uptime monitoring

Run:
  flask --app app run      (development)
  gunicorn "app:create_app()"
"""

import logging
import os
import time
from datetime import datetime, timedelta, timezone

import markdown
from flask import (
    Blueprint, Flask, current_app, flash, jsonify, redirect,
    render_template, request, session, url_for
)
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from markupsafe import escape

from assistant import health_actions
from assistant.llm import AIClient
from assistant.schemas import URGENCY_GUIDANCE
from auth_utils import (
    current_user, login_required, login_user, logout_user,
    register_user, remember_user
)
from config import Config
from errors import AIServiceError, AuthError, DatabaseError, ValidationError
from models import condition_model, health_log_model, medication_model
from models.db import get_supabase, init_supabase
from reminders import ReminderBoard, build_reminders, clock

limiter = Limiter(get_remote_address)
web = Blueprint("web", __name__)

REMINDER_SESSION_KEY = "reminders"
# set by base.html from the browser's Date.getTimezoneOffset()
TZ_OFFSET_COOKIE = "tz_offset"
MAX_TZ_OFFSET_MINUTES = 14 * 60


def _now(tz=None) -> datetime:
    return datetime.now(tz)


def ai_rate_limit():
    return current_app.config["RATE_LIMIT_AI"]


# ============================================================
# App initialization
# ============================================================
def create_app(config_overrides=None, supabase_client=None, ai_client=None) -> Flask:
    app = Flask(__name__, static_folder="static", template_folder="templates")
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)
    app.secret_key = app.config["SECRET_KEY"]
    app.config["RATELIMIT_DEFAULT"] = app.config["RATE_LIMIT_DEFAULT"]

    logging.basicConfig(
        level=app.config["LOG_LEVEL"],
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    CORS(app, origins=app.config["CORS_ORIGINS"])
    limiter.init_app(app)
    init_supabase(app, supabase_client)
    app.extensions["ai_client"] = ai_client or AIClient.from_config(app.config)

    app.jinja_env.filters["markdown"] = render_markdown
    app.register_blueprint(web)

    @app.context_processor
    def inject_globals():
        return {"current_year": datetime.now().year, "user": current_user()}

    return app


def get_ai() -> AIClient:
    return current_app.extensions["ai_client"]


def render_markdown(text):
    # escape raw HTML from model output
    return markdown.markdown(str(escape(text or "")), extensions=["fenced_code", "nl2br"])


def _uid():
    return session["user_id"]


def _client_now() -> datetime:
    """Now on the user's wall clock, from the tz_offset cookie when present."""
    offset = request.cookies.get(TZ_OFFSET_COOKIE)
    if offset:
        try:
            minutes = int(offset)
        except ValueError:
            minutes = None
        if minutes is not None and abs(minutes) <= MAX_TZ_OFFSET_MINUTES:
            # getTimezoneOffset() is UTC minus local time
            return _now(timezone.utc).replace(tzinfo=None) - timedelta(minutes=minutes)
        current_app.logger.info("Ignoring bad %s cookie %r", TZ_OFFSET_COOKIE, offset)
    return _now()


def _json_body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _ai_error(e):
    current_app.logger.warning("AI request failed: %s", e)
    return jsonify({"error": "AI assistant is currently unavailable. Please try again later."}), 503


def _db_error_json(e):
    current_app.logger.error("Database error: %s", e)
    return jsonify({"error": "Could not reach the health database."}), 503


# ============================================================
# Auth
# ============================================================
@web.route("/")
def index():
    if session.get("user_id"):
        return redirect(url_for("web.dashboard"))
    return redirect(url_for("web.login"))


@web.route("/register", methods=["GET", "POST"])
def register():
    if request.method == "POST":
        full_name = request.form.get("full_name", "").strip()
        email = request.form.get("email", "").strip().lower()
        password = request.form.get("password", "")
        if not all([full_name, email, password]):
            flash("Please fill all fields.", "danger")
            return redirect(url_for("web.register"))
        try:
            register_user(get_supabase(), email, password, full_name)
        except (AuthError, DatabaseError) as e:
            flash(f"Sign-up failed: {e}", "danger")
            return redirect(url_for("web.register"))
        return redirect(url_for("web.sign_up_success"))
    return render_template("register.html")


@web.route("/auth/sign-up-success")
def sign_up_success():
    return render_template("sign_up_success.html")


@web.route("/login", methods=["GET", "POST"])
def login():
    if request.method == "POST":
        email = request.form.get("email", "").strip().lower()
        password = request.form.get("password", "")
        try:
            user = login_user(get_supabase(), email, password)
        except (AuthError, DatabaseError) as e:
            flash(str(e), "danger")
            return render_template("login.html"), 401
        session.clear()
        remember_user(user)
        current_app.logger.info("User %s signed in", user.id)
        return redirect(url_for("web.dashboard"))
    return render_template("login.html")


@web.route("/logout")
def logout():
    try:
        logout_user(get_supabase())
    except DatabaseError as e:
        current_app.logger.warning("Logout without Supabase: %s", e)
    session.clear()
    flash("Logged out successfully.", "info")
    return redirect(url_for("web.login"))


# ============================================================
# Dashboard & conditions
# ============================================================
@web.route("/dashboard")
@login_required
def dashboard():
    conditions = []
    try:
        conditions = condition_model.list_conditions(get_supabase(), _uid())
    except DatabaseError:
        flash("Error loading conditions.", "danger")
    return render_template("dashboard.html", conditions=conditions)


@web.route("/dashboard/conditions", methods=["POST"])
@login_required
def add_condition():
    try:
        condition_model.add_condition(get_supabase(), _uid(), request.form.get("name"))
    except ValidationError as e:
        flash(str(e), "warning")
    except DatabaseError:
        flash("Error adding condition.", "danger")
    return redirect(url_for("web.dashboard"))


@web.route("/dashboard/conditions/<condition_id>/delete", methods=["POST"])
@login_required
def delete_condition(condition_id):
    try:
        condition_model.delete_condition(get_supabase(), _uid(), condition_id)
    except DatabaseError:
        flash("Error deleting condition.", "danger")
    return redirect(url_for("web.dashboard"))


# ============================================================
# Medications
# ============================================================
def _owned_condition(condition_id):
    if not condition_id:
        return None
    return condition_model.get_condition(get_supabase(), _uid(), condition_id)


@web.route("/dashboard/medications", methods=["GET", "POST"])
@login_required
def medications():
    condition_id = request.args.get("condition")
    try:
        condition = _owned_condition(condition_id)
    except DatabaseError:
        flash("Error loading condition.", "danger")
        return redirect(url_for("web.dashboard"))
    if condition is None:
        return redirect(url_for("web.dashboard"))

    if request.method == "POST":
        try:
            medication_model.add_medication(get_supabase(), _uid(), condition.id, request.form)
        except ValidationError as e:
            flash(str(e), "warning")
        except DatabaseError as e:
            flash(f"Error adding medication: {e}", "danger")
        return redirect(url_for("web.medications", condition=condition.id))

    meds = []
    try:
        meds = medication_model.list_medications(get_supabase(), _uid(), condition.id)
    except DatabaseError:
        flash("Error loading medications.", "danger")
    return render_template(
        "medications.html",
        condition=condition,
        medications=meds,
        today=_client_now().date(),
    )


@web.route("/dashboard/medications/<medication_id>/update", methods=["POST"])
@login_required
def update_medication(medication_id):
    condition_id = request.args.get("condition")
    try:
        medication_model.update_medication(get_supabase(), _uid(), medication_id, request.form)
    except ValidationError as e:
        flash(str(e), "warning")
    except DatabaseError as e:
        flash(f"Error updating medication: {e}", "danger")
    return redirect(url_for("web.medications", condition=condition_id))


@web.route("/dashboard/medications/<medication_id>/delete", methods=["POST"])
@login_required
def delete_medication(medication_id):
    condition_id = request.args.get("condition")
    try:
        medication_model.delete_medication(get_supabase(), _uid(), medication_id)
    except DatabaseError:
        flash("Error deleting medication.", "danger")
    return redirect(url_for("web.medications", condition=condition_id))


# ============================================================
# Health logs
# ============================================================
@web.route("/dashboard/health-logs", methods=["GET", "POST"])
@login_required
def health_logs():
    if request.method == "POST":
        try:
            health_log_model.add_health_log(
                get_supabase(), _uid(), request.form.get("log_date"), request.form.get("notes")
            )
        except ValidationError as e:
            flash(str(e), "warning")
        except DatabaseError as e:
            flash(f"Error adding health log: {e}", "danger")
        return redirect(url_for("web.health_logs"))

    logs = []
    try:
        logs = health_log_model.list_health_logs(get_supabase(), _uid())
    except DatabaseError:
        flash("Error loading health logs.", "danger")
    return render_template("health_logs.html", logs=logs, today=_client_now().date().isoformat())


@web.route("/dashboard/health-logs/<log_id>/update", methods=["POST"])
@login_required
def update_health_log(log_id):
    try:
        health_log_model.update_health_log(
            get_supabase(), _uid(), log_id, request.form.get("log_date"), request.form.get("notes")
        )
    except ValidationError as e:
        flash(str(e), "warning")
    except DatabaseError as e:
        flash(f"Error updating health log: {e}", "danger")
    return redirect(url_for("web.health_logs"))


@web.route("/dashboard/health-logs/<log_id>/delete", methods=["POST"])
@login_required
def delete_health_log(log_id):
    try:
        health_log_model.delete_health_log(get_supabase(), _uid(), log_id)
    except DatabaseError:
        flash("Error deleting health log.", "danger")
    return redirect(url_for("web.health_logs"))


# ============================================================
# Reminders
# ============================================================
def _load_board(now):
    meds = medication_model.list_user_medications(get_supabase(), _uid())
    reminders = build_reminders(meds, now)
    return ReminderBoard.from_state(reminders, now, session.get(REMINDER_SESSION_KEY))


def _save_board(board):
    session[REMINDER_SESSION_KEY] = board.to_state()


@web.route("/dashboard/reminders")
@login_required
def reminders_page():
    now = _client_now()
    try:
        board = _load_board(now)
    except DatabaseError:
        flash("Error loading medications.", "danger")
        board = ReminderBoard.from_state([], now, None)
    return render_template(
        "reminders.html",
        board=board,
        poll_seconds=current_app.config["REMINDER_POLL_SECONDS"],
    )


@web.route("/dashboard/reminders/taken", methods=["POST"])
@login_required
def mark_reminder_taken():
    medication_id = request.form.get("medication_id")
    time_str = request.form.get("time")
    if medication_id and time_str:
        try:
            board = _load_board(_client_now())
        except DatabaseError:
            flash("Error loading medications.", "danger")
            return redirect(url_for("web.reminders_page"))
        reminder = board.find(medication_id, time_str)
        if reminder is None:
            flash("Unknown reminder.", "warning")
            return redirect(url_for("web.reminders_page"))
        board.mark_taken(medication_id, time_str)
        _save_board(board)
        flash(f"Marked as taken for {reminder.display_time}", "success")
    return redirect(url_for("web.reminders_page"))


@web.route("/api/reminders/due", methods=["GET"])
@login_required
def reminders_due():
    now = _client_now()
    try:
        board = _load_board(now)
    except DatabaseError as e:
        return _db_error_json(e)
    due = board.due_notifications(now)
    _save_board(board)
    return jsonify({
        "time": clock(now),
        "notifications": [
            {
                "key": r.key,
                "title": "Medication Reminder",
                "body": f"Time to take {r.medication.name} ({r.medication.dosage})",
            }
            for r in due
        ],
    })


@web.route("/api/reminders/taken", methods=["POST"])
@login_required
def api_mark_taken():
    data = _json_body()
    medication_id, time_str = data.get("medication_id"), data.get("time")
    if not medication_id or not time_str:
        return jsonify({"error": "medication_id and time are required"}), 400
    try:
        board = _load_board(_client_now())
    except DatabaseError as e:
        return _db_error_json(e)
    if board.find(medication_id, time_str) is None:
        return jsonify({"error": "Unknown reminder"}), 404
    board.mark_taken(medication_id, time_str)
    _save_board(board)
    return jsonify({"ok": True, "completed": board.completed_count()})


# ============================================================
# AI features
# ============================================================
@web.route("/dashboard/insights")
@login_required
def insights_page():
    names = []
    try:
        conditions = medication_model.conditions_with_medications(get_supabase(), _uid())
        names = sorted({m.name for c in conditions for m in c.medications})
    except DatabaseError:
        flash("Error loading medications.", "danger")
    return render_template("insights.html", medication_names=names, urgency_guidance=URGENCY_GUIDANCE)


@web.route("/api/greeting", methods=["GET"])
@login_required
def api_greeting():
    user = current_user()
    try:
        greeting = health_actions.generate_health_greeting(get_ai(), user.display_name)
    except AIServiceError as e:
        current_app.logger.warning("Failed to generate greeting: %s", e)
        greeting = health_actions.GREETING_FALLBACK
    return jsonify({"greeting": greeting, "html": render_markdown(greeting)})


@web.route("/api/insights", methods=["POST"])
@login_required
@limiter.limit(ai_rate_limit)
def api_insights():
    try:
        result = health_actions.analyze_health_logs(get_ai(), get_supabase(), _uid())
    except DatabaseError as e:
        return _db_error_json(e)
    except AIServiceError as e:
        return _ai_error(e)
    return jsonify(result.model_dump())


@web.route("/api/symptoms", methods=["POST"])
@login_required
@limiter.limit(ai_rate_limit)
def api_symptoms():
    try:
        result = health_actions.analyze_symptoms(get_ai(), _json_body().get("symptoms", ""))
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except AIServiceError as e:
        return _ai_error(e)
    payload = result.model_dump()
    payload["guidance"] = URGENCY_GUIDANCE[result.urgency]
    return jsonify(payload)


@web.route("/api/interactions", methods=["POST"])
@login_required
@limiter.limit(ai_rate_limit)
def api_interactions():
    medications = _json_body().get("medications") or []
    if not isinstance(medications, list):
        return jsonify({"error": "medications must be a list of names"}), 400
    try:
        names = [m for m in medications if isinstance(m, str) and m.strip()]
        result = health_actions.check_drug_interactions(get_ai(), names)
    except AIServiceError as e:
        return _ai_error(e)
    return jsonify(result.model_dump())


@web.route("/api/missed-medication", methods=["POST"])
@login_required
@limiter.limit(ai_rate_limit)
def api_missed_medication():
    data = _json_body()
    now = _client_now()
    try:
        board = _load_board(now)
    except DatabaseError as e:
        return _db_error_json(e)
    context = board.missed_context(data.get("medication_id"), data.get("scheduled_time"))
    if context is None:
        return jsonify({"error": "Unknown reminder"}), 404
    try:
        advice = health_actions.advise_missed_medication(get_ai(), current_time=clock(now), **context)
    except AIServiceError as e:
        return _ai_error(e)
    payload = advice.model_dump()
    payload["context"] = context
    return jsonify(payload)


@web.route("/api/summary/<period>", methods=["POST"])
@login_required
@limiter.limit(ai_rate_limit)
def api_summary(period):
    try:
        result = health_actions.generate_health_summary(
            get_ai(), get_supabase(), _uid(), period, today=_client_now().date()
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except DatabaseError as e:
        return _db_error_json(e)
    except AIServiceError as e:
        return _ai_error(e)
    return jsonify(result.model_dump())


@web.route("/health", methods=["GET"])
@limiter.exempt
def health():
    return jsonify({"status": "ok", "time": time.time()}), 200


# ============================================================
# Run
# ============================================================
if __name__ == "__main__":
    # For production use gunicorn
    port = int(os.environ.get("PORT", 5000))
    create_app().run(host="0.0.0.0", port=port, debug=os.environ.get("FLASK_DEBUG", "False") == "True")
