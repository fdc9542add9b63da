from functools import wraps

from flask import abort, current_app, jsonify, request
from flask_login import current_user

from makepicks import db, limiter
from makepicks.models import Round, Season, SeasonWinner
from makepicks.models.reminder_log import (
    REMINDER_COMPLETED,
    REMINDER_DAILY_PREFIX,
    REMINDER_FINAL,
    REMINDER_FIRST,
    REMINDER_LOCKED,
)
from makepicks.routes.api import bp
from makepicks.services.notification_service import build_notification_service
from makepicks.services.round_service import RoundService
from makepicks.services.scheduler_service import scheduler_service
from makepicks.services.scoring_service import ScoringService
from makepicks.services.season_service import SeasonService
from makepicks.services.settings_service import SettingsService
from makepicks.utils.cache_utils import cached_route, invalidate_leaderboard_cache
from makepicks.utils.results import ErrorKind, ServiceError, ServiceResult

RESENDABLE_TYPES = (REMINDER_FIRST, REMINDER_FINAL, REMINDER_LOCKED, REMINDER_COMPLETED)


def admin_required(f):
    """Reject callers that are not logged-in admins"""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        if current_app.config.get("LOGIN_DISABLED"):
            return f(*args, **kwargs)
        if not current_user.is_authenticated:
            abort(401)
        if not current_user.is_admin:
            abort(403)
        return f(*args, **kwargs)

    return decorated_function


def admin_rate_limit():
    return current_app.config.get("ADMIN_TRIGGER_RATE_LIMIT", "30 per minute")


def respond(result):
    """JSON body and status code for a ServiceResult"""
    return jsonify(result.to_dict()), result.http_status


def _live_season_or_404(season_id):
    season = db.session.get(Season, season_id)
    if season is None or season.is_deleted:
        abort(404)
    return season


def _live_round_or_404(round_id):
    round_ = db.session.get(Round, round_id)
    if round_ is None or round_.is_deleted:
        abort(404)
    return round_


# ----------------------------------------------------------------
# Public leaderboard
# ----------------------------------------------------------------


@bp.route("/leaderboard/season/<int:season_id>")
@cached_route(timeout=300, key_prefix="leaderboard")
def season_leaderboard(season_id):
    """Ranked leaderboard for a season"""
    season = _live_season_or_404(season_id)
    data = ScoringService().leaderboard(season)
    data["season"] = season.to_dict()
    return jsonify(data)


@bp.route("/leaderboard/season/<int:season_id>/graph")
@cached_route(timeout=300, key_prefix="leaderboard_graph")
def season_graph(season_id):
    """Cumulative points per participant over completed rounds"""
    season = _live_season_or_404(season_id)
    return jsonify(ScoringService().cumulative_graph(season))


@bp.route("/seasons/<int:season_id>/winners")
def season_winners(season_id):
    season = _live_season_or_404(season_id)
    return jsonify([w.to_dict() for w in SeasonWinner.for_season(season.id)])


# ----------------------------------------------------------------
# Admin: seasons
# ----------------------------------------------------------------


@bp.route("/admin/seasons/<int:season_id>/end", methods=["POST"])
@admin_required
@limiter.limit(admin_rate_limit)
def end_season(season_id):
    return respond(SeasonService().end_season(season_id))


@bp.route("/admin/seasons/<int:season_id>/reopen", methods=["POST"])
@admin_required
@limiter.limit(admin_rate_limit)
def reopen_season(season_id):
    return respond(SeasonService().reopen_season(season_id))


@bp.route("/admin/seasons/<int:season_id>/set-default", methods=["PUT"])
@admin_required
def set_default_season(season_id):
    return respond(SeasonService().set_default_season(season_id))


# ----------------------------------------------------------------
# Admin: rounds
# ----------------------------------------------------------------


@bp.route("/admin/rounds/<int:round_id>/activate", methods=["POST"])
@admin_required
def activate_round(round_id):
    return respond(RoundService().activate_round(round_id))


@bp.route("/admin/rounds/<int:round_id>/lock", methods=["POST"])
@admin_required
@limiter.limit(admin_rate_limit)
def lock_round(round_id):
    return respond(RoundService().lock_round(round_id))


@bp.route("/admin/rounds/<int:round_id>/unlock", methods=["POST"])
@admin_required
def unlock_round(round_id):
    return respond(RoundService().unlock_round(round_id))


@bp.route("/admin/rounds/<int:round_id>/complete", methods=["POST"])
@admin_required
def complete_round(round_id):
    data = request.get_json(silent=True) or {}
    placements = data.get("placements")
    if not isinstance(placements, list):
        return respond(
            ServiceResult.failure(ErrorKind.VALIDATION, "placements must be a list")
        )
    return respond(RoundService().complete_round(round_id, placements))


@bp.route("/admin/rounds/<int:round_id>/send-reminder", methods=["POST"])
@admin_required
@limiter.limit(admin_rate_limit)
def send_reminder(round_id):
    """Remind everyone still missing a pick, regardless of the ledger"""
    round_ = _live_round_or_404(round_id)
    if round_.status != Round.STATUS_ACTIVE:
        return respond(
            ServiceResult.failure(
                ErrorKind.INVALID_STATE, "Reminders can only be sent for active rounds"
            )
        )

    count, report = build_notification_service().send_generic_reminder(round_)
    if count == 0:
        return respond(ServiceResult.success("Everyone has already picked", value={"reminded": 0}))
    return respond(
        ServiceResult.success(
            f"Reminder sent to {count} user(s)",
            value={"reminded": count, "failed": report.failed},
        )
    )


@bp.route(
    "/admin/rounds/<int:round_id>/notifications/<string:reminder_type>/resend",
    methods=["POST"],
)
@admin_required
@limiter.limit(admin_rate_limit)
def resend_notification(round_id, reminder_type):
    """Clear a ledger entry and send the notification again"""
    if reminder_type not in RESENDABLE_TYPES and not reminder_type.startswith(
        REMINDER_DAILY_PREFIX
    ):
        return respond(
            ServiceResult.failure(
                ErrorKind.VALIDATION, f"Unknown notification type '{reminder_type}'"
            )
        )

    round_ = _live_round_or_404(round_id)
    try:
        outcome = build_notification_service().manual_resend(round_, reminder_type)
    except ServiceError as e:
        return respond(e.to_result())
    if not outcome.sent:
        return respond(
            ServiceResult.success(
                f"Nothing sent for {reminder_type}: {outcome.reason}",
                value={"recipients": 0},
            )
        )
    return respond(
        ServiceResult.success(
            f"{reminder_type} notification sent",
            value={
                "recipients": outcome.recipient_count,
                "sent": outcome.report.sent,
                "failed": outcome.report.failed,
            },
        )
    )


@bp.route("/admin/rounds/auto-lock-expired", methods=["POST"])
@admin_required
@limiter.limit(admin_rate_limit)
def auto_lock_expired():
    """Run a round clock tick now"""
    return respond(scheduler_service.force_tick(current_app._get_current_object()))


# ----------------------------------------------------------------
# Admin: scheduler and settings
# ----------------------------------------------------------------


@bp.route("/admin/scheduler/status")
@admin_required
def scheduler_status():
    return jsonify(scheduler_service.get_status())


@bp.route("/admin/scheduler/tick", methods=["POST"])
@admin_required
@limiter.limit(admin_rate_limit)
def scheduler_tick():
    return respond(scheduler_service.force_tick(current_app._get_current_object()))


@bp.route("/admin/settings/points", methods=["PUT"])
@admin_required
def update_points():
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or not data:
        return respond(
            ServiceResult.failure(ErrorKind.VALIDATION, "Expected a {place: points} object")
        )

    result = SettingsService().update_points_settings(data)
    if result.ok:
        invalidate_leaderboard_cache()
    return respond(result)
