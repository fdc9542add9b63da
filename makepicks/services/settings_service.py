"""
Settings lookups with a short-lived cache.

Point values and reminder policy are read on every scheduler tick and
leaderboard request, so they are cached for SETTINGS_CACHE_TTL seconds
and the cache is cleared whenever an admin writes a setting.
"""

import logging

from cachelib import SimpleCache
from flask import current_app

from makepicks import db
from makepicks.models import ScoringRule, Setting
from makepicks.models.score_detail import PLACES
from makepicks.models.scoring_rule import MAX_POINTS, MIN_POINTS
from makepicks.services.reminder_planner import ReminderPolicy
from makepicks.utils.results import ErrorKind, ServiceResult
from makepicks.utils.timezone_utils import get_app_timezone, parse_time_of_day

logger = logging.getLogger(__name__)

DEFAULT_POINTS = {0: 0, 1: 6, 2: 5, 3: 4, 4: 3, 5: 2, 6: 1}

DEFAULT_SETTINGS = {
    "reminder_type": "daily",
    "daily_reminder_time": "10:00:00",
    "reminder_first_hours": "48",
    "reminder_final_hours": "6",
    "send_admin_summary": "true",
    "email_notifications_enabled": "true",
    "app_title": "Go Make Your Picks",
}


def get_settings_cache():
    """Settings cache for the current app, created on first use"""
    settings_cache = current_app.extensions.get("settings_cache")
    if settings_cache is None:
        settings_cache = SimpleCache(
            default_timeout=int(current_app.config.get("SETTINGS_CACHE_TTL", 60))
        )
        current_app.extensions["settings_cache"] = settings_cache
    return settings_cache


def _parse_bool(value):
    return str(value).strip().lower() in ("true", "1", "yes", "on")


class SettingsService:
    """Reads admin settings and scoring rules through a short-lived cache"""

    def __init__(self, cache=None):
        self.cache = cache if cache is not None else get_settings_cache()

    def _cached(self, key, loader):
        """Return the cached value for key, loading and storing it on a miss"""
        value = self.cache.get(key)
        if value is None:
            value = loader()
            self.cache.set(key, value)
        return value

    # ----------------------------------------------------------------
    # Points
    # ----------------------------------------------------------------

    def get_points_settings(self):
        """Live point values keyed by place, defaults filled in"""
        return dict(self._cached("points:live", self._load_live_points))

    def _load_live_points(self):
        points = dict(DEFAULT_POINTS)
        for rule in ScoringRule.live_rules():
            points[rule.place] = rule.points
        return points

    def get_snapshot_points(self, season_id):
        """Snapshot point values for a season, or None if incomplete"""
        return self._cached(
            f"points:season:{season_id}", lambda: self._load_snapshot(season_id)
        )

    def _load_snapshot(self, season_id):
        rules = {rule.place: rule.points for rule in ScoringRule.snapshot_for(season_id)}
        if set(rules) != set(PLACES):
            return False  # cached marker for "no usable snapshot"
        return rules

    def get_points_for_season(self, season):
        """
        Point values that apply to a season.

        Ended seasons use their snapshot; an ended season with a missing or
        partial snapshot falls back to live values with a warning.
        """
        if season is not None and season.is_ended:
            snapshot = self.get_snapshot_points(season.id)
            if snapshot:
                return dict(snapshot)
            logger.warning(
                f"Season {season.id} has ended but has no complete points snapshot; "
                f"using live point values"
            )
        return self.get_points_settings()

    def update_points_settings(self, mapping):
        """Write live point values and clear the cache"""
        try:
            cleaned = {}
            for place, points in mapping.items():
                place = int(place)
                points = int(points)
                if place not in PLACES:
                    return ServiceResult.failure(
                        ErrorKind.VALIDATION, f"Place {place} is not between 0 and 6"
                    )
                if not MIN_POINTS <= points <= MAX_POINTS:
                    return ServiceResult.failure(
                        ErrorKind.VALIDATION,
                        f"Points for place {place} must be between {MIN_POINTS} and {MAX_POINTS}",
                    )
                cleaned[place] = points
        except (TypeError, ValueError):
            return ServiceResult.failure(
                ErrorKind.VALIDATION, "Point values must be integers"
            )

        try:
            existing = {rule.place: rule for rule in ScoringRule.live_rules()}
            for place, points in cleaned.items():
                rule = existing.get(place)
                if rule is None:
                    db.session.add(ScoringRule(season_id=None, place=place, points=points))
                else:
                    rule.points = points
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            logger.error(f"Failed to update point settings: {e}", exc_info=True)
            return ServiceResult.failure(ErrorKind.INTERNAL, "Failed to update point settings")

        self.clear_cache()
        logger.info(f"Live point settings updated: {cleaned}")
        return ServiceResult.success("Point settings updated", value=self.get_points_settings())

    # ----------------------------------------------------------------
    # Key/value settings
    # ----------------------------------------------------------------

    def get_all(self):
        def load():
            values = dict(DEFAULT_SETTINGS)
            values.update(
                {k: v for k, v in Setting.as_dict().items() if v is not None}
            )
            return values

        return dict(self._cached("settings:all", load))

    def get_text(self, key):
        return self.get_all().get(key, DEFAULT_SETTINGS.get(key))

    def get_flag(self, key):
        return _parse_bool(self.get_text(key))

    def update_setting(self, key, value):
        try:
            Setting.put(key, value)
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            logger.error(f"Failed to update setting {key}: {e}", exc_info=True)
            return ServiceResult.failure(ErrorKind.INTERNAL, f"Failed to update {key}")

        self.clear_cache()
        return ServiceResult.success(f"Setting {key} updated")

    def get_reminder_policy(self, poll_seconds=None):
        """Reminder policy built from the stored settings"""
        values = self.get_all()
        if poll_seconds is None:
            poll_seconds = current_app.config.get("SCHEDULER_POLL_SECONDS", 300)

        kind = (values.get("reminder_type") or "daily").strip().lower()
        try:
            first_hours = float(values.get("reminder_first_hours"))
            final_hours = float(values.get("reminder_final_hours"))
        except (TypeError, ValueError):
            logger.warning("Invalid reminder hour settings; using 48h/6h")
            first_hours, final_hours = 48.0, 6.0

        if kind == "before_lock":
            return ReminderPolicy.before_lock(first_hours, final_hours, poll_seconds)
        if kind == "daily":
            return ReminderPolicy.daily(
                parse_time_of_day(values.get("daily_reminder_time")),
                values.get("reminder_timezone") or get_app_timezone().zone,
            )
        if kind != "none":
            logger.warning(f"Unknown reminder type '{kind}'; reminders disabled")
        return ReminderPolicy.none()

    def clear_cache(self):
        self.cache.clear()
        logger.debug("Settings cache cleared")
