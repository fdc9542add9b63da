"""
Timezone utility functions for round lock times and reminder scheduling
"""

import logging
from datetime import datetime, time, timezone

import pytz
from flask import current_app, has_app_context

logger = logging.getLogger(__name__)


def get_timezone(name, default="UTC"):
    """Resolve an IANA timezone name, falling back to `default`"""
    try:
        return pytz.timezone(name or default)
    except pytz.UnknownTimeZoneError:
        logger.warning(f"Unknown timezone '{name}', falling back to {default}")
        return pytz.timezone(default)


def get_app_timezone():
    """Get the application's configured timezone"""
    timezone_name = "UTC"
    if has_app_context():
        timezone_name = current_app.config.get("TIMEZONE", "UTC")
    return get_timezone(timezone_name)


def get_utc_time():
    """Get current time in UTC"""
    return datetime.now(timezone.utc)


def ensure_utc(dt):
    """Normalize a datetime to aware UTC; naive values are taken as UTC"""
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def convert_to_timezone(dt, timezone_name):
    """Convert a datetime to the named timezone"""
    if dt is None:
        return None

    return ensure_utc(dt).astimezone(get_timezone(timezone_name))


def parse_time_of_day(value, default=time(10, 0)):
    """Parse 'HH:MM' or 'HH:MM:SS' into a time"""
    if isinstance(value, time):
        return value
    if not value:
        return default

    for fmt in ("%H:%M:%S", "%H:%M"):
        try:
            return datetime.strptime(value.strip(), fmt).time()
        except ValueError:
            continue

    logger.warning(f"Invalid time of day '{value}', using {default.isoformat()}")
    return default


def local_time_today(now, time_of_day, timezone_name):
    """
    Combine the local calendar date of `now` in `timezone_name` with
    `time_of_day`, returning (aware UTC datetime, local date).
    """
    tz = get_timezone(timezone_name)
    local_now = ensure_utc(now).astimezone(tz)
    naive_target = datetime.combine(local_now.date(), time_of_day)
    # pytz needs localize() so the DST offset for that date is applied
    target = tz.localize(naive_target)
    return target.astimezone(timezone.utc), local_now.date()


def format_lock_time(dt, timezone_name, format_str="%A, %B %d at %I:%M %p %Z"):
    """Format a lock time for display in the round's timezone"""
    if dt is None:
        return "TBD"

    return convert_to_timezone(dt, timezone_name).strftime(format_str)
