"""
Decides which reminders are due for a round at a given instant.

Pure functions only: no database, no clock, no email. The round clock
feeds in the round's status and lock time plus the current time, and
hands the result to the notification ledger.
"""

from dataclasses import dataclass
from datetime import time, timedelta
from typing import List, Optional

from makepicks.models.reminder_log import (
    REMINDER_DAILY_PREFIX,
    REMINDER_FINAL,
    REMINDER_FIRST,
)
from makepicks.utils.timezone_utils import ensure_utc, local_time_today

POLICY_NONE = "none"
POLICY_BEFORE_LOCK = "before_lock"
POLICY_DAILY = "daily"

DAILY_WINDOW = timedelta(hours=1)


@dataclass(frozen=True)
class ReminderPolicy:
    kind: str = POLICY_NONE
    first_hours: float = 48.0
    final_hours: float = 6.0
    tolerance_hours: float = 0.0
    time_of_day: time = time(10, 0)
    timezone: str = "America/New_York"

    @classmethod
    def none(cls):
        return cls(kind=POLICY_NONE)

    @classmethod
    def before_lock(cls, first_hours, final_hours, poll_seconds=300):
        # Half a polling interval either side, so exactly one tick lands inside
        return cls(
            kind=POLICY_BEFORE_LOCK,
            first_hours=float(first_hours),
            final_hours=float(final_hours),
            tolerance_hours=(poll_seconds / 2) / 3600,
        )

    @classmethod
    def daily(cls, time_of_day, timezone_name):
        return cls(kind=POLICY_DAILY, time_of_day=time_of_day, timezone=timezone_name)


@dataclass(frozen=True)
class DueReminder:
    reminder_type: str
    kind: str
    hours_before_lock: Optional[float] = None


def daily_reminder_type(local_date):
    return f"{REMINDER_DAILY_PREFIX}{local_date.isoformat()}"


def hours_until(lock_time, now):
    return (ensure_utc(lock_time) - ensure_utc(now)).total_seconds() / 3600


def plan_reminders(status, lock_time, now, policy) -> List[DueReminder]:
    """Reminders due for a round in `status` locking at `lock_time`"""
    if status != "active" or policy.kind == POLICY_NONE:
        return []

    remaining = hours_until(lock_time, now)
    if remaining <= 0:
        return []

    due = []
    if policy.kind == POLICY_BEFORE_LOCK:
        for reminder_type, threshold in (
            (REMINDER_FIRST, policy.first_hours),
            (REMINDER_FINAL, policy.final_hours),
        ):
            if abs(remaining - threshold) <= policy.tolerance_hours:
                due.append(DueReminder(reminder_type, POLICY_BEFORE_LOCK, threshold))

    elif policy.kind == POLICY_DAILY:
        target, local_date = local_time_today(now, policy.time_of_day, policy.timezone)
        if abs(ensure_utc(now) - target) <= DAILY_WINDOW:
            due.append(DueReminder(daily_reminder_type(local_date), POLICY_DAILY))

    return due
