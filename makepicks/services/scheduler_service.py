"""
Round clock background scheduler

Runs one repeating APScheduler job. Each tick auto-locks rounds that
passed their lock time, re-drives lock notifications that a crash may
have interrupted, and sends whatever reminders are due for open rounds.
"""

import atexit
import logging
import threading
from datetime import timedelta

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from flask import current_app

from makepicks import db
from makepicks.models import ReminderLog, Round
from makepicks.models.reminder_log import REMINDER_LOCKED
from makepicks.services.notification_service import build_notification_service
from makepicks.services.reminder_planner import plan_reminders
from makepicks.services.settings_service import SettingsService
from makepicks.utils.cache_utils import invalidate_leaderboard_cache
from makepicks.utils.logging_config import ContextualLogger
from makepicks.utils.results import ErrorKind, ServiceResult
from makepicks.utils.timezone_utils import ensure_utc, get_utc_time

logger = logging.getLogger(__name__)

TICK_JOB_ID = "round_clock_tick"


class ConcurrencyGuard:
    """Held/not-held flag; a caller that finds it held is turned away"""

    def __init__(self):
        self._lock = threading.Lock()

    @property
    def held(self):
        return self._lock.locked()

    def try_acquire(self):
        return self._lock.acquire(blocking=False)

    def release(self):
        self._lock.release()

    def run(self, func, *args, **kwargs):
        """Run func if the guard is free; returns (ran, result)"""
        if not self.try_acquire():
            return False, None
        try:
            return True, func(*args, **kwargs)
        finally:
            self.release()


class SchedulerService:
    """Drives round lifecycle work on a fixed interval"""

    def __init__(self, app=None):
        self.scheduler = None
        self.app = app
        self.is_running = False
        self.guard = ConcurrencyGuard()
        self.tick_stats = self._empty_stats()

        if app:
            self.init_app(app)

    @staticmethod
    def _empty_stats():
        return {
            "last_tick": None,
            "total_ticks": 0,
            "successful_ticks": 0,
            "failed_ticks": 0,
            "skipped_ticks": 0,
            "rounds_locked": 0,
            "notifications_sent": 0,
            "last_error": None,
        }

    def init_app(self, app):
        """Initialize scheduler with Flask app"""
        self.app = app
        self.scheduler = BackgroundScheduler(daemon=True, timezone="UTC")

        atexit.register(self.shutdown)

        if app.config.get("SCHEDULER_ENABLED", True):
            self.start()

    def start(self):
        """Start the background scheduler"""
        if self.is_running:
            return

        try:
            self.scheduler.remove_all_jobs()
            self._add_core_jobs()
            self.scheduler.start()
            self.is_running = True

            logger.info("Round clock started")

        except Exception as e:
            logger.error(f"Failed to start scheduler: {e}")
            raise

    def stop(self):
        """Stop the background scheduler"""
        if not self.is_running:
            return

        try:
            self.scheduler.shutdown(wait=False)
            self.is_running = False
            logger.info("Round clock stopped")

        except Exception as e:
            logger.error(f"Error stopping scheduler: {e}")

    def shutdown(self):
        """Graceful shutdown"""
        self.stop()

    def _add_core_jobs(self):
        poll_seconds = self.app.config.get("SCHEDULER_POLL_SECONDS", 300)

        self.scheduler.add_job(
            func=self.scheduled_tick,
            trigger=IntervalTrigger(seconds=poll_seconds),
            id=TICK_JOB_ID,
            name="Round Clock Tick",
            max_instances=1,
            coalesce=True,
            misfire_grace_time=max(30, poll_seconds // 2),
        )

        logger.info(f"Round clock job added (every {poll_seconds}s)")

    # ----------------------------------------------------------------
    # Tick
    # ----------------------------------------------------------------

    def scheduled_tick(self):
        """Entry point for APScheduler; never raises"""
        with self.app.app_context():
            self.tick()

    def tick(self, now=None, notifications=None):
        """
        Run one guarded pass. Returns a summary dict, or None when a
        previous tick still holds the guard.
        """
        ran, summary = self.guard.run(self._run_tick, now, notifications)
        if not ran:
            self.tick_stats["skipped_ticks"] += 1
            logger.warning("Previous round clock tick still running; skipping this tick")
            return None
        return summary

    def _run_tick(self, now=None, notifications=None):
        now = ensure_utc(now) if now else get_utc_time()
        summary = {"locked": 0, "recovered": 0, "reminders": 0, "errors": 0}

        try:
            notifications = notifications or build_notification_service()
            settings = SettingsService()

            locked, lock_errors = self.auto_lock_expired_rounds(now, notifications)
            summary["locked"] = locked
            summary["errors"] += lock_errors

            recovered, recover_errors = self.recover_locked_notifications(now, notifications)
            summary["recovered"] = recovered
            summary["errors"] += recover_errors

            policy = settings.get_reminder_policy(
                poll_seconds=current_app.config.get("SCHEDULER_POLL_SECONDS", 300)
            )
            reminders, reminder_errors = self.send_due_reminders(now, policy, notifications)
            summary["reminders"] = reminders
            summary["errors"] += reminder_errors

            self._update_stats(
                summary["errors"] == 0,
                rounds_locked=locked,
                notifications_sent=recovered + reminders,
            )
            if summary["locked"] or summary["recovered"] or summary["reminders"]:
                logger.info(f"Round clock tick complete: {summary}")

        except Exception as e:
            db.session.rollback()
            summary["errors"] += 1
            self._update_stats(False)
            self.tick_stats["last_error"] = str(e)
            logger.error(f"Error in round clock tick: {e}", exc_info=True)

        return summary

    def auto_lock_expired_rounds(self, now, notifications):
        """Lock active rounds past their lock time, then notify participants"""
        locked = 0
        errors = 0

        for round_ in Round.get_expired_active_rounds(now):
            round_log = ContextualLogger(
                __name__, {"round_id": round_.id, "sport": round_.sport_name}
            )
            try:
                round_.status = Round.STATUS_LOCKED
                db.session.commit()
                locked += 1
                round_log.info("Auto-locked round past its lock time")
                invalidate_leaderboard_cache(round_.season_id)

                # Status is committed first; a crash here is caught by the recovery scan
                notifications.send_if_not_sent(round_, REMINDER_LOCKED, now=now)

            except Exception as e:
                db.session.rollback()
                errors += 1
                self.tick_stats["last_error"] = str(e)
                round_log.error(f"Failed to auto-lock round: {e}", exc_info=True)

        return locked, errors

    def recover_locked_notifications(self, now, notifications):
        """Send lock notifications missing for recently locked rounds"""
        hours = current_app.config.get("LOCKED_NOTIFICATION_RECOVERY_HOURS", 1)
        since = now - timedelta(hours=hours)
        recovered = 0
        errors = 0

        for round_ in Round.get_recently_locked_rounds(since, now):
            if ReminderLog.exists(round_.id, REMINDER_LOCKED):
                continue
            try:
                outcome = notifications.send_if_not_sent(round_, REMINDER_LOCKED, now=now)
                if outcome.sent:
                    recovered += 1
                    logger.warning(
                        f"Recovered missing locked notification for round {round_.id}"
                    )
            except Exception as e:
                db.session.rollback()
                errors += 1
                self.tick_stats["last_error"] = str(e)
                logger.error(
                    f"Failed to recover locked notification for round {round_.id}: {e}",
                    exc_info=True,
                )

        return recovered, errors

    def send_due_reminders(self, now, policy, notifications):
        """Ask the planner about each open round and send what is due"""
        sent = 0
        errors = 0

        for round_ in Round.get_open_active_rounds(now):
            try:
                for due in plan_reminders(round_.status, round_.lock_time_utc, now, policy):
                    outcome = notifications.send_if_not_sent(
                        round_, due.reminder_type, now=now
                    )
                    if outcome.sent:
                        sent += 1
            except Exception as e:
                db.session.rollback()
                errors += 1
                self.tick_stats["last_error"] = str(e)
                logger.error(
                    f"Failed to process reminders for round {round_.id}: {e}",
                    exc_info=True,
                )

        return sent, errors

    # ----------------------------------------------------------------
    # Status and admin controls
    # ----------------------------------------------------------------

    def _update_stats(self, success, rounds_locked=0, notifications_sent=0):
        self.tick_stats["last_tick"] = get_utc_time()
        self.tick_stats["total_ticks"] += 1

        if success:
            self.tick_stats["successful_ticks"] += 1
            self.tick_stats["last_error"] = None
        else:
            self.tick_stats["failed_ticks"] += 1

        self.tick_stats["rounds_locked"] += rounds_locked
        self.tick_stats["notifications_sent"] += notifications_sent

    def get_status(self):
        """Get scheduler status information"""
        jobs = []
        if self.scheduler:
            for job in self.scheduler.get_jobs():
                next_run = getattr(job, "next_run_time", None)
                jobs.append(
                    {
                        "id": job.id,
                        "name": job.name,
                        "next_run": next_run.isoformat() if next_run else None,
                        "trigger": str(job.trigger),
                    }
                )

        stats = dict(self.tick_stats)
        if stats["last_tick"]:
            stats["last_tick"] = stats["last_tick"].isoformat()

        return {
            "is_running": self.is_running,
            "tick_in_progress": self.guard.held,
            "jobs": jobs,
            "stats": stats,
        }

    def force_tick(self, app=None, now=None):
        """Manually run a tick now"""
        app = app or self.app or current_app._get_current_object()

        with app.app_context():
            summary = self.tick(now=now)

        if summary is None:
            return ServiceResult.failure(
                ErrorKind.INVALID_STATE, "A round clock tick is already running"
            )
        return ServiceResult.success("Manual round clock tick completed", value=summary)

    def pause_job(self, job_id=TICK_JOB_ID):
        """Pause a specific job"""
        try:
            self.scheduler.pause_job(job_id)
            return True, f"Job {job_id} paused"
        except Exception as e:
            return False, f"Failed to pause job: {e}"

    def resume_job(self, job_id=TICK_JOB_ID):
        """Resume a specific job"""
        try:
            self.scheduler.resume_job(job_id)
            return True, f"Job {job_id} resumed"
        except Exception as e:
            return False, f"Failed to resume job: {e}"


# Global scheduler instance
scheduler_service = SchedulerService()
