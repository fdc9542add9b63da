"""
Round notifications with at-most-once delivery per (round, type).

A ReminderLog row is the record that a notification went out. The
check for an existing row and the insert after dispatch are separate
steps, so two callers racing through them at the same moment could
both send; the round clock's single-run guard keeps scheduled ticks
from overlapping.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from flask import current_app

from makepicks import db
from makepicks.models import Pick, ReminderLog, Round, User
from makepicks.models.reminder_log import (
    BROADCAST_TYPES,
    REMINDER_COMPLETED,
    REMINDER_LOCKED,
)
from makepicks.services.magic_link_service import MagicLinkService
from makepicks.services.scoring_service import ScoringService
from makepicks.services.settings_service import SettingsService
from makepicks.utils.email_service import (
    EmailService,
    OutboundMessage,
    Recipient,
    merge_by_email,
)
from makepicks.utils.results import ErrorKind, ServiceError
from makepicks.utils.timezone_utils import ensure_utc, format_lock_time, get_utc_time

logger = logging.getLogger(__name__)

SUMMARY_NAME_LIMIT = 25
STANDINGS_LIMIT = 10


@dataclass
class NotificationOutcome:
    round_id: int
    reminder_type: str
    sent: bool
    reason: str = ""
    recipient_count: int = 0
    report: Optional[object] = None
    user_ids: list = field(default_factory=list)


def _join_names(names):
    if len(names) <= 1:
        return "".join(names)
    return ", ".join(names[:-1]) + f" and {names[-1]}"


class NotificationService:
    """Builds, dispatches and records round notifications"""

    def __init__(self, email_service=None, settings=None, links=None):
        self.email = email_service or EmailService()
        self.settings = settings or SettingsService()
        self.links = links or MagicLinkService()

    # ----------------------------------------------------------------
    # Recipients
    # ----------------------------------------------------------------

    def users_without_pick(self, round_):
        """Active season participants with no non-blank pick"""
        picked = Pick.user_ids_with_pick(round_.id)
        return [
            user
            for user in round_.season.get_participants(active_only=True)
            if user.id not in picked
        ]

    def recipients_for(self, round_, reminder_type):
        if reminder_type in BROADCAST_TYPES:
            return round_.season.get_participants()
        return self.users_without_pick(round_)

    # ----------------------------------------------------------------
    # Message bodies
    # ----------------------------------------------------------------

    def _reminder_message(self, round_, email, recipients):
        title = self.settings.get_text("app_title")
        names = [r.name for r in recipients]
        lock_display = format_lock_time(round_.lock_time_utc, round_.timezone)

        lines = [
            f"Hi {_join_names(names)},",
            "",
            f"Picks for {round_.sport_name} lock on {lock_display}.",
            "You haven't made your pick yet.",
        ]
        if round_.email_message:
            lines += ["", round_.email_message]
        lines.append("")
        for recipient in recipients:
            if recipient.pick_url:
                prefix = f"{recipient.name}: " if len(recipients) > 1 else ""
                lines.append(f"{prefix}{recipient.pick_url}")
        lines += ["", f"- {title}"]

        return OutboundMessage(
            to_email=email,
            subject=f"Reminder: make your {round_.sport_name} picks",
            body_text="\n".join(lines),
            user_ids=[r.user_id for r in recipients],
        )

    def _locked_message(self, round_, email, recipients):
        title = self.settings.get_text("app_title")
        names = [r.name for r in recipients]
        lines = [
            f"Hi {_join_names(names)},",
            "",
            f"Picks for {round_.sport_name} are now locked.",
            "Everyone's picks are now visible on the leaderboard:",
            f"{self.links.app_url}/",
            "",
            f"- {title}",
        ]

        return OutboundMessage(
            to_email=email,
            subject=f"{round_.sport_name} picks are locked",
            body_text="\n".join(lines),
            user_ids=[r.user_id for r in recipients],
        )

    def _completed_message(self, round_, email, recipients, board):
        title = self.settings.get_text("app_title")
        names = [r.name for r in recipients]
        by_user = {entry["userId"]: entry for entry in board}
        finish = ", ".join(f"{r.place}. {r.result_value}" for r in round_.results)

        lines = [
            f"Hi {_join_names(names)},",
            "",
            f"Results for {round_.sport_name} are in.",
            f"Finish: {finish}",
            "",
        ]
        for recipient in recipients:
            entry = by_user.get(recipient.user_id)
            if entry is None:
                continue
            score = entry["scores"].get(round_.id) or {}
            lines.append(
                f"{recipient.name}: {score.get('total_points', 0)} point(s) this round, "
                f"{entry['totalPoints']} total, rank {entry['rank']}"
            )

        lines += ["", "Standings:"]
        for entry in board[:STANDINGS_LIMIT]:
            lines.append(f"  {entry['rank']}. {entry['userName']} - {entry['totalPoints']}")
        if len(board) > STANDINGS_LIMIT:
            lines.append(f"  ... and {len(board) - STANDINGS_LIMIT} more")
        lines += ["", "Full leaderboard:", f"{self.links.app_url}/", "", f"- {title}"]

        return OutboundMessage(
            to_email=email,
            subject=f"{round_.sport_name} results are in",
            body_text="\n".join(lines),
            user_ids=[r.user_id for r in recipients],
        )

    def build_messages(self, round_, reminder_type, users, pick_urls=None, board=None):
        """One message per distinct address, naming everyone who shares it"""
        pick_urls = pick_urls or {}
        recipients = [
            Recipient(user.id, user.name, user.email, pick_urls.get(user.id))
            for user in users
        ]

        messages = []
        for email, group in merge_by_email(recipients):
            if reminder_type == REMINDER_LOCKED:
                messages.append(self._locked_message(round_, email, group))
            elif reminder_type == REMINDER_COMPLETED:
                messages.append(self._completed_message(round_, email, group, board or []))
            else:
                messages.append(self._reminder_message(round_, email, group))
        return messages

    # ----------------------------------------------------------------
    # Ledger operations
    # ----------------------------------------------------------------

    def send_if_not_sent(self, round_, reminder_type, now=None):
        """
        Send `reminder_type` for `round_` unless the ledger already has it.

        Nothing is recorded when there is nobody to notify, so a later
        tick can pick the round up again.
        """
        if ReminderLog.exists(round_.id, reminder_type):
            logger.debug(f"{reminder_type} already sent for round {round_.id}; skipping")
            return NotificationOutcome(round_.id, reminder_type, False, "already_sent")

        users = self.recipients_for(round_, reminder_type)
        if not users:
            logger.info(f"No recipients for {reminder_type} on round {round_.id}")
            return NotificationOutcome(round_.id, reminder_type, False, "no_recipients")

        pick_urls = {}
        if reminder_type not in BROADCAST_TYPES:
            pick_urls = self.links.ensure_links(users, round_, now=now)
            # Links must exist before anyone can click them
            db.session.commit()

        board = None
        if reminder_type == REMINDER_COMPLETED:
            board = ScoringService(self.settings).leaderboard(round_.season)["leaderboard"]

        messages = self.build_messages(round_, reminder_type, users, pick_urls, board=board)
        report = self.email.batch_send(
            messages, enabled=self.settings.get_flag("email_notifications_enabled")
        )

        ReminderLog.record(round_.id, reminder_type, len(users), sent_at=now)
        db.session.commit()

        logger.info(
            f"Sent {reminder_type} for round {round_.id} ({round_.sport_name}) "
            f"to {len(users)} user(s) in {len(messages)} message(s): {report.summary()}"
        )

        if reminder_type not in BROADCAST_TYPES and self.settings.get_flag("send_admin_summary"):
            self.send_admin_summary(round_, reminder_type, users)

        return NotificationOutcome(
            round_.id,
            reminder_type,
            True,
            "sent",
            recipient_count=len(users),
            report=report,
            user_ids=[u.id for u in users],
        )

    def check_can_send(self, round_, reminder_type, now=None):
        """
        Raise ServiceError(INVALID_STATE) unless `round_` is in a state
        where `reminder_type` still applies: pick reminders only while
        the round is active and before its lock time, the locked notice
        once it is locked, and results once it is completed.
        """
        now = ensure_utc(now) if now else get_utc_time()
        if reminder_type == REMINDER_COMPLETED:
            allowed = round_.status == Round.STATUS_COMPLETED
        elif reminder_type == REMINDER_LOCKED:
            allowed = round_.status in (Round.STATUS_LOCKED, Round.STATUS_COMPLETED)
        else:
            allowed = round_.status == Round.STATUS_ACTIVE and not round_.is_past_lock(now)

        if not allowed:
            raise ServiceError(
                ErrorKind.INVALID_STATE,
                f"Cannot send {reminder_type} for round {round_.id}: round is "
                f"{round_.status}, lock time {round_.lock_time_utc.isoformat()}",
            )

    def manual_resend(self, round_, reminder_type, now=None):
        """
        Drop the ledger entry and send again.

        Raises ServiceError before touching the ledger when the round's
        state rules the notification out.
        """
        self.check_can_send(round_, reminder_type, now=now)
        removed = ReminderLog.clear(round_.id, reminder_type)
        db.session.commit()
        if removed:
            logger.info(f"Cleared {removed} {reminder_type} log row(s) for round {round_.id}")
        return self.send_if_not_sent(round_, reminder_type, now=now)

    def send_generic_reminder(self, round_, now=None):
        """Admin 'remind now': nudge users without picks, outside the ledger"""
        users = self.users_without_pick(round_)
        if not users:
            return 0, None

        pick_urls = self.links.ensure_links(users, round_, now=now)
        db.session.commit()
        messages = self.build_messages(round_, "manual", users, pick_urls)
        report = self.email.batch_send(
            messages, enabled=self.settings.get_flag("email_notifications_enabled")
        )
        logger.info(
            f"Manual reminder for round {round_.id} to {len(users)} user(s): {report.summary()}"
        )
        return len(users), report

    def send_admin_summary(self, round_, reminder_type, missing_users):
        """Tell admins who has and hasn't picked; failures are only logged"""
        try:
            admins = User.get_active_admins()
            if not admins:
                return None

            missing_ids = {u.id for u in missing_users}
            participants = round_.season.get_participants(active_only=True)
            picked = [u.name for u in participants if u.id not in missing_ids]
            missing = [u.name for u in missing_users]

            def listing(names):
                shown = names[:SUMMARY_NAME_LIMIT]
                extra = len(names) - len(shown)
                text = "\n".join(f"  - {name}" for name in shown) or "  (none)"
                if extra > 0:
                    text += f"\n  ... and {extra} more"
                return text

            body = "\n".join(
                [
                    f"Reminder '{reminder_type}' sent for {round_.sport_name}.",
                    "",
                    f"Picked ({len(picked)}):",
                    listing(picked),
                    "",
                    f"Missing ({len(missing)}):",
                    listing(missing),
                ]
            )
            messages = [
                OutboundMessage(
                    to_email=email,
                    subject=f"Reminder summary: {round_.sport_name}",
                    body_text=body,
                    user_ids=[r.user_id for r in group],
                )
                for email, group in merge_by_email(
                    [Recipient(a.id, a.name, a.email) for a in admins]
                )
            ]
            return self.email.batch_send(
                messages, enabled=self.settings.get_flag("email_notifications_enabled")
            )

        except Exception as e:
            logger.error(
                f"Failed to send admin summary for round {round_.id}: {e}", exc_info=True
            )
            return None


def build_notification_service(transport=None):
    """Service wired from the current app config"""
    transport = transport or current_app.extensions.get("email_transport")
    return NotificationService(email_service=EmailService(transport=transport))
