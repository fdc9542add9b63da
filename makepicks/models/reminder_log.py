from datetime import datetime, timezone

from makepicks import db

REMINDER_FIRST = "first"
REMINDER_FINAL = "final"
REMINDER_LOCKED = "locked"
REMINDER_COMPLETED = "completed"
REMINDER_DAILY_PREFIX = "daily:"

# Sent to every participant, with no pick links
BROADCAST_TYPES = (REMINDER_LOCKED, REMINDER_COMPLETED)


class ReminderLog(db.Model):
    """Append-only ledger of notifications sent per round.

    One row per (round_id, reminder_type) is kept by the notification
    service. There is no unique constraint, so two writers racing
    between the existence check and the insert could both send.
    """

    __tablename__ = "reminder_log"

    id = db.Column(db.Integer, primary_key=True)
    round_id = db.Column(db.Integer, db.ForeignKey("rounds.id"), nullable=False)
    reminder_type = db.Column(db.String(32), nullable=False)
    recipient_count = db.Column(db.Integer, default=0, nullable=False)
    sent_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    __table_args__ = (
        db.Index("idx_reminder_round_type", "round_id", "reminder_type"),
    )

    def __repr__(self):
        return f"<ReminderLog round={self.round_id} {self.reminder_type} x{self.recipient_count}>"

    @staticmethod
    def exists(round_id, reminder_type):
        return (
            db.session.query(ReminderLog.id)
            .filter_by(round_id=round_id, reminder_type=reminder_type)
            .first()
            is not None
        )

    @staticmethod
    def record(round_id, reminder_type, recipient_count, sent_at=None):
        entry = ReminderLog(
            round_id=round_id,
            reminder_type=reminder_type,
            recipient_count=recipient_count,
            sent_at=sent_at or datetime.now(timezone.utc),
        )
        db.session.add(entry)
        return entry

    @staticmethod
    def clear(round_id, reminder_type):
        """Remove ledger rows so the notification can be sent again"""
        return ReminderLog.query.filter_by(
            round_id=round_id, reminder_type=reminder_type
        ).delete(synchronize_session=False)

    def to_dict(self):
        return {
            "round_id": self.round_id,
            "reminder_type": self.reminder_type,
            "recipient_count": self.recipient_count,
            "sent_at": self.sent_at.isoformat() if self.sent_at else None,
        }
