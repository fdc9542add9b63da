from datetime import datetime, timezone

from makepicks import db
from makepicks.utils.timezone_utils import ensure_utc, get_utc_time


class Round(db.Model):
    """A single pick round (one sport/event) within a season"""

    __tablename__ = "rounds"

    STATUS_DRAFT = "draft"
    STATUS_ACTIVE = "active"
    STATUS_LOCKED = "locked"
    STATUS_COMPLETED = "completed"
    STATUSES = (STATUS_DRAFT, STATUS_ACTIVE, STATUS_LOCKED, STATUS_COMPLETED)

    id = db.Column(db.Integer, primary_key=True)
    season_id = db.Column(db.Integer, db.ForeignKey("seasons.id"), nullable=False)
    sport_name = db.Column(db.String(100), nullable=False)
    pick_type = db.Column(db.String(20), default="single", nullable=False)
    num_write_in_picks = db.Column(db.Integer, default=1, nullable=False)

    # Stored in UTC; timezone is the display zone for emails
    lock_time = db.Column(db.DateTime(timezone=True), nullable=False)
    timezone = db.Column(db.String(64), default="America/New_York", nullable=False)

    status = db.Column(db.String(20), default=STATUS_DRAFT, nullable=False)
    email_message = db.Column(db.Text, nullable=True)

    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    # Relationships
    picks = db.relationship(
        "Pick", backref="round", lazy="dynamic", cascade="all, delete-orphan"
    )
    score_details = db.relationship(
        "ScoreDetail", backref="round", lazy="dynamic", cascade="all, delete-orphan"
    )
    results = db.relationship(
        "RoundResult",
        backref="round",
        lazy="select",
        cascade="all, delete-orphan",
        order_by="RoundResult.place",
    )

    __table_args__ = (
        db.CheckConstraint(
            "status IN ('draft', 'active', 'locked', 'completed')",
            name="check_round_status",
        ),
        db.Index("idx_round_status_lock", "status", "lock_time"),
        db.Index("idx_round_season", "season_id"),
    )

    def __repr__(self):
        return f"<Round {self.id} {self.sport_name} [{self.status}]>"

    @property
    def lock_time_utc(self):
        """Lock time as an aware UTC datetime (SQLite drops tzinfo)"""
        return ensure_utc(self.lock_time)

    @property
    def is_deleted(self):
        return self.deleted_at is not None

    def is_past_lock(self, now=None):
        now = ensure_utc(now) if now else get_utc_time()
        return self.lock_time_utc <= now

    @staticmethod
    def get_expired_active_rounds(now):
        """Active rounds past their lock time in live seasons"""
        from makepicks.models.season import Season

        return (
            Round.query.join(Season, Season.id == Round.season_id)
            .filter(
                Round.status == Round.STATUS_ACTIVE,
                Round.lock_time <= now,
                Round.deleted_at.is_(None),
                Season.is_active.is_(True),
                Season.deleted_at.is_(None),
                Season.ended_at.is_(None),
            )
            .order_by(Round.lock_time, Round.id)
            .all()
        )

    @staticmethod
    def get_open_active_rounds(now):
        """Active rounds still accepting picks in live seasons"""
        from makepicks.models.season import Season

        return (
            Round.query.join(Season, Season.id == Round.season_id)
            .filter(
                Round.status == Round.STATUS_ACTIVE,
                Round.lock_time > now,
                Round.deleted_at.is_(None),
                Season.is_active.is_(True),
                Season.deleted_at.is_(None),
                Season.ended_at.is_(None),
            )
            .order_by(Round.lock_time, Round.id)
            .all()
        )

    @staticmethod
    def get_recently_locked_rounds(since, now):
        """Locked rounds in live seasons whose lock time passed between `since` and `now`"""
        from makepicks.models.season import Season

        return (
            Round.query.join(Season, Season.id == Round.season_id)
            .filter(
                Round.status == Round.STATUS_LOCKED,
                Round.lock_time >= since,
                Round.lock_time <= now,
                Round.deleted_at.is_(None),
                Season.is_active.is_(True),
                Season.deleted_at.is_(None),
                Season.ended_at.is_(None),
            )
            .order_by(Round.lock_time, Round.id)
            .all()
        )

    def to_dict(self):
        return {
            "id": self.id,
            "season_id": self.season_id,
            "sport_name": self.sport_name,
            "pick_type": self.pick_type,
            "lock_time": self.lock_time_utc.isoformat(),
            "timezone": self.timezone,
            "status": self.status,
        }


class RoundResult(db.Model):
    """Official placement (1st..5th) recorded when a round completes"""

    __tablename__ = "round_results"

    id = db.Column(db.Integer, primary_key=True)
    round_id = db.Column(db.Integer, db.ForeignKey("rounds.id"), nullable=False)
    place = db.Column(db.Integer, nullable=False)
    result_value = db.Column(db.String(255), nullable=False)

    __table_args__ = (
        db.UniqueConstraint("round_id", "place", name="unique_round_result_place"),
        db.CheckConstraint("place BETWEEN 1 AND 5", name="check_result_place"),
    )

    def __repr__(self):
        return f"<RoundResult round={self.round_id} place={self.place} {self.result_value}>"
