from datetime import datetime, timezone

from makepicks import db


class SeasonParticipant(db.Model):
    """Membership of a user in a season"""

    __tablename__ = "season_participants"

    id = db.Column(db.Integer, primary_key=True)
    season_id = db.Column(db.Integer, db.ForeignKey("seasons.id"), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    joined_at = db.Column(
        db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    user = db.relationship("User", backref="season_memberships")

    __table_args__ = (
        db.UniqueConstraint("season_id", "user_id", name="unique_season_participant"),
        db.Index("idx_participant_season", "season_id"),
    )

    def __repr__(self):
        return f"<SeasonParticipant season={self.season_id} user={self.user_id}>"


class Season(db.Model):
    __tablename__ = "seasons"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    year_start = db.Column(db.Integer, nullable=False)
    year_end = db.Column(db.Integer, nullable=False)

    # Status
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    is_default = db.Column(db.Boolean, default=False, nullable=False)
    ended_at = db.Column(db.DateTime(timezone=True), nullable=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    # Relationships
    rounds = db.relationship(
        "Round", backref="season", lazy="dynamic", cascade="all, delete-orphan"
    )
    participant_links = db.relationship(
        "SeasonParticipant",
        backref="season",
        lazy="select",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        db.Index("idx_season_active", "is_active"),
        db.Index("idx_season_default", "is_default"),
    )

    def __repr__(self):
        return f"<Season {self.name}>"

    @property
    def is_ended(self):
        return self.ended_at is not None

    @property
    def is_deleted(self):
        return self.deleted_at is not None

    @staticmethod
    def get_default_season():
        """Get the season shown by default on the leaderboard"""
        return Season.query.filter(
            Season.is_default.is_(True), Season.deleted_at.is_(None)
        ).first()

    def get_participants(self, active_only=False):
        """Participants of this season ordered by name"""
        from makepicks.models.user import User

        query = (
            User.query.join(SeasonParticipant, SeasonParticipant.user_id == User.id)
            .filter(SeasonParticipant.season_id == self.id)
        )
        if active_only:
            query = query.filter(User.is_active.is_(True))
        return query.order_by(User.name, User.id).all()

    def add_participant(self, user):
        """Add a user to this season (no-op when already a participant)"""
        existing = SeasonParticipant.query.filter_by(
            season_id=self.id, user_id=user.id
        ).first()
        if existing:
            return existing

        link = SeasonParticipant(season_id=self.id, user_id=user.id)
        db.session.add(link)
        return link

    def get_live_rounds(self):
        """Non-deleted rounds in lock-time order"""
        from makepicks.models.round import Round

        return (
            self.rounds.filter(Round.deleted_at.is_(None))
            .order_by(Round.lock_time, Round.id)
            .all()
        )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "year_start": self.year_start,
            "year_end": self.year_end,
            "is_active": self.is_active,
            "is_default": self.is_default,
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
        }
