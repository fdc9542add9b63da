"""Season Winner Model - final top-five standings written at season end"""

from datetime import datetime, timezone

from makepicks import db


class SeasonWinner(db.Model):
    """Tracks season winners (places 1-5, ties share a place)"""

    __tablename__ = "season_winners"

    id = db.Column(db.Integer, primary_key=True)
    season_id = db.Column(db.Integer, db.ForeignKey("seasons.id"), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    place = db.Column(db.Integer, nullable=False)
    total_points = db.Column(db.Integer, default=0, nullable=False)

    created_at = db.Column(
        db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    # Relationships
    season = db.relationship("Season", backref="winners")
    user = db.relationship("User", backref="season_wins")

    __table_args__ = (
        db.UniqueConstraint("season_id", "user_id", name="unique_season_winner"),
        db.Index("idx_winner_season", "season_id"),
        db.Index("idx_winner_user", "user_id"),
    )

    def __repr__(self):
        return f"<SeasonWinner season={self.season_id} place={self.place}: User {self.user_id}>"

    @staticmethod
    def for_season(season_id):
        return (
            SeasonWinner.query.filter_by(season_id=season_id)
            .order_by(SeasonWinner.place, SeasonWinner.id)
            .all()
        )

    def to_dict(self):
        return {
            "place": self.place,
            "user_id": self.user_id,
            "name": self.user.name if self.user else None,
            "total_points": self.total_points,
        }
