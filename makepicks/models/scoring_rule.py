"""Point values per finishing place, live and per-season snapshots"""

from datetime import datetime, timezone

from makepicks import db

MIN_POINTS = -10
MAX_POINTS = 20


class ScoringRule(db.Model):
    """Points awarded for a place.

    Rows with ``season_id`` NULL are the live rule set that admins edit.
    Rows with a ``season_id`` are the snapshot copied when that season
    ended and are never edited afterwards.
    """

    __tablename__ = "scoring_rules"

    id = db.Column(db.Integer, primary_key=True)
    season_id = db.Column(db.Integer, db.ForeignKey("seasons.id"), nullable=True)
    place = db.Column(db.Integer, nullable=False)
    points = db.Column(db.Integer, nullable=False)
    created_at = db.Column(
        db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        db.UniqueConstraint("season_id", "place", name="unique_season_rule_place"),
        db.CheckConstraint("place BETWEEN 0 AND 6", name="check_rule_place"),
        db.CheckConstraint(
            f"points BETWEEN {MIN_POINTS} AND {MAX_POINTS}", name="check_rule_points"
        ),
        db.Index("idx_rule_season", "season_id"),
    )

    def __repr__(self):
        scope = f"season {self.season_id}" if self.season_id else "live"
        return f"<ScoringRule {scope} place={self.place} points={self.points}>"

    @staticmethod
    def live_rules():
        return ScoringRule.query.filter(ScoringRule.season_id.is_(None)).all()

    @staticmethod
    def snapshot_for(season_id):
        return ScoringRule.query.filter_by(season_id=season_id).all()
