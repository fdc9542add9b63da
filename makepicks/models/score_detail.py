from makepicks import db

# Place 0 is "no pick", 6 is "sixth or worse"
NO_PICK_PLACE = 0
LAST_PLACE = 6
PLACES = tuple(range(NO_PICK_PLACE, LAST_PLACE + 1))


class ScoreDetail(db.Model):
    """How many times a user's picks landed on a place in one round"""

    __tablename__ = "score_details"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    round_id = db.Column(db.Integer, db.ForeignKey("rounds.id"), nullable=False)
    place = db.Column(db.Integer, nullable=False)
    count = db.Column(db.Integer, default=1, nullable=False)

    __table_args__ = (
        db.UniqueConstraint(
            "user_id", "round_id", "place", name="unique_score_detail_place"
        ),
        db.CheckConstraint("place BETWEEN 0 AND 6", name="check_score_place"),
        db.CheckConstraint("count >= 0", name="check_score_count"),
        db.Index("idx_score_round", "round_id"),
    )

    def __repr__(self):
        return f"<ScoreDetail user={self.user_id} round={self.round_id} place={self.place} x{self.count}>"

    def to_dict(self):
        return {"place": self.place, "count": self.count}
