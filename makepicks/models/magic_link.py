from datetime import datetime, timezone

from makepicks import db
from makepicks.utils.timezone_utils import ensure_utc, get_utc_time


class MagicLink(db.Model):
    """Per-user, per-round pick access token"""

    __tablename__ = "magic_links"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    round_id = db.Column(db.Integer, db.ForeignKey("rounds.id"), nullable=False)
    token = db.Column(db.String(128), nullable=False, unique=True)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    created_at = db.Column(
        db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        db.UniqueConstraint("user_id", "round_id", name="unique_user_round_link"),
        db.Index("idx_magic_link_round", "round_id"),
    )

    def __repr__(self):
        return f"<MagicLink user={self.user_id} round={self.round_id}>"

    def is_valid(self, now=None):
        now = ensure_utc(now) if now else get_utc_time()
        return ensure_utc(self.expires_at) > now
