from datetime import datetime, timezone

from flask_login import UserMixin

from makepicks import db


class User(UserMixin, db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    # Not unique: several participants (e.g. a family) may share one inbox
    email = db.Column(db.String(255), nullable=False, index=True)

    # Account status
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    is_admin = db.Column(db.Boolean, default=False, nullable=False)

    created_at = db.Column(
        db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    # Relationships
    picks = db.relationship(
        "Pick", backref="user", lazy="dynamic", cascade="all, delete-orphan"
    )

    __table_args__ = (db.Index("idx_user_active_status", "is_active"),)

    def __repr__(self):
        return f"<User {self.name} ({self.email})>"

    @staticmethod
    def get_active_admins():
        """Active admins receive reminder summaries"""
        return (
            User.query.filter_by(is_admin=True, is_active=True)
            .order_by(User.name)
            .all()
        )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "is_active": self.is_active,
            "is_admin": self.is_admin,
        }
