from datetime import datetime, timezone

from makepicks import db


class Setting(db.Model):
    """Admin-editable key/value settings"""

    __tablename__ = "settings"

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(64), nullable=False, unique=True)
    value = db.Column(db.Text, nullable=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self):
        return f"<Setting {self.key}={self.value}>"

    @staticmethod
    def as_dict(keys=None):
        query = Setting.query
        if keys:
            query = query.filter(Setting.key.in_(list(keys)))
        return {row.key: row.value for row in query.all()}

    @staticmethod
    def put(key, value):
        row = Setting.query.filter_by(key=key).first()
        if row is None:
            row = Setting(key=key)
            db.session.add(row)
        row.value = None if value is None else str(value)
        return row
