from datetime import datetime, timezone

from makepicks import db


class Pick(db.Model):
    __tablename__ = "picks"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    round_id = db.Column(db.Integer, db.ForeignKey("rounds.id"), nullable=False)

    created_at = db.Column(
        db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    items = db.relationship(
        "PickItem",
        backref="pick",
        lazy="select",
        cascade="all, delete-orphan",
        order_by="PickItem.pick_number",
    )

    __table_args__ = (
        db.UniqueConstraint("user_id", "round_id", name="unique_user_round_pick"),
        db.Index("idx_pick_round", "round_id"),
    )

    def __repr__(self):
        return f"<Pick user_id={self.user_id} round_id={self.round_id}>"

    @property
    def values(self):
        """Non-blank pick values in pick-number order"""
        return [
            item.pick_value.strip()
            for item in self.items
            if item.pick_value and item.pick_value.strip()
        ]

    @property
    def has_value(self):
        return bool(self.values)

    @staticmethod
    def submit(user_id, round_id, values):
        """Create or replace a user's pick for a round"""
        pick = Pick.query.filter_by(user_id=user_id, round_id=round_id).first()
        if pick is None:
            pick = Pick(user_id=user_id, round_id=round_id)
            db.session.add(pick)
        elif pick.items:
            # Old items must be gone before renumbered ones are inserted
            pick.items = []
            db.session.flush()
        pick.items = [
            PickItem(pick_number=number, pick_value=value)
            for number, value in enumerate(values, start=1)
        ]
        return pick

    @staticmethod
    def user_ids_with_pick(round_id):
        """Ids of users holding a pick with at least one non-blank value"""
        rows = (
            db.session.query(Pick.user_id)
            .join(PickItem, PickItem.pick_id == Pick.id)
            .filter(
                Pick.round_id == round_id,
                PickItem.pick_value.isnot(None),
                db.func.trim(PickItem.pick_value) != "",
            )
            .distinct()
            .all()
        )
        return {row[0] for row in rows}


class PickItem(db.Model):
    __tablename__ = "pick_items"

    id = db.Column(db.Integer, primary_key=True)
    pick_id = db.Column(db.Integer, db.ForeignKey("picks.id"), nullable=False)
    pick_number = db.Column(db.Integer, nullable=False)
    pick_value = db.Column(db.String(255), nullable=False)

    __table_args__ = (
        db.UniqueConstraint("pick_id", "pick_number", name="unique_pick_item_number"),
    )

    def __repr__(self):
        return f"<PickItem #{self.pick_number} {self.pick_value}>"
