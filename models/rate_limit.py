from models.db import db
from models._common import utcnow

class RateLimitCounter(db.Model):
    __tablename__ = "rate_limits"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(36), nullable=False, index=True)
    action = db.Column(db.String(64), nullable=False)

    window_start = db.Column(db.DateTime, nullable=False)
    attempts = db.Column(db.Integer, default=0, nullable=False)

    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        # target of the atomic upsert in security.rate_limit
        db.UniqueConstraint("user_id", "action", "window_start", name="uq_rate_limit_window"),
    )
