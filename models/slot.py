from datetime import datetime
from models.db import db
from models._common import new_uuid, utcnow

class Slot(db.Model):
    __tablename__ = "time_slots"

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)

    specialist_id = db.Column(db.String(36), db.ForeignKey("specialists.id"), nullable=False, index=True)
    slot_date = db.Column(db.Date, nullable=False, index=True)
    slot_time = db.Column(db.Time, nullable=False)

    # flipped only through conditional updates in services.reservation
    is_booked = db.Column(db.Boolean, default=False, nullable=False)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        # Prevent duplicate slot times for same specialist
        db.UniqueConstraint("specialist_id", "slot_date", "slot_time", name="uq_specialist_timeslot"),
    )

    @property
    def starts_at(self) -> datetime:
        return datetime.combine(self.slot_date, self.slot_time)
