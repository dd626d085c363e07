from models.db import db
from models._common import new_uuid, utcnow

CONSULTATION_TYPES = ("video", "audio", "chat")
CONSULTATION_STATUSES = ("pending", "confirmed", "completed", "cancelled")

class Consultation(db.Model):
    __tablename__ = "consultations"

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)

    user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)
    specialist_id = db.Column(db.String(36), db.ForeignKey("specialists.id"), nullable=False, index=True)
    time_slot_id = db.Column(db.String(36), db.ForeignKey("time_slots.id"), nullable=False, index=True)

    consultation_type = db.Column(db.String(20), nullable=False)
    price = db.Column(db.Numeric(10, 2), nullable=False)
    notes = db.Column(db.String(1000), nullable=True)

    status = db.Column(db.String(20), nullable=False, default="pending")

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    cancelled_at = db.Column(db.DateTime, nullable=True)
    cancelled_by = db.Column(db.String(36), nullable=True)

    __table_args__ = (
        # Hard business-rule: one live consultation per slot (prevents double booking)
        db.Index(
            "uq_consultation_active_slot",
            "time_slot_id",
            unique=True,
            sqlite_where=db.text("status != 'cancelled'"),
            postgresql_where=db.text("status != 'cancelled'"),
        ),
    )
