from models.db import db
from models._common import new_uuid, utcnow

class Specialist(db.Model):
    __tablename__ = "specialists"

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)

    # account that acts for this specialist (confirm/complete consultations)
    user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=True, index=True)

    full_name = db.Column(db.String(120), nullable=False)
    title = db.Column(db.String(120), nullable=True)
    specialty = db.Column(db.String(120), nullable=True)
    is_available = db.Column(db.Boolean, default=True, nullable=False)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
