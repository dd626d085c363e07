from models.db import db
from models._common import utcnow

class AuditLog(db.Model):
    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(36), nullable=True)  # nullable for unauth events
    action = db.Column(db.String(80), nullable=False)  # e.g. enrollment_activate, consultation_book
    entity = db.Column(db.String(80), nullable=True)   # e.g. enrollment, consultation
    entity_id = db.Column(db.String(80), nullable=True)

    ip = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)
    metadata_json = db.Column(db.Text, nullable=True)

    timestamp = db.Column(db.DateTime, default=utcnow, nullable=False)

class ErrorLog(db.Model):
    __tablename__ = "error_logs"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(36), nullable=True)
    function_name = db.Column(db.String(120), nullable=False)
    error_message = db.Column(db.Text, nullable=False)
    error_stack = db.Column(db.Text, nullable=True)
    request_data = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
