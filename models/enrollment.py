from models.db import db
from models._common import new_uuid, utcnow

ENROLLMENT_STATUSES = ("pending", "active", "completed", "cancelled")

class Enrollment(db.Model):
    __tablename__ = "enrollments"

    id = db.Column(db.String(36), primary_key=True, default=new_uuid)

    user_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=False, index=True)
    course_id = db.Column(db.String(36), db.ForeignKey("courses.id"), nullable=False, index=True)

    status = db.Column(db.String(20), nullable=False, default="pending")
    paid_at = db.Column(db.DateTime, nullable=True)

    # soft delete (set on cancel, cleared on re-enroll)
    deleted_at = db.Column(db.DateTime, nullable=True)
    deleted_by = db.Column(db.String(36), nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        # at most one live enrollment per (user, course)
        db.Index(
            "uq_enrollment_live_user_course",
            "user_id",
            "course_id",
            unique=True,
            sqlite_where=db.text("deleted_at IS NULL"),
            postgresql_where=db.text("deleted_at IS NULL"),
        ),
    )
