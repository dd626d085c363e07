import logging

from sqlalchemy.exc import IntegrityError

from models import db
from models._common import utcnow
from models.course import Course, CourseProgress, Lesson
from models.enrollment import Enrollment
from services.lifecycle import (
    ENROLLMENT_TRANSITIONS,
    TransitionResult,
    authorize,
    compare_and_set,
    ensure_legal,
)
from utils.audit import record
from utils.errors import ConflictError, IllegalTransition, NotFoundError

logger = logging.getLogger(__name__)

_VERBS = {"active": "activate", "cancelled": "cancel"}


def _load_live(enrollment_id: str) -> Enrollment:
    enrollment = (
        Enrollment.query
        .filter(Enrollment.id == enrollment_id, Enrollment.deleted_at.is_(None))
        .first()
    )
    if enrollment is None:
        raise NotFoundError("Enrollment not found")
    return enrollment


def _total_lessons(course_id: str) -> int:
    count = Lesson.query.filter_by(course_id=course_id).count()
    if count:
        return count
    course = db.session.get(Course, course_id)
    return (course.lessons_count or 0) if course else 0


def _reset_progress(user_id: str, course_id: str, now):
    """Zeroed progress baseline, written in the caller's transaction."""
    total = _total_lessons(course_id)
    progress = CourseProgress.query.filter_by(user_id=user_id, course_id=course_id).first()
    if progress is None:
        db.session.add(CourseProgress(
            user_id=user_id,
            course_id=course_id,
            total_lessons=total,
            completed_lessons=0,
            started_at=now,
        ))
        return
    progress.total_lessons = total
    progress.completed_lessons = 0
    progress.is_completed = False
    progress.started_at = now
    progress.completed_at = None


def enroll(user_id: str, course_id: str, started_at=None) -> TransitionResult:
    """
    Create a pending enrollment, or bring the user's cancelled enrollment for
    the course back to pending (same row, soft delete cleared, paid_at reset).
    """
    course = db.session.get(Course, course_id)
    if course is None:
        raise NotFoundError("Course not found")

    rows = (
        Enrollment.query
        .filter_by(user_id=user_id, course_id=course_id)
        .order_by(Enrollment.created_at.desc())
        .all()
    )
    live = next((e for e in rows if e.deleted_at is None), None)
    if live is not None and live.status != "cancelled":
        raise ConflictError("You are already enrolled in this course")

    target = live or next((e for e in rows if e.status == "cancelled"), None)

    try:
        if target is not None:
            # re-enroll is owner only
            authorize(user_id, None, [target.user_id], allow_admin=False)
            ensure_legal(ENROLLMENT_TRANSITIONS, target.status, "pending")
            reopened = compare_and_set(Enrollment, target.id, "cancelled", {
                "status": "pending",
                "paid_at": None,
                "deleted_at": None,
                "deleted_by": None,
            })
            if not reopened:
                db.session.rollback()
                raise ConflictError("You are already enrolled in this course")
            db.session.commit()
            enrollment, previous, outcome = target, "cancelled", "reactivated"
        else:
            enrollment = Enrollment(user_id=user_id, course_id=course_id, status="pending")
            db.session.add(enrollment)
            db.session.commit()
            previous, outcome = None, "created"
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("You are already enrolled in this course")

    logger.info("Enrollment %s %s (user=%s course=%s)", enrollment.id, outcome, user_id, course_id)
    record(
        user_id,
        "enrollment_enroll",
        "enrollment",
        enrollment.id,
        {"status": outcome, "course_title": course.title},
        started_at=started_at,
    )
    return TransitionResult(enrollment, True, previous)


def transition_enrollment(enrollment_id: str, requested_status: str, actor_id: str, actor_role: str,
                          started_at=None) -> TransitionResult:
    if requested_status not in _VERBS:
        raise IllegalTransition(f"Cannot move an enrollment to {requested_status}")

    enrollment = _load_live(enrollment_id)
    authorize(actor_id, actor_role, [enrollment.user_id])

    current = enrollment.status
    if current == requested_status:
        return TransitionResult(enrollment, False, current)
    if requested_status == "cancelled" and current == "completed":
        raise IllegalTransition("Completed enrollments cannot be cancelled")
    if requested_status == "active" and current != "pending":
        raise IllegalTransition("Only pending enrollments can be activated")
    ensure_legal(ENROLLMENT_TRANSITIONS, current, requested_status)

    now = utcnow()
    if requested_status == "active":
        values = {"status": "active", "paid_at": now}
    else:
        values = {"status": "cancelled", "deleted_at": now, "deleted_by": actor_id}

    if not compare_and_set(Enrollment, enrollment.id, current, values):
        db.session.rollback()
        if enrollment.status == requested_status:
            return TransitionResult(enrollment, False, requested_status)
        raise IllegalTransition(f"Enrollment is now {enrollment.status}")

    if requested_status == "active":
        _reset_progress(enrollment.user_id, enrollment.course_id, now)
    db.session.commit()

    verb = _VERBS[requested_status]
    logger.info("Enrollment %s %s by %s (was %s)", enrollment.id, requested_status, actor_id, current)
    metadata = {"status": requested_status, "previous_status": current}
    if requested_status == "cancelled":
        metadata["soft_deleted"] = True
    record(actor_id, f"enrollment_{verb}", "enrollment", enrollment.id, metadata, started_at=started_at)
    return TransitionResult(enrollment, True, current)
