import logging

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models._common import utcnow
from models.consultation import Consultation
from models.slot import Slot
from models.specialist import Specialist
from security.rbac import is_elevated
from services.lifecycle import (
    CONSULTATION_TRANSITIONS,
    TransitionResult,
    authorize,
    compare_and_set,
    ensure_legal,
)
from services.reservation import release_slot
from utils.audit import record
from utils.errors import IllegalTransition, NotFoundError

logger = logging.getLogger(__name__)

_VERBS = {"confirmed": "confirm", "completed": "complete", "cancelled": "cancel"}


def _owners_for(consultation: Consultation, requested_status: str):
    specialist = db.session.get(Specialist, consultation.specialist_id)
    specialist_user_id = specialist.user_id if specialist else None
    if requested_status == "cancelled":
        return [consultation.user_id, specialist_user_id]
    return [specialist_user_id]


def _check_cancel_cutoff(consultation: Consultation):
    cutoff_hours = current_app.config.get("CONSULTATION_CANCEL_CUTOFF_HOURS", 12)
    slot = db.session.get(Slot, consultation.time_slot_id)
    if slot and (slot.starts_at - utcnow()).total_seconds() < cutoff_hours * 3600:
        raise IllegalTransition(f"Cancellation not allowed within {cutoff_hours} hours of start")


def _free_slot(consultation: Consultation, actor_id: str) -> bool:
    try:
        if not release_slot(consultation.time_slot_id):
            logger.warning("Slot %s was already free when consultation %s was cancelled",
                           consultation.time_slot_id, consultation.id)
        return True
    except SQLAlchemyError:
        db.session.rollback()
        logger.warning("Failed to free slot %s after cancelling consultation %s",
                       consultation.time_slot_id, consultation.id, exc_info=True)
        record(actor_id, "consultation_slot_release_failed", "time_slot", consultation.time_slot_id,
               {"consultation_id": consultation.id})
        return False


def transition_consultation(consultation_id: str, requested_status: str, actor_id: str, actor_role: str,
                            started_at=None) -> TransitionResult:
    """
    pending -> confirmed -> completed, or -> cancelled from pending/confirmed.
    Confirm and complete belong to the specialist; either party may cancel.
    Admins may do all of it and skip the cancellation cutoff.
    """
    if requested_status not in _VERBS:
        raise IllegalTransition(f"Cannot move a consultation to {requested_status}")

    consultation = db.session.get(Consultation, consultation_id)
    if consultation is None:
        raise NotFoundError("Consultation not found")
    authorize(actor_id, actor_role, _owners_for(consultation, requested_status))

    current = consultation.status
    if current == requested_status:
        return TransitionResult(consultation, False, current)
    ensure_legal(CONSULTATION_TRANSITIONS, current, requested_status)
    if requested_status == "cancelled" and current == "confirmed" and not is_elevated(actor_role):
        _check_cancel_cutoff(consultation)

    values = {"status": requested_status}
    if requested_status == "cancelled":
        values.update(cancelled_at=utcnow(), cancelled_by=actor_id)

    if not compare_and_set(Consultation, consultation.id, current, values):
        db.session.rollback()
        if consultation.status == requested_status:
            return TransitionResult(consultation, False, requested_status)
        raise IllegalTransition(f"Consultation is now {consultation.status}")
    db.session.commit()

    metadata = {"status": requested_status, "previous_status": current}
    if requested_status == "cancelled":
        metadata["slot_released"] = _free_slot(consultation, actor_id)

    logger.info("Consultation %s %s by %s (was %s)", consultation.id, requested_status, actor_id, current)
    record(actor_id, f"consultation_{_VERBS[requested_status]}", "consultation", consultation.id, metadata,
           started_at=started_at)
    return TransitionResult(consultation, True, current)
