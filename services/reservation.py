"""
Slot reservation.

Claiming a slot and creating the consultation that references it happen in a
single transaction whose first write is a conditional update of the slot's
``is_booked`` flag. Two callers racing for the same slot both reach that
update; the store serializes them and only one sees ``rowcount == 1``. The
loser rolls back without having inserted anything.
"""
import logging
from decimal import Decimal, InvalidOperation

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, OperationalError

from models import db
from models._common import utcnow
from models.consultation import CONSULTATION_TYPES, Consultation
from models.slot import Slot
from utils.audit import record
from utils.errors import (
    AuthenticationError,
    ReservationOutcomeUnknown,
    SlotAlreadyReserved,
    SlotNotFound,
    ValidationError,
)

logger = logging.getLogger(__name__)


def price_for(consultation_type: str) -> Decimal:
    prices = current_app.config.get("CONSULTATION_PRICES", {})
    if consultation_type not in CONSULTATION_TYPES or consultation_type not in prices:
        raise ValidationError("Invalid consultation_type")
    return Decimal(str(prices[consultation_type]))


def _check_client_price(expected: Decimal, price):
    if price is None:
        return
    if isinstance(price, bool):
        raise ValidationError("Invalid price")
    try:
        offered = Decimal(str(price))
    except InvalidOperation:
        raise ValidationError("Invalid price")
    if not offered.is_finite():
        raise ValidationError("Invalid price")
    if offered != expected:
        raise ValidationError("Price does not match the consultation type")


def _clean_notes(notes):
    if notes is None:
        return None
    if not isinstance(notes, str):
        raise ValidationError("notes must be text")
    notes = notes.strip()
    max_length = current_app.config.get("CONSULTATION_NOTES_MAX_LENGTH", 1000)
    if len(notes) > max_length:
        raise ValidationError(f"notes must be at most {max_length} characters")
    return notes or None


def book_consultation(user_id, time_slot_id, specialist_id, consultation_type, price=None, notes=None,
                      started_at=None) -> Consultation:
    if not user_id:
        raise AuthenticationError("Authentication required")

    expected_price = price_for(consultation_type)
    _check_client_price(expected_price, price)
    notes = _clean_notes(notes)

    # Non-authoritative read for better errors; the update below decides.
    slot = db.session.get(Slot, time_slot_id)
    if slot is None or slot.specialist_id != specialist_id:
        raise SlotNotFound()
    if slot.starts_at <= utcnow():
        raise ValidationError("Cannot book past or started time slots")

    try:
        claimed = db.session.execute(
            update(Slot)
            .where(
                Slot.id == time_slot_id,
                Slot.specialist_id == specialist_id,
                Slot.is_booked.is_(False),
            )
            .values(is_booked=True)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            db.session.rollback()
            logger.info("Slot %s lost to a concurrent booking (user=%s)", time_slot_id, user_id)
            raise SlotAlreadyReserved()

        consultation = Consultation(
            user_id=user_id,
            specialist_id=specialist_id,
            time_slot_id=time_slot_id,
            consultation_type=consultation_type,
            price=expected_price,
            notes=notes,
            status="pending",
        )
        db.session.add(consultation)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise SlotAlreadyReserved()
    except OperationalError:
        db.session.rollback()
        logger.error("Store error while booking slot %s; outcome unknown", time_slot_id, exc_info=True)
        raise ReservationOutcomeUnknown()

    logger.info("Consultation %s booked on slot %s by %s", consultation.id, time_slot_id, user_id)
    record(
        user_id,
        "consultation_book",
        "consultation",
        consultation.id,
        {
            "status": "created",
            "time_slot_id": time_slot_id,
            "consultation_type": consultation_type,
            "price": str(expected_price),
        },
        started_at=started_at,
    )
    return consultation


def release_slot(time_slot_id: str) -> bool:
    """Mark a slot bookable again. Commits; returns False if it was already free."""
    freed = db.session.execute(
        update(Slot)
        .where(Slot.id == time_slot_id, Slot.is_booked.is_(True))
        .values(is_booked=False)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    return freed.rowcount == 1


def list_available_slots(specialist_id: str, on_date=None):
    q = Slot.query.filter_by(specialist_id=specialist_id, is_booked=False)
    if on_date is not None:
        q = q.filter(Slot.slot_date == on_date)
    return q.order_by(Slot.slot_date.asc(), Slot.slot_time.asc()).all()
