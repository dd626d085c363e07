from dataclasses import dataclass

from flask import Blueprint, g, jsonify, request

from models.consultation import CONSULTATION_TYPES
from routes.gateway import audit_failures, json_object
from security.rate_limit import enforce
from services.consultations import transition_consultation
from services.reservation import book_consultation, list_available_slots
from utils.auth_context import login_required
from utils.errors import ValidationError
from utils.validation import is_valid_uuid, parse_date, require_choice, require_uuid

consultations_bp = Blueprint("consultations", __name__)


def serialize_consultation(c):
    return {
        "id": c.id,
        "user_id": c.user_id,
        "specialist_id": c.specialist_id,
        "time_slot_id": c.time_slot_id,
        "consultation_type": c.consultation_type,
        "price": float(c.price),
        "notes": c.notes,
        "status": c.status,
        "created_at": c.created_at.isoformat(),
        "updated_at": c.updated_at.isoformat(),
        "cancelled_at": c.cancelled_at.isoformat() if c.cancelled_at else None,
    }


# ---------- RPC: atomic reservation ----------
@consultations_bp.post("/rpc/book_consultation")
@login_required
def rpc_book_consultation():
    with audit_failures("consultation_book", "time_slot"):
        data = json_object()
        time_slot_id = require_uuid(data, "time_slot_id")
        specialist_id = require_uuid(data, "specialist_id")
        consultation_type = require_choice(data, "consultation_type", CONSULTATION_TYPES)

    with audit_failures("consultation_book", "time_slot", time_slot_id):
        enforce(g.user.id, "consultation_book", "time_slot", time_slot_id)
        consultation = book_consultation(
            g.user.id,
            time_slot_id,
            specialist_id,
            consultation_type,
            price=data.get("price"),
            notes=data.get("notes"),
        )

    return jsonify(consultation=serialize_consultation(consultation), message="Consultation booked"), 201


# ---------- lifecycle: confirm / complete / cancel ----------
@dataclass(frozen=True)
class ConfirmAction:
    consultation_id: str


@dataclass(frozen=True)
class CompleteAction:
    consultation_id: str


@dataclass(frozen=True)
class CancelAction:
    consultation_id: str


ACTIONS = {
    "confirm": (ConfirmAction, "confirmed"),
    "complete": (CompleteAction, "completed"),
    "cancel": (CancelAction, "cancelled"),
}
_BY_CLASS = {cls: (name, status) for name, (cls, status) in ACTIONS.items()}

_MESSAGES = {
    "confirmed": ("Consultation confirmed", "Consultation is already confirmed"),
    "completed": ("Consultation completed", "Consultation is already completed"),
    "cancelled": ("Consultation cancelled", "Consultation is already cancelled"),
}


def parse_action(data: dict):
    name = require_choice(data, "action", ACTIONS)
    cls, _ = ACTIONS[name]
    return cls(require_uuid(data, "consultation_id"))


@consultations_bp.post("/consultation-actions")
@login_required
def consultation_actions():
    with audit_failures("consultation_request", "consultation"):
        action = parse_action(json_object())

    kind, requested_status = _BY_CLASS[type(action)]
    with audit_failures(f"consultation_{kind}", "consultation", action.consultation_id):
        enforce(g.user.id, f"consultation_{kind}", "consultation", action.consultation_id)
        result = transition_consultation(action.consultation_id, requested_status, g.user.id, g.role)

    done, already = _MESSAGES[requested_status]
    return jsonify(
        consultation=serialize_consultation(result.entity),
        message=done if result.changed else already,
    ), 200


# ---------- availability ----------
@consultations_bp.get("/specialists/<specialist_id>/slots")
@login_required
def available_slots(specialist_id: str):
    if not is_valid_uuid(specialist_id):
        raise ValidationError("specialist_id is not a valid identifier")

    date_str = request.args.get("date")
    on_date = parse_date(date_str) if date_str else None

    slots = list_available_slots(specialist_id.lower(), on_date)
    return jsonify([
        {
            "id": s.id,
            "specialist_id": s.specialist_id,
            "slot_date": s.slot_date.isoformat(),
            "slot_time": s.slot_time.strftime("%H:%M"),
        }
        for s in slots
    ]), 200
