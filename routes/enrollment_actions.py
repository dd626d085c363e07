"""
POST /enrollment-actions

One endpoint, three actions. The body is parsed into exactly one action
variant before anything touches the store; each variant has one handler.
"""
from dataclasses import dataclass

from flask import Blueprint, g, jsonify

from routes.gateway import audit_failures, json_object
from security.rate_limit import enforce
from services.enrollments import enroll, transition_enrollment
from utils.auth_context import login_required
from utils.validation import require_choice, require_uuid

enrollment_actions_bp = Blueprint("enrollment_actions", __name__)


@dataclass(frozen=True)
class EnrollAction:
    course_id: str


@dataclass(frozen=True)
class ActivateAction:
    enrollment_id: str


@dataclass(frozen=True)
class CancelAction:
    enrollment_id: str


ACTIONS = {
    "enroll": (EnrollAction, "course_id"),
    "activate": (ActivateAction, "enrollment_id"),
    "cancel": (CancelAction, "enrollment_id"),
}


def parse_action(data: dict):
    name = require_choice(data, "action", ACTIONS)
    cls, field = ACTIONS[name]
    return cls(require_uuid(data, field))


def serialize_enrollment(e):
    return {
        "id": e.id,
        "user_id": e.user_id,
        "course_id": e.course_id,
        "status": e.status,
        "paid_at": e.paid_at.isoformat() if e.paid_at else None,
        "deleted_at": e.deleted_at.isoformat() if e.deleted_at else None,
        "deleted_by": e.deleted_by,
        "created_at": e.created_at.isoformat(),
        "updated_at": e.updated_at.isoformat(),
    }


def _enroll(action: EnrollAction):
    result = enroll(g.user.id, action.course_id)
    if result.previous_status == "cancelled":
        return result, "Enrollment reopened. Awaiting payment confirmation"
    return result, "Enrolled. Awaiting payment confirmation"


def _activate(action: ActivateAction):
    result = transition_enrollment(action.enrollment_id, "active", g.user.id, g.role)
    return result, ("Enrollment activated" if result.changed else "Enrollment is already active")


def _cancel(action: CancelAction):
    result = transition_enrollment(action.enrollment_id, "cancelled", g.user.id, g.role)
    return result, ("Enrollment cancelled" if result.changed else "Enrollment is already cancelled")


_HANDLERS = {
    EnrollAction: _enroll,
    ActivateAction: _activate,
    CancelAction: _cancel,
}
_KINDS = {cls: name for name, (cls, _) in ACTIONS.items()}

if set(_HANDLERS) != {cls for cls, _ in ACTIONS.values()}:
    raise RuntimeError("every enrollment action needs exactly one handler")


@enrollment_actions_bp.post("/enrollment-actions")
@login_required
def enrollment_actions():
    with audit_failures("enrollment_request", "enrollment"):
        action = parse_action(json_object())

    kind = _KINDS[type(action)]
    entity_ref = getattr(action, "enrollment_id", None) or action.course_id

    with audit_failures(f"enrollment_{kind}", "enrollment", entity_ref):
        enforce(g.user.id, f"enrollment_{kind}", "enrollment", entity_ref)
        result, message = _HANDLERS[type(action)](action)

    return jsonify(enrollment=serialize_enrollment(result.entity), message=message), 200
