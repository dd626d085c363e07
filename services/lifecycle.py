"""
Status transition rules shared by enrollments and consultations.

A transition is checked in a fixed order: the entity must exist, the actor
must be allowed to touch it, a request for the current status is a no-op,
and only listed (current, requested) pairs may be written. Writes are
compare-and-set updates on the status column so two concurrent callers can
never both apply the same transition.
"""
from collections import namedtuple

from sqlalchemy import update

from models import db
from models._common import utcnow
from security.rbac import is_elevated
from utils.errors import AuthorizationError, IllegalTransition

TransitionResult = namedtuple("TransitionResult", ["entity", "changed", "previous_status"])

ENROLLMENT_TRANSITIONS = {
    ("pending", "active"),
    ("pending", "cancelled"),
    ("active", "cancelled"),
    ("cancelled", "pending"),
}

CONSULTATION_TRANSITIONS = {
    ("pending", "confirmed"),
    ("pending", "cancelled"),
    ("confirmed", "completed"),
    ("confirmed", "cancelled"),
}


def authorize(actor_id, actor_role, owner_ids, allow_admin=True):
    """Actor must be one of ``owner_ids`` or hold the elevated role."""
    if actor_id is not None and actor_id in {o for o in owner_ids if o}:
        return
    if allow_admin and is_elevated(actor_role):
        return
    raise AuthorizationError()


def ensure_legal(transitions, current: str, requested: str, message: str = None):
    if (current, requested) not in transitions:
        raise IllegalTransition(message or f"Cannot change status from {current} to {requested}")


def compare_and_set(model, entity_id: str, expected_status: str, values: dict) -> bool:
    """
    ``UPDATE ... SET values WHERE id = :id AND status = :expected``.
    Returns False when another writer changed the status first. Does not commit.
    """
    values = dict(values)
    values.setdefault("updated_at", utcnow())
    result = db.session.execute(
        update(model)
        .where(model.id == entity_id, model.status == expected_status)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1
