from contextlib import contextmanager

from flask import g, request

from utils.audit import record
from utils.errors import (
    AuthorizationError,
    ConflictError,
    DomainError,
    NotFoundError,
    RateLimitError,
    TransientStoreError,
    ValidationError,
)

_FAILURE_STATUS = (
    (ValidationError, "validation_failed"),
    (AuthorizationError, "unauthorized"),
    (NotFoundError, "not_found"),
    (ConflictError, "conflict"),
    (TransientStoreError, "store_error"),
)


def json_object() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def failure_status(exc: DomainError) -> str:
    for cls, status in _FAILURE_STATUS:
        if isinstance(exc, cls):
            return status
    return "failed"


@contextmanager
def audit_failures(action: str, entity_type: str, entity_id=None):
    """Records rejected requests; rate limit denials are recorded by the limiter."""
    try:
        yield
    except RateLimitError:
        raise
    except DomainError as exc:
        user = getattr(g, "user", None)
        record(
            user.id if user else None,
            action,
            entity_type,
            entity_id,
            {"status": failure_status(exc), "error": exc.message},
        )
        raise
