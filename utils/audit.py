import json
import logging
import time
import traceback

from flask import g, has_app_context, has_request_context, request
from models import db
from models.audit_log import AuditLog, ErrorLog

logger = logging.getLogger("audit")


def _request_meta():
    if not has_request_context():
        return None, None
    ip = request.headers.get("X-Forwarded-For", request.remote_addr)
    user_agent = request.headers.get("User-Agent", "")
    return ip, (user_agent[:255] if user_agent else None)


def _elapsed_ms(started_at):
    if started_at is None and has_app_context():
        started_at = g.get("request_started_at")
    if started_at is None:
        return 0
    return int((time.monotonic() - started_at) * 1000)


def _write(row):
    db.session.add(row)
    db.session.commit()


def record(actor, action: str, entity_type=None, entity_id=None, metadata=None, started_at=None):
    """
    Append one activity event. Never raises: a failed write is rolled back and
    reported on the ``audit`` logger, the caller's outcome stands.
    Must be called after the primary operation committed.
    """
    try:
        meta = dict(metadata or {})
        meta["duration_ms"] = _elapsed_ms(started_at)
        ip, user_agent = _request_meta()
        row = AuditLog(
            user_id=actor,
            action=action,
            entity=entity_type,
            entity_id=str(entity_id) if entity_id is not None else None,
            ip=ip,
            user_agent=user_agent,
            metadata_json=json.dumps(meta, default=str),
        )
        _write(row)
    except Exception:
        db.session.rollback()
        logger.warning("Failed to record audit event %s for %s", action, actor, exc_info=True)


def log_error(actor, function_name: str, exc: BaseException, request_data=None):
    """Store an exception in the error log; same isolation as record()."""
    try:
        stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        row = ErrorLog(
            user_id=actor,
            function_name=function_name,
            error_message=str(exc) or type(exc).__name__,
            error_stack=stack,
            request_data=json.dumps(request_data, default=str) if request_data else None,
        )
        _write(row)
    except Exception:
        db.session.rollback()
        logger.error("Failed to write error log for %s", function_name, exc_info=True)
