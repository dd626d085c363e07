import logging
import math
from collections import namedtuple
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models._common import utcnow
from models.rate_limit import RateLimitCounter
from utils.audit import record
from utils.errors import RateLimitError

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1)

RateLimitDecision = namedtuple("RateLimitDecision", ["allowed", "retry_after"])

_UPSERTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}

def _limits_for(action_kind: str) -> tuple[int, int]:
    limits = current_app.config.get("RATE_LIMITS", {}).get(action_kind)
    if limits is None:
        limits = current_app.config.get("DEFAULT_RATE_LIMIT", {"max_requests": 10, "window_seconds": 60})
    return int(limits["max_requests"]), int(limits["window_seconds"])

def window_bounds(now: datetime, window_seconds: int) -> tuple[datetime, datetime]:
    """Fixed, epoch-aligned window containing ``now``."""
    elapsed = int((now - EPOCH).total_seconds())
    start = EPOCH + timedelta(seconds=elapsed - elapsed % window_seconds)
    return start, start + timedelta(seconds=window_seconds)

def _increment(user_id: str, action_kind: str, window_start: datetime, now: datetime) -> int:
    """Atomic increment-and-read of the (user, action, window) counter."""
    insert = _UPSERTS.get(db.engine.dialect.name)
    if insert is None:
        raise RuntimeError(f"Rate limiting not supported on {db.engine.dialect.name}")

    table = RateLimitCounter.__table__
    stmt = insert(table).values(
        user_id=user_id,
        action=action_kind,
        window_start=window_start,
        attempts=1,
        updated_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id", "action", "window_start"],
        set_={"attempts": table.c.attempts + 1, "updated_at": now},
    ).returning(table.c.attempts)

    attempts = db.session.execute(stmt).scalar_one()
    db.session.commit()
    return attempts

def check_and_increment(user_id: str, action_kind: str, now: datetime = None) -> RateLimitDecision:
    """
    Returns (allowed, retry_after_seconds).
    Counting-store failures fail open.
    """
    now = now or utcnow()
    max_requests, window_seconds = _limits_for(action_kind)
    window_start, window_end = window_bounds(now, window_seconds)

    try:
        attempts = _increment(user_id, action_kind, window_start, now)
    except SQLAlchemyError:
        db.session.rollback()
        logger.warning("Rate limit check failed, allowing request", exc_info=True)
        return RateLimitDecision(True, 0)

    if attempts > max_requests:
        retry_after = math.ceil((window_end - now).total_seconds())
        return RateLimitDecision(False, max(retry_after, 1))

    return RateLimitDecision(True, 0)

def enforce(user_id: str, action_kind: str, entity_type=None, entity_id=None):
    decision = check_and_increment(user_id, action_kind)
    if decision.allowed:
        return
    logger.warning("Rate limit exceeded user=%s action=%s", user_id, action_kind)
    record(
        user_id,
        action_kind,
        entity_type,
        entity_id,
        {"status": "rate_limited", "retry_after": decision.retry_after},
    )
    raise RateLimitError(decision.retry_after)

def purge_expired_counters(older_than: datetime = None) -> int:
    cutoff = older_than or (
        utcnow() - timedelta(hours=current_app.config.get("RATE_LIMIT_RETENTION_HOURS", 24))
    )
    n = RateLimitCounter.query.filter(RateLimitCounter.window_start < cutoff).delete(synchronize_session=False)
    db.session.commit()
    return n
