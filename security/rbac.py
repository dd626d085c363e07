from functools import wraps
from flask import g

from utils.errors import AuthenticationError, AuthorizationError

ADMIN = "ADMIN"
SPECIALIST = "SPECIALIST"
STUDENT = "STUDENT"

def role_of(user) -> str:
    """Single acting role: ADMIN wins, then SPECIALIST, else STUDENT."""
    names = {r.name for r in user.roles} if user is not None else set()
    if ADMIN in names:
        return ADMIN
    if SPECIALIST in names:
        return SPECIALIST
    return STUDENT

def is_elevated(role: str) -> bool:
    return role == ADMIN

def require_roles(*role_names: str):
    """
    Usage: @require_roles("ADMIN")
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            user = getattr(g, "user", None)
            if user is None:
                raise AuthenticationError()

            user_roles = {r.name for r in user.roles}
            if ADMIN not in user_roles and not user_roles.intersection(set(role_names)):
                raise AuthorizationError("Forbidden")

            return fn(*args, **kwargs)
        return wrapper
    return decorator
