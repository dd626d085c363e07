import re
from datetime import date

from utils.errors import ValidationError

_UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)


def is_valid_uuid(value) -> bool:
    return isinstance(value, str) and bool(_UUID_RE.match(value))


def require_uuid(data: dict, field: str) -> str:
    value = data.get(field)
    if not value or not isinstance(value, str):
        raise ValidationError(f"{field} is required")
    if not is_valid_uuid(value):
        raise ValidationError(f"{field} is not a valid identifier")
    return value.lower()


def require_choice(data: dict, field: str, choices) -> str:
    value = data.get(field)
    if not value or not isinstance(value, str):
        raise ValidationError(f"{field} is required")
    if value not in choices:
        raise ValidationError(f"Invalid {field}")
    return value


def parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValidationError("Invalid date. Use YYYY-MM-DD")
