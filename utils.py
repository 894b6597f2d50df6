# utils.py
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation

from errors import ValidationError


def utc_now():
    # UTC-naive, matching how timestamps are stored
    return datetime.now(timezone.utc).replace(tzinfo=None)


def datetime_start_of(d: date):
    return datetime.combine(d, datetime.min.time())


def datetime_end_of(d: date):
    return datetime.combine(d, datetime.max.time())


def as_datetime(value):
    if value is None or isinstance(value, datetime):
        return value
    return datetime_start_of(value)


def as_date(value):
    if isinstance(value, datetime):
        return value.date()
    return value


def parse_date(text, field="date"):
    """Parse a YYYY-MM-DD string (as sent by forms and JSON clients)."""
    if isinstance(text, date):
        return as_date(text)
    if not text:
        raise ValidationError(f"{field} is required")
    try:
        return datetime.strptime(text, "%Y-%m-%d").date()
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {field}. Use YYYY-MM-DD.")


def to_decimal(value, field="amount"):
    if isinstance(value, Decimal):
        return value
    if value is None or value == "":
        raise ValidationError(f"{field} is required")
    try:
        # str() first so floats keep their printed value, not their binary one
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid {field}: {value!r}")
    if not result.is_finite():
        raise ValidationError(f"Invalid {field}: {value!r}")
    return result


def require_text(value, field, max_length=None):
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required")
    value = str(value).strip()
    if max_length is not None and len(value) > max_length:
        raise ValidationError(f"{field} cannot exceed {max_length} characters")
    return value


def require_username(username):
    if username is None or not str(username).strip():
        raise ValidationError("Username cannot be empty")
    return str(username).strip()


def to_int(value, field="id"):
    if value is None or value == "":
        raise ValidationError(f"{field} is required")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {field}: {value!r}")


def to_bool(value):
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in ("1", "true", "yes", "on")
