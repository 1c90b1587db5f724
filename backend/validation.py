import math

from flask import current_app

from errors import ValidationError
from models import TRANSACTION_MODES


def _blank(value):
    return value is None or (isinstance(value, str) and not value.strip())


def require(data, *fields):
    missing = [f for f in fields if _blank(data.get(f))]
    if missing:
        raise ValidationError(f"Validation Error: Missing required fields: {', '.join(missing)}")


def choice(value, allowed, label):
    if value not in allowed:
        raise ValidationError(f"Invalid {label}: {value!r} (expected one of {', '.join(allowed)})")
    return value


def amount(value, label, allow_zero=False):
    """Parse a money amount; rejects NaN, infinities, negatives, and zero unless allowed."""
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{label} must be a number")
    if not math.isfinite(parsed):
        raise ValidationError(f"{label} must be a finite number")
    if parsed < 0 or (parsed == 0 and not allow_zero):
        raise ValidationError(f"{label} must be greater than zero")
    return parsed


def whole_number(value, label, minimum=0):
    try:
        parsed = int(value)
        fractional = parsed != float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{label} must be a whole number")
    except OverflowError:
        raise ValidationError(f"{label} is out of range")
    if fractional or parsed < minimum:
        raise ValidationError(f"{label} must be a whole number of at least {minimum}")
    return parsed


def payment(transaction_mode, received_by, required_staff=True):
    """Checks who took the money and how. Returns the pair unchanged."""
    choice(transaction_mode, TRANSACTION_MODES, "transaction mode")
    roster = current_app.config['STAFF_ROSTER']
    if received_by is None and not required_staff:
        return transaction_mode, None
    if received_by not in roster:
        raise ValidationError(f"Unknown staff member: {received_by!r}")
    return transaction_mode, received_by


def vehicle_number(value):
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("Vehicle number is required")
    return value.strip().upper()


def lot_number(value):
    """Open parking has no lot; blank or 'Open' both mean that."""
    if value is None:
        return None
    value = str(value).strip().upper()
    if value in ('', 'OPEN'):
        return None
    return value
