from datetime import date
from marshmallow import ValidationError

from app.core.models import get_utc_today
from app.core.constants import MAX_PLAN_YEARS


def amount_range(minimum, maximum=None):
    """Build a validator rejecting amounts outside ``[minimum, maximum]``."""

    def validate(amount):
        if amount < minimum:
            raise ValidationError(f"Amount must be at least {minimum}.")
        if maximum is not None and amount > maximum:
            raise ValidationError(f"Amount must not exceed {maximum}.")

    return validate


def validate_due_date(due_date):
    """Due dates lie after today and within the maximum plan length."""
    today = get_utc_today()
    if due_date <= today:
        raise ValidationError("Due date must be in the future.")
    try:
        limit = today.replace(year=today.year + MAX_PLAN_YEARS)
    except ValueError:
        # 29 February
        limit = date(today.year + MAX_PLAN_YEARS, 2, 28)
    if due_date >= limit:
        raise ValidationError(
            f"Due date must be before {limit.isoformat()}."
        )
