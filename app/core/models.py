import uuid
from datetime import datetime, timezone
from app.extensions import db


def get_utc_now():
    """Returns the current time in UTC with timezone awareness."""
    return datetime.now(timezone.utc)


def get_utc_today():
    """Returns today's date in UTC."""
    return get_utc_now().date()


class BaseModel(db.Model):
    __abstract__ = True

    id = db.Column(db.Uuid, primary_key=True, default=uuid.uuid4)
    created_at = db.Column(db.DateTime, default=get_utc_now)
    updated_at = db.Column(db.DateTime, default=get_utc_now, onupdate=get_utc_now)
