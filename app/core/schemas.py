from app.extensions import ma
from marshmallow import EXCLUDE, Schema
from app.extensions import db


class BaseSchema(ma.SQLAlchemyAutoSchema):
    class Meta:
        load_instance = False
        sqla_session = db.session
        include_fk = True
        unknown = EXCLUDE


class BaseRequestSchema(Schema):
    """Plain request payload schema; loads to a dict of validated values."""

    class Meta:
        unknown = EXCLUDE
