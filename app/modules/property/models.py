from app.extensions import db
from app.core.models import BaseModel


class Property(BaseModel):
    __tablename__ = "properties"

    title = db.Column(db.String(255), nullable=False)
    is_available = db.Column(db.Boolean, default=True, nullable=False)
