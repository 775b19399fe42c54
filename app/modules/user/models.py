from app.extensions import db
from app.core.models import BaseModel
from app.core.constants import UserRole


class User(BaseModel):
    __tablename__ = "users"

    name = db.Column(db.String(100), nullable=True)
    username = db.Column(db.String(50), unique=True, nullable=False, index=True)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    role = db.Column(db.Enum(UserRole), default=UserRole.USER, nullable=False)

    def __str__(self):
        return f"User(username={self.username}, role={self.role.value})"
