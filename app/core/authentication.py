from functools import wraps
from uuid import UUID
from flask import g
from flask_jwt_extended import jwt_required, get_jwt_identity, get_jwt
from app.extensions import db
from app.modules.user.models import User
from .logger import logger


def authenticated_user(f):
    @wraps(f)
    @jwt_required()
    def decorated(*args, **kwargs):
        identity = get_jwt_identity()
        try:
            user_id = UUID(str(identity))
        except (ValueError, TypeError):
            logger.warning(f"Token carries a malformed identity: {identity}")
            return {"error": "Invalid or revoked token!"}, 401

        user = db.session.get(User, user_id)
        if not user:
            logger.warning(f"User not found")
            return {"error": "User not found!"}, 401
        g.role = get_jwt().get("role", user.role.value)
        g.current_user = user
        logger.info(f"Request authenticated for user: {user.username}")
        return f(*args, **kwargs)

    return decorated
