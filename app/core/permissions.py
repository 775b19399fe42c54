from functools import wraps
from flask import g
from app.core.constants import UserRole
from app.extensions import db


def is_admin(user):
    return user is not None and user.role == UserRole.ADMIN


def admin_only(f):
    """Decorator to allow only admin users to access an endpoint"""

    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not hasattr(g, "current_user") or not g.current_user:
            return {"error": "Authentication required"}, 401

        if not is_admin(g.current_user):
            return {"error": "Admin privileges required"}, 403

        return f(*args, **kwargs)

    return decorated_function


def owner_or_admin(resource_model, resource_param):
    """
    Resolve the resource named by ``resource_param`` from the URL and make it
    available to the handler as ``g.resource``.

    Users only see their own rows; admins see everything. A row owned by
    somebody else answers 404 so its existence is not disclosed.
    """

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            resource_id = kwargs.get(resource_param)
            if not resource_id:
                return {"error": f"Resource ID ({resource_param}) is required"}, 400

            resource = db.session.get(resource_model, resource_id)
            name = resource_param.replace("_id", "").replace("_", " ").title()
            if not resource:
                return {"error": f"{name} not found"}, 404

            if not is_admin(g.current_user) and str(resource.user_id) != str(
                g.current_user.id
            ):
                return {"error": f"{name} not found"}, 404

            g.resource = resource
            return f(*args, **kwargs)

        return decorated_function

    return decorator
