from flask import Flask, request
from uuid import UUID
from app.extensions import db, migrate, jwt, api, ma, init_limiter
from app.celery_app import make_celery
from app.core.logger import logger
from app.core.exceptions import setup_exception_handlers
from flask_cors import CORS
from flasgger import Swagger


def create_app(config_class="app.config.Config"):
    """Factory function to create and configure the Flask application"""
    app = Flask(__name__)

    if isinstance(config_class, dict):
        # Handle dictionary config (e.g., from tests)
        app.config.from_object("app.config.Config")
        app.config.update(config_class)
    else:
        app.config.from_object(config_class)

    # Import models so metadata knows every table
    from app.modules.user import models as user_models  # noqa: F401
    from app.modules.property import models as property_models  # noqa: F401
    from app.modules.rent_saving import models as rent_saving_models  # noqa: F401

    db.init_app(app)
    migrate.init_app(app, db)
    ma.init_app(app)
    api.init_app(app)
    jwt.init_app(app)
    init_limiter(app)
    Swagger(app)
    CORS(app)

    app.logger = logger

    app.celery = make_celery(app)

    register_blueprints(app)

    setup_exception_handlers(app)

    @app.before_request
    def validate_uuids():
        """Middleware to validate UUIDs globally before processing any request."""
        for key in request.view_args or {}:
            if key.endswith("_id"):
                try:
                    request.view_args[key] = UUID(request.view_args[key])
                except (ValueError, TypeError):
                    return {"error": "Resource not found"}, 404

    return app


def register_blueprints(app):
    """Register all application blueprints"""
    from app.modules.rent_saving.urls import rent_savings_routes

    rent_savings_routes(app)
