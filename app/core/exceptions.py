from marshmallow.exceptions import ValidationError
from app.core.logger import logger
from app.extensions import db
from app.modules.rent_saving.errors import LedgerError
import redis
from werkzeug.exceptions import HTTPException


def format_validation_messages(messages):
    """Flatten marshmallow messages to one message per field."""
    if isinstance(messages, dict):
        return {
            field: errors[0] if isinstance(errors, list) else errors
            for field, errors in messages.items()
        }
    if isinstance(messages, list):
        return messages[0] if len(messages) > 0 else "validation_failed"
    return str(messages)


def setup_exception_handlers(application):
    """Configure exception handlers for the application."""

    @application.errorhandler(ValidationError)
    def process_validation_failure(error):
        """Process Marshmallow schema validation failures"""
        processed_errors = format_validation_messages(error.messages)
        logger.warning(f"Input validation failed: {processed_errors}")
        return {"error": processed_errors}, 400

    @application.errorhandler(LedgerError)
    def process_ledger_rejection(error):
        """Process savings operations rejected by the ledger"""
        logger.warning(f"Ledger rejected operation: {error.message}")
        return {"error": error.message}, error.status_code

    @application.errorhandler(404)
    def process_resource_missing(error):
        """Process 404 Resource Missing errors"""
        logger.info(f"Resource unavailable: {str(error)}")
        return {"error": "Resource Not Found"}, 404

    @application.errorhandler(403)
    def process_access_denied(error):
        """Process 403 Access Denied errors"""
        logger.info(f"Access restricted: {str(error)}")
        return {"error": "Access Denied"}, 403

    @application.errorhandler(401)
    def process_auth_required(error):
        """Process 401 Authentication Required errors"""
        logger.info(f"Authentication failed: {str(error)}")
        return {"error": "Authentication Needed"}, 401

    @application.errorhandler(redis.RedisError)
    def handle_redis_error(error):
        """Handle Redis connection and operational errors"""
        logger.error(f"Redis error: {str(error)}", exc_info=True)
        return {
            "error": "Service temporarily unavailable. Please try again later."
        }, 503

    @application.errorhandler(Exception)
    def process_system_error(error):
        """Process all other unexpected system errors"""
        if isinstance(error, HTTPException):
            return {"error": error.description}, error.code
        db.session.rollback()
        logger.error(f"System error occurred: {str(error)}", exc_info=True)
        return {"error": "An unexpected error occurred."}, 500
