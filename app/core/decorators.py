from functools import wraps
from marshmallow import ValidationError
from app.core.responses import validation_error_response, ledger_error_response
from app.core.logger import logger
from app.extensions import db
from app.modules.rent_saving.errors import LedgerError


def handle_errors(f):
    @wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except ValidationError as err:
            logger.warning(f"Input validation failed in {f.__name__}: {err.messages}")
            return validation_error_response(err)
        except LedgerError as err:
            logger.warning(f"Ledger rejected {f.__name__}: {err.message}")
            return ledger_error_response(err)
        except Exception as e:
            db.session.rollback()
            logger.error(f"Unexpected error in {f.__name__}: {str(e)}", exc_info=True)
            return {"message": f"An error occurred: {str(e)}"}, 500

    return wrapper
