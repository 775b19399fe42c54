from app.core.exceptions import format_validation_messages


def validation_error_response(error):
    # Handle both ValidationError objects and direct dictionaries
    if hasattr(error, "messages"):
        formatted_errors = format_validation_messages(error.messages)
    elif isinstance(error, dict):
        formatted_errors = error
    else:
        formatted_errors = str(error)

    return {"error": formatted_errors}, 400


def ledger_error_response(error):
    return {"error": error.message}, error.status_code
