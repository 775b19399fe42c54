from app.celery_app import celery
from app.core.logger import logger
from app.modules.rent_saving.services import ledger_from_config


@celery.task(name="app.modules.rent_saving.tasks.mature_due_savings_plans")
def mature_due_savings_plans():
    """Complete every active plan whose due date has been reached."""
    matured = ledger_from_config().mature_due_plans()
    if matured:
        logger.info(
            "Matured savings plans: " + ", ".join(str(plan.id) for plan in matured)
        )
    return len(matured)
