from datetime import timedelta
from decimal import Decimal

from app.core.constants import SavingsPlanStatus
from app.core.models import get_utc_today
from app.modules.rent_saving.models import SavingsPlan
from app.modules.rent_saving.tasks import mature_due_savings_plans


def add_plan(db, user, due_date, status=SavingsPlanStatus.ACTIVE):
    plan = SavingsPlan(
        user_id=user.id,
        plan_name="Rent",
        target_amount=Decimal("50000"),
        current_amount=Decimal("1000"),
        due_date=due_date,
        status=status,
    )
    db.session.add(plan)
    db.session.commit()
    return plan


def test_maturity_sweep_completes_due_plans(db, user):
    today = get_utc_today()
    overdue = add_plan(db, user, today - timedelta(days=2))
    due_today = add_plan(db, user, today)
    upcoming = add_plan(db, user, today + timedelta(days=1))
    cancelled = add_plan(db, user, today - timedelta(days=2), SavingsPlanStatus.CANCELLED)

    assert mature_due_savings_plans() == 2

    assert overdue.status == SavingsPlanStatus.COMPLETED
    assert due_today.status == SavingsPlanStatus.COMPLETED
    assert upcoming.status == SavingsPlanStatus.ACTIVE
    assert cancelled.status == SavingsPlanStatus.CANCELLED
    # Balances are left for the owner to withdraw
    assert overdue.current_amount == Decimal("1000")


def test_maturity_sweep_is_idempotent(db, user):
    add_plan(db, user, get_utc_today() - timedelta(days=1))

    assert mature_due_savings_plans() == 1
    assert mature_due_savings_plans() == 0
