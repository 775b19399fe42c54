"""SavingsPlanLedger: charges, penalties, balance and status transitions."""

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from app.core.constants import (
    SavingsPlanStatus,
    SavingsTransactionStatus,
    SavingsTransactionType,
)
from app.modules.rent_saving.errors import (
    InvalidPlanError,
    InvalidAmountError,
    InsufficientFundsError,
    PlanNotActiveError,
    PendingTransactionError,
    TransactionStateError,
    PaymentVerificationError,
)
from app.modules.rent_saving.models import SavingsTransaction
from app.modules.rent_saving.services import SavingsPlanLedger


def transaction_count(plan):
    return SavingsTransaction.query.filter_by(savings_id=plan.id).count()


# Plan creation


def test_create_plan_uses_default_rates(plan):
    assert plan.status == SavingsPlanStatus.ACTIVE
    assert plan.current_amount == Decimal("0")
    assert plan.deposit_charge == Decimal("2.00")
    assert plan.early_withdrawal_penalty == Decimal("5.00")


@pytest.mark.parametrize("target", [Decimal("0"), Decimal("-50")])
def test_create_plan_rejects_non_positive_target(ledger, user, clock, target):
    with pytest.raises(InvalidPlanError):
        ledger.create_plan(user, target, clock() + timedelta(days=30))


@pytest.mark.parametrize("offset", [0, -1])
def test_create_plan_rejects_due_date_not_in_future(ledger, user, clock, offset):
    with pytest.raises(InvalidPlanError):
        ledger.create_plan(user, Decimal("5000"), clock() + timedelta(days=offset))


def test_create_plan_rejects_rate_outside_percentage(ledger, user, clock):
    with pytest.raises(InvalidPlanError):
        ledger.create_plan(
            user, Decimal("5000"), clock() + timedelta(days=30), charge_rate=Decimal("101")
        )


def test_create_plan_limits_active_plans(db, user, clock):
    ledger = SavingsPlanLedger(db.session, clock=clock, max_active_plans=2)
    due = clock() + timedelta(days=30)
    ledger.create_plan(user, Decimal("5000"), due)
    ledger.create_plan(user, Decimal("5000"), due)

    with pytest.raises(InvalidPlanError, match="maximum 2"):
        ledger.create_plan(user, Decimal("5000"), due)


def test_create_plan_for_unavailable_property_fails(ledger, user, clock, db, rental_property):
    rental_property.is_available = False
    db.session.commit()

    with pytest.raises(InvalidPlanError, match="not available"):
        ledger.create_plan(
            user, Decimal("5000"), clock() + timedelta(days=30), rental_property=rental_property
        )


def test_one_active_plan_per_property(ledger, user, clock, rental_property):
    due = clock() + timedelta(days=30)
    linked = ledger.create_plan(user, Decimal("5000"), due, rental_property=rental_property)
    assert linked.property_id == rental_property.id

    with pytest.raises(InvalidPlanError, match="already have"):
        ledger.create_plan(user, Decimal("5000"), due, rental_property=rental_property)


# Deposits


def test_deposit_example_from_product_sheet(ledger, plan):
    transaction = ledger.deposit(plan, Decimal("10000"))

    assert transaction.transaction_type == SavingsTransactionType.DEPOSIT
    assert transaction.status == SavingsTransactionStatus.PENDING
    assert transaction.charge_amount == Decimal("200")
    assert transaction.net_amount == Decimal("9800")
    assert plan.current_amount == Decimal("0")

    ledger.confirm_transaction(transaction)

    assert transaction.status == SavingsTransactionStatus.COMPLETED
    assert plan.current_amount == Decimal("9800")


@pytest.mark.parametrize(
    "gross, rate",
    [
        (Decimal("100"), Decimal("2.00")),
        (Decimal("333.33"), Decimal("2.00")),
        (Decimal("12345.67"), Decimal("2.50")),
        (Decimal("999999.99"), Decimal("0.00")),
    ],
)
def test_deposit_net_plus_charge_equals_gross(ledger, user, clock, gross, rate):
    plan = ledger.create_plan(
        user, Decimal("2000000"), clock() + timedelta(days=60), charge_rate=rate
    )
    transaction = ledger.deposit(plan, gross)

    assert transaction.net_amount + transaction.charge_amount == gross
    assert transaction.penalty_amount == Decimal("0")


@pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-1")])
def test_deposit_rejects_non_positive_amount(ledger, plan, amount):
    with pytest.raises(InvalidAmountError):
        ledger.deposit(plan, amount)
    assert transaction_count(plan) == 0


def test_deposit_into_cancelled_plan_fails(ledger, plan):
    ledger.cancel_plan(plan)

    with pytest.raises(InvalidAmountError):
        ledger.deposit(plan, Decimal("1000"))
    with pytest.raises(PlanNotActiveError):
        ledger.deposit(plan, Decimal("1000"))


def test_only_one_pending_deposit(ledger, plan):
    ledger.deposit(plan, Decimal("1000"))

    with pytest.raises(PendingTransactionError):
        ledger.deposit(plan, Decimal("1000"))
    assert transaction_count(plan) == 1


def test_reaching_target_completes_plan_once(ledger, user, clock):
    plan = ledger.create_plan(
        user, Decimal("1000"), clock() + timedelta(days=60), charge_rate=Decimal("0")
    )
    ledger.confirm_transaction(ledger.deposit(plan, Decimal("600")))
    assert plan.status == SavingsPlanStatus.ACTIVE

    ledger.confirm_transaction(ledger.deposit(plan, Decimal("600")))
    assert plan.status == SavingsPlanStatus.COMPLETED
    assert plan.current_amount == Decimal("1200")

    with pytest.raises(InvalidAmountError):
        ledger.deposit(plan, Decimal("100"))

    # Withdrawing from a completed plan leaves it completed
    ledger.confirm_transaction(ledger.withdraw(plan, Decimal("1200")))
    assert plan.status == SavingsPlanStatus.COMPLETED
    assert plan.current_amount == Decimal("0")


def test_failed_deposit_leaves_balance_untouched(ledger, plan):
    transaction = ledger.deposit(plan, Decimal("5000"))
    ledger.fail_transaction(transaction, {"gateway_response": "Declined"})

    assert transaction.status == SavingsTransactionStatus.FAILED
    assert transaction.payment_data == {"gateway_response": "Declined"}
    assert plan.current_amount == Decimal("0")
    with pytest.raises(TransactionStateError):
        ledger.confirm_transaction(transaction)


def test_confirming_twice_applies_once(ledger, plan):
    transaction = ledger.deposit(plan, Decimal("10000"))
    ledger.confirm_transaction(transaction)
    ledger.confirm_transaction(transaction)

    assert plan.current_amount == Decimal("9800")
    with pytest.raises(TransactionStateError):
        ledger.fail_transaction(transaction)


def test_failed_commit_leaves_no_partial_state(db, clock, user):
    ledger = SavingsPlanLedger(db.session, clock=clock, reference_generator=lambda: "SAV-DUP")
    plan = ledger.create_plan(user, Decimal("50000"), clock() + timedelta(days=30))
    ledger.fail_transaction(ledger.deposit(plan, Decimal("1000")))

    with pytest.raises(IntegrityError):
        ledger.deposit(plan, Decimal("2000"))

    assert transaction_count(plan) == 1
    assert plan.current_amount == Decimal("0")


# Withdrawals


def test_early_withdrawal_charges_penalty_on_requested_amount(ledger, funded_plan):
    transaction = ledger.withdraw(funded_plan, Decimal("1000"), reason="Moving out early")

    assert transaction.is_early_withdrawal is True
    assert transaction.penalty_amount == Decimal("50")
    assert transaction.net_amount == Decimal("950")
    assert transaction.net_amount + transaction.penalty_amount == Decimal("1000")
    assert transaction.notes == "Moving out early"

    ledger.confirm_transaction(transaction)
    # The penalty stays with the platform: the whole requested amount leaves the plan
    assert funded_plan.current_amount == Decimal("8800")


def test_on_time_withdrawal_has_no_penalty(ledger, funded_plan, clock):
    clock.advance(90)
    transaction = ledger.withdraw(funded_plan, Decimal("1000"))

    assert transaction.is_early_withdrawal is False
    assert transaction.penalty_amount == Decimal("0")
    assert transaction.net_amount == Decimal("1000")


def test_withdrawing_more_than_balance_fails_without_side_effects(ledger, funded_plan):
    before = transaction_count(funded_plan)

    with pytest.raises(InsufficientFundsError):
        ledger.withdraw(funded_plan, Decimal("9800.01"))

    assert funded_plan.current_amount == Decimal("9800")
    assert transaction_count(funded_plan) == before


def test_withdraw_rejects_non_positive_amount(ledger, funded_plan):
    with pytest.raises(InvalidAmountError):
        ledger.withdraw(funded_plan, Decimal("0"))


def test_withdraw_from_cancelled_plan_fails(ledger, plan):
    ledger.cancel_plan(plan)

    with pytest.raises(PlanNotActiveError):
        ledger.withdraw(plan, Decimal("100"))


def test_only_one_pending_withdrawal(ledger, funded_plan):
    ledger.withdraw(funded_plan, Decimal("1000"))

    with pytest.raises(PendingTransactionError):
        ledger.withdraw(funded_plan, Decimal("1000"))


def test_emptying_active_plan_cancels_it(ledger, funded_plan):
    ledger.confirm_transaction(ledger.withdraw(funded_plan, Decimal("9800")))

    assert funded_plan.current_amount == Decimal("0")
    assert funded_plan.status == SavingsPlanStatus.CANCELLED


def test_balance_never_negative_across_sequence(ledger, funded_plan):
    for amount in (Decimal("4000"), Decimal("3000"), Decimal("2800")):
        ledger.confirm_transaction(ledger.withdraw(funded_plan, amount))
        assert funded_plan.current_amount >= 0

    with pytest.raises((InsufficientFundsError, PlanNotActiveError)):
        ledger.withdraw(funded_plan, Decimal("1"))


# Lifecycle


def test_update_plan_rejects_target_below_balance(ledger, funded_plan):
    with pytest.raises(InvalidPlanError):
        ledger.update_plan(funded_plan, target_amount=Decimal("9000"))


def test_update_plan_to_met_target_completes(ledger, funded_plan):
    ledger.update_plan(funded_plan, target_amount=Decimal("9800"), plan_name="Smaller flat")

    assert funded_plan.plan_name == "Smaller flat"
    assert funded_plan.status == SavingsPlanStatus.COMPLETED


def test_cancel_requires_empty_balance(ledger, funded_plan):
    with pytest.raises(InvalidPlanError, match="withdraw funds first"):
        ledger.cancel_plan(funded_plan)


def test_cancel_blocked_by_pending_transaction(ledger, plan):
    ledger.deposit(plan, Decimal("1000"))

    with pytest.raises(PendingTransactionError):
        ledger.cancel_plan(plan)


def test_mature_completes_due_plan(ledger, funded_plan, clock):
    assert ledger.mature(funded_plan) is False

    clock.advance(90)
    assert ledger.mature(funded_plan) is True
    assert funded_plan.status == SavingsPlanStatus.COMPLETED
    assert ledger.mature(funded_plan) is False


def test_mature_due_plans_only_touches_due_active_plans(ledger, user, clock):
    soon = ledger.create_plan(user, Decimal("5000"), clock() + timedelta(days=10))
    later = ledger.create_plan(user, Decimal("5000"), clock() + timedelta(days=100))

    clock.advance(10)
    matured = ledger.mature_due_plans()

    assert [p.id for p in matured] == [soon.id]
    assert soon.status == SavingsPlanStatus.COMPLETED
    assert later.status == SavingsPlanStatus.ACTIVE


def test_summary_totals(ledger, funded_plan):
    ledger.confirm_transaction(ledger.withdraw(funded_plan, Decimal("1000")))
    ledger.fail_transaction(ledger.deposit(funded_plan, Decimal("500")))

    summary = ledger.summary(funded_plan)

    assert summary["total_deposits"] == Decimal("9800")
    assert summary["total_withdrawals"] == Decimal("1000")
    assert summary["total_charges"] == Decimal("200")
    assert summary["total_penalties"] == Decimal("50")
    assert summary["transaction_count"] == 3
    assert summary["progress_percentage"] == Decimal("8.80")
    assert summary["remaining_amount"] == Decimal("91200")
    assert summary["days_until_due"] == 90
    assert summary["can_withdraw_without_penalty"] is False
    assert summary["early_withdrawal_penalty_amount"] == Decimal("440")


def test_find_by_reference(ledger, plan):
    transaction = ledger.deposit(plan, Decimal("1000"))

    assert ledger.find_by_reference(transaction.payment_reference) is transaction
    assert ledger.find_by_reference("SAV-MISSING") is None


def test_ledger_from_config_reads_savings_settings(app):
    from app.modules.rent_saving.services import ledger_from_config

    app.config.update(
        SAVINGS_DEFAULT_CHARGE_RATE="1.50",
        SAVINGS_MAX_ACTIVE_PLANS=3,
        SAVINGS_REFERENCE_PREFIX="RENT",
    )
    ledger = ledger_from_config()

    assert ledger.charge_rate == Decimal("1.50")
    assert ledger.penalty_rate == Decimal("5.00")
    assert ledger.max_active_plans == 3
    assert ledger.reference_generator().startswith("RENT-")


@pytest.mark.parametrize("rate", ["abc", "NaN", "Infinity"])
def test_create_plan_rejects_non_numeric_rate(ledger, user, clock, rate):
    with pytest.raises(InvalidPlanError):
        ledger.create_plan(user, Decimal("5000"), clock() + timedelta(days=30), charge_rate=rate)


# Withdrawals with other transactions in flight


def test_emptying_plan_with_pending_deposit_keeps_it_active(ledger, funded_plan):
    deposit = ledger.deposit(funded_plan, Decimal("5000"))

    ledger.confirm_transaction(ledger.withdraw(funded_plan, Decimal("9800")))

    assert funded_plan.current_amount == Decimal("0")
    assert funded_plan.status == SavingsPlanStatus.ACTIVE

    ledger.confirm_transaction(deposit)
    assert funded_plan.current_amount == Decimal("4900")

    withdrawal = ledger.confirm_transaction(ledger.withdraw(funded_plan, Decimal("1000")))
    assert withdrawal.is_completed
    assert funded_plan.current_amount == Decimal("3900")


def test_confirming_deposit_into_cancelled_plan_fails(db, ledger, plan):
    deposit = ledger.deposit(plan, Decimal("5000"))
    plan.status = SavingsPlanStatus.CANCELLED
    db.session.commit()

    with pytest.raises(PlanNotActiveError):
        ledger.confirm_transaction(deposit)

    db.session.refresh(deposit)
    assert deposit.is_pending
    assert plan.current_amount == Decimal("0")


def test_withdrawal_consumed_by_penalty_is_rejected(ledger, user, clock):
    plan = ledger.create_plan(
        user, Decimal("100000"), clock() + timedelta(days=90), penalty_rate=Decimal("100")
    )
    ledger.confirm_transaction(ledger.deposit(plan, Decimal("10000")))

    with pytest.raises(InvalidAmountError):
        ledger.withdraw(plan, Decimal("1000"))

    assert SavingsTransaction.query.filter_by(
        savings_id=plan.id, transaction_type=SavingsTransactionType.WITHDRAWAL
    ).count() == 0


# Payment verification


@pytest.fixture
def verifying_ledger(db, clock, payment_verifier):
    return SavingsPlanLedger(db.session, clock=clock, payment_verifier=payment_verifier)


def test_verify_deposit_confirms_full_payment(verifying_ledger, plan, payment_verifier):
    deposit = verifying_ledger.deposit(plan, Decimal("10000"))

    verifying_ledger.verify_deposit(deposit)

    assert deposit.is_completed
    assert plan.current_amount == Decimal("9800")
    assert deposit.payment_data["status"] == "success"
    assert payment_verifier.calls == [deposit.payment_reference]


@pytest.mark.parametrize(
    "verdict",
    [
        {"status": "failed", "amount": 1000000},
        {"status": "abandoned", "amount": 0},
        {"status": "success", "amount": 500000},
        {"status": "success", "amount": "garbage"},
    ],
)
def test_verify_deposit_fails_unpaid_or_short_payment(
    verifying_ledger, plan, payment_verifier, verdict
):
    deposit = verifying_ledger.deposit(plan, Decimal("10000"))
    payment_verifier.verdicts[deposit.payment_reference] = verdict

    verifying_ledger.verify_deposit(deposit)

    assert deposit.is_failed
    assert plan.current_amount == Decimal("0")


def test_verify_deposit_provider_error_leaves_deposit_pending(
    verifying_ledger, plan, payment_verifier
):
    deposit = verifying_ledger.deposit(plan, Decimal("10000"))
    payment_verifier.verdicts[deposit.payment_reference] = PaymentVerificationError(
        "Could not verify payment with the provider. Please try again later."
    )

    with pytest.raises(PaymentVerificationError):
        verifying_ledger.verify_deposit(deposit)

    assert deposit.is_pending
    assert plan.current_amount == Decimal("0")


def test_verify_deposit_is_idempotent(verifying_ledger, plan, payment_verifier):
    deposit = verifying_ledger.deposit(plan, Decimal("10000"))
    verifying_ledger.verify_deposit(deposit)

    verifying_ledger.verify_deposit(deposit)

    assert plan.current_amount == Decimal("9800")
    assert len(payment_verifier.calls) == 1


def test_verify_deposit_without_provider_fails(ledger, plan):
    deposit = ledger.deposit(plan, Decimal("10000"))

    with pytest.raises(PaymentVerificationError):
        ledger.verify_deposit(deposit)

    assert deposit.is_pending


def test_withdrawals_are_not_verified_with_provider(verifying_ledger, funded_plan):
    withdrawal = verifying_ledger.withdraw(funded_plan, Decimal("1000"))

    with pytest.raises(TransactionStateError):
        verifying_ledger.verify_deposit(withdrawal)
