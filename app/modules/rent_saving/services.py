from contextlib import contextmanager
from decimal import Decimal, InvalidOperation

from flask import current_app
from sqlalchemy import func

from app.core.constants import (
    SavingsPlanStatus,
    SavingsTransactionType,
    SavingsTransactionStatus,
    PaymentMethod,
    DEFAULT_PENALTY_RATE,
    DEFAULT_CHARGE_RATE,
    MAX_ACTIVE_PLANS,
)
from app.core.logger import logger
from app.core.models import get_utc_today
from app.core.utils import to_money, percent_of, generate_payment_reference, HUNDRED
from app.extensions import db
from .errors import (
    LedgerError,
    InvalidPlanError,
    InvalidAmountError,
    InactivePlanDepositError,
    InsufficientFundsError,
    PlanNotActiveError,
    PendingTransactionError,
    TransactionStateError,
    PaymentVerificationError,
)
from .models import SavingsPlan, SavingsTransaction
from .payments import payment_verifier_from_config

ZERO = Decimal("0.00")


class SavingsPlanLedger:
    """
    Owns the money side of a rent savings plan: deposits and their charges,
    withdrawals and their early-withdrawal penalties, completion and maturity.

    Every mutating operation runs as one unit of work on ``session``: the plan
    row and the transaction row are committed together or not at all.

    Collaborators are injected:
        session: SQLAlchemy session used for all reads and writes
        clock: callable returning today's date
        reference_generator: callable returning a fresh payment reference
        payment_verifier: object whose ``verify(reference)`` returns the
            payment provider's verdict for a deposit
    """

    def __init__(
        self,
        session,
        clock=get_utc_today,
        reference_generator=generate_payment_reference,
        max_active_plans=MAX_ACTIVE_PLANS,
        penalty_rate=DEFAULT_PENALTY_RATE,
        charge_rate=DEFAULT_CHARGE_RATE,
        payment_verifier=None,
    ):
        self.session = session
        self.clock = clock
        self.reference_generator = reference_generator
        self.max_active_plans = max_active_plans
        self.penalty_rate = penalty_rate
        self.charge_rate = charge_rate
        self.payment_verifier = payment_verifier

    @contextmanager
    def atomic(self, action):
        try:
            yield
            self.session.commit()
        except Exception as e:
            self.session.rollback()
            if isinstance(e, LedgerError):
                logger.warning(f"Savings {action} rejected: {e}")
            else:
                logger.error(f"Error during savings {action}: {str(e)}", exc_info=True)
            raise

    # Plans

    def create_plan(
        self,
        user,
        target_amount,
        due_date,
        penalty_rate=None,
        charge_rate=None,
        rental_property=None,
        plan_name=None,
        is_external_property=False,
        external_property_details=None,
    ):
        if penalty_rate is None:
            penalty_rate = self.penalty_rate
        if charge_rate is None:
            charge_rate = self.charge_rate
        with self.atomic("plan creation"):
            target_amount = to_money(target_amount)
            if target_amount <= 0:
                raise InvalidPlanError("Target amount must be greater than zero")
            if due_date <= self.clock():
                raise InvalidPlanError("Due date must be in the future")
            for label, rate in (("Penalty", penalty_rate), ("Charge", charge_rate)):
                try:
                    rate = Decimal(str(rate))
                except InvalidOperation:
                    raise InvalidPlanError(f"{label} rate must be a number") from None
                if not rate.is_finite() or not ZERO <= rate <= HUNDRED:
                    raise InvalidPlanError(f"{label} rate must be between 0 and 100")

            active_plans = self._user_plans(user, SavingsPlanStatus.ACTIVE).count()
            if active_plans >= self.max_active_plans:
                raise InvalidPlanError(
                    f"You can have maximum {self.max_active_plans} active savings plans"
                )

            if rental_property is not None:
                if not rental_property.is_available:
                    raise InvalidPlanError("Selected property is not available")
                existing = (
                    self._user_plans(user, SavingsPlanStatus.ACTIVE)
                    .filter(SavingsPlan.property_id == rental_property.id)
                    .first()
                )
                if existing:
                    raise InvalidPlanError(
                        "You already have an active savings plan for this property"
                    )

            plan = SavingsPlan(
                user_id=user.id,
                property_id=rental_property.id if rental_property is not None else None,
                plan_name=plan_name or "Rent savings",
                target_amount=target_amount,
                current_amount=ZERO,
                due_date=due_date,
                status=SavingsPlanStatus.ACTIVE,
                early_withdrawal_penalty=to_money(penalty_rate),
                deposit_charge=to_money(charge_rate),
                is_external_property=bool(is_external_property),
                external_property_details=external_property_details,
            )
            self.session.add(plan)

        logger.info(
            f"Savings plan {plan.id} created for user {user.id} with target {target_amount}"
        )
        return plan

    def update_plan(
        self,
        plan,
        plan_name=None,
        target_amount=None,
        due_date=None,
        external_property_details=None,
    ):
        """Edit an active plan. A lowered target that is already met completes it."""
        with self.atomic("plan update"):
            if not plan.is_active:
                raise PlanNotActiveError("Can only update active savings plans")
            if target_amount is not None:
                target_amount = to_money(target_amount)
                if target_amount <= 0:
                    raise InvalidPlanError("Target amount must be greater than zero")
                if target_amount < plan.current_amount:
                    raise InvalidPlanError(
                        "Target amount cannot be less than current savings amount "
                        f"of {plan.current_amount}"
                    )
                plan.target_amount = target_amount
            if due_date is not None:
                if due_date <= self.clock():
                    raise InvalidPlanError("Due date must be in the future")
                plan.due_date = due_date
            if plan_name is not None:
                plan.plan_name = plan_name
            if external_property_details is not None:
                plan.external_property_details = external_property_details

            self._complete_if_target_reached(plan)

        logger.info(f"Savings plan {plan.id} updated")
        return plan

    def cancel_plan(self, plan):
        with self.atomic("plan cancellation"):
            if not plan.is_active:
                raise PlanNotActiveError("Can only cancel active savings plans")
            if plan.current_amount > 0:
                raise InvalidPlanError(
                    "Cannot cancel savings plan with existing balance of "
                    f"{plan.current_amount}. Please withdraw funds first."
                )
            if self._pending(plan).count() > 0:
                raise PendingTransactionError(
                    "Cannot cancel savings plan with pending transactions"
                )
            plan.status = SavingsPlanStatus.CANCELLED

        logger.info(f"Savings plan {plan.id} cancelled")
        return plan

    def mature(self, plan):
        """Complete an active plan whose due date has arrived."""
        if not plan.is_active or plan.due_date > self.clock():
            return False
        with self.atomic("plan maturity"):
            plan.status = SavingsPlanStatus.COMPLETED
        logger.info(f"Savings plan {plan.id} matured on {plan.due_date}")
        return True

    def mature_due_plans(self):
        today = self.clock()
        with self.atomic("maturity sweep"):
            due_plans = (
                self.session.query(SavingsPlan)
                .filter(
                    SavingsPlan.status == SavingsPlanStatus.ACTIVE,
                    SavingsPlan.due_date <= today,
                )
                .with_for_update()
                .all()
            )
            for plan in due_plans:
                plan.status = SavingsPlanStatus.COMPLETED

        logger.info(f"Matured {len(due_plans)} savings plans due by {today}")
        return due_plans

    # Transactions

    def deposit(self, plan, gross_amount, payment_method=PaymentMethod.PAYSTACK):
        """
        Open a pending deposit. The plan balance moves only when the payment is
        confirmed through ``confirm_transaction``.
        """
        with self.atomic("deposit"):
            gross_amount = to_money(gross_amount)
            if gross_amount <= 0:
                raise InvalidAmountError("Deposit amount must be greater than zero")
            if not plan.is_active:
                raise InactivePlanDepositError("Cannot deposit to inactive savings plan")
            if self._pending(plan, SavingsTransactionType.DEPOSIT).first():
                raise PendingTransactionError(
                    "You have a pending deposit transaction. "
                    "Please complete or cancel it first."
                )

            charge = percent_of(gross_amount, plan.deposit_charge)
            transaction = SavingsTransaction(
                savings_id=plan.id,
                user_id=plan.user_id,
                amount=gross_amount,
                charge_amount=charge,
                penalty_amount=ZERO,
                net_amount=gross_amount - charge,
                transaction_type=SavingsTransactionType.DEPOSIT,
                is_early_withdrawal=False,
                payment_reference=self.reference_generator(),
                payment_method=payment_method,
                status=SavingsTransactionStatus.PENDING,
            )
            self.session.add(transaction)

        logger.info(
            f"Deposit {transaction.payment_reference} of {gross_amount} "
            f"initiated for savings plan {plan.id}"
        )
        return transaction

    def withdraw(
        self,
        plan,
        requested_amount,
        reason=None,
        payment_method=PaymentMethod.BANK_TRANSFER,
    ):
        """
        Open a pending withdrawal. Before the due date a penalty of
        ``early_withdrawal_penalty`` percent of the requested amount is kept by
        the platform; the full requested amount leaves the plan on confirmation.
        """
        with self.atomic("withdrawal"):
            requested_amount = to_money(requested_amount)
            if requested_amount <= 0:
                raise InvalidAmountError("Withdrawal amount must be greater than zero")
            if plan.is_cancelled:
                raise PlanNotActiveError("Cannot withdraw from a cancelled savings plan")
            if requested_amount > plan.current_amount:
                raise InsufficientFundsError(
                    f"Insufficient savings balance. Available balance: {plan.current_amount}"
                )
            if self._pending(plan, SavingsTransactionType.WITHDRAWAL).first():
                raise PendingTransactionError(
                    "You have a pending withdrawal request. "
                    "Please wait for it to be processed."
                )

            is_early = self.is_early_withdrawal(plan)
            penalty = (
                percent_of(requested_amount, plan.early_withdrawal_penalty)
                if is_early
                else ZERO
            )
            if requested_amount - penalty <= 0:
                raise InvalidAmountError(
                    "Withdrawal amount is too low after penalty deduction"
                )
            transaction = SavingsTransaction(
                savings_id=plan.id,
                user_id=plan.user_id,
                amount=requested_amount,
                charge_amount=ZERO,
                penalty_amount=penalty,
                net_amount=requested_amount - penalty,
                transaction_type=SavingsTransactionType.WITHDRAWAL,
                is_early_withdrawal=is_early,
                payment_reference=self.reference_generator(),
                payment_method=payment_method,
                status=SavingsTransactionStatus.PENDING,
                notes=reason,
            )
            self.session.add(transaction)

        logger.info(
            f"Withdrawal {transaction.payment_reference} of {requested_amount} "
            f"(penalty {penalty}) requested for savings plan {plan.id}"
        )
        return transaction

    def confirm_transaction(self, transaction, payment_data=None):
        """
        Apply a pending transaction to its plan. The plan row is locked for the
        duration so concurrent confirmations cannot lose an update.
        """
        with self.atomic("confirmation"):
            transaction = self._lock(SavingsTransaction, transaction.id)
            if transaction.is_completed:
                logger.info(f"Transaction {transaction.payment_reference} already completed")
                return transaction
            if transaction.is_failed:
                raise TransactionStateError("This transaction has already failed")

            plan = self._lock(SavingsPlan, transaction.savings_id)
            if transaction.is_deposit:
                if plan.is_cancelled:
                    raise PlanNotActiveError("Cannot credit a cancelled savings plan")
                plan.current_amount = to_money(plan.current_amount) + transaction.net_amount
                self._complete_if_target_reached(plan)
            else:
                if transaction.amount > plan.current_amount:
                    raise InsufficientFundsError(
                        f"Insufficient savings balance. Available balance: {plan.current_amount}"
                    )
                plan.current_amount = to_money(plan.current_amount) - transaction.amount
                # An emptied plan closes only when nothing else is in flight
                others_pending = self._pending(plan).filter(
                    SavingsTransaction.id != transaction.id
                ).count()
                if plan.is_active and plan.current_amount == 0 and not others_pending:
                    plan.status = SavingsPlanStatus.CANCELLED

            transaction.status = SavingsTransactionStatus.COMPLETED
            if payment_data is not None:
                transaction.payment_data = payment_data

        logger.info(
            f"{transaction.transaction_type.value.title()} {transaction.payment_reference} "
            f"completed; savings plan {plan.id} balance is {plan.current_amount}"
        )
        return transaction

    def fail_transaction(self, transaction, payment_data=None):
        with self.atomic("failure"):
            transaction = self._lock(SavingsTransaction, transaction.id)
            if transaction.is_completed:
                raise TransactionStateError("A completed transaction cannot be failed")
            transaction.status = SavingsTransactionStatus.FAILED
            if payment_data is not None:
                transaction.payment_data = payment_data

        logger.info(f"Transaction {transaction.payment_reference} marked as failed")
        return transaction

    def verify_deposit(self, transaction):
        """
        Settle a pending deposit from the payment provider's verdict. The
        deposit is confirmed only when the provider reports a successful
        payment covering the full gross amount; any other verdict fails it.
        """
        if not transaction.is_deposit:
            raise TransactionStateError("Only deposits are verified with the provider")
        if transaction.is_completed:
            return transaction
        if transaction.is_failed:
            raise TransactionStateError("This transaction has already failed")
        if self.payment_verifier is None:
            raise PaymentVerificationError("Payment provider is not configured")

        # Provider call stays outside the database transaction
        verdict = self.payment_verifier.verify(transaction.payment_reference)
        try:
            paid = Decimal(str(verdict.get("amount") or 0)) / HUNDRED
        except InvalidOperation:
            paid = ZERO

        if verdict.get("status") == "success" and paid >= transaction.amount:
            return self.confirm_transaction(transaction, verdict)

        logger.warning(
            f"Deposit {transaction.payment_reference} not paid: status "
            f"{verdict.get('status')}, amount {paid} of {transaction.amount}"
        )
        return self.fail_transaction(transaction, verdict)

    def find_by_reference(self, reference):
        return (
            self.session.query(SavingsTransaction)
            .filter_by(payment_reference=reference)
            .first()
        )

    # Reporting

    def is_early_withdrawal(self, plan):
        return self.clock() < plan.due_date

    def summary(self, plan):
        """Balances and totals shown alongside a plan."""
        completed = SavingsTransactionStatus.COMPLETED
        target = to_money(plan.target_amount)
        current = to_money(plan.current_amount)
        progress = (current / target * HUNDRED) if target > 0 else ZERO
        is_early = self.is_early_withdrawal(plan)

        return {
            "total_deposits": self._total(plan, SavingsTransaction.net_amount,
                                          SavingsTransactionType.DEPOSIT, completed),
            "total_withdrawals": self._total(plan, SavingsTransaction.amount,
                                             SavingsTransactionType.WITHDRAWAL, completed),
            "total_charges": self._total(plan, SavingsTransaction.charge_amount,
                                         status=completed),
            "total_penalties": self._total(plan, SavingsTransaction.penalty_amount,
                                           status=completed),
            "transaction_count": plan.transactions.count(),
            "progress_percentage": to_money(progress),
            "remaining_amount": max(target - current, ZERO),
            "days_until_due": (plan.due_date - self.clock()).days,
            "can_withdraw_without_penalty": not is_early,
            "early_withdrawal_penalty_amount": (
                percent_of(current, plan.early_withdrawal_penalty) if is_early else ZERO
            ),
        }

    # Helpers

    def _complete_if_target_reached(self, plan):
        if plan.is_active and plan.current_amount >= plan.target_amount:
            plan.status = SavingsPlanStatus.COMPLETED
            logger.info(f"Savings plan {plan.id} reached its target of {plan.target_amount}")

    def _user_plans(self, user, status):
        return self.session.query(SavingsPlan).filter(
            SavingsPlan.user_id == user.id, SavingsPlan.status == status
        )

    def _pending(self, plan, transaction_type=None):
        query = self.session.query(SavingsTransaction).filter(
            SavingsTransaction.savings_id == plan.id,
            SavingsTransaction.status == SavingsTransactionStatus.PENDING,
        )
        if transaction_type is not None:
            query = query.filter(SavingsTransaction.transaction_type == transaction_type)
        return query

    def _lock(self, model, pk):
        return (
            self.session.query(model)
            .filter(model.id == pk)
            .with_for_update()
            .populate_existing()
            .one()
        )

    def _total(self, plan, column, transaction_type=None, status=None):
        query = self.session.query(func.coalesce(func.sum(column), 0)).filter(
            SavingsTransaction.savings_id == plan.id
        )
        if transaction_type is not None:
            query = query.filter(SavingsTransaction.transaction_type == transaction_type)
        if status is not None:
            query = query.filter(SavingsTransaction.status == status)
        return to_money(query.scalar())


def ledger_from_config(session=None):
    """Build a ledger wired to the current app's session and settings."""
    config = current_app.config
    prefix = config.get("SAVINGS_REFERENCE_PREFIX", "SAV")
    return SavingsPlanLedger(
        session or db.session,
        reference_generator=lambda: generate_payment_reference(prefix),
        max_active_plans=config.get("SAVINGS_MAX_ACTIVE_PLANS", MAX_ACTIVE_PLANS),
        penalty_rate=to_money(
            config.get("SAVINGS_DEFAULT_PENALTY_RATE", DEFAULT_PENALTY_RATE)
        ),
        charge_rate=to_money(
            config.get("SAVINGS_DEFAULT_CHARGE_RATE", DEFAULT_CHARGE_RATE)
        ),
        payment_verifier=payment_verifier_from_config(),
    )
