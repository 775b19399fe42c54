from decimal import Decimal
from app.core.models import BaseModel
from app.extensions import db
from app.core.constants import (
    SavingsPlanStatus,
    SavingsTransactionType,
    SavingsTransactionStatus,
    PaymentMethod,
    DEFAULT_PENALTY_RATE,
    DEFAULT_CHARGE_RATE,
)


class SavingsPlan(BaseModel):
    __tablename__ = "rent_savings"

    plan_name = db.Column(db.String(255), nullable=False)
    target_amount = db.Column(db.Numeric(15, 2), nullable=False)
    current_amount = db.Column(db.Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    due_date = db.Column(db.Date, nullable=False, index=True)
    status = db.Column(
        db.Enum(SavingsPlanStatus),
        nullable=False,
        default=SavingsPlanStatus.ACTIVE,
        index=True,
    )
    early_withdrawal_penalty = db.Column(
        db.Numeric(5, 2), nullable=False, default=DEFAULT_PENALTY_RATE
    )
    deposit_charge = db.Column(
        db.Numeric(5, 2), nullable=False, default=DEFAULT_CHARGE_RATE
    )
    is_external_property = db.Column(db.Boolean, nullable=False, default=False)
    external_property_details = db.Column(db.Text, nullable=True)

    user_id = db.Column(
        db.Uuid,
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    property_id = db.Column(
        db.Uuid,
        db.ForeignKey("properties.id", ondelete="SET NULL"),
        nullable=True,
    )
    user = db.relationship(
        "User", backref=db.backref("rent_savings", lazy=True, cascade="all, delete")
    )
    rental_property = db.relationship(
        "Property", backref=db.backref("rent_savings", lazy=True)
    )

    __table_args__ = (
        db.CheckConstraint("current_amount >= 0", name="ck_rent_savings_non_negative"),
        db.Index("ix_rent_savings_user_status", "user_id", "status"),
    )

    @property
    def is_active(self):
        return self.status == SavingsPlanStatus.ACTIVE

    @property
    def is_completed(self):
        return self.status == SavingsPlanStatus.COMPLETED

    @property
    def is_cancelled(self):
        return self.status == SavingsPlanStatus.CANCELLED

    def __str__(self):
        return f"SavingsPlan(name={self.plan_name}, status={self.status.value})"


class SavingsTransaction(BaseModel):
    __tablename__ = "savings_transactions"

    amount = db.Column(db.Numeric(15, 2), nullable=False)
    charge_amount = db.Column(db.Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    penalty_amount = db.Column(db.Numeric(15, 2), nullable=False, default=Decimal("0.00"))
    net_amount = db.Column(db.Numeric(15, 2), nullable=False)
    transaction_type = db.Column(db.Enum(SavingsTransactionType), nullable=False)
    is_early_withdrawal = db.Column(db.Boolean, nullable=False, default=False)
    payment_reference = db.Column(db.String(64), unique=True, nullable=False, index=True)
    status = db.Column(
        db.Enum(SavingsTransactionStatus),
        nullable=False,
        default=SavingsTransactionStatus.PENDING,
        index=True,
    )
    payment_method = db.Column(
        db.Enum(PaymentMethod), nullable=False, default=PaymentMethod.PAYSTACK
    )
    payment_data = db.Column(db.JSON, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    savings_id = db.Column(
        db.Uuid,
        db.ForeignKey("rent_savings.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id = db.Column(
        db.Uuid,
        db.ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    savings = db.relationship(
        "SavingsPlan",
        backref=db.backref("transactions", lazy="dynamic", cascade="all, delete"),
    )
    user = db.relationship(
        "User",
        backref=db.backref("savings_transactions", lazy=True, cascade="all, delete"),
    )

    __table_args__ = (
        db.Index("ix_savings_transactions_plan_type", "savings_id", "transaction_type"),
    )

    @property
    def is_deposit(self):
        return self.transaction_type == SavingsTransactionType.DEPOSIT

    @property
    def is_withdrawal(self):
        return self.transaction_type == SavingsTransactionType.WITHDRAWAL

    @property
    def is_pending(self):
        return self.status == SavingsTransactionStatus.PENDING

    @property
    def is_completed(self):
        return self.status == SavingsTransactionStatus.COMPLETED

    @property
    def is_failed(self):
        return self.status == SavingsTransactionStatus.FAILED

    def __str__(self):
        return (
            f"SavingsTransaction(type={self.transaction_type.value}, "
            f"amount={self.amount}, status={self.status.value})"
        )
