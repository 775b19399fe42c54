from marshmallow import fields, validate, validates_schema, ValidationError, pre_load
from app.core.schemas import BaseSchema, BaseRequestSchema
from app.core.validators import amount_range, validate_due_date
from app.core.constants import (
    SavingsPlanStatus,
    SavingsTransactionType,
    SavingsTransactionStatus,
    PaymentMethod,
    MAX_PLAN_NAME_LENGTH,
    MAX_DETAILS_LENGTH,
    MIN_TARGET_AMOUNT,
    MAX_TARGET_AMOUNT,
    MIN_DEPOSIT_AMOUNT,
    MAX_DEPOSIT_AMOUNT,
    MIN_WITHDRAWAL_AMOUNT,
)
from .models import SavingsPlan, SavingsTransaction


class SavingsPlanSchema(BaseSchema):
    """Serialized savings plan"""

    class Meta(BaseSchema.Meta):
        model = SavingsPlan
        fields = (
            "id",
            "user_id",
            "property_id",
            "plan_name",
            "target_amount",
            "current_amount",
            "due_date",
            "status",
            "early_withdrawal_penalty",
            "deposit_charge",
            "is_external_property",
            "external_property_details",
            "created_at",
            "updated_at",
        )

    status = fields.Enum(SavingsPlanStatus, by_value=True)
    target_amount = fields.Decimal(as_string=True)
    current_amount = fields.Decimal(as_string=True)
    early_withdrawal_penalty = fields.Decimal(as_string=True)
    deposit_charge = fields.Decimal(as_string=True)


class SavingsSummarySchema(BaseRequestSchema):
    total_deposits = fields.Decimal(as_string=True)
    total_withdrawals = fields.Decimal(as_string=True)
    total_charges = fields.Decimal(as_string=True)
    total_penalties = fields.Decimal(as_string=True)
    transaction_count = fields.Integer()
    progress_percentage = fields.Decimal(as_string=True)
    remaining_amount = fields.Decimal(as_string=True)
    days_until_due = fields.Integer()
    can_withdraw_without_penalty = fields.Boolean()
    early_withdrawal_penalty_amount = fields.Decimal(as_string=True)


class SavingsTransactionSchema(BaseSchema):
    """Serialized savings transaction"""

    class Meta(BaseSchema.Meta):
        model = SavingsTransaction
        fields = (
            "id",
            "savings_id",
            "user_id",
            "amount",
            "charge_amount",
            "penalty_amount",
            "net_amount",
            "transaction_type",
            "is_early_withdrawal",
            "payment_reference",
            "status",
            "payment_method",
            "notes",
            "created_at",
            "updated_at",
        )

    amount = fields.Decimal(as_string=True)
    charge_amount = fields.Decimal(as_string=True)
    penalty_amount = fields.Decimal(as_string=True)
    net_amount = fields.Decimal(as_string=True)
    transaction_type = fields.Enum(SavingsTransactionType, by_value=True)
    status = fields.Enum(SavingsTransactionStatus, by_value=True)
    payment_method = fields.Enum(PaymentMethod, by_value=True)


class BasePlanRequestSchema(BaseRequestSchema):
    plan_name = fields.String(
        validate=validate.Length(min=1, max=MAX_PLAN_NAME_LENGTH)
    )
    target_amount = fields.Decimal(
        validate=amount_range(MIN_TARGET_AMOUNT, MAX_TARGET_AMOUNT)
    )
    due_date = fields.Date(validate=validate_due_date)
    external_property_details = fields.String(
        validate=validate.Length(max=MAX_DETAILS_LENGTH)
    )

    @pre_load
    def strip_whitespace(self, data, **kwargs):
        """Strip whitespace from string fields before processing"""
        for key in ("plan_name", "external_property_details"):
            if isinstance(data.get(key), str):
                data[key] = data[key].strip()
        return data


class CreateSavingsPlanSchema(BasePlanRequestSchema):
    """Payload for opening a savings plan"""

    plan_name = fields.String(
        required=True, validate=validate.Length(min=1, max=MAX_PLAN_NAME_LENGTH)
    )
    target_amount = fields.Decimal(
        required=True, validate=amount_range(MIN_TARGET_AMOUNT, MAX_TARGET_AMOUNT)
    )
    due_date = fields.Date(required=True, validate=validate_due_date)
    property_id = fields.UUID(load_default=None, allow_none=True)
    is_external_property = fields.Boolean(required=True)
    external_property_details = fields.String(
        load_default=None,
        allow_none=True,
        validate=validate.Length(max=MAX_DETAILS_LENGTH),
    )

    @validates_schema
    def validate_property_source(self, data, **kwargs):
        if data.get("is_external_property"):
            if not data.get("external_property_details"):
                raise ValidationError(
                    "External property details are required for external properties.",
                    "external_property_details",
                )
            if data.get("property_id"):
                raise ValidationError(
                    "An external property cannot reference a listed property.",
                    "property_id",
                )


class UpdateSavingsPlanSchema(BasePlanRequestSchema):
    """Payload for editing an active savings plan"""

    @validates_schema
    def validate_not_empty(self, data, **kwargs):
        if not data:
            raise ValidationError("Provide at least one field to update.")


class DepositSchema(BaseRequestSchema):
    amount = fields.Decimal(
        required=True, validate=amount_range(MIN_DEPOSIT_AMOUNT, MAX_DEPOSIT_AMOUNT)
    )
    payment_method = fields.Enum(
        PaymentMethod, by_value=True, load_default=PaymentMethod.PAYSTACK
    )


class WithdrawSchema(BaseRequestSchema):
    amount = fields.Decimal(required=True, validate=amount_range(MIN_WITHDRAWAL_AMOUNT))
    withdrawal_reason = fields.String(
        load_default=None, validate=validate.Length(max=MAX_DETAILS_LENGTH)
    )


class VerifyDepositSchema(BaseRequestSchema):
    """Deposit to verify with the payment provider, keyed by our reference"""

    reference = fields.String(required=True, validate=validate.Length(min=1, max=64))


class ReviewWithdrawalSchema(BaseRequestSchema):
    payment_data = fields.Dict(load_default=None)


class TransactionHistoryQuerySchema(BaseRequestSchema):
    """Date window for a plan's transaction history"""

    date_from = fields.Date(load_default=None)
    date_to = fields.Date(load_default=None)

    @validates_schema
    def validate_window(self, data, **kwargs):
        date_from, date_to = data.get("date_from"), data.get("date_to")
        if date_from and date_to and date_from > date_to:
            raise ValidationError(
                {
                    "date_from": ["Must be on or before date_to"],
                    "date_to": ["Must be on or after date_from"],
                }
            )


class ExportQuerySchema(BaseRequestSchema):
    file_format = fields.String(
        load_default="json", validate=validate.OneOf(["json", "csv"])
    )


class DashboardStatsSchema(BaseRequestSchema):
    total_savings = fields.Decimal(as_string=True)
    active_plans = fields.Integer()
    completed_plans = fields.Integer()
    cancelled_plans = fields.Integer()
    total_deposits = fields.Decimal(as_string=True)
    total_withdrawals = fields.Decimal(as_string=True)
    total_charges_paid = fields.Decimal(as_string=True)
    total_penalties_paid = fields.Decimal(as_string=True)
    pending_transactions = fields.Integer()


class DueSoonPlanSchema(BaseRequestSchema):
    id = fields.UUID()
    plan_name = fields.String()
    target_amount = fields.Decimal(as_string=True)
    current_amount = fields.Decimal(as_string=True)
    progress_percentage = fields.Decimal(as_string=True)
    due_date = fields.Date()
    days_until_due = fields.Integer()
    property_title = fields.String(allow_none=True)


class MonthlyTotalSchema(BaseRequestSchema):
    month = fields.String()
    total = fields.Decimal(as_string=True)


class DashboardSchema(BaseRequestSchema):
    stats = fields.Nested(DashboardStatsSchema)
    recent_transactions = fields.Nested(SavingsTransactionSchema, many=True)
    due_soon = fields.Nested(DueSoonPlanSchema, many=True)
    monthly_deposits = fields.Nested(MonthlyTotalSchema, many=True)


class MonthlyBreakdownSchema(BaseRequestSchema):
    month = fields.String()
    transaction_type = fields.String()
    total_amount = fields.Decimal(as_string=True)
    transaction_count = fields.Integer()


class PlanPerformanceSchema(BaseRequestSchema):
    average_deposit = fields.Decimal(as_string=True)
    largest_deposit = fields.Decimal(as_string=True)
    smallest_deposit = fields.Decimal(as_string=True)
    deposit_count = fields.Integer()
    days_since_creation = fields.Integer()
    projected_completion_date = fields.Date(allow_none=True)
    savings_velocity = fields.Decimal(as_string=True)


class PlanAchievementSchema(BaseRequestSchema):
    progress_percentage = fields.Decimal(as_string=True)
    amount_saved = fields.Decimal(as_string=True)
    remaining_amount = fields.Decimal(as_string=True)
    days_until_due = fields.Integer()
    is_on_track = fields.Boolean()
    recommended_monthly_deposit = fields.Decimal(as_string=True)


class PlanStatisticsSchema(BaseRequestSchema):
    monthly_breakdown = fields.Nested(MonthlyBreakdownSchema, many=True)
    performance = fields.Nested(PlanPerformanceSchema)
    achievement = fields.Nested(PlanAchievementSchema)


class InsightSchema(BaseRequestSchema):
    type = fields.String()
    title = fields.String()
    message = fields.String()
    action = fields.String()


class ExportSummarySchema(BaseRequestSchema):
    total_plans = fields.Integer()
    active_plans = fields.Integer()
    completed_plans = fields.Integer()
    total_savings = fields.Decimal(as_string=True)
    total_target = fields.Decimal(as_string=True)


class ExportPlanSchema(BaseRequestSchema):
    plan_name = fields.String()
    target_amount = fields.Decimal(as_string=True)
    current_amount = fields.Decimal(as_string=True)
    progress_percentage = fields.Decimal(as_string=True)
    status = fields.String()
    created_date = fields.String()
    due_date = fields.String()
    property_title = fields.String()
    deposit_count = fields.Integer()
    withdrawal_count = fields.Integer()
    charges_paid = fields.Decimal(as_string=True)
    penalties_paid = fields.Decimal(as_string=True)


class ExportTransactionSchema(BaseRequestSchema):
    date = fields.String()
    plan_name = fields.String()
    type = fields.String()
    amount = fields.Decimal(as_string=True)
    charges = fields.Decimal(as_string=True)
    penalties = fields.Decimal(as_string=True)
    net_amount = fields.Decimal(as_string=True)
    status = fields.String()
    is_early_withdrawal = fields.Boolean()
    reference = fields.String()


class SavingsExportSchema(BaseRequestSchema):
    user_info = fields.Dict(keys=fields.String(), values=fields.String(allow_none=True))
    summary = fields.Nested(ExportSummarySchema)
    savings_plans = fields.Nested(ExportPlanSchema, many=True)
    transactions = fields.Nested(ExportTransactionSchema, many=True)
