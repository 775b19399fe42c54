from flask import request, g, Response
from flask_restful import Resource
from app.core.permissions import admin_only, owner_or_admin, is_admin
from app.core.authentication import authenticated_user
from app.core.decorators import handle_errors
from app.core.utils import BaseListResource
from app.core.logger import logger
from app.core.constants import (
    SavingsPlanStatus,
    SavingsTransactionType,
    SavingsTransactionStatus,
)
from app.extensions import db, limiter
from app.modules.property.models import Property
from .models import SavingsPlan, SavingsTransaction
from .services import ledger_from_config
from .reports import SavingsReports, created_between
from .schemas import (
    SavingsPlanSchema,
    SavingsSummarySchema,
    SavingsTransactionSchema,
    CreateSavingsPlanSchema,
    UpdateSavingsPlanSchema,
    DepositSchema,
    WithdrawSchema,
    VerifyDepositSchema,
    ReviewWithdrawalSchema,
    TransactionHistoryQuerySchema,
    ExportQuerySchema,
    DashboardSchema,
    PlanStatisticsSchema,
    InsightSchema,
    SavingsExportSchema,
)

plan_schema = SavingsPlanSchema()
plans_schema = SavingsPlanSchema(many=True)
summary_schema = SavingsSummarySchema()
transaction_schema = SavingsTransactionSchema()
transactions_schema = SavingsTransactionSchema(many=True)

MONEY_LIMIT = "10 per minute"


def request_data():
    return request.get_json(silent=True) or {}


def plan_detail(ledger, plan):
    recent = plan.transactions.order_by(SavingsTransaction.created_at.desc()).limit(5)
    return {
        **plan_schema.dump(plan),
        "summary": summary_schema.dump(ledger.summary(plan)),
        "recent_transactions": transactions_schema.dump(recent.all()),
    }


class AllSavingPlanResource(BaseListResource):
    method_decorators = [handle_errors, admin_only, authenticated_user]

    model = SavingsPlan
    schema = plans_schema
    list_endpoint = "rent_savings.all-plans"
    filters = {"status": ("status", SavingsPlanStatus)}


class SavingsPlanListResource(BaseListResource):
    method_decorators = [handle_errors, authenticated_user]

    model = SavingsPlan
    schema = plans_schema
    list_endpoint = "rent_savings.plans"
    filters = {"status": ("status", SavingsPlanStatus)}

    def get_queryset(self, **kwargs):
        return super().get_queryset().filter(SavingsPlan.user_id == g.current_user.id)

    def post(self):
        """Open a new savings plan for the current user"""
        data = CreateSavingsPlanSchema().load(request_data())
        rental_property = None
        if data["property_id"]:
            rental_property = db.session.get(Property, data["property_id"])
            if not rental_property:
                return {"error": {"property_id": "Property not found"}}, 400

        plan = ledger_from_config().create_plan(
            g.current_user,
            target_amount=data["target_amount"],
            due_date=data["due_date"],
            rental_property=rental_property,
            plan_name=data["plan_name"],
            is_external_property=data["is_external_property"],
            external_property_details=data["external_property_details"],
        )
        return plan_schema.dump(plan), 201

    def apply_filters(self, queryset):
        queryset = super().apply_filters(queryset)
        search = request.args.get("search", "").strip()
        if search:
            queryset = queryset.filter(SavingsPlan.plan_name.ilike(f"%{search}%"))
        return queryset


class SavingsPlanResource(Resource):
    method_decorators = [
        handle_errors,
        owner_or_admin(SavingsPlan, "saving_id"),
        authenticated_user,
    ]

    def get(self, saving_id):
        """Plan with its running totals and latest transactions"""
        return plan_detail(ledger_from_config(), g.resource), 200

    def patch(self, saving_id):
        data = UpdateSavingsPlanSchema().load(request_data())
        ledger = ledger_from_config()
        plan = ledger.update_plan(g.resource, **data)
        return plan_detail(ledger, plan), 200


class SavingsPlanCancelResource(Resource):
    method_decorators = [
        handle_errors,
        owner_or_admin(SavingsPlan, "saving_id"),
        authenticated_user,
    ]

    def post(self, saving_id):
        plan = ledger_from_config().cancel_plan(g.resource)
        return {"message": "Savings plan cancelled successfully", **plan_schema.dump(plan)}, 200


class SavingsDepositResource(Resource):
    method_decorators = [
        handle_errors,
        owner_or_admin(SavingsPlan, "saving_id"),
        authenticated_user,
    ]

    @limiter.limit(MONEY_LIMIT)
    def post(self, saving_id):
        """Initiate a deposit; the balance moves once the payment is verified"""
        data = DepositSchema().load(request_data())
        transaction = ledger_from_config().deposit(
            g.resource, data["amount"], payment_method=data["payment_method"]
        )
        return {
            "message": "Deposit payment initialized successfully",
            "reference": transaction.payment_reference,
            "transaction": transaction_schema.dump(transaction),
        }, 201


class SavingsWithdrawalResource(Resource):
    method_decorators = [
        handle_errors,
        owner_or_admin(SavingsPlan, "saving_id"),
        authenticated_user,
    ]

    @limiter.limit(MONEY_LIMIT)
    def post(self, saving_id):
        data = WithdrawSchema().load(request_data())
        transaction = ledger_from_config().withdraw(
            g.resource, data["amount"], reason=data["withdrawal_reason"]
        )
        return {
            "message": "Withdrawal request submitted successfully",
            "is_early_withdrawal": transaction.is_early_withdrawal,
            "transaction": transaction_schema.dump(transaction),
        }, 201


class SavingsTransactionListResource(BaseListResource):
    method_decorators = [
        handle_errors,
        owner_or_admin(SavingsPlan, "saving_id"),
        authenticated_user,
    ]

    model = SavingsTransaction
    schema = transactions_schema
    list_endpoint = "rent_savings.plan-transactions"
    filters = {
        "type": ("transaction_type", SavingsTransactionType),
        "status": ("status", SavingsTransactionStatus),
    }

    def get_queryset(self, **kwargs):
        queryset = super().get_queryset().filter(
            SavingsTransaction.savings_id == g.resource.id
        )
        return created_between(queryset, self.window["date_from"], self.window["date_to"])

    def get(self, saving_id):
        """Plan history, optionally between two dates, with totals for that window"""
        self.window = TransactionHistoryQuerySchema().load(request.args)
        result, status = super().get(saving_id=saving_id)
        totals = SavingsReports(db.session).history_totals(g.resource, **self.window)
        result["summary"] = summary_schema.dump(totals)
        return result, status


class SavingsDepositVerificationResource(Resource):
    method_decorators = [handle_errors, authenticated_user]

    def post(self):
        """Ask the payment provider whether a pending deposit was paid"""
        data = VerifyDepositSchema().load(request_data())
        ledger = ledger_from_config()
        transaction = ledger.find_by_reference(data["reference"])
        if not transaction or not transaction.is_deposit:
            return {"error": "Deposit not found"}, 404
        if transaction.user_id != g.current_user.id and not is_admin(g.current_user):
            logger.warning(
                f"User {g.current_user.id} tried to verify deposit {transaction.payment_reference}"
            )
            return {"error": "Unauthorized transaction access"}, 403

        transaction = ledger.verify_deposit(transaction)
        if transaction.is_completed:
            return {
                "message": "Deposit verified successfully",
                "transaction": transaction_schema.dump(transaction),
                "savings_plan": plan_schema.dump(transaction.savings),
            }, 200
        return {"error": "Deposit verification failed. Payment was not successful."}, 400


class WithdrawalReviewResource(Resource):
    """Admin settlement of a pending withdrawal request"""

    method_decorators = [handle_errors, admin_only, authenticated_user]

    def post(self, transaction_id, action):
        data = ReviewWithdrawalSchema().load(request_data())
        transaction = db.session.get(SavingsTransaction, transaction_id)
        if not transaction or not transaction.is_withdrawal:
            return {"error": "Withdrawal not found"}, 404

        ledger = ledger_from_config()
        if action == "approve":
            transaction = ledger.confirm_transaction(transaction, data["payment_data"])
        else:
            transaction = ledger.fail_transaction(transaction, data["payment_data"])
        logger.info(
            f"Admin {g.current_user.id} {action}d withdrawal {transaction.payment_reference}"
        )
        return {
            "transaction": transaction_schema.dump(transaction),
            "savings_plan": plan_schema.dump(transaction.savings),
        }, 200


class SavingsDashboardResource(Resource):
    method_decorators = [handle_errors, authenticated_user]

    def get(self):
        """Totals across the user's plans, plans due soon and monthly deposits"""
        dashboard = SavingsReports(db.session).dashboard(g.current_user)
        return DashboardSchema().dump(dashboard), 200


class SavingsInsightsResource(Resource):
    method_decorators = [handle_errors, authenticated_user]

    def get(self):
        insights = SavingsReports(db.session).insights(g.current_user)
        return {"insights": InsightSchema(many=True).dump(insights)}, 200


class SavingsExportResource(Resource):
    method_decorators = [handle_errors, authenticated_user]

    def get(self):
        """Download the user's plans and transactions as JSON or CSV"""
        params = ExportQuerySchema().load(request.args)
        reports = SavingsReports(db.session)
        logger.info(f"Exporting rent savings for user: {g.current_user.id}")

        if params["file_format"] == "csv":
            return Response(
                reports.export_csv(g.current_user),
                mimetype="text/csv",
                headers={
                    "Content-Disposition": "attachment; filename=rent_savings_export.csv"
                },
            )
        return SavingsExportSchema().dump(reports.export(g.current_user)), 200


class SavingsPlanStatisticsResource(Resource):
    method_decorators = [
        handle_errors,
        owner_or_admin(SavingsPlan, "saving_id"),
        authenticated_user,
    ]

    def get(self, saving_id):
        statistics = SavingsReports(db.session).plan_statistics(g.resource)
        return PlanStatisticsSchema().dump(statistics), 200
