from flask import Blueprint
from flask_restful import Api
from app.modules.rent_saving.resources import (
    AllSavingPlanResource,
    SavingsPlanListResource,
    SavingsPlanResource,
    SavingsPlanCancelResource,
    SavingsDepositResource,
    SavingsWithdrawalResource,
    SavingsTransactionListResource,
    SavingsDepositVerificationResource,
    WithdrawalReviewResource,
    SavingsDashboardResource,
    SavingsInsightsResource,
    SavingsExportResource,
    SavingsPlanStatisticsResource,
)

rent_saving_bp = Blueprint("rent_savings", __name__)
rent_saving_api = Api(rent_saving_bp)

rent_saving_api.add_resource(SavingsPlanListResource, "/", endpoint="plans")
rent_saving_api.add_resource(AllSavingPlanResource, "/all", endpoint="all-plans")
rent_saving_api.add_resource(SavingsDashboardResource, "/dashboard", endpoint="dashboard")
rent_saving_api.add_resource(SavingsInsightsResource, "/insights", endpoint="insights")
rent_saving_api.add_resource(SavingsExportResource, "/export", endpoint="export")
rent_saving_api.add_resource(
    SavingsDepositVerificationResource,
    "/transactions/verify",
    endpoint="verify-deposit",
)
rent_saving_api.add_resource(
    WithdrawalReviewResource,
    "/transactions/<transaction_id>/<any(approve, reject):action>",
    endpoint="review-withdrawal",
)
rent_saving_api.add_resource(SavingsPlanResource, "/<saving_id>", endpoint="plan")
rent_saving_api.add_resource(
    SavingsPlanCancelResource, "/<saving_id>/cancel", endpoint="cancel-plan"
)
rent_saving_api.add_resource(
    SavingsDepositResource, "/<saving_id>/deposits", endpoint="plan-deposits"
)
rent_saving_api.add_resource(
    SavingsWithdrawalResource, "/<saving_id>/withdrawals", endpoint="plan-withdrawals"
)
rent_saving_api.add_resource(
    SavingsTransactionListResource,
    "/<saving_id>/transactions",
    endpoint="plan-transactions",
)
rent_saving_api.add_resource(
    SavingsPlanStatisticsResource,
    "/<saving_id>/statistics",
    endpoint="plan-statistics",
)


def rent_savings_routes(app):
    app.register_blueprint(rent_saving_bp, url_prefix="/api/rent-savings")
