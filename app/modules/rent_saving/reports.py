import csv
import io
import math
from collections import defaultdict
from datetime import datetime, time, timedelta
from decimal import Decimal

from dateutil.relativedelta import relativedelta
from sqlalchemy import func

from app.core.constants import (
    SavingsPlanStatus,
    SavingsTransactionType,
    SavingsTransactionStatus,
    DUE_SOON_DAYS,
    ON_TRACK_TOLERANCE,
)
from app.core.models import get_utc_now, get_utc_today
from app.core.utils import to_money, HUNDRED
from .models import SavingsPlan, SavingsTransaction

ZERO = Decimal("0.00")
DEPOSIT = SavingsTransactionType.DEPOSIT
WITHDRAWAL = SavingsTransactionType.WITHDRAWAL
COMPLETED = SavingsTransactionStatus.COMPLETED


def start_of_day(day):
    return datetime.combine(day, time.min)


def created_between(query, date_from=None, date_to=None):
    """Limit a transaction query to rows created on ``date_from``..``date_to``."""
    if date_from is not None:
        query = query.filter(SavingsTransaction.created_at >= start_of_day(date_from))
    if date_to is not None:
        query = query.filter(
            SavingsTransaction.created_at < start_of_day(date_to + timedelta(days=1))
        )
    return query


def month_key(moment):
    return f"{moment.year}-{moment.month:02d}"


def progress_of(plan):
    target = to_money(plan.target_amount)
    if target <= 0:
        return ZERO
    return to_money(to_money(plan.current_amount) / target * HUNDRED)


def remaining_of(plan):
    return max(to_money(plan.target_amount) - to_money(plan.current_amount), ZERO)


class SavingsReports:
    """Read-only views over a user's rent savings: dashboard, statistics,
    insights, history totals and data export."""

    def __init__(self, session, clock=get_utc_today):
        self.session = session
        self.clock = clock

    def _transactions(self, **criteria):
        return self.session.query(SavingsTransaction).filter_by(**criteria)

    def _sum(self, query, column):
        return to_money(query.with_entities(func.coalesce(func.sum(column), 0)).scalar())

    # Transaction history

    def history_totals(self, plan, date_from=None, date_to=None):
        """Totals for a plan's history, restricted to the same date window."""
        query = created_between(self._transactions(savings_id=plan.id), date_from, date_to)
        completed = query.filter(SavingsTransaction.status == COMPLETED)
        return {
            "total_deposits": self._sum(
                completed.filter(SavingsTransaction.transaction_type == DEPOSIT),
                SavingsTransaction.net_amount,
            ),
            "total_withdrawals": self._sum(
                completed.filter(SavingsTransaction.transaction_type == WITHDRAWAL),
                SavingsTransaction.amount,
            ),
            "total_charges": self._sum(completed, SavingsTransaction.charge_amount),
            "total_penalties": self._sum(completed, SavingsTransaction.penalty_amount),
            "transaction_count": query.count(),
        }

    # Dashboard

    def dashboard(self, user):
        today = self.clock()
        plans = self.session.query(SavingsPlan).filter(SavingsPlan.user_id == user.id)
        transactions = self._transactions(user_id=user.id)
        completed = transactions.filter(SavingsTransaction.status == COMPLETED)

        def plans_with(status):
            return plans.filter(SavingsPlan.status == status).count()

        stats = {
            "total_savings": self._sum(plans, SavingsPlan.current_amount),
            "active_plans": plans_with(SavingsPlanStatus.ACTIVE),
            "completed_plans": plans_with(SavingsPlanStatus.COMPLETED),
            "cancelled_plans": plans_with(SavingsPlanStatus.CANCELLED),
            "total_deposits": self._sum(
                completed.filter(SavingsTransaction.transaction_type == DEPOSIT),
                SavingsTransaction.amount,
            ),
            "total_withdrawals": self._sum(
                completed.filter(SavingsTransaction.transaction_type == WITHDRAWAL),
                SavingsTransaction.amount,
            ),
            "total_charges_paid": self._sum(completed, SavingsTransaction.charge_amount),
            "total_penalties_paid": self._sum(completed, SavingsTransaction.penalty_amount),
            "pending_transactions": transactions.filter(
                SavingsTransaction.status == SavingsTransactionStatus.PENDING
            ).count(),
        }

        due_soon = (
            plans.filter(
                SavingsPlan.status == SavingsPlanStatus.ACTIVE,
                SavingsPlan.due_date <= today + timedelta(days=DUE_SOON_DAYS),
            )
            .order_by(SavingsPlan.due_date)
            .all()
        )

        recent = transactions.order_by(SavingsTransaction.created_at.desc()).limit(10).all()

        return {
            "stats": stats,
            "recent_transactions": recent,
            "due_soon": [
                {
                    "id": plan.id,
                    "plan_name": plan.plan_name,
                    "target_amount": plan.target_amount,
                    "current_amount": plan.current_amount,
                    "progress_percentage": progress_of(plan),
                    "due_date": plan.due_date,
                    "days_until_due": (plan.due_date - today).days,
                    "property_title": (
                        plan.rental_property.title if plan.rental_property else None
                    ),
                }
                for plan in due_soon
            ],
            "monthly_deposits": self._monthly_deposits(user, today),
        }

    def _monthly_deposits(self, user, today):
        """Completed deposit nets per month over the last twelve months, newest first."""
        since = start_of_day(today - relativedelta(months=12))
        deposits = (
            self._transactions(user_id=user.id, status=COMPLETED, transaction_type=DEPOSIT)
            .filter(SavingsTransaction.created_at >= since)
            .all()
        )
        totals = defaultdict(Decimal)
        for deposit in deposits:
            totals[month_key(deposit.created_at)] += deposit.net_amount
        return [
            {"month": month, "total": to_money(total)}
            for month, total in sorted(totals.items(), reverse=True)
        ]

    # Per-plan statistics

    def plan_statistics(self, plan):
        today = self.clock()
        completed = self._transactions(savings_id=plan.id, status=COMPLETED)
        deposits = [
            t.net_amount
            for t in completed.filter(SavingsTransaction.transaction_type == DEPOSIT)
        ]

        breakdown = defaultdict(lambda: {"total_amount": ZERO, "transaction_count": 0})
        for transaction in completed:
            row = breakdown[(month_key(transaction.created_at), transaction.transaction_type)]
            row["total_amount"] += transaction.net_amount
            row["transaction_count"] += 1

        days_since_creation = (today - plan.created_at.date()).days
        return {
            "monthly_breakdown": [
                {
                    "month": month,
                    "transaction_type": transaction_type.value,
                    "total_amount": to_money(row["total_amount"]),
                    "transaction_count": row["transaction_count"],
                }
                for (month, transaction_type), row in sorted(
                    breakdown.items(), key=lambda item: (item[0][0], item[0][1].value),
                    reverse=True,
                )
            ],
            "performance": {
                "average_deposit": (
                    to_money(sum(deposits) / len(deposits)) if deposits else ZERO
                ),
                "largest_deposit": max(deposits, default=ZERO),
                "smallest_deposit": min(deposits, default=ZERO),
                "deposit_count": len(deposits),
                "days_since_creation": days_since_creation,
                "projected_completion_date": self._projected_completion(plan, deposits),
                "savings_velocity": (
                    to_money(to_money(plan.current_amount) / days_since_creation)
                    if days_since_creation > 0
                    else ZERO
                ),
            },
            "achievement": {
                "progress_percentage": progress_of(plan),
                "amount_saved": to_money(plan.current_amount),
                "remaining_amount": remaining_of(plan),
                "days_until_due": (plan.due_date - today).days,
                "is_on_track": self.is_on_track(plan),
                "recommended_monthly_deposit": self.recommended_monthly_deposit(plan),
            },
        }

    def _projected_completion(self, plan, deposits):
        # Needs at least two deposits to estimate a pace
        if len(deposits) < 2:
            return None
        average = sum(deposits) / len(deposits)
        if average <= 0:
            return None
        months = math.ceil(remaining_of(plan) / average)
        return self.clock() + relativedelta(months=months)

    def is_on_track(self, plan):
        """Progress is within the tolerance of a straight line from creation to due date."""
        created = plan.created_at.date()
        total_days = (plan.due_date - created).days
        if total_days <= 0:
            return True
        days_passed = (self.clock() - created).days
        expected = Decimal(days_passed) / Decimal(total_days) * HUNDRED
        return progress_of(plan) >= expected - ON_TRACK_TOLERANCE

    def recommended_monthly_deposit(self, plan):
        months = relativedelta(plan.due_date, self.clock())
        months_remaining = months.years * 12 + months.months
        if months_remaining <= 0:
            return remaining_of(plan)
        return to_money(remaining_of(plan) / months_remaining)

    # Insights

    def insights(self, user):
        today = self.clock()
        active = (
            self.session.query(SavingsPlan)
            .filter(SavingsPlan.user_id == user.id, SavingsPlan.status == SavingsPlanStatus.ACTIVE)
            .all()
        )
        insights = []

        behind = [plan for plan in active if not self.is_on_track(plan)]
        if behind:
            insights.append({
                "type": "warning",
                "title": "Plans Behind Schedule",
                "message": f"You have {len(behind)} savings plan(s) behind schedule. "
                "Consider increasing your deposits to stay on track.",
                "action": "review_plans",
            })

        due_soon = [p for p in active if p.due_date <= today + timedelta(days=DUE_SOON_DAYS)]
        if due_soon:
            insights.append({
                "type": "info",
                "title": "Plans Due Soon",
                "message": f"You have {len(due_soon)} savings plan(s) due within "
                f"the next {DUE_SOON_DAYS} days.",
                "action": "final_push",
            })

        recent_deposits = (
            self._transactions(user_id=user.id, status=COMPLETED, transaction_type=DEPOSIT)
            .filter(SavingsTransaction.created_at >= start_of_day(today - relativedelta(months=1)))
            .count()
        )
        if active and recent_deposits == 0:
            insights.append({
                "type": "suggestion",
                "title": "Stay Consistent",
                "message": "You haven't made any deposits in the last month. "
                "Regular deposits help you achieve your goals faster.",
                "action": "make_deposit",
            })

        completed_this_month = (
            self.session.query(SavingsPlan)
            .filter(
                SavingsPlan.user_id == user.id,
                SavingsPlan.status == SavingsPlanStatus.COMPLETED,
                SavingsPlan.updated_at >= start_of_day(today.replace(day=1)),
            )
            .count()
        )
        if completed_this_month:
            insights.append({
                "type": "success",
                "title": "Congratulations!",
                "message": f"You've completed {completed_this_month} savings plan(s) "
                "this month. Great job!",
                "action": "celebrate",
            })

        return insights

    # Export

    def export(self, user):
        plans = (
            self.session.query(SavingsPlan)
            .filter(SavingsPlan.user_id == user.id)
            .order_by(SavingsPlan.created_at)
            .all()
        )
        transactions = (
            self._transactions(user_id=user.id)
            .order_by(SavingsTransaction.created_at.desc())
            .all()
        )

        def count_completed(plan, transaction_type):
            return plan.transactions.filter_by(
                status=COMPLETED, transaction_type=transaction_type
            ).count()

        return {
            "user_info": {
                "name": user.name,
                "email": user.email,
                "export_date": get_utc_now().strftime("%Y-%m-%d %H:%M:%S"),
            },
            "summary": {
                "total_plans": len(plans),
                "active_plans": sum(1 for p in plans if p.is_active),
                "completed_plans": sum(1 for p in plans if p.is_completed),
                "total_savings": to_money(sum((p.current_amount for p in plans), ZERO)),
                "total_target": to_money(sum((p.target_amount for p in plans), ZERO)),
            },
            "savings_plans": [
                {
                    "plan_name": plan.plan_name,
                    "target_amount": to_money(plan.target_amount),
                    "current_amount": to_money(plan.current_amount),
                    "progress_percentage": progress_of(plan),
                    "status": plan.status.value,
                    "created_date": plan.created_at.strftime("%Y-%m-%d"),
                    "due_date": plan.due_date.isoformat(),
                    "property_title": (
                        plan.rental_property.title
                        if plan.rental_property
                        else "External Property"
                    ),
                    "deposit_count": count_completed(plan, DEPOSIT),
                    "withdrawal_count": count_completed(plan, WITHDRAWAL),
                    "charges_paid": self._sum(
                        plan.transactions.filter_by(status=COMPLETED),
                        SavingsTransaction.charge_amount,
                    ),
                    "penalties_paid": self._sum(
                        plan.transactions.filter_by(status=COMPLETED),
                        SavingsTransaction.penalty_amount,
                    ),
                }
                for plan in plans
            ],
            "transactions": [
                {
                    "date": t.created_at.strftime("%Y-%m-%d %H:%M:%S"),
                    "plan_name": t.savings.plan_name,
                    "type": t.transaction_type.value,
                    "amount": to_money(t.amount),
                    "charges": to_money(t.charge_amount),
                    "penalties": to_money(t.penalty_amount),
                    "net_amount": to_money(t.net_amount),
                    "status": t.status.value,
                    "is_early_withdrawal": t.is_early_withdrawal,
                    "reference": t.payment_reference,
                }
                for t in transactions
            ],
        }

    def export_csv(self, user):
        """The export as a CSV document: summary, plans, then transactions."""
        data = self.export(user)
        output = io.StringIO()
        writer = csv.writer(output)

        writer.writerow(["Rent Savings Export"])
        writer.writerow([f"Account: {data['user_info']['email']}"])
        writer.writerow([f"Generated on: {data['user_info']['export_date']}"])
        writer.writerow([])

        writer.writerow(["Summary"])
        writer.writerow(["Metric", "Value"])
        for metric, value in data["summary"].items():
            writer.writerow([metric.replace("_", " ").title(), value])
        writer.writerow([])

        for title, rows in (
            ("Savings Plans", data["savings_plans"]),
            ("Transactions", data["transactions"]),
        ):
            writer.writerow([title])
            if rows:
                writer.writerow([key.replace("_", " ").title() for key in rows[0]])
                for row in rows:
                    writer.writerow(list(row.values()))
            writer.writerow([])

        output.seek(0)
        return output.getvalue()
