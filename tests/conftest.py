"""Test configuration and fixtures."""

from datetime import date, timedelta
from decimal import Decimal

import pytest
from flask_jwt_extended import create_access_token

from app import create_app
from app.extensions import db as _db
from app.core.constants import UserRole
from app.modules.user.models import User
from app.modules.property.models import Property
from app.modules.rent_saving.models import SavingsTransaction
from app.modules.rent_saving.services import SavingsPlanLedger

TODAY = date(2026, 1, 15)


class FixedClock:
    """Clock the ledger reads 'today' from; tests move it forward by hand."""

    def __init__(self, today=TODAY):
        self.today = today

    def __call__(self):
        return self.today

    def advance(self, days):
        self.today += timedelta(days=days)


class FakePaymentVerifier:
    """
    Payment provider double. Reports every deposit as paid in full unless a
    verdict (or an exception to raise) was set for its reference.
    """

    def __init__(self):
        self.verdicts = {}
        self.calls = []

    def verify(self, reference):
        self.calls.append(reference)
        verdict = self.verdicts.get(reference)
        if isinstance(verdict, Exception):
            raise verdict
        if verdict is not None:
            return verdict
        transaction = SavingsTransaction.query.filter_by(payment_reference=reference).one()
        return {
            "status": "success",
            "amount": int(transaction.amount * 100),
            "reference": reference,
        }


@pytest.fixture
def payment_verifier():
    return FakePaymentVerifier()


@pytest.fixture
def app(payment_verifier):
    """Create application for testing."""
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "SECRET_KEY": "test-secret-key",
        "JWT_SECRET_KEY": "test-jwt-secret-key-with-enough-length",
        "RATELIMIT_ENABLED": False,
        "RATELIMIT_STORAGE_URI": "memory://",
        "PAYMENT_VERIFIER": payment_verifier,
    })

    with app.app_context():
        _db.create_all()
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def client(app):
    """Test client for making requests."""
    return app.test_client()


@pytest.fixture
def db(app):
    return _db


@pytest.fixture
def user_factory(db):
    def _create_user(username="tenant", role=UserRole.USER):
        user = User(
            name=username.title(),
            username=username,
            email=f"{username}@example.com",
            role=role,
        )
        db.session.add(user)
        db.session.commit()
        return user

    return _create_user


@pytest.fixture
def user(user_factory):
    return user_factory()


@pytest.fixture
def admin(user_factory):
    return user_factory(username="admin", role=UserRole.ADMIN)


@pytest.fixture
def rental_property(db):
    listing = Property(title="Two bedroom flat, Yaba", is_available=True)
    db.session.add(listing)
    db.session.commit()
    return listing


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def ledger(db, clock):
    return SavingsPlanLedger(db.session, clock=clock)


@pytest.fixture
def plan(ledger, user, clock):
    """Active plan: target 100000, 2% deposit charge, 5% early-withdrawal penalty."""
    return ledger.create_plan(
        user,
        target_amount=Decimal("100000"),
        due_date=clock() + timedelta(days=90),
        plan_name="Rent for next year",
    )


@pytest.fixture
def funded_plan(ledger, plan):
    """Plan holding 9800 after one confirmed 10000 deposit."""
    ledger.confirm_transaction(ledger.deposit(plan, Decimal("10000")))
    return plan


@pytest.fixture
def auth_headers(app):
    def _headers(for_user):
        token = create_access_token(
            identity=str(for_user.id),
            additional_claims={"role": for_user.role.value},
        )
        return {"Authorization": f"Bearer {token}"}

    return _headers
