from decimal import Decimal
from enum import Enum


class UserRole(Enum):
    ADMIN = "admin"
    USER = "user"


class SavingsPlanStatus(Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class SavingsTransactionType(Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"


class SavingsTransactionStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class PaymentMethod(Enum):
    PAYSTACK = "paystack"
    BANK_TRANSFER = "bank_transfer"


MAX_PLAN_NAME_LENGTH = 255
MAX_DETAILS_LENGTH = 500

MIN_TARGET_AMOUNT = Decimal("1000")
MAX_TARGET_AMOUNT = Decimal("50000000")
MIN_DEPOSIT_AMOUNT = Decimal("100")
MAX_DEPOSIT_AMOUNT = Decimal("10000000")
MIN_WITHDRAWAL_AMOUNT = Decimal("100")

MAX_PLAN_YEARS = 5

DEFAULT_PENALTY_RATE = Decimal("5.00")
DEFAULT_CHARGE_RATE = Decimal("2.00")
MAX_ACTIVE_PLANS = 10

DUE_SOON_DAYS = 30
ON_TRACK_TOLERANCE = Decimal("10")
