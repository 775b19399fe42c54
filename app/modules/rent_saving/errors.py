class LedgerError(Exception):
    """Base class for rejected savings ledger operations."""

    status_code = 400

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class InvalidPlanError(LedgerError):
    pass


class InvalidAmountError(LedgerError):
    pass


class InsufficientFundsError(LedgerError):
    pass


class PlanNotActiveError(LedgerError):
    pass


class PendingTransactionError(LedgerError):
    status_code = 409


class TransactionStateError(LedgerError):
    status_code = 409


class InactivePlanDepositError(InvalidAmountError, PlanNotActiveError):
    """Deposit attempted on a plan that is no longer active."""


class PaymentVerificationError(LedgerError):
    """The payment provider could not be reached or answered unexpectedly."""

    status_code = 502
