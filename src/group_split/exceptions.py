"""Custom exceptions for group-split."""


class GroupSplitError(Exception):
    """Base exception for all group-split errors."""

    pass


class ConfigurationError(GroupSplitError):
    """Raised when configuration is invalid or missing."""

    pass


class ExpenseValidationError(GroupSplitError):
    """Base class for expense input that must not be persisted."""

    pass


class InvalidAmountError(ExpenseValidationError):
    """Raised when an expense total is zero or negative."""

    pass


class MissingParticipantsError(ExpenseValidationError):
    """Raised when an expense or split has no payer or no ower."""

    pass


class DuplicateParticipantError(ExpenseValidationError):
    """Raised when a member appears twice in the same role."""

    pass


class UnbalancedSplitError(ExpenseValidationError):
    """Raised when a role's shares don't add up to the expense total."""

    def __init__(self, role: str, role_sum: object, total: object):
        self.role = role
        self.role_sum = role_sum
        self.total = total
        super().__init__(
            f"{role} shares sum to {role_sum} but the expense total is {total}"
        )


class InvalidTransitionError(GroupSplitError):
    """Raised when a payment status would move backwards."""

    pass


class ExpenseNotFoundError(GroupSplitError):
    """Raised when an expense id is not in the ledger."""

    pass


class PermissionDeniedError(GroupSplitError):
    """Raised when a member acts on an expense they did not create."""

    pass


class PersistenceError(GroupSplitError):
    """Raised when the store rejects a write and the local change was rolled back."""

    def __init__(self, operation: str, message: str | None = None):
        self.operation = operation
        super().__init__(message or f"Failed to {operation}; local change reverted")
