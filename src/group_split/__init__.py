"""group-split - Percentage expense splitting, balances and debt netting for groups."""

__version__ = "0.1.0"

from .allocator import (
    FinalizeResult,
    SplitState,
    equal_split,
    finalize,
    select,
    set_percentage,
    toggle_lock,
)
from .balances import calculate_user_balance
from .config import Settings, load_settings
from .ledger import ExpenseLedger, ExpenseStore
from .members import MemberDirectory
from .models import (
    Expense,
    Member,
    Obligation,
    Participant,
    ParticipantRole,
    PaymentStatus,
    Transfer,
    UserBalance,
)
from .settlement import SettlementTracker, is_fully_settled
from .simplifier import simplify_debts, simplify_group

__all__ = [
    "FinalizeResult",
    "SplitState",
    "equal_split",
    "finalize",
    "select",
    "set_percentage",
    "toggle_lock",
    "calculate_user_balance",
    "Settings",
    "load_settings",
    "ExpenseLedger",
    "ExpenseStore",
    "MemberDirectory",
    "Expense",
    "Member",
    "Obligation",
    "Participant",
    "ParticipantRole",
    "PaymentStatus",
    "Transfer",
    "UserBalance",
    "SettlementTracker",
    "is_fully_settled",
    "simplify_debts",
    "simplify_group",
]
