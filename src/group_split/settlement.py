"""Payment status tracking and the expense-level settlement predicate."""

import logging
from collections.abc import Iterable
from concurrent.futures import Future
from decimal import Decimal
from enum import StrEnum

from .exceptions import ExpenseNotFoundError, InvalidTransitionError
from .ledger import ExpenseLedger
from .models import Expense, ParticipantRole, PaymentStatus
from .optimistic import OptimisticChange, OptimisticUpdater

logger = logging.getLogger(__name__)


class ExpenseProgress(StrEnum):
    """Summary badge for an expense, derived from its ower rows."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


def can_transition(current: PaymentStatus, new: PaymentStatus) -> bool:
    """Statuses only move forward; re-applying the same status is allowed."""
    return new.rank >= current.rank


def is_fully_settled(expense: Expense) -> bool:
    """
    True when every ower row is completed OR every payer row is completed.

    Either side can close an expense on its own: owers by confirming they
    paid, payers by confirming they were paid. Views that total "active"
    expenses depend on exactly this rule.
    """
    all_owers_paid = all(
        p.payment_status == PaymentStatus.COMPLETED for p in expense.owers
    )
    all_payers_paid = all(
        p.payment_status == PaymentStatus.COMPLETED for p in expense.payers
    )
    return all_owers_paid or all_payers_paid


def expense_progress(expense: Expense) -> ExpenseProgress:
    """Progress over ower rows: all completed, some movement, or none."""
    owers = expense.owers
    if not owers:
        return ExpenseProgress.COMPLETED

    completed = sum(1 for p in owers if p.payment_status == PaymentStatus.COMPLETED)
    sent = sum(1 for p in owers if p.payment_status == PaymentStatus.SENT)

    if completed == len(owers):
        return ExpenseProgress.COMPLETED
    if sent > 0 or completed > 0:
        return ExpenseProgress.IN_PROGRESS
    return ExpenseProgress.PENDING


def active_expenses(expenses: Iterable[Expense]) -> list[Expense]:
    """Expenses that are not yet fully settled."""
    return [expense for expense in expenses if not is_fully_settled(expense)]


def active_total(expenses: Iterable[Expense]) -> Decimal:
    """Sum of totals over expenses that are not yet fully settled."""
    return sum(
        (expense.total_amount for expense in active_expenses(expenses)), Decimal("0")
    )


class SettlementTracker:
    """Updates participant payment statuses on a ledger's expenses."""

    def __init__(self, ledger: ExpenseLedger, updater: OptimisticUpdater | None = None):
        """Initialize the tracker; the updater defaults to the ledger's."""
        self.ledger = ledger
        self.updater = updater or ledger.updater

    def _row_status(
        self, expense_id: str, member_id: str, role: ParticipantRole
    ) -> PaymentStatus:
        participant = self.ledger.get(expense_id).find_participant(member_id, role)
        if participant is None:
            raise ExpenseNotFoundError(
                f"No {role.value} row for member {member_id} in expense {expense_id}"
            )
        return participant.payment_status

    def _write_row(
        self,
        expense_id: str,
        member_id: str,
        role: ParticipantRole,
        status: PaymentStatus,
        only_if: PaymentStatus | None = None,
    ) -> None:
        """Set one row's status on the cached expense; other rows stay as they are."""

        def change(current: Expense) -> Expense:
            row = current.find_participant(member_id, role)
            if row is None or (only_if is not None and row.payment_status != only_if):
                return current
            rows = [
                p.model_copy(update={"payment_status": status}) if p is row else p
                for p in current.participants
            ]
            return current.model_copy(update={"participants": rows})

        self.ledger.modify_local(expense_id, change)

    def set_payment_status(
        self,
        expense_id: str,
        member_id: str,
        status: PaymentStatus,
        role: ParticipantRole = ParticipantRole.OWER,
    ) -> Future[None]:
        """
        Move one participant row to a new payment status.

        The new status is visible locally immediately. If the store rejects
        it, only that row goes back to its prior status (unless something
        else has moved it since), and the future raises ``PersistenceError``.
        Writes to other rows of the same expense are untouched. Setting the
        current status again is a no-op write that still goes to the store.

        Raises:
            ExpenseNotFoundError: If the expense or participant row is unknown
            InvalidTransitionError: If the status would move backwards
        """
        current = self._row_status(expense_id, member_id, role)
        if not can_transition(current, status):
            raise InvalidTransitionError(
                f"Cannot move {member_id} from {current.value} back to {status.value}"
            )

        logger.info(
            f"Setting {role.value} {member_id} on expense {expense_id} "
            f"to {status.value}"
        )

        return self.updater.submit(
            OptimisticChange(
                operation="update payment status",
                snapshot=lambda: self._row_status(expense_id, member_id, role),
                apply=lambda: self._write_row(expense_id, member_id, role, status),
                commit=lambda: self.ledger.store.update_payment_status(
                    self.ledger.group_id, expense_id, member_id, role, status
                ),
                restore=lambda prior: self._write_row(
                    expense_id, member_id, role, prior, only_if=status
                ),
            )
        )
