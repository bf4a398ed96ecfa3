"""Expense ledger: validation, assembly and optimistic CRUD against a store."""

import logging
import threading
from collections.abc import Callable, Iterable
from concurrent.futures import Future
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any, Protocol
from uuid import uuid4

from .exceptions import (
    DuplicateParticipantError,
    ExpenseNotFoundError,
    InvalidAmountError,
    MissingParticipantsError,
    PermissionDeniedError,
    PersistenceError,
    UnbalancedSplitError,
)
from .models import (
    AMOUNT_TOLERANCE,
    Expense,
    Participant,
    ParticipantRole,
    PaymentStatus,
    role_total,
    to_decimal,
)
from .optimistic import OptimisticChange, OptimisticUpdater

logger = logging.getLogger(__name__)

DEFAULT_DESCRIPTION = "Expense"
PROVISIONAL_PREFIX = "provisional-"

# Payers fronted the money at entry; owers still have to pay
INITIAL_STATUS = {
    ParticipantRole.PAYER: PaymentStatus.COMPLETED,
    ParticipantRole.OWER: PaymentStatus.PENDING,
}


class ExpenseStore(Protocol):
    """Persistence API for expenses, addressed by group and optional event."""

    def list_expenses(self, group_id: str, event_id: str | None) -> list[Expense]: ...

    def create_expense(
        self, group_id: str, event_id: str | None, expense: Expense
    ) -> Expense: ...

    def update_expense(self, group_id: str, expense: Expense) -> Expense: ...

    def delete_expense(self, group_id: str, expense_id: str) -> None: ...

    def update_payment_status(
        self,
        group_id: str,
        expense_id: str,
        member_id: str,
        role: ParticipantRole,
        status: PaymentStatus,
    ) -> None: ...


def validate_participants(
    total_amount: Decimal | int | float | str, participants: Iterable[Participant]
) -> Decimal:
    """
    Check an expense's total and participant set before anything is saved.

    Args:
        total_amount: Expense total, numeric or string-encoded
        participants: Payer and ower rows, normally from ``allocator.finalize``

    Returns:
        The total as a Decimal

    Raises:
        InvalidAmountError: If the total is not positive
        MissingParticipantsError: If there is no payer or no ower
        DuplicateParticipantError: If a member appears twice in one role
        UnbalancedSplitError: If a role's shares don't sum to the total
    """
    total = to_decimal(total_amount)
    if total <= 0:
        raise InvalidAmountError(f"Total amount must be greater than 0, got {total}")

    rows = list(participants)
    for role in ParticipantRole:
        role_rows = [p for p in rows if p.role == role]
        if not role_rows:
            raise MissingParticipantsError(
                "Select at least one payer and one ower for the expense"
            )

        seen: set[str] = set()
        for row in role_rows:
            if row.member_id in seen:
                raise DuplicateParticipantError(
                    f"Member {row.member_id} is listed twice as {role.value}"
                )
            seen.add(row.member_id)

        role_sum = role_total(role_rows, role)
        if abs(role_sum - total) > AMOUNT_TOLERANCE:
            raise UnbalancedSplitError(role.value, role_sum, total)

    return total


def assign_initial_status(participants: Iterable[Participant]) -> list[Participant]:
    """Return copies of the rows with the entry-time payment status applied."""
    return [
        p.model_copy(update={"payment_status": INITIAL_STATUS[p.role]})
        for p in participants
    ]


def is_creator(expense: Expense, device_id: str) -> bool:
    return expense.created_by == device_id


def ensure_creator(expense: Expense, device_id: str) -> None:
    """Raise unless ``device_id`` created the expense (delete/edit permission)."""
    if not is_creator(expense, device_id):
        raise PermissionDeniedError(
            f"Only the expense creator can modify expense {expense.id}"
        )


def parse_expenses(payload: Any) -> list[Expense]:
    """
    Build expenses from a transport payload.

    Accepts either a bare list of expense objects or ``{"expenses": [...]}``.
    Amount fields may be numbers or strings.
    """
    if isinstance(payload, dict):
        payload = payload.get("expenses", [])
    return [Expense.model_validate(item) for item in payload]


class ExpenseLedger:
    """Local view of one group's (or event's) expenses, kept in sync with a store.

    Reads are served from the local cache. Writes are applied to the cache
    first and committed in the background; a rejected write restores the
    affected expense and fails the returned future with ``PersistenceError``.
    """

    def __init__(
        self,
        store: ExpenseStore,
        group_id: str,
        device_id: str,
        event_id: str | None = None,
        updater: OptimisticUpdater | None = None,
    ):
        """
        Initialize the ledger.

        Args:
            store: Persistence API
            group_id: Group the expenses belong to
            device_id: Identity of the local user, recorded as creator
            event_id: Optional event scope
            updater: Optimistic write runner (a private one is created if omitted)
        """
        self.store = store
        self.group_id = group_id
        self.device_id = device_id
        self.event_id = event_id
        self.updater = updater or OptimisticUpdater()
        self._expenses: dict[str, Expense] = {}
        self._lock = threading.RLock()

    @property
    def expenses(self) -> list[Expense]:
        """All cached expenses, newest first."""
        with self._lock:
            return sorted(
                self._expenses.values(), key=lambda e: e.created_at, reverse=True
            )

    def get(self, expense_id: str) -> Expense:
        with self._lock:
            expense = self._expenses.get(expense_id)
        if expense is None:
            raise ExpenseNotFoundError(f"Expense {expense_id} not found")
        return expense

    def refresh(self) -> list[Expense]:
        """Reload every expense in scope from the store."""
        try:
            loaded = self.store.list_expenses(self.group_id, self.event_id)
        except Exception as e:
            raise PersistenceError("load expenses") from e

        with self._lock:
            self._expenses = {expense.id: expense for expense in loaded}

        logger.info(f"Loaded {len(loaded)} expenses for group {self.group_id}")
        return self.expenses

    # ========================================================================
    # Local state primitives (shared with SettlementTracker)
    # ========================================================================

    def snapshot(self, expense_id: str) -> Expense | None:
        with self._lock:
            return self._expenses.get(expense_id)

    def put_local(self, expense: Expense) -> None:
        with self._lock:
            self._expenses[expense.id] = expense

    def modify_local(
        self, expense_id: str, change: Callable[[Expense], Expense]
    ) -> Expense | None:
        """
        Replace a cached expense with ``change(current)`` under the cache lock.

        Concurrent modifications of the same expense are serialized, so each
        one sees the others' results. Returns None if the expense is gone.
        """
        with self._lock:
            current = self._expenses.get(expense_id)
            if current is None:
                return None
            updated = change(current)
            self._expenses[expense_id] = updated
            return updated

    def restore_local(self, expense_id: str, saved: Expense | None) -> None:
        """Put back a snapshot; ``None`` means the expense did not exist."""
        with self._lock:
            if saved is None:
                self._expenses.pop(expense_id, None)
            else:
                self._expenses[expense_id] = saved

    def _change(
        self, operation: str, expense_id: str, apply, commit
    ) -> OptimisticChange:
        return OptimisticChange(
            operation=operation,
            snapshot=lambda: self.snapshot(expense_id),
            apply=apply,
            commit=commit,
            restore=lambda saved: self.restore_local(expense_id, saved),
        )

    # ========================================================================
    # Mutations
    # ========================================================================

    def create(
        self,
        description: str,
        total_amount: Decimal | int | float | str,
        participants: Iterable[Participant],
    ) -> Future[Expense]:
        """
        Create an expense with its full participant set.

        Validation runs synchronously and raises before anything is applied.
        The expense appears locally under a provisional id right away and is
        swapped for the stored record once the store accepts it.

        Returns:
            Future resolving to the persisted expense
        """
        rows = list(participants)
        total = validate_participants(total_amount, rows)
        now = datetime.now(UTC)

        provisional = Expense(
            id=f"{PROVISIONAL_PREFIX}{uuid4().hex}",
            group_id=self.group_id,
            event_id=self.event_id,
            description=description.strip() or DEFAULT_DESCRIPTION,
            total_amount=total,
            created_by=self.device_id,
            created_at=now,
            updated_at=now,
            participants=assign_initial_status(rows),
        )

        def commit() -> Expense:
            saved = self.store.create_expense(self.group_id, self.event_id, provisional)
            with self._lock:
                self._expenses.pop(provisional.id, None)
                self._expenses[saved.id] = saved
            return saved

        return self.updater.submit(
            self._change(
                "create expense",
                provisional.id,
                apply=lambda: self.put_local(provisional),
                commit=commit,
            )
        )

    def update(
        self,
        expense_id: str,
        description: str,
        total_amount: Decimal | int | float | str,
        participants: Iterable[Participant],
    ) -> Future[Expense]:
        """
        Replace an expense's description, total and participant set.

        There is no partial participant patch; the new rows replace the old
        ones wholesale and get the entry-time payment statuses again.
        """
        existing = self.get(expense_id)
        rows = list(participants)
        total = validate_participants(total_amount, rows)

        updated = Expense(
            id=existing.id,
            group_id=existing.group_id,
            event_id=existing.event_id,
            description=description.strip() or DEFAULT_DESCRIPTION,
            total_amount=total,
            created_by=existing.created_by,
            created_at=existing.created_at,
            updated_at=datetime.now(UTC),
            participants=assign_initial_status(rows),
        )

        def commit() -> Expense:
            saved = self.store.update_expense(self.group_id, updated)
            self.put_local(saved)
            return saved

        return self.updater.submit(
            self._change(
                "update expense",
                expense_id,
                apply=lambda: self.put_local(updated),
                commit=commit,
            )
        )

    def delete(self, expense_id: str) -> Future[None]:
        """
        Delete an expense and all of its participants.

        Only the creator may delete; check with ``ensure_creator`` first.
        """
        self.get(expense_id)

        def apply() -> None:
            with self._lock:
                self._expenses.pop(expense_id, None)

        return self.updater.submit(
            self._change(
                "delete expense",
                expense_id,
                apply=apply,
                commit=lambda: self.store.delete_expense(self.group_id, expense_id),
            )
        )
