"""Tests for ExpenseLedger validation and optimistic CRUD."""

import threading
from datetime import UTC, datetime
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from group_split.exceptions import (
    DuplicateParticipantError,
    ExpenseNotFoundError,
    InvalidAmountError,
    MissingParticipantsError,
    PermissionDeniedError,
    PersistenceError,
    UnbalancedSplitError,
)
from group_split.ledger import (
    DEFAULT_DESCRIPTION,
    PROVISIONAL_PREFIX,
    ExpenseLedger,
    ensure_creator,
    parse_expenses,
    validate_participants,
)
from group_split.models import Expense, Participant, ParticipantRole, PaymentStatus
from group_split.optimistic import OptimisticUpdater

PAYER = ParticipantRole.PAYER
OWER = ParticipantRole.OWER


def row(member_id: str, role: ParticipantRole, amount: str) -> Participant:
    return Participant(member_id=member_id, role=role, individual_amount=amount)


def dinner_rows() -> list[Participant]:
    return [row("alice", PAYER, "90"), row("bob", OWER, "45"), row("carol", OWER, "45")]


def stored_copy(expense: Expense, expense_id: str = "exp-1") -> Expense:
    """What a backend hands back after accepting a write."""
    return expense.model_copy(update={"id": expense_id})


@pytest.fixture
def updater():
    with OptimisticUpdater(max_workers=2) as updater:
        yield updater


@pytest.fixture
def store():
    """Store mock that echoes writes back with a server id."""
    store = MagicMock()
    store.list_expenses.return_value = []
    store.create_expense.side_effect = lambda group_id, event_id, expense: stored_copy(
        expense
    )
    store.update_expense.side_effect = lambda group_id, expense: expense
    store.delete_expense.return_value = None
    return store


@pytest.fixture
def ledger(store, updater):
    return ExpenseLedger(store, group_id="g1", device_id="alice", updater=updater)


@pytest.fixture
def existing_expense():
    return Expense(
        id="exp-1",
        group_id="g1",
        description="Dinner",
        total_amount="90",
        created_by="alice",
        created_at=datetime(2025, 3, 1, 19, 0, tzinfo=UTC),
        participants=[
            Participant(
                member_id="alice",
                role=PAYER,
                individual_amount="90",
                payment_status=PaymentStatus.COMPLETED,
            ),
            Participant(
                member_id="bob",
                role=OWER,
                individual_amount="45",
                payment_status=PaymentStatus.COMPLETED,
            ),
            Participant(member_id="carol", role=OWER, individual_amount="45"),
        ],
    )


class TestValidateParticipants:
    """Tests for pre-save validation."""

    def test_valid_rows_return_decimal_total(self):
        assert validate_participants("90.00", dinner_rows()) == Decimal("90.00")

    @pytest.mark.parametrize("total", [0, "-1", Decimal("0.00")])
    def test_non_positive_total(self, total):
        with pytest.raises(InvalidAmountError):
            validate_participants(total, dinner_rows())

    def test_missing_payer(self):
        with pytest.raises(MissingParticipantsError):
            validate_participants("90", [row("bob", OWER, "90")])

    def test_missing_ower(self):
        with pytest.raises(MissingParticipantsError):
            validate_participants("90", [row("alice", PAYER, "90")])

    def test_duplicate_member_in_role(self):
        rows = [row("alice", PAYER, "90"), row("bob", OWER, "45"), row("bob", OWER, "45")]
        with pytest.raises(DuplicateParticipantError, match="bob"):
            validate_participants("90", rows)

    def test_same_member_on_both_sides_is_allowed(self):
        rows = [row("alice", PAYER, "90"), row("alice", OWER, "45"), row("bob", OWER, "45")]
        assert validate_participants("90", rows) == Decimal("90")

    def test_unbalanced_role(self):
        rows = [row("alice", PAYER, "90"), row("bob", OWER, "40"), row("carol", OWER, "45")]
        with pytest.raises(UnbalancedSplitError) as exc_info:
            validate_participants("90", rows)

        assert exc_info.value.role == "ower"
        assert exc_info.value.role_sum == Decimal("85")

    def test_one_cent_slack_allowed(self):
        rows = [
            row("alice", PAYER, "100"),
            row("bob", OWER, "33.33"),
            row("carol", OWER, "33.33"),
            row("dave", OWER, "33.33"),
        ]
        assert validate_participants("100", rows) == Decimal("100")


class TestCreate:
    """Tests for optimistic expense creation."""

    def test_statuses_assigned_by_role(self, ledger, store):
        saved = ledger.create("Dinner", "90", dinner_rows()).result(timeout=5)

        assert saved.id == "exp-1"
        assert saved.created_by == "alice"
        assert [p.payment_status for p in saved.payers] == [PaymentStatus.COMPLETED]
        assert [p.payment_status for p in saved.owers] == [
            PaymentStatus.PENDING,
            PaymentStatus.PENDING,
        ]
        store.create_expense.assert_called_once()

    def test_provisional_record_swapped_for_saved(self, ledger):
        ledger.create("Dinner", "90", dinner_rows()).result(timeout=5)

        assert [e.id for e in ledger.expenses] == ["exp-1"]

    def test_visible_before_store_responds(self, ledger, store):
        """The local view updates before the remote write finishes."""
        release = threading.Event()

        def slow_create(group_id, event_id, expense):
            release.wait(timeout=5)
            return stored_copy(expense)

        store.create_expense.side_effect = slow_create

        future = ledger.create("Taxi", "20", [row("alice", PAYER, "20"), row("bob", OWER, "20")])
        try:
            local = ledger.expenses
            assert len(local) == 1
            assert local[0].id.startswith(PROVISIONAL_PREFIX)
            assert local[0].description == "Taxi"
        finally:
            release.set()

        assert future.result(timeout=5).id == "exp-1"

    def test_blank_description_defaults(self, ledger):
        saved = ledger.create("   ", "90", dinner_rows()).result(timeout=5)
        assert saved.description == DEFAULT_DESCRIPTION

    def test_store_failure_rolls_back(self, ledger, store):
        store.create_expense.side_effect = ConnectionError("backend down")

        future = ledger.create("Dinner", "90", dinner_rows())

        with pytest.raises(PersistenceError, match="create expense") as exc_info:
            future.result(timeout=5)
        assert isinstance(exc_info.value.__cause__, ConnectionError)
        assert ledger.expenses == []

    def test_invalid_input_never_reaches_store(self, ledger, store):
        with pytest.raises(UnbalancedSplitError):
            ledger.create("Dinner", "100", dinner_rows())

        store.create_expense.assert_not_called()
        assert ledger.expenses == []


class TestUpdateAndDelete:
    """Tests for replacing and removing expenses."""

    def test_update_replaces_participants(self, ledger, store, existing_expense):
        ledger.put_local(existing_expense)
        rows = [row("alice", PAYER, "120"), row("dave", OWER, "120")]

        saved = ledger.update("exp-1", "Late dinner", "120", rows).result(timeout=5)

        assert saved.description == "Late dinner"
        assert saved.total_amount == Decimal("120")
        assert [p.member_id for p in saved.owers] == ["dave"]
        assert saved.created_at == existing_expense.created_at
        assert ledger.get("exp-1") == saved

    def test_update_resets_statuses(self, ledger, existing_expense):
        """A full replace re-applies the entry-time statuses."""
        ledger.put_local(existing_expense)

        saved = ledger.update("exp-1", "Dinner", "90", dinner_rows()).result(timeout=5)

        assert saved.find_participant("bob", OWER).payment_status == PaymentStatus.PENDING

    def test_update_failure_restores_previous(self, ledger, store, existing_expense):
        ledger.put_local(existing_expense)
        store.update_expense.side_effect = TimeoutError("timed out")

        future = ledger.update("exp-1", "Changed", "90", dinner_rows())

        with pytest.raises(PersistenceError):
            future.result(timeout=5)
        assert ledger.get("exp-1") == existing_expense

    def test_update_unknown_expense(self, ledger):
        with pytest.raises(ExpenseNotFoundError):
            ledger.update("missing", "x", "90", dinner_rows())

    def test_delete_removes_locally(self, ledger, store, existing_expense):
        ledger.put_local(existing_expense)

        ledger.delete("exp-1").result(timeout=5)

        assert ledger.expenses == []
        store.delete_expense.assert_called_once_with("g1", "exp-1")

    def test_delete_failure_restores(self, ledger, store, existing_expense):
        ledger.put_local(existing_expense)
        store.delete_expense.side_effect = RuntimeError("503")

        with pytest.raises(PersistenceError, match="delete expense"):
            ledger.delete("exp-1").result(timeout=5)

        assert ledger.get("exp-1") == existing_expense

    def test_only_creator_may_modify(self, existing_expense):
        ensure_creator(existing_expense, "alice")
        with pytest.raises(PermissionDeniedError):
            ensure_creator(existing_expense, "bob")


class TestLoading:
    """Tests for reading expenses from transport payloads and the store."""

    def test_parse_string_amounts_and_aliases(self):
        payload = {
            "expenses": [
                {
                    "id": "e1",
                    "group_id": "g1",
                    "description": "Groceries",
                    "total_amount": "42.50",
                    "created_by_device_id": "alice",
                    "created_at": "2025-03-01T12:00:00Z",
                    "participants": [
                        {
                            "member_device_id": "alice",
                            "role": "payer",
                            "individual_amount": 42.5,
                            "payment_status": "completed",
                        },
                        {
                            "member_device_id": "bob",
                            "role": "ower",
                            "individual_amount": "42.50",
                        },
                    ],
                }
            ]
        }

        [expense] = parse_expenses(payload)

        assert expense.total_amount == Decimal("42.50")
        assert expense.created_by == "alice"
        assert expense.payers[0].individual_amount == Decimal("42.5")
        assert expense.owers[0].payment_status == PaymentStatus.PENDING

    def test_parse_bare_list(self, existing_expense):
        payload = [existing_expense.model_dump(mode="json", by_alias=True)]
        assert parse_expenses(payload) == [existing_expense]

    def test_refresh_orders_newest_first(self, ledger, store, existing_expense):
        newer = existing_expense.model_copy(
            update={"id": "exp-2", "created_at": datetime(2025, 3, 2, tzinfo=UTC)}
        )
        store.list_expenses.return_value = [existing_expense, newer]

        assert [e.id for e in ledger.refresh()] == ["exp-2", "exp-1"]
        store.list_expenses.assert_called_once_with("g1", None)

    def test_refresh_failure_wrapped(self, ledger, store):
        store.list_expenses.side_effect = OSError("network unreachable")

        with pytest.raises(PersistenceError, match="load expenses"):
            ledger.refresh()
