"""Tests for record validation and transport tolerance."""

from decimal import Decimal

import pytest
from pydantic import ValidationError

from group_split.members import MemberDirectory
from group_split.models import (
    Expense,
    Member,
    Participant,
    ParticipantRole,
    PaymentStatus,
    to_decimal,
)


def expense_payload(**overrides) -> dict:
    payload = {
        "id": "e1",
        "group_id": "g1",
        "description": "Hotel",
        "total_amount": "300",
        "created_by_device_id": "alice",
        "participants": [
            {"member_device_id": "alice", "role": "payer", "individual_amount": "300"},
            {"member_device_id": "bob", "role": "ower", "individual_amount": 150},
            {"member_device_id": "carol", "role": "ower", "individual_amount": 150.0},
        ],
    }
    payload.update(overrides)
    return payload


class TestToDecimal:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("12.50", Decimal("12.50")),
            (" 7 ", Decimal("7")),
            (3, Decimal("3")),
            (0.1, Decimal("0.1")),
            (Decimal("1.005"), Decimal("1.005")),
        ],
    )
    def test_accepted_inputs(self, value, expected):
        assert to_decimal(value) == expected

    @pytest.mark.parametrize("value", [True, None, [1]])
    def test_rejected_inputs(self, value):
        with pytest.raises(ValueError):
            to_decimal(value)


class TestExpenseValidation:
    def test_transport_shape_accepted(self):
        expense = Expense.model_validate(expense_payload())

        assert expense.total_amount == Decimal("300")
        assert [p.member_id for p in expense.owers] == ["bob", "carol"]
        assert all(p.payment_status == PaymentStatus.PENDING for p in expense.owers)

    def test_python_field_names_accepted(self):
        expense = Expense(
            id="e1",
            group_id="g1",
            description="Hotel",
            total_amount=Decimal("10"),
            created_by="alice",
            participants=[
                Participant(member_id="alice", role=ParticipantRole.PAYER, individual_amount=10),
                Participant(member_id="bob", role=ParticipantRole.OWER, individual_amount=10),
            ],
        )
        assert expense.created_by == "alice"

    def test_non_positive_total_rejected(self):
        with pytest.raises(ValidationError, match="greater than 0"):
            Expense.model_validate(expense_payload(total_amount="0"))

    def test_missing_role_rejected(self):
        payload = expense_payload(
            participants=[
                {"member_device_id": "alice", "role": "payer", "individual_amount": "300"}
            ]
        )
        with pytest.raises(ValidationError, match="at least one ower"):
            Expense.model_validate(payload)

    def test_role_sum_mismatch_rejected(self):
        payload = expense_payload(total_amount="301")
        with pytest.raises(ValidationError, match="sum to"):
            Expense.model_validate(payload)

    def test_negative_share_rejected(self):
        with pytest.raises(ValidationError):
            Participant(member_id="a", role=ParticipantRole.OWER, individual_amount="-1")


class TestMembers:
    def test_display_name_fallback(self):
        assert Member(device_id="device-123456").display_name == "User 3456"
        assert Member(member_id="x", username="Sam").display_name == "Sam"

    def test_directory_from_file(self, tmp_path):
        path = tmp_path / "members.json"
        path.write_text(
            '{"members": [{"device_id": "d-0001", "username": "Ana"}, '
            '{"device_id": "d-0002"}]}',
            encoding="utf-8",
        )

        directory = MemberDirectory.from_file(path)

        assert len(directory) == 2
        assert "d-0001" in directory
        assert directory.label("d-0001") == "Ana"
        assert directory.label("d-0002") == "User 0002"
        assert directory.label("unknown-9999") == "User 9999"
