"""Pydantic domain models for group-split."""

from collections.abc import Iterable
from datetime import UTC, datetime
from decimal import Decimal
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

# Role sums must match the expense total within this amount
AMOUNT_TOLERANCE = Decimal("0.01")


def to_decimal(value: object) -> Decimal:
    """
    Coerce a transport amount into a Decimal.

    Amounts arrive as ints, floats, Decimals or string-encoded decimals
    depending on the backend driver. Floats go through ``str`` so that
    ``0.1`` becomes ``Decimal("0.1")`` rather than its binary expansion.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError("Boolean is not a valid amount")
    if isinstance(value, int | float):
        return Decimal(str(value))
    if isinstance(value, str):
        return Decimal(value.strip())
    raise ValueError(f"Unsupported amount type: {type(value).__name__}")


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ParticipantRole(StrEnum):
    """Which side of an expense a participant is on."""

    PAYER = "payer"
    OWER = "ower"


class PaymentStatus(StrEnum):
    """Per-participant payment progress. Only moves forward."""

    PENDING = "pending"
    SENT = "sent"
    COMPLETED = "completed"

    @property
    def rank(self) -> int:
        return _STATUS_ORDER.index(self)


_STATUS_ORDER = [PaymentStatus.PENDING, PaymentStatus.SENT, PaymentStatus.COMPLETED]


# ============================================================================
# Group Models
# ============================================================================


class Member(BaseModel):
    """A group member, owned by the membership service."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    member_id: str = Field(alias="device_id")
    username: str | None = None

    @property
    def display_name(self) -> str:
        return self.username or f"User {self.member_id[-4:]}"


class Participant(BaseModel):
    """One payer or ower row of an expense."""

    model_config = ConfigDict(populate_by_name=True)

    member_id: str = Field(alias="member_device_id")
    role: ParticipantRole
    individual_amount: Decimal
    payment_status: PaymentStatus = PaymentStatus.PENDING

    @field_validator("individual_amount", mode="before")
    @classmethod
    def _coerce_amount(cls, value: object) -> Decimal:
        return to_decimal(value)

    @field_validator("individual_amount")
    @classmethod
    def _non_negative(cls, value: Decimal) -> Decimal:
        if value < 0:
            raise ValueError("individual_amount must not be negative")
        return value


class Expense(BaseModel):
    """A shared expense with its full participant set.

    Construction enforces the ledger invariants: a positive total, at least
    one payer and one ower, one row per member per role, and both role sums
    matching the total within one cent.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str
    group_id: str
    event_id: str | None = None
    description: str
    total_amount: Decimal
    created_by: str = Field(alias="created_by_device_id")
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
    participants: list[Participant]

    @field_validator("total_amount", mode="before")
    @classmethod
    def _coerce_total(cls, value: object) -> Decimal:
        return to_decimal(value)

    @field_validator("total_amount")
    @classmethod
    def _positive_total(cls, value: Decimal) -> Decimal:
        if value <= 0:
            raise ValueError("total_amount must be greater than 0")
        return value

    @model_validator(mode="after")
    def _check_participants(self) -> "Expense":
        for role in ParticipantRole:
            rows = self.rows(role)
            if not rows:
                raise ValueError(f"Expense needs at least one {role.value}")

            members = [row.member_id for row in rows]
            if len(members) != len(set(members)):
                raise ValueError(f"Member listed more than once as {role.value}")

            role_sum = sum((row.individual_amount for row in rows), Decimal("0"))
            if abs(role_sum - self.total_amount) > AMOUNT_TOLERANCE:
                raise ValueError(
                    f"{role.value} shares sum to {role_sum}, "
                    f"expected {self.total_amount}"
                )
        return self

    @property
    def payers(self) -> list[Participant]:
        return self.rows(ParticipantRole.PAYER)

    @property
    def owers(self) -> list[Participant]:
        return self.rows(ParticipantRole.OWER)

    def rows(self, role: ParticipantRole) -> list[Participant]:
        """Participant rows for one role, in entry order."""
        return [p for p in self.participants if p.role == role]

    def find_participant(
        self, member_id: str, role: ParticipantRole
    ) -> Participant | None:
        for participant in self.participants:
            if participant.member_id == member_id and participant.role == role:
                return participant
        return None


def role_total(participants: Iterable[Participant], role: ParticipantRole) -> Decimal:
    """Sum individual amounts over one role."""
    return sum(
        (p.individual_amount for p in participants if p.role == role), Decimal("0")
    )


# ============================================================================
# Balance Models
# ============================================================================


class DebtDetail(BaseModel):
    """One attributed debt or credit line from a single expense."""

    expense_id: str
    expense_name: str
    from_user: str
    to_user: str
    amount: Decimal


class UserBalance(BaseModel):
    """A user's aggregated position across a set of expenses."""

    net_balance: Decimal = Decimal("0")
    total_owed: Decimal = Decimal("0")  # owed to the user
    total_owing: Decimal = Decimal("0")  # the user owes others
    detailed_debts: list[DebtDetail] = Field(default_factory=list)
    detailed_credits: list[DebtDetail] = Field(default_factory=list)


class Obligation(BaseModel):
    """A directed amount one member owes another."""

    model_config = ConfigDict(frozen=True)

    from_user: str
    to_user: str
    amount: Decimal

    @field_validator("amount", mode="before")
    @classmethod
    def _coerce_amount(cls, value: object) -> Decimal:
        return to_decimal(value)


class Transfer(BaseModel):
    """A payment a group needs to make after netting."""

    model_config = ConfigDict(frozen=True)

    from_user: str
    to_user: str
    amount: Decimal
