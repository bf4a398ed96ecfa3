"""Interactive percentage split editor with per-member locks.

A ``SplitState`` covers the members of one role (payers or owers) of an
expense being edited. Every operation is a pure function that returns a new
state, so the editor can be driven from a CLI, a test, or any UI without
hidden mutation.

Flow:
1. ``select`` members; each addition resets the split to equal shares
2. ``set_percentage`` edits one member and redistributes the remainder over
   the unlocked members
3. ``toggle_lock`` pins a member's share so redistribution skips it
4. ``finalize`` converts percentages to cent amounts, or hands back a
   normalized state for confirmation when the percentages drifted from 100
"""

import logging
from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal

from pydantic import BaseModel, ConfigDict, Field

from .exceptions import (
    ExpenseValidationError,
    InvalidAmountError,
    MissingParticipantsError,
    UnbalancedSplitError,
)
from .models import Participant, ParticipantRole, to_decimal

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")
CENT = Decimal("0.01")
HALF_CENT = Decimal("0.005")

# Percentage drift that finalize corrects (and asks to confirm) instead of committing
NORMALIZE_TOLERANCE = Decimal("0.1")


def round2(amount: Decimal) -> Decimal:
    """Round to cents using ROUND_HALF_UP."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


class SplitState(BaseModel):
    """Immutable percentage split over the selected members of one role."""

    model_config = ConfigDict(frozen=True)

    role: ParticipantRole
    selected: tuple[str, ...] = ()
    percentages: dict[str, Decimal] = Field(default_factory=dict)
    locked: frozenset[str] = frozenset()

    def percentage(self, member_id: str) -> Decimal:
        return self.percentages.get(member_id, Decimal("0"))

    @property
    def total_percentage(self) -> Decimal:
        return sum((self.percentage(m) for m in self.selected), Decimal("0"))

    @property
    def unlocked(self) -> list[str]:
        return [m for m in self.selected if m not in self.locked]


class FinalizeResult(BaseModel):
    """Outcome of ``finalize``.

    When ``needs_confirmation`` is set, ``state`` holds the corrected
    percentages and ``participants`` is empty; show the state to the user and
    call ``finalize`` again with it to commit.
    """

    state: SplitState
    participants: list[Participant] = Field(default_factory=list)
    needs_confirmation: bool = False


def _require_selected(state: SplitState, member_id: str) -> None:
    if member_id not in state.selected:
        raise ExpenseValidationError(
            f"Member {member_id} is not selected as {state.role.value}"
        )


def _locked_sum(state: SplitState, exclude: str) -> Decimal:
    return sum(
        (state.percentage(m) for m in state.locked if m != exclude), Decimal("0")
    )


def _equal_percentages(members: tuple[str, ...]) -> dict[str, Decimal]:
    share = HUNDRED / len(members)
    return {m: share for m in members}


def _normalized(state: SplitState, current: Decimal) -> SplitState:
    factor = HUNDRED / current
    return state.model_copy(
        update={"percentages": {m: state.percentage(m) * factor for m in state.selected}}
    )


def equal_split(role: ParticipantRole, member_ids: Iterable[str]) -> SplitState:
    """Start a split with the given members sharing 100% equally."""
    state = SplitState(role=role)
    for member_id in member_ids:
        state = select(state, member_id)
    return state


def select(state: SplitState, member_id: str) -> SplitState:
    """
    Toggle a member in or out of the split.

    Adding a member resets every selected member to an equal share, locked
    or not; locks only constrain later ``set_percentage`` calls. Removing a
    member drops just that member's share and lock, leaving the others as
    they were even though they may no longer sum to 100.
    """
    if member_id in state.selected:
        selected = tuple(m for m in state.selected if m != member_id)
        percentages = {m: p for m, p in state.percentages.items() if m != member_id}
        logger.debug(f"Removed {member_id} from {state.role.value} split")
        return state.model_copy(
            update={
                "selected": selected,
                "percentages": percentages,
                "locked": state.locked - {member_id},
            }
        )

    selected = (*state.selected, member_id)
    logger.debug(
        f"Added {member_id} to {state.role.value} split, "
        f"reset to {len(selected)} equal shares"
    )
    return state.model_copy(
        update={"selected": selected, "percentages": _equal_percentages(selected)}
    )


def max_percentage(state: SplitState, member_id: str) -> Decimal:
    """Largest share a member can take given the other members' locks."""
    return max(Decimal("0"), HUNDRED - _locked_sum(state, exclude=member_id))


def set_percentage(
    state: SplitState, member_id: str, value: Decimal | int | float | str
) -> SplitState:
    """
    Set one member's share and spread the remainder over unlocked members.

    The value is clamped to ``[0, 100 - locked_sum]``. Whatever is left after
    the locked shares and the new value goes in equal parts to every selected
    member that is neither the edited member nor locked. If no such member
    exists the remainder is left unassigned, and ``finalize`` will normalize.
    """
    _require_selected(state, member_id)

    locked_sum = _locked_sum(state, exclude=member_id)
    ceiling = max(Decimal("0"), HUNDRED - locked_sum)
    clamped = min(max(Decimal("0"), to_decimal(value)), ceiling)
    available = HUNDRED - locked_sum - clamped

    percentages = dict(state.percentages)
    percentages[member_id] = clamped

    free = [m for m in state.selected if m != member_id and m not in state.locked]
    if free and available >= 0:
        share = available / len(free)
        for other in free:
            percentages[other] = share
    elif available > 0:
        logger.debug(f"{available}% left unassigned: no unlocked members to absorb it")

    return state.model_copy(update={"percentages": percentages})


def is_last_unlocked(state: SplitState, member_id: str) -> bool:
    """True when the member is the only one left to absorb redistribution."""
    return state.unlocked == [member_id]


def is_effectively_locked(state: SplitState, member_id: str) -> bool:
    return member_id in state.locked or is_last_unlocked(state, member_id)


def toggle_lock(state: SplitState, member_id: str) -> SplitState:
    """Flip a member's lock. No-op for the last unlocked member."""
    _require_selected(state, member_id)

    if is_last_unlocked(state, member_id):
        logger.debug(f"Refusing to lock {member_id}: last unlocked member")
        return state

    return state.model_copy(update={"locked": state.locked ^ {member_id}})


def _rounded_shares(
    state: SplitState, total_amount: Decimal
) -> tuple[list[Decimal], Decimal]:
    amounts = [
        round2(total_amount * state.percentage(m) / HUNDRED) for m in state.selected
    ]
    return amounts, total_amount - sum(amounts, Decimal("0"))


def rounding_bound(member_count: int) -> Decimal:
    """Largest residual cent rounding alone can produce over ``member_count`` shares."""
    return HALF_CENT * member_count


def allocate_amounts(state: SplitState, total_amount: Decimal) -> list[Participant]:
    """
    Convert percentages into cent amounts that sum exactly to the total.

    Each share is ``round2(total * pct / 100)``. The rounding residual, at
    most half a cent per member, is applied to the largest share so that
    cent rounding never breaks the role sum.

    Raises:
        UnbalancedSplitError: If the residual is larger than rounding can
            explain, i.e. the percentages themselves don't sum to 100
    """
    amounts, residual = _rounded_shares(state, total_amount)

    if abs(residual) > rounding_bound(len(amounts)):
        raise UnbalancedSplitError(
            state.role.value, sum(amounts, Decimal("0")), total_amount
        )

    if residual != 0 and amounts:
        largest = max(range(len(amounts)), key=lambda i: amounts[i])
        amounts[largest] += residual
        logger.info(
            f"Applied rounding adjustment: {residual} to {state.selected[largest]}"
        )

    return [
        Participant(member_id=member_id, role=state.role, individual_amount=amount)
        for member_id, amount in zip(state.selected, amounts, strict=True)
    ]


def finalize(
    state: SplitState,
    total_amount: Decimal | int | float | str,
    tolerance: Decimal = NORMALIZE_TOLERANCE,
) -> FinalizeResult:
    """
    Turn the split into participant rows, or return a corrected split.

    If the percentages are more than ``tolerance`` away from 100, or close
    enough to pass that check but still leaving more than cent rounding can
    explain, they are rescaled by ``100 / sum`` and nothing is committed: the
    caller must show the corrected state and finalize again. A split where every share is 0
    falls back to an equal split in the same way.

    Raises:
        InvalidAmountError: If the total is not positive
        MissingParticipantsError: If no member is selected
    """
    total = to_decimal(total_amount)
    if total <= 0:
        raise InvalidAmountError(f"Total amount must be greater than 0, got {total}")
    if not state.selected:
        raise MissingParticipantsError(
            f"Select at least one {state.role.value} before saving"
        )

    current = state.total_percentage

    if current == 0:
        logger.info(f"{state.role.value} split is all zero, resetting to equal shares")
        reset = state.model_copy(
            update={"percentages": _equal_percentages(state.selected)}
        )
        return FinalizeResult(state=reset, needs_confirmation=True)

    if abs(current - HUNDRED) > tolerance:
        logger.info(
            f"{state.role.value} split summed to {current}%, normalized to 100% "
            f"and held for confirmation"
        )
        return FinalizeResult(state=_normalized(state, current), needs_confirmation=True)

    _, residual = _rounded_shares(state, total)
    if abs(residual) > rounding_bound(len(state.selected)):
        logger.info(
            f"{state.role.value} split at {current}% leaves {residual} of "
            f"{total} unassigned, normalized to 100% and held for confirmation"
        )
        return FinalizeResult(state=_normalized(state, current), needs_confirmation=True)

    return FinalizeResult(state=state, participants=allocate_amounts(state, total))


def split_from_participants(
    role: ParticipantRole,
    participants: Iterable[Participant],
    total_amount: Decimal | int | float | str,
) -> SplitState:
    """Rebuild the editor state for an existing expense opened for editing."""
    total = to_decimal(total_amount)
    if total <= 0:
        raise InvalidAmountError(f"Total amount must be greater than 0, got {total}")

    rows = [p for p in participants if p.role == role]
    return SplitState(
        role=role,
        selected=tuple(p.member_id for p in rows),
        percentages={p.member_id: p.individual_amount / total * HUNDRED for p in rows},
    )
