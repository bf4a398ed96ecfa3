"""Pairwise debt netting."""

import logging
from collections.abc import Iterable
from decimal import Decimal

from .allocator import round2
from .balances import expense_obligations
from .models import Expense, Obligation, Transfer, UserBalance

logger = logging.getLogger(__name__)

# Pairs whose net is smaller than this are considered settled
SETTLE_THRESHOLD = Decimal("0.01")


def simplify_debts(
    obligations: Iterable[Obligation], threshold: Decimal = SETTLE_THRESHOLD
) -> list[Transfer]:
    """
    Net directed obligations into at most one transfer per member pair.

    Each pair is keyed by its sorted ids ``(low, high)``. An obligation
    ``low -> high`` adds to the pair's net and ``high -> low`` subtracts, so a
    positive net means ``low`` pays ``high`` and a negative net means ``high``
    pays ``low``. Pairs whose absolute net is below ``threshold`` are dropped.

    Args:
        obligations: Directed (from, to, amount) obligations
        threshold: Smallest net amount worth a transfer

    Returns:
        Transfers in the order their pair was first seen, amounts in cents
    """
    nets: dict[tuple[str, str], Decimal] = {}

    for obligation in obligations:
        if obligation.from_user == obligation.to_user:
            continue

        low, high = sorted((obligation.from_user, obligation.to_user))
        signed = obligation.amount if obligation.from_user == low else -obligation.amount
        nets[(low, high)] = nets.get((low, high), Decimal("0")) + signed

    transfers = []
    for (low, high), net in nets.items():
        if abs(net) < threshold:
            continue
        if net > 0:
            transfers.append(Transfer(from_user=low, to_user=high, amount=round2(net)))
        else:
            transfers.append(Transfer(from_user=high, to_user=low, amount=round2(-net)))

    logger.debug(f"Netted {len(nets)} member pairs into {len(transfers)} transfers")
    return transfers


def obligations_from_balance(user_id: str, balance: UserBalance) -> list[Obligation]:
    """Turn one user's debt and credit lines into directed obligations."""
    obligations = [
        Obligation(from_user=user_id, to_user=debt.to_user, amount=debt.amount)
        for debt in balance.detailed_debts
    ]
    obligations.extend(
        Obligation(from_user=credit.from_user, to_user=user_id, amount=credit.amount)
        for credit in balance.detailed_credits
    )
    return obligations


def group_obligations(expenses: Iterable[Expense]) -> list[Obligation]:
    """Every ower -> payer obligation across a set of expenses."""
    return [
        obligation
        for expense in expenses
        for obligation in expense_obligations(expense)
    ]


def simplify_group(
    expenses: Iterable[Expense], threshold: Decimal = SETTLE_THRESHOLD
) -> list[Transfer]:
    """Minimal pairwise transfers that settle a whole group's expenses."""
    return simplify_debts(group_obligations(expenses), threshold=threshold)
