"""Balance aggregation across expenses by proportional attribution."""

import logging
from collections.abc import Iterable, Iterator
from decimal import Decimal

from .models import DebtDetail, Expense, Obligation, ParticipantRole, UserBalance

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def _member_sum(expense: Expense, role: ParticipantRole, member_id: str) -> Decimal:
    return sum(
        (p.individual_amount for p in expense.rows(role) if p.member_id == member_id),
        ZERO,
    )


def _role_sum(expense: Expense, role: ParticipantRole) -> Decimal:
    return sum((p.individual_amount for p in expense.rows(role)), ZERO)


def calculate_user_balance(expenses: Iterable[Expense], user_id: str) -> UserBalance:
    """
    Aggregate what a user is owed and owes across expenses.

    For each expense:
    - If the user paid, their fraction of the payer total is applied to every
      ower row; each result is a credit (that ower owes the user).
    - If the user owes, their fraction of the ower total is applied to every
      payer row; each result is a debt (the user owes that payer).

    Both branches run independently, so a user who is payer and ower on the
    same expense gets a credit and a debt from it. A zero role total skips
    that branch.

    Args:
        expenses: Expenses already scoped to a group or event
        user_id: Member to compute the balance for

    Returns:
        UserBalance with totals and per-expense detail lines
    """
    total_owed = ZERO
    total_owing = ZERO
    detailed_debts: list[DebtDetail] = []
    detailed_credits: list[DebtDetail] = []

    for expense in expenses:
        user_paid = _member_sum(expense, ParticipantRole.PAYER, user_id)
        user_owes = _member_sum(expense, ParticipantRole.OWER, user_id)

        if user_paid > 0:
            total_paid = _role_sum(expense, ParticipantRole.PAYER)
            if total_paid > 0:
                payer_share = user_paid / total_paid
                for ower in expense.owers:
                    amount = ower.individual_amount * payer_share
                    total_owed += amount
                    detailed_credits.append(
                        DebtDetail(
                            expense_id=expense.id,
                            expense_name=expense.description,
                            from_user=ower.member_id,
                            to_user=user_id,
                            amount=amount,
                        )
                    )

        if user_owes > 0:
            total_owed_by_owers = _role_sum(expense, ParticipantRole.OWER)
            if total_owed_by_owers > 0:
                ower_share = user_owes / total_owed_by_owers
                for payer in expense.payers:
                    amount = payer.individual_amount * ower_share
                    total_owing += amount
                    detailed_debts.append(
                        DebtDetail(
                            expense_id=expense.id,
                            expense_name=expense.description,
                            from_user=user_id,
                            to_user=payer.member_id,
                            amount=amount,
                        )
                    )

    logger.debug(
        f"Balance for {user_id}: owed {total_owed}, owing {total_owing} "
        f"({len(detailed_credits)} credits, {len(detailed_debts)} debts)"
    )

    return UserBalance(
        net_balance=total_owed - total_owing,
        total_owed=total_owed,
        total_owing=total_owing,
        detailed_debts=detailed_debts,
        detailed_credits=detailed_credits,
    )


def expense_obligations(expense: Expense) -> Iterator[Obligation]:
    """
    Directed ower -> payer obligations for one expense.

    Each ower owes each payer ``payer_amount * ower_amount / ower_total``,
    the same attribution ``calculate_user_balance`` uses for debts. Rows
    where a member would owe themselves are skipped.
    """
    total_owed = _role_sum(expense, ParticipantRole.OWER)
    if total_owed <= 0:
        return

    for ower in expense.owers:
        for payer in expense.payers:
            if ower.member_id == payer.member_id:
                continue
            amount = payer.individual_amount * ower.individual_amount / total_owed
            if amount > 0:
                yield Obligation(
                    from_user=ower.member_id, to_user=payer.member_id, amount=amount
                )
