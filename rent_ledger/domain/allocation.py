"""Payment allocation and reconciliation - core ledger arithmetic"""

import copy
import logging
from dataclasses import replace
from datetime import date
from math import fsum
from typing import List, Sequence, Tuple

from rent_ledger.domain.models import EPSILON, AllocationResult, Charge, OverflowAccount
from rent_ledger.domain.status import refresh_statuses

logger = logging.getLogger(__name__)


def clone_charges(charges: Sequence[Charge]) -> List[Charge]:
    """Deep copy so callers' charge objects are never mutated"""
    return [copy.deepcopy(charge) for charge in charges]


def oldest_first(charges: Sequence[Charge]) -> List[Charge]:
    return sorted(charges, key=lambda c: c.due_date)


def newest_first(charges: Sequence[Charge]) -> List[Charge]:
    return sorted(charges, key=lambda c: c.due_date, reverse=True)


def fill_oldest_first(charges: Sequence[Charge], amount: float) -> Tuple[float, float]:
    """
    Apply `amount` to charges in ascending due-date order, topping each up to
    its gross amount. Mutates the charges.

    Returns (applied, leftover).
    """
    remaining = amount
    for charge in oldest_first(charges):
        if remaining <= EPSILON:
            break
        due = charge.gross_amount - charge.paid_amount
        if due > 0:
            portion = min(remaining, due)
            charge.paid_amount += portion
            remaining -= portion
    return amount - remaining, remaining


def deduct_newest_first(charges: Sequence[Charge], amount: float) -> float:
    """
    Remove up to `amount` of paid money, most recent due date first.
    Mutates the charges and returns what was actually deducted.
    """
    remaining = amount
    for charge in newest_first(charges):
        if remaining <= 0:
            break
        if charge.paid_amount > 0:
            portion = min(charge.paid_amount, remaining)
            charge.paid_amount = max(0.0, charge.paid_amount - portion)
            remaining -= portion
    return amount - remaining


def allocate_payment(
    amount: float,
    charges: Sequence[Charge],
    overflow: OverflowAccount,
    today: date,
) -> AllocationResult:
    """
    Apply one signed payment to a schedule plus its overflow account.

    Positive amounts settle the oldest unpaid charge first; whatever is left
    is banked as overflow. Negative amounts are taken from overflow first,
    then from charges newest first. Anything that cannot be taken back is
    returned as `unresolved_remainder` rather than dropped.

    Inputs are not mutated; the result carries updated copies.
    """
    working = clone_charges(charges)
    account = replace(overflow)

    if amount > 0:
        applied, leftover = fill_oldest_first(working, amount)
        if leftover > 0:
            account.deposit(leftover)
        result = AllocationResult(
            charges=working,
            overflow=account,
            applied_to_charges=applied,
            overflow_added=max(leftover, 0.0),
        )
    elif amount < 0:
        magnitude = -amount
        from_overflow = account.withdraw(magnitude)
        deficit = magnitude - from_overflow
        deducted = deduct_newest_first(working, deficit) if deficit > 0 else 0.0
        unresolved = max(deficit - deducted, 0.0)
        if unresolved > EPSILON:
            logger.warning(
                "Refund exceeds available funds",
                extra={"requested": magnitude, "unresolved": unresolved},
            )
        result = AllocationResult(
            charges=working,
            overflow=account,
            applied_to_charges=-deducted,
            overflow_added=-from_overflow,
            unresolved_remainder=unresolved,
        )
    else:
        result = AllocationResult(charges=working, overflow=account)

    refresh_statuses(result.charges, today)
    logger.debug(
        "Payment allocated",
        extra={
            "amount": amount,
            "applied_to_charges": result.applied_to_charges,
            "overflow_added": result.overflow_added,
        },
    )
    return result


def normalize_schedule(
    charges: Sequence[Charge],
    overflow: OverflowAccount,
    today: date,
) -> Tuple[List[Charge], OverflowAccount]:
    """
    Re-file all money already in the schedule so the earliest unpaid charge
    is always settled before any later one.

    The pool of paid money is collected, every charge reset to zero and the
    pool redistributed oldest first. If a charge shrank below what had been
    paid against it and no later charge can absorb the difference, the excess
    moves to pending overflow so the ledger total is unchanged.
    """
    working = clone_charges(charges)
    account = replace(overflow)

    pool = fsum(charge.paid_amount for charge in working)
    for charge in working:
        charge.paid_amount = 0.0

    _, excess = fill_oldest_first(working, pool)
    if excess > 0:
        account.deposit(excess)
        if excess > EPSILON:
            logger.info("Normalization moved excess to overflow", extra={"excess": excess})

    refresh_statuses(working, today)
    return working, account
