"""Per-occupant payment tracking for shared tenancies"""

import logging
from dataclasses import replace
from datetime import date
from math import fsum
from typing import Dict, List, Optional, Sequence, Tuple

from rent_ledger.domain.allocation import allocate_payment, clone_charges, newest_first, oldest_first
from rent_ledger.domain.exceptions import LedgerValidationError
from rent_ledger.domain.models import EPSILON, AllocationResult, Charge, OverflowAccount
from rent_ledger.domain.status import occupant_share, refresh_statuses

logger = logging.getLogger(__name__)


def ensure_occupant_payments(charges: Sequence[Charge], occupant_count: int) -> None:
    """
    Give every charge a payment entry for each occupant slot. Mutates charges.

    Charges without a map (or whose map no longer matches the aggregate paid
    amount) get their paid amount split evenly. Money recorded against slots
    that no longer exist is spread over the current slots.
    """
    for charge in charges:
        payments = charge.occupant_payments
        if payments is None or abs(fsum(payments.values()) - charge.paid_amount) > EPSILON:
            if payments is not None:
                logger.warning(
                    "Occupant payments out of step with paid amount; re-splitting evenly",
                    extra={"charge_id": charge.id},
                )
            even = charge.paid_amount / occupant_count
            charge.occupant_payments = {slot: even for slot in range(occupant_count)}
            continue

        current = {slot: payments.get(slot, 0.0) for slot in range(occupant_count)}
        stray = fsum(amount for slot, amount in payments.items() if slot not in current)
        if stray:
            for slot in current:
                current[slot] += stray / occupant_count
        charge.occupant_payments = current


def _even_portions(room: Dict[int, float], amount: float) -> Dict[int, float]:
    """
    Split `amount` evenly over slots, each taking at most its `room`. What a
    full slot cannot take is split evenly over the slots that still have room,
    round after round.
    """
    portions = {slot: 0.0 for slot in room}
    remaining = amount
    open_slots = [slot for slot in room if room[slot] > 0]
    while remaining > 0 and open_slots:
        portion = remaining / len(open_slots)
        still_open = []
        for slot in open_slots:
            taken = min(portion, room[slot] - portions[slot])
            portions[slot] += taken
            remaining -= taken
            if room[slot] - portions[slot] > 0:
                still_open.append(slot)
        if len(still_open) == len(open_slots):
            break
        open_slots = still_open
    return portions


def _spread_increase(payments: Dict[int, float], share: float, amount: float) -> None:
    """Add `amount` evenly across slots without pushing any slot past its share"""
    portions = _even_portions({slot: max(share - paid, 0.0) for slot, paid in payments.items()}, amount)
    residue = amount - fsum(portions.values())
    for slot in payments:
        # Residue is float dust, or money beyond every share; it stays on the charge
        payments[slot] += portions[slot] + residue / len(payments)


def _spread_decrease(payments: Dict[int, float], amount: float) -> None:
    """Remove `amount` evenly across slots without taking any slot below zero"""
    portions = _even_portions({slot: max(paid, 0.0) for slot, paid in payments.items()}, amount)
    for slot in payments:
        payments[slot] = max(payments[slot] - portions[slot], 0.0)


def _allocate_all_occupants(
    amount: float,
    charges: Sequence[Charge],
    overflow: OverflowAccount,
    occupant_count: int,
    today: date,
) -> AllocationResult:
    result = allocate_payment(amount, charges, overflow, today)
    for before, after in zip(charges, result.charges):
        delta = after.paid_amount - before.paid_amount
        if delta > 0:
            _spread_increase(after.occupant_payments, occupant_share(after, occupant_count), delta)
        elif delta < 0:
            _spread_decrease(after.occupant_payments, -delta)
    return result


def _allocate_one_occupant(
    amount: float,
    charges: Sequence[Charge],
    overflow: OverflowAccount,
    occupant_count: int,
    slot: int,
) -> AllocationResult:
    working = clone_charges(charges)
    account = replace(overflow)

    if amount > 0:
        remaining = amount
        for charge in oldest_first(working):
            if remaining <= EPSILON:
                break
            due = occupant_share(charge, occupant_count) - charge.occupant_payments[slot]
            if due > 0:
                portion = min(remaining, due)
                charge.occupant_payments[slot] += portion
                charge.paid_amount += portion
                remaining -= portion
        if remaining > 0:
            account.deposit(remaining)
        return AllocationResult(
            charges=working,
            overflow=account,
            applied_to_charges=amount - remaining,
            overflow_added=max(remaining, 0.0),
        )

    magnitude = -amount
    from_overflow = account.withdraw(magnitude)
    deficit = magnitude - from_overflow
    for charge in newest_first(working):
        if deficit <= 0:
            break
        paid_by_slot = charge.occupant_payments[slot]
        if paid_by_slot > 0:
            portion = min(paid_by_slot, deficit)
            charge.occupant_payments[slot] = max(paid_by_slot - portion, 0.0)
            charge.paid_amount = max(charge.paid_amount - portion, 0.0)
            deficit -= portion
    deducted = magnitude - from_overflow - max(deficit, 0.0)
    return AllocationResult(
        charges=working,
        overflow=account,
        applied_to_charges=-deducted,
        overflow_added=-from_overflow,
        unresolved_remainder=max(deficit, 0.0),
    )


def allocate_shared_payment(
    amount: float,
    charges: Sequence[Charge],
    overflow: OverflowAccount,
    occupant_count: int,
    today: date,
    target_occupant: Optional[int] = None,
) -> AllocationResult:
    """
    Apply a signed payment in a shared tenancy.

    With no target the aggregate allocator runs and each charge's change is
    spread over the occupant slots. With a target slot the payment settles
    that occupant's equal share of each charge (gross / occupant_count),
    oldest first, leaving the other occupants untouched.
    """
    if occupant_count < 2:
        raise LedgerValidationError("Per-occupant payments require a shared tenancy")
    if target_occupant is not None and not 0 <= target_occupant < occupant_count:
        raise LedgerValidationError(
            f"Occupant slot {target_occupant} is out of range (0-{occupant_count - 1})"
        )

    prepared = clone_charges(charges)
    ensure_occupant_payments(prepared, occupant_count)

    if amount == 0:
        result = AllocationResult(charges=prepared, overflow=replace(overflow))
    elif target_occupant is None:
        result = _allocate_all_occupants(amount, prepared, overflow, occupant_count, today)
    else:
        result = _allocate_one_occupant(amount, prepared, overflow, occupant_count, target_occupant)

    refresh_statuses(result.charges, today, occupant_count)
    return result


def normalize_shared_schedule(
    charges: Sequence[Charge],
    overflow: OverflowAccount,
    occupant_count: int,
    today: date,
) -> Tuple[List[Charge], OverflowAccount]:
    """
    Per-slot version of the reconciliation pass: each occupant's money is
    re-filed against that occupant's shares, oldest first. The aggregate paid
    amount of every charge is then the sum of its slots.
    """
    working = clone_charges(charges)
    account = replace(overflow)
    ensure_occupant_payments(working, occupant_count)

    for slot in range(occupant_count):
        pool = fsum(charge.occupant_payments[slot] for charge in working)
        for charge in working:
            charge.occupant_payments[slot] = 0.0

        remaining = pool
        for charge in oldest_first(working):
            if remaining <= EPSILON:
                break
            share = occupant_share(charge, occupant_count)
            if share > 0:
                portion = min(remaining, share)
                charge.occupant_payments[slot] = portion
                remaining -= portion
        if remaining > 0:
            account.deposit(remaining)

    for charge in working:
        charge.paid_amount = fsum(charge.occupant_payments.values())

    refresh_statuses(working, today, occupant_count)
    return working, account
