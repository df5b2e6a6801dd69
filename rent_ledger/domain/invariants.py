"""Consistency checks run after every ledger mutation"""

from math import fsum
from typing import Callable, Sequence

from rent_ledger.domain.allocation import oldest_first
from rent_ledger.domain.exceptions import InvariantViolationError
from rent_ledger.domain.models import EPSILON, Charge


def _check_priority(charges: Sequence[Charge], owed: Callable[[Charge], float], paid: Callable[[Charge], float], label: str) -> None:
    first_unpaid = None
    for charge in oldest_first(charges):
        if first_unpaid is not None and charge.due_date > first_unpaid.due_date and paid(charge) > EPSILON:
            raise InvariantViolationError(
                f"{label}: charge {charge.id} holds {paid(charge):.2f} while earlier charge "
                f"{first_unpaid.id} is unpaid"
            )
        if first_unpaid is None and paid(charge) < owed(charge) - EPSILON:
            first_unpaid = charge


def check_ledger_invariants(charges: Sequence[Charge], occupant_count: int = 1) -> None:
    """
    Raise InvariantViolationError if a normalized ledger is inconsistent.

    Checks non-negative and capped paid amounts, occupant maps summing to the
    aggregate, and chronological priority (per occupant slot when shared).
    """
    for charge in charges:
        if charge.paid_amount < -EPSILON:
            raise InvariantViolationError(f"Charge {charge.id} has negative paid amount {charge.paid_amount}")
        if charge.paid_amount > charge.gross_amount + EPSILON:
            raise InvariantViolationError(
                f"Charge {charge.id} paid {charge.paid_amount:.2f} exceeds gross {charge.gross_amount:.2f}"
            )
        if charge.occupant_payments is not None:
            slot_total = fsum(charge.occupant_payments.values())
            if abs(slot_total - charge.paid_amount) > EPSILON:
                raise InvariantViolationError(
                    f"Charge {charge.id} occupant payments sum to {slot_total:.2f}, "
                    f"paid amount is {charge.paid_amount:.2f}"
                )

    if occupant_count > 1:
        for slot in range(occupant_count):
            _check_priority(
                charges,
                owed=lambda c: c.gross_amount / occupant_count,
                paid=lambda c, s=slot: (c.occupant_payments or {}).get(s, 0.0),
                label=f"Occupant {slot}",
            )
    else:
        _check_priority(charges, owed=lambda c: c.gross_amount, paid=lambda c: c.paid_amount, label="Schedule")
