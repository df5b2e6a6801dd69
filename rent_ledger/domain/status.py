"""Charge status derivation from monetary and calendar state"""

from datetime import date
from typing import Dict, Optional

from rent_ledger.domain.models import EPSILON, Charge, ChargeStatus


def derive_status(gross_amount: float, paid_amount: float, due_date: date, today: date) -> ChargeStatus:
    """
    Map a charge's amounts and due date to exactly one status.

    - PAID:        paid >= gross - epsilon
    - PARTIAL:     epsilon < paid < gross - epsilon
    - OVERDUE:     paid <= epsilon and due date before today
    - NOT_YET_DUE: paid <= epsilon and due date today or later
    """
    if paid_amount >= gross_amount - EPSILON:
        return ChargeStatus.PAID
    if paid_amount > EPSILON:
        return ChargeStatus.PARTIAL
    if due_date < today:
        return ChargeStatus.OVERDUE
    return ChargeStatus.NOT_YET_DUE


def all_shares_paid(gross_amount: float, occupant_payments: Dict[int, float], occupant_count: int) -> bool:
    """True when every occupant slot has paid its equal share (within epsilon)"""
    if occupant_count < 1:
        return False
    share = gross_amount / occupant_count
    return all(occupant_payments.get(slot, 0.0) >= share - EPSILON for slot in range(occupant_count))


def charge_status(charge: Charge, today: date, occupant_count: int = 1) -> ChargeStatus:
    """Status for a charge, with the per-occupant Paid rule for shared tenancies"""
    status = derive_status(charge.gross_amount, charge.paid_amount, charge.due_date, today)
    if (
        status != ChargeStatus.PAID
        and occupant_count > 1
        and charge.occupant_payments is not None
        and all_shares_paid(charge.gross_amount, charge.occupant_payments, occupant_count)
    ):
        return ChargeStatus.PAID
    return status


def refresh_statuses(charges, today: date, occupant_count: int = 1) -> None:
    """Recompute `status` in place for every charge"""
    for charge in charges:
        charge.status = charge_status(charge, today, occupant_count)


def occupant_share(charge: Charge, occupant_count: int) -> float:
    return charge.gross_amount / occupant_count


def resolve_today(today: Optional[date]) -> date:
    return today if today is not None else date.today()
