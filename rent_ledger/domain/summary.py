"""Tenant-facing balance summary"""

from datetime import date
from math import fsum
from typing import Sequence

from rent_ledger.domain.allocation import oldest_first
from rent_ledger.domain.models import EPSILON, Charge, ChargeStatus, LedgerSummary, OverflowAccount
from rent_ledger.domain.status import charge_status


def summarize_ledger(
    charges: Sequence[Charge],
    overflow: OverflowAccount,
    today: date,
    occupant_count: int = 1,
) -> LedgerSummary:
    """Totals, status counts and the next charge still owing money"""
    total_gross = fsum(c.gross_amount for c in charges)
    total_paid = fsum(c.paid_amount for c in charges)

    counts = {status: 0 for status in ChargeStatus}
    next_due = None
    for charge in oldest_first(charges):
        status = charge_status(charge, today, occupant_count)
        counts[status] += 1
        if next_due is None and status != ChargeStatus.PAID:
            next_due = charge

    outstanding = total_gross - total_paid
    if outstanding <= EPSILON:
        outstanding = 0.0

    return LedgerSummary(
        total_gross=total_gross,
        total_paid=total_paid,
        outstanding=outstanding,
        overflow_balance=overflow.balance,
        status_counts=counts,
        next_due=next_due,
    )
