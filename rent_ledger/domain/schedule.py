"""Billing schedule generation for a tenancy contract"""

from datetime import date
from typing import List, Optional, Sequence

from rent_ledger.domain.exceptions import LedgerValidationError
from rent_ledger.domain.models import PLACEHOLDER_PREFIX, Charge
from rent_ledger.domain.status import derive_status
from rent_ledger.utils.date_utils import add_months, resolve_due_date


def placeholder_id(counter: int) -> str:
    return f"{PLACEHOLDER_PREFIX}{counter}"


def generate_billing_schedule(
    rent_amount: float,
    contract_months: int,
    start_date: Optional[date],
    due_day: str = "last",
    today: Optional[date] = None,
) -> List[Charge]:
    """
    Generate one rent charge per contract month.

    Requirements:
    - First charge falls in the start date's month
    - Due day per month follows the tenancy setting (clamped to short months)
    - Charges start unpaid; status is Overdue or Not Yet Due by date

    Args:
        rent_amount: Recurring rent per period, must be positive
        contract_months: Number of periods, at least 1
        start_date: Rent start date
        due_day: "last", "1st - First Day", "15th - Mid Month" or "1".."31"
        today: Reference date for the initial status (default: date.today())

    Returns:
        Charges with placeholder ids, ordered by due date

    Example:
        1000.0, 3 months, 2024-01-15, due "31"
        -> 2024-01-31, 2024-02-29, 2024-03-31
    """
    if start_date is None:
        raise LedgerValidationError("Rent start date is required to generate a schedule")
    if rent_amount <= 0:
        raise LedgerValidationError("Rent amount must be positive")
    if contract_months < 1:
        raise LedgerValidationError("Contract must cover at least one month")

    today = today or date.today()
    schedule = []
    for i in range(contract_months):
        month = add_months(start_date, i)
        due_date = resolve_due_date(month.year, month.month, due_day)
        schedule.append(
            Charge(
                id=placeholder_id(i + 1),
                due_date=due_date,
                base_amount=rent_amount,
                status=derive_status(rent_amount, 0.0, due_date, today),
                sequence_index=i + 1,
            )
        )
    return schedule


def next_period_due_date(charges: Sequence[Charge], due_day: str, rent_start_date: Optional[date]) -> date:
    """Due date for a period appended after the latest charge"""
    if not charges:
        if rent_start_date is None:
            raise LedgerValidationError("Set a rent start date before adding the first billing period")
        return resolve_due_date(rent_start_date.year, rent_start_date.month, due_day)
    latest = max(charge.due_date for charge in charges)
    month = add_months(latest, 1)
    return resolve_due_date(month.year, month.month, due_day)


def renumber_sequence(charges: Sequence[Charge]) -> None:
    """Number rent charges 1..n by due date; supplemental charges get no ordinal"""
    position = 0
    for charge in sorted(charges, key=lambda c: c.due_date):
        if charge.is_supplemental:
            charge.sequence_index = None
        else:
            position += 1
            charge.sequence_index = position
