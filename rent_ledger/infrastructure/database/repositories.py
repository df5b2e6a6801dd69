"""Data access layer: the persistence collaborator for ledger edit sessions"""

import logging
from typing import Any, Dict, List, Optional, Sequence
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from rent_ledger.infrastructure.database.models import BillingCharge, Tenancy
from rent_ledger.domain.exceptions import PersistenceError, TenancyNotFoundError
from rent_ledger.domain.models import (
    Charge,
    ChargeStatus,
    ExpenseItem,
    LedgerChangeSet,
    LoadedLedger,
    PaymentKind,
    TenancyTerms,
)

logger = logging.getLogger(__name__)

# Tenancy columns holding balances that are adjusted outside the charge schedule
_BALANCE_COLUMNS = {PaymentKind.DEPOSIT: "security_deposit", PaymentKind.ADVANCE: "advance_payment"}


def _charge_from_row(row: BillingCharge) -> Charge:
    """Map a stored row to a domain charge; JSON blobs become native structures"""
    occupant_payments = None
    if row.occupant_payments:
        # JSON object keys come back as strings
        occupant_payments = {int(slot): float(amount) for slot, amount in row.occupant_payments.items()}
    return Charge(
        id=row.id,
        due_date=row.due_date,
        base_amount=row.base_amount,
        extra_amount=row.extra_amount or 0.0,
        paid_amount=row.paid_amount or 0.0,
        status=ChargeStatus(row.status),
        occupant_payments=occupant_payments,
        expense_items=[
            ExpenseItem(id=item["id"], name=item["name"], amount=float(item["amount"]))
            for item in (row.expense_items or [])
        ],
        sequence_index=row.billing_period,
        is_supplemental=bool(row.is_supplemental),
    )


def _row_values(charge: Charge) -> Dict[str, Any]:
    return {
        "due_date": charge.due_date,
        "base_amount": charge.base_amount,
        "extra_amount": charge.extra_amount,
        "gross_amount": charge.gross_amount,
        "paid_amount": charge.paid_amount,
        "status": charge.status.value,
        "billing_period": charge.sequence_index,
        "is_supplemental": charge.is_supplemental,
        "expense_items": (
            [{"id": item.id, "name": item.name, "amount": item.amount} for item in charge.expense_items]
            if charge.expense_items
            else None
        ),
        "occupant_payments": (
            {str(slot): amount for slot, amount in charge.occupant_payments.items()}
            if charge.occupant_payments is not None
            else None
        ),
    }


class TenancyRepository:
    """Repository for tenancy records"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, tenancy_id: str) -> Optional[Tenancy]:
        return self.db.query(Tenancy).filter(Tenancy.id == tenancy_id).first()

    def get_or_raise(self, tenancy_id: str) -> Tenancy:
        tenancy = self.get(tenancy_id)
        if tenancy is None:
            raise TenancyNotFoundError(f"Tenancy {tenancy_id} not found")
        return tenancy

    def count_charges(self, tenancy_id: str) -> int:
        return self.db.query(BillingCharge).filter(BillingCharge.tenancy_id == tenancy_id).count()


class SqlLedgerStore:
    """
    LedgerStore backed by SQLAlchemy.

    Every write method runs in a single transaction: on any database error the
    transaction is rolled back and PersistenceError is raised, so callers never
    see a partial commit.
    """

    def __init__(self, db: Session):
        self.db = db
        self.tenancies = TenancyRepository(db)

    def load(self, tenancy_id: str) -> LoadedLedger:
        tenancy = self.tenancies.get_or_raise(tenancy_id)
        rows = (
            self.db.query(BillingCharge)
            .filter(BillingCharge.tenancy_id == tenancy_id)
            .order_by(BillingCharge.due_date.asc())
            .all()
        )
        return LoadedLedger(
            tenancy_id=tenancy.id,
            charges=[_charge_from_row(row) for row in rows],
            committed_overflow=tenancy.overflow_balance or 0.0,
            occupant_count=tenancy.occupant_count or 1,
            terms=TenancyTerms(
                rent_amount=tenancy.rent_amount,
                due_day=tenancy.due_day,
                rent_start_date=tenancy.rent_start_date,
            ),
            balances={
                PaymentKind.DEPOSIT: tenancy.security_deposit or 0.0,
                PaymentKind.ADVANCE: tenancy.advance_payment or 0.0,
            },
        )

    def commit(self, tenancy_id: str, changes: LedgerChangeSet) -> Dict[str, str]:
        """Apply upserts, deletes, the new overflow balance and deposit/advance adjustments atomically"""
        unknown = [kind for kind in changes.balance_adjustments if PaymentKind(kind) not in _BALANCE_COLUMNS]
        if unknown:
            raise ValueError(f"Not balance adjustments: {unknown}")

        try:
            tenancy = self.tenancies.get_or_raise(tenancy_id)
            id_map: Dict[str, str] = {}

            for charge in changes.charges_to_upsert:
                values = _row_values(charge)
                row = None if charge.is_placeholder else self.db.get(BillingCharge, charge.id)
                if row is None:
                    row = BillingCharge(tenancy_id=tenancy_id, **values)
                    self.db.add(row)
                    self.db.flush()  # Get ID without committing
                    id_map[charge.id] = row.id
                else:
                    for key, value in values.items():
                        setattr(row, key, value)

            if changes.charge_ids_to_delete:
                (
                    self.db.query(BillingCharge)
                    .filter(BillingCharge.tenancy_id == tenancy_id)
                    .filter(BillingCharge.id.in_(changes.charge_ids_to_delete))
                    .delete(synchronize_session=False)
                )

            tenancy.overflow_balance = changes.new_overflow
            for kind, amount in changes.balance_adjustments.items():
                column = _BALANCE_COLUMNS[PaymentKind(kind)]
                setattr(tenancy, column, (getattr(tenancy, column) or 0.0) + amount)

            self.db.commit()
            return id_map

        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"Failed to save billing changes: {e}") from e

    def insert_schedule(self, tenancy_id: str, charges: Sequence[Charge]) -> List[str]:
        """Persist a freshly generated schedule; returns the new charge ids"""
        try:
            self.tenancies.get_or_raise(tenancy_id)
            rows = [BillingCharge(tenancy_id=tenancy_id, **_row_values(charge)) for charge in charges]
            self.db.add_all(rows)
            self.db.flush()
            ids = [row.id for row in rows]
            self.db.commit()
            logger.info("Billing schedule created", extra={"tenancy_id": tenancy_id, "charge_count": len(rows)})
            return ids
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"Failed to save billing schedule: {e}") from e
