"""Interactive edit session over one tenancy's billing ledger"""

import copy
import logging
from dataclasses import replace
from datetime import date
from math import fsum
from typing import Dict, List, Optional, Protocol, Sequence

from rent_ledger.domain.allocation import allocate_payment, clone_charges, normalize_schedule, oldest_first
from rent_ledger.domain.exceptions import ChargeNotFoundError, LedgerValidationError, PersistenceError
from rent_ledger.domain.history import HISTORY_LIMIT, HistoryManager, restore_charges, take_snapshot
from rent_ledger.domain.invariants import check_ledger_invariants
from rent_ledger.domain.models import (
    EPSILON,
    Charge,
    CommitResult,
    ExpenseItem,
    LedgerChangeSet,
    LedgerSnapshot,
    LedgerSummary,
    LoadedLedger,
    OverflowAccount,
    PaymentKind,
    PaymentOutcome,
)
from rent_ledger.domain.schedule import next_period_due_date, placeholder_id, renumber_sequence
from rent_ledger.domain.splitter import allocate_shared_payment, ensure_occupant_payments, normalize_shared_schedule
from rent_ledger.domain.status import refresh_statuses, resolve_today
from rent_ledger.domain.summary import summarize_ledger
from rent_ledger.utils.date_utils import next_day

logger = logging.getLogger(__name__)


class LedgerStore(Protocol):
    """Persistence collaborator the session loads from and commits to"""

    def load(self, tenancy_id: str) -> LoadedLedger:
        ...

    def commit(self, tenancy_id: str, changes: LedgerChangeSet) -> Dict[str, str]:
        """
        Write charges, overflow and deposit/advance adjustments atomically;
        return persisted ids for placeholder charges
        """
        ...


class LedgerEditSession:
    """
    Working copy of a tenancy's charge schedule during one edit.

    Every mutating operation snapshots the pre-edit state into the history,
    then re-runs reconciliation so chronological priority holds afterwards.
    Nothing reaches the store until `commit()`; discarding the session is a
    safe cancel.
    """

    def __init__(
        self,
        store: LedgerStore,
        loaded: LoadedLedger,
        today: Optional[date] = None,
        history_limit: int = HISTORY_LIMIT,
    ):
        if loaded.occupant_count < 1:
            raise LedgerValidationError("Occupant count must be at least 1")

        self.store = store
        self.tenancy_id = loaded.tenancy_id
        self.occupant_count = loaded.occupant_count
        self.terms = loaded.terms
        self.today = resolve_today(today)
        self.history = HistoryManager(history_limit)

        charges = clone_charges(loaded.charges)
        if self.is_shared:
            ensure_occupant_payments(charges, self.occupant_count)
        refresh_statuses(charges, self.today, self.occupant_count)

        self._charges: List[Charge] = oldest_first(charges)
        # Diff baseline: maps rebuilt, statuses refreshed
        self._original: Dict[str, Charge] = {c.id: copy.deepcopy(c) for c in self._charges}
        self.overflow = OverflowAccount(committed=loaded.committed_overflow)
        self.pending_refunds: Dict[str, float] = {}
        self.balances: Dict[PaymentKind, float] = dict(loaded.balances)
        self.pending_balance_adjustments: Dict[PaymentKind, float] = {}
        self._placeholder_counter = 0

    @classmethod
    def open(
        cls,
        store: LedgerStore,
        tenancy_id: str,
        today: Optional[date] = None,
        history_limit: int = HISTORY_LIMIT,
    ) -> "LedgerEditSession":
        """Load a tenancy from the store and start editing it"""
        loaded = store.load(tenancy_id)
        logger.info(
            "Ledger edit session opened",
            extra={
                "tenancy_id": tenancy_id,
                "charge_count": len(loaded.charges),
                "occupant_count": loaded.occupant_count,
            },
        )
        return cls(store, loaded, today=today, history_limit=history_limit)

    # ------------------------------------------------------------------
    # Read access

    @property
    def is_shared(self) -> bool:
        return self.occupant_count > 1

    @property
    def charges(self) -> List[Charge]:
        return clone_charges(self._charges)

    @property
    def pending_overflow_delta(self) -> float:
        return self.overflow.pending_delta

    @property
    def money_in_ledger(self) -> float:
        """Paid money plus banked overflow (pending refunds excluded)"""
        return fsum(c.paid_amount for c in self._charges) + self.overflow.balance

    @property
    def has_changes(self) -> bool:
        changes = self._diff(self._charges, self.overflow.balance)
        return (
            bool(changes.charges_to_upsert or changes.charge_ids_to_delete)
            or bool(self.pending_refunds)
            or bool(self.pending_balance_adjustments)
            or abs(self.overflow.pending_delta) > EPSILON
        )

    def get_charge(self, charge_id: str) -> Charge:
        return copy.deepcopy(self._find(charge_id)[1])

    def summary(self) -> LedgerSummary:
        return summarize_ledger(self._charges, self.overflow, self.today, self.occupant_count)

    def snapshot(self) -> LedgerSnapshot:
        return take_snapshot(
            self._charges,
            self.overflow.pending_delta,
            self.pending_refunds,
            self._placeholder_counter,
        )

    # ------------------------------------------------------------------
    # Edits

    def apply_payment(
        self,
        amount: float,
        target_occupant: Optional[int] = None,
        kind: PaymentKind = PaymentKind.RENT,
    ) -> PaymentOutcome:
        """
        Apply a signed payment.

        Rent payments are allocated across the schedule (per occupant when
        `target_occupant` is given) and recorded in history. Deposit and
        advance payments bypass the ledger and history; they are held as
        pending balance adjustments and written by `commit()` together with
        the charges, so a discarded or failed session saves none of them.
        """
        try:
            kind = PaymentKind(kind)
        except ValueError:
            self._reject(f"Unknown payment kind {kind!r}")

        if kind != PaymentKind.RENT:
            if target_occupant is not None:
                self._reject(f"{kind.value} adjustments cannot target an occupant")
            if amount == 0:
                return PaymentOutcome(kind=kind, amount=0.0)
            pending = self.pending_balance_adjustments.get(kind, 0.0) + amount
            self.pending_balance_adjustments[kind] = pending
            new_balance = self.balances.get(kind, 0.0) + pending
            logger.info(
                "Balance adjustment queued",
                extra={"tenancy_id": self.tenancy_id, "kind": kind.value, "amount": amount, "new_balance": new_balance},
            )
            return PaymentOutcome(kind=kind, amount=amount, new_balance=new_balance)

        if target_occupant is not None and not self.is_shared:
            self._reject("Occupant-targeted payments need more than one occupant")
        if amount == 0:
            return PaymentOutcome(kind=kind, amount=0.0)

        before = self.snapshot()
        if self.is_shared:
            result = allocate_shared_payment(
                amount, self._charges, self.overflow, self.occupant_count, self.today, target_occupant
            )
        else:
            result = allocate_payment(amount, self._charges, self.overflow, self.today)
        self._apply(result.charges, result.overflow, before)

        outcome = PaymentOutcome(
            kind=kind,
            amount=amount,
            applied_to_charges=result.applied_to_charges,
            overflow_added=result.overflow_added,
            unresolved_remainder=result.unresolved_remainder,
        )
        if outcome.has_shortfall:
            logger.warning(
                "Refund could not be fully deducted",
                extra={"tenancy_id": self.tenancy_id, "unresolved": outcome.unresolved_remainder},
            )
        else:
            logger.info(
                "Payment applied",
                extra={
                    "tenancy_id": self.tenancy_id,
                    "amount": amount,
                    "target_occupant": target_occupant,
                    "overflow_added": outcome.overflow_added,
                },
            )
        return outcome

    def edit_charge_amount(self, charge_id: str, new_base_amount: float) -> Charge:
        """Change a charge's recurring amount and re-file the money"""
        self._require_schedule()
        if new_base_amount < 0:
            self._reject("Charge amount cannot be negative")
        index, _ = self._find(charge_id)

        before = self.snapshot()
        working = clone_charges(self._charges)
        working[index].base_amount = new_base_amount
        self._apply(working, self.overflow, before)
        return self.get_charge(charge_id)

    def edit_charge_extras(self, charge_id: str, items: Sequence[ExpenseItem]) -> Charge:
        """Replace a charge's itemized supplemental charges"""
        self._require_schedule()
        for item in items:
            if not item.name or not item.name.strip():
                self._reject("Every supplemental charge needs a name")
            if item.amount <= 0:
                self._reject(f"Supplemental charge '{item.name}' must have a positive amount")
        index, _ = self._find(charge_id)

        before = self.snapshot()
        working = clone_charges(self._charges)
        working[index].expense_items = [copy.deepcopy(item) for item in items]
        working[index].extra_amount = fsum(item.amount for item in items)
        self._apply(working, self.overflow, before)
        return self.get_charge(charge_id)

    def edit_charge_due_date(self, charge_id: str, new_date: date) -> Charge:
        """
        Move a charge's due date.

        The new date must stay strictly between the neighbouring charges'
        dates; out-of-range dates are rejected, never adjusted.
        """
        self._require_schedule()
        index, _ = self._find(charge_id)
        previous = self._charges[index - 1] if index > 0 else None
        following = self._charges[index + 1] if index + 1 < len(self._charges) else None

        if previous is not None and new_date <= previous.due_date:
            self._reject(f"Due date must be after the previous charge's due date ({previous.due_date.isoformat()})")
        if following is not None and new_date >= following.due_date:
            self._reject(f"Due date must be before the next charge's due date ({following.due_date.isoformat()})")

        before = self.snapshot()
        working = clone_charges(self._charges)
        working[index].due_date = new_date
        self._apply(working, self.overflow, before)
        return self.get_charge(charge_id)

    def insert_charge(self, after_charge_id: Optional[str] = None, is_supplemental: bool = False) -> Charge:
        """
        Add a charge to the schedule.

        Without `after_charge_id` (or after the last charge) a rent period is
        appended one month after the latest due date; a supplemental charge
        lands the day after. Inserting mid-schedule uses the day after the
        anchor charge, which must still fall before the next charge.
        """
        if after_charge_id is not None:
            index, anchor = self._find(after_charge_id)
            following = self._charges[index + 1] if index + 1 < len(self._charges) else None
        else:
            anchor = self._charges[-1] if self._charges else None
            following = None

        if following is not None:
            due_date = next_day(anchor.due_date)
            if due_date >= following.due_date:
                self._reject(
                    f"No free due date between {anchor.due_date.isoformat()} and {following.due_date.isoformat()}"
                )
        elif is_supplemental and anchor is not None:
            due_date = next_day(anchor.due_date)
        else:
            due_date = next_period_due_date(self._charges, self.terms.due_day, self.terms.rent_start_date)
            if anchor is not None and due_date <= anchor.due_date:
                due_date = next_day(anchor.due_date)

        before = self.snapshot()
        counter = self._placeholder_counter + 1
        charge = Charge(
            id=placeholder_id(counter),
            due_date=due_date,
            base_amount=0.0 if is_supplemental else self.terms.rent_amount,
            is_supplemental=is_supplemental,
            occupant_payments={slot: 0.0 for slot in range(self.occupant_count)} if self.is_shared else None,
        )
        working = clone_charges(self._charges) + [charge]
        self._apply(working, self.overflow, before)
        self._placeholder_counter = counter
        return self.get_charge(charge.id)

    def delete_charge(self, charge_id: str) -> None:
        """
        Remove a charge. Money it carried is kept: a saved charge's paid amount
        becomes a pending refund folded into overflow at commit; an unsaved
        charge's paid amount goes straight to pending overflow.
        """
        self._require_schedule()
        index, charge = self._find(charge_id)

        before = self.snapshot()
        working = clone_charges(self._charges)
        del working[index]
        overflow = replace(self.overflow)
        refunds = dict(self.pending_refunds)
        if charge.paid_amount > 0:
            if charge.is_placeholder:
                overflow.deposit(charge.paid_amount)
            else:
                refunds[charge.id] = refunds.get(charge.id, 0.0) + charge.paid_amount
        self._apply(working, overflow, before, refunds=refunds)
        logger.info(
            "Charge deleted",
            extra={"tenancy_id": self.tenancy_id, "charge_id": charge_id, "refund": charge.paid_amount},
        )

    def undo(self) -> bool:
        previous = self.history.undo(self.snapshot())
        if previous is None:
            return False
        self._restore(previous)
        return True

    def redo(self) -> bool:
        following = self.history.redo(self.snapshot())
        if following is None:
            return False
        self._restore(following)
        return True

    # ------------------------------------------------------------------
    # Commit

    def commit(self) -> CommitResult:
        """
        Persist the session.

        Pending refunds and pending overflow fold into one overflow balance,
        which is then swept against charges still owing money, oldest first.
        The diff against the loaded state and the residual overflow are
        written in one store call. On failure the session is left untouched
        so the same commit can be retried.
        """
        charges = clone_charges(self._charges)
        balance = self.overflow.balance + fsum(self.pending_refunds.values())

        swept = 0.0
        if balance > EPSILON and charges:
            account = OverflowAccount()
            if self.is_shared:
                result = allocate_shared_payment(balance, charges, account, self.occupant_count, self.today)
            else:
                result = allocate_payment(balance, charges, account, self.today)
            charges = result.charges
            swept = result.applied_to_charges
            balance = result.overflow.balance
        check_ledger_invariants(charges, self.occupant_count)

        changes = self._diff(charges, balance)
        changes.balance_adjustments = dict(self.pending_balance_adjustments)
        try:
            id_map = self.store.commit(self.tenancy_id, changes)
        except PersistenceError as e:
            logger.error(f"Ledger commit failed: {e}", extra={"tenancy_id": self.tenancy_id})
            raise

        for charge in charges:
            if charge.id in id_map:
                charge.id = id_map[charge.id]
        self._charges = oldest_first(charges)
        self._original = {c.id: copy.deepcopy(c) for c in self._charges}
        self.overflow = OverflowAccount(committed=balance)
        self.pending_refunds = {}
        for kind, amount in self.pending_balance_adjustments.items():
            self.balances[kind] = self.balances.get(kind, 0.0) + amount
        self.pending_balance_adjustments = {}
        self.history.clear()

        logger.info(
            "Ledger committed",
            extra={
                "tenancy_id": self.tenancy_id,
                "upserted": len(changes.charges_to_upsert),
                "deleted": len(changes.charge_ids_to_delete),
                "swept": swept,
                "overflow": balance,
            },
        )
        return CommitResult(
            upserted=len(changes.charges_to_upsert),
            deleted=len(changes.charge_ids_to_delete),
            swept_to_charges=swept,
            new_overflow=balance,
            id_map=dict(id_map),
        )

    # ------------------------------------------------------------------
    # Internals

    def _diff(self, charges: Sequence[Charge], new_overflow: float) -> LedgerChangeSet:
        current_ids = {c.id for c in charges}
        upserts = [
            copy.deepcopy(c)
            for c in charges
            if c.is_placeholder or c.id not in self._original or c != self._original[c.id]
        ]
        deletes = [charge_id for charge_id in self._original if charge_id not in current_ids]
        return LedgerChangeSet(
            charges_to_upsert=upserts,
            charge_ids_to_delete=deletes,
            new_overflow=new_overflow,
        )

    def _apply(
        self,
        charges: List[Charge],
        overflow: OverflowAccount,
        before: LedgerSnapshot,
        refunds: Optional[Dict[str, float]] = None,
    ) -> None:
        """Normalize a candidate state, verify it, then make it current"""
        if self.is_shared:
            charges, overflow = normalize_shared_schedule(charges, overflow, self.occupant_count, self.today)
        else:
            charges, overflow = normalize_schedule(charges, overflow, self.today)
        charges = oldest_first(charges)
        renumber_sequence(charges)
        check_ledger_invariants(charges, self.occupant_count)

        self.history.record(before)
        self._charges = charges
        self.overflow = overflow
        if refunds is not None:
            self.pending_refunds = refunds

    def _restore(self, snapshot: LedgerSnapshot) -> None:
        self._charges = restore_charges(snapshot)
        self.overflow = OverflowAccount(
            committed=self.overflow.committed,
            pending_delta=snapshot.pending_overflow_delta,
        )
        self.pending_refunds = dict(snapshot.pending_refunds)
        self._placeholder_counter = snapshot.placeholder_counter

    def _find(self, charge_id: str):
        for index, charge in enumerate(self._charges):
            if charge.id == charge_id:
                return index, charge
        raise ChargeNotFoundError(f"Charge {charge_id} is not in this schedule")

    def _require_schedule(self) -> None:
        if not self._charges:
            self._reject("No billing schedule loaded for this tenancy")

    def _reject(self, message: str) -> None:
        logger.warning(f"Edit rejected: {message}", extra={"tenancy_id": self.tenancy_id})
        raise LedgerValidationError(message)
