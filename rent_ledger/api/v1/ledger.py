"""Ledger view and batched ledger edits for one tenancy"""

import time
import logging
import uuid
from typing import List
from fastapi import APIRouter, Depends, HTTPException, Request

from rent_ledger.api.v1.schemas import (
    ChargeSchema,
    DeleteOp,
    EditAmountOp,
    EditBatchRequest,
    EditBatchResponse,
    EditDueDateOp,
    EditExtrasOp,
    ExpenseItemSchema,
    InsertOp,
    LedgerResponse,
    PaymentOp,
    RedoOp,
    SummarySchema,
    UndoOp,
)
from rent_ledger.api.dependencies import get_ledger_store, get_request_id
from rent_ledger.config import settings
from rent_ledger.domain.exceptions import (
    InvariantViolationError,
    LedgerValidationError,
    PersistenceError,
    TenancyNotFoundError,
)
from rent_ledger.domain.models import ExpenseItem, PaymentKind
from rent_ledger.domain.session import LedgerEditSession
from rent_ledger.infrastructure.database.repositories import SqlLedgerStore
from rent_ledger.infrastructure.observability.logging import log_commit
from rent_ledger.infrastructure.observability.metrics import (
    commit_counter,
    commit_latency_histogram,
    edit_operation_counter,
    record_payment,
)

router = APIRouter()


def build_ledger_response(session: LedgerEditSession) -> LedgerResponse:
    """Render a session's current state"""
    summary = session.summary()
    charges = [
        ChargeSchema(
            id=c.id,
            due_date=c.due_date,
            base_amount=c.base_amount,
            extra_amount=c.extra_amount,
            gross_amount=c.gross_amount,
            paid_amount=c.paid_amount,
            status=c.status,
            sequence_index=c.sequence_index,
            is_supplemental=c.is_supplemental,
            occupant_payments=c.occupant_payments,
            expense_items=[ExpenseItemSchema(id=i.id, name=i.name, amount=i.amount) for i in c.expense_items],
        )
        for c in session.charges
    ]
    return LedgerResponse(
        tenancy_id=session.tenancy_id,
        occupant_count=session.occupant_count,
        overflow_balance=session.overflow.balance,
        charges=charges,
        summary=SummarySchema(
            total_gross=summary.total_gross,
            total_paid=summary.total_paid,
            outstanding=summary.outstanding,
            overflow_balance=summary.overflow_balance,
            status_counts=summary.status_counts,
            next_due_charge_id=summary.next_due.id if summary.next_due else None,
            next_due_date=summary.next_due.due_date if summary.next_due else None,
        ),
    )


def _replay(session: LedgerEditSession, operation, warnings: List[str]) -> None:
    """Apply one edit operation to the session, collecting user-facing warnings"""
    edit_operation_counter.labels(op=operation.op).inc()

    if isinstance(operation, PaymentOp):
        outcome = session.apply_payment(operation.amount, operation.target_occupant, operation.kind)
        record_payment(operation.kind.value, operation.amount, outcome.unresolved_remainder)
        if outcome.has_shortfall:
            warnings.append(f"{outcome.unresolved_remainder:.2f} could not be deducted: no more paid amounts")
        elif operation.kind == PaymentKind.RENT and outcome.overflow_added > 0.01:
            warnings.append(f"{outcome.overflow_added:.2f} excess payment banked as overflow")
    elif isinstance(operation, EditAmountOp):
        session.edit_charge_amount(operation.charge_id, operation.base_amount)
    elif isinstance(operation, EditDueDateOp):
        session.edit_charge_due_date(operation.charge_id, operation.due_date)
    elif isinstance(operation, EditExtrasOp):
        items = [
            ExpenseItem(id=item.id or f"exp-{uuid.uuid4().hex[:12]}", name=item.name, amount=item.amount)
            for item in operation.items
        ]
        session.edit_charge_extras(operation.charge_id, items)
    elif isinstance(operation, InsertOp):
        session.insert_charge(operation.after_charge_id, operation.is_supplemental)
    elif isinstance(operation, DeleteOp):
        session.delete_charge(operation.charge_id)
    elif isinstance(operation, UndoOp):
        if not session.undo():
            warnings.append("Nothing to undo")
    elif isinstance(operation, RedoOp):
        if not session.redo():
            warnings.append("Nothing to redo")


@router.get("/tenancies/{tenancy_id}/ledger", response_model=LedgerResponse)
def get_ledger(tenancy_id: str, store: SqlLedgerStore = Depends(get_ledger_store)):
    """
    Retrieve a tenancy's charges with statuses derived for today.

    Returns:
        Charges in due-date order, overflow balance and a balance summary
    """
    try:
        session = LedgerEditSession.open(store, tenancy_id)
    except TenancyNotFoundError:
        raise HTTPException(status_code=404, detail="Tenancy not found")
    return build_ledger_response(session)


@router.post("/tenancies/{tenancy_id}/ledger/edits", response_model=EditBatchResponse)
def apply_ledger_edits(
    tenancy_id: str,
    request_body: EditBatchRequest,
    request: Request,
    store: SqlLedgerStore = Depends(get_ledger_store),
):
    """
    Replay a batch of edits in one session and commit the result.

    Flow:
    1. Load the tenancy's charges and committed overflow
    2. Apply each operation in order (undo/redo included)
    3. Commit the diff, sweeping banked overflow onto unpaid charges
    4. Return the committed ledger with any warnings

    Any rejected operation aborts the whole batch; nothing is committed.
    """
    start_time = time.time()
    request_id = get_request_id(request)

    try:
        with commit_latency_histogram.time():
            session = LedgerEditSession.open(store, tenancy_id, history_limit=settings.history_limit)
            warnings: List[str] = []
            for operation in request_body.operations:
                _replay(session, operation, warnings)
            result = session.commit()

    except TenancyNotFoundError:
        raise HTTPException(status_code=404, detail="Tenancy not found")

    except LedgerValidationError as e:
        commit_counter.labels(outcome="rejected").inc()
        logging.warning(f"Ledger edit rejected: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=422, detail=str(e))

    except PersistenceError as e:
        commit_counter.labels(outcome="failed").inc()
        logging.error(f"Ledger commit failed: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=503, detail="Could not save billing changes; please retry")

    except InvariantViolationError as e:
        commit_counter.labels(outcome="failed").inc()
        logging.error(f"Ledger invariant violated: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    commit_counter.labels(outcome="committed").inc()
    duration_ms = (time.time() - start_time) * 1000
    log_commit(request_id, tenancy_id, result.upserted, result.deleted, result.new_overflow, duration_ms)

    return EditBatchResponse(
        ledger=build_ledger_response(session),
        warnings=warnings,
        charges_upserted=result.upserted,
        charges_deleted=result.deleted,
        swept_to_charges=result.swept_to_charges,
    )
