"""POST /v1/tenancies/{tenancy_id}/schedule - initial billing schedule"""

import logging
from fastapi import APIRouter, Depends, HTTPException

from rent_ledger.api.v1.ledger import build_ledger_response
from rent_ledger.api.v1.schemas import LedgerResponse, ScheduleRequest
from rent_ledger.api.dependencies import get_ledger_store
from rent_ledger.config import settings
from rent_ledger.domain.exceptions import LedgerValidationError, PersistenceError
from rent_ledger.domain.schedule import generate_billing_schedule
from rent_ledger.domain.session import LedgerEditSession
from rent_ledger.infrastructure.database.repositories import SqlLedgerStore

router = APIRouter()


@router.post("/tenancies/{tenancy_id}/schedule", response_model=LedgerResponse, status_code=201)
def create_schedule(
    tenancy_id: str,
    request_body: ScheduleRequest,
    store: SqlLedgerStore = Depends(get_ledger_store),
):
    """
    Generate and persist the billing schedule for a new tenancy.

    One rent charge per contract month, due on the tenancy's due day.
    Refuses to overwrite an existing schedule.
    """
    tenancy = store.tenancies.get(tenancy_id)
    if tenancy is None:
        raise HTTPException(status_code=404, detail="Tenancy not found")
    if store.tenancies.count_charges(tenancy_id) > 0:
        raise HTTPException(status_code=409, detail="Tenancy already has a billing schedule")

    try:
        charges = generate_billing_schedule(
            rent_amount=tenancy.rent_amount,
            contract_months=request_body.contract_months or tenancy.contract_months,
            start_date=request_body.start_date or tenancy.rent_start_date,
            due_day=tenancy.due_day or settings.default_due_day,
        )
        if tenancy.occupant_count > 1:
            for charge in charges:
                charge.occupant_payments = {slot: 0.0 for slot in range(tenancy.occupant_count)}
        store.insert_schedule(tenancy_id, charges)

    except LedgerValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))

    except PersistenceError as e:
        logging.error(f"Schedule creation failed: {e}", extra={"tenancy_id": tenancy_id})
        raise HTTPException(status_code=503, detail="Could not save billing schedule; please retry")

    return build_ledger_response(LedgerEditSession.open(store, tenancy_id))
