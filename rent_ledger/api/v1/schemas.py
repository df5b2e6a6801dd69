"""Pydantic schemas for API request/response validation"""

from datetime import date
from typing import Annotated, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, Field

from rent_ledger.domain.models import ChargeStatus, PaymentKind


class ExpenseItemSchema(BaseModel):
    """Itemized supplemental charge"""

    id: Optional[str] = None
    name: str = Field(..., min_length=1)
    amount: float


class ChargeSchema(BaseModel):
    """Single billing charge with derived status"""

    id: str
    due_date: date
    base_amount: float
    extra_amount: float
    gross_amount: float
    paid_amount: float
    status: ChargeStatus
    sequence_index: Optional[int] = None
    is_supplemental: bool = False
    occupant_payments: Optional[Dict[int, float]] = None
    expense_items: List[ExpenseItemSchema] = []


class SummarySchema(BaseModel):
    """Tenant balance overview"""

    total_gross: float
    total_paid: float
    outstanding: float
    overflow_balance: float
    status_counts: Dict[ChargeStatus, int]
    next_due_charge_id: Optional[str] = None
    next_due_date: Optional[date] = None


class LedgerResponse(BaseModel):
    """Response for GET /v1/tenancies/{tenancy_id}/ledger"""

    tenancy_id: str
    occupant_count: int
    overflow_balance: float
    charges: List[ChargeSchema]
    summary: SummarySchema


class PaymentOp(BaseModel):
    op: Literal["payment"]
    amount: float
    target_occupant: Optional[int] = Field(None, ge=0)
    kind: PaymentKind = PaymentKind.RENT


class EditAmountOp(BaseModel):
    op: Literal["edit_amount"]
    charge_id: str
    base_amount: float = Field(..., ge=0)


class EditDueDateOp(BaseModel):
    op: Literal["edit_due_date"]
    charge_id: str
    due_date: date


class EditExtrasOp(BaseModel):
    op: Literal["edit_extras"]
    charge_id: str
    items: List[ExpenseItemSchema]


class InsertOp(BaseModel):
    op: Literal["insert"]
    after_charge_id: Optional[str] = None
    is_supplemental: bool = False


class DeleteOp(BaseModel):
    op: Literal["delete"]
    charge_id: str


class UndoOp(BaseModel):
    op: Literal["undo"]


class RedoOp(BaseModel):
    op: Literal["redo"]


EditOperation = Annotated[
    Union[PaymentOp, EditAmountOp, EditDueDateOp, EditExtrasOp, InsertOp, DeleteOp, UndoOp, RedoOp],
    Field(discriminator="op"),
]


class EditBatchRequest(BaseModel):
    """Request body for POST /v1/tenancies/{tenancy_id}/ledger/edits"""

    operations: List[EditOperation] = Field(..., min_length=1)


class EditBatchResponse(BaseModel):
    """Committed ledger plus anything the landlord should be told"""

    ledger: LedgerResponse
    warnings: List[str] = []
    charges_upserted: int
    charges_deleted: int
    swept_to_charges: float


class ScheduleRequest(BaseModel):
    """Request body for POST /v1/tenancies/{tenancy_id}/schedule"""

    contract_months: Optional[int] = Field(None, description="Defaults to the tenancy's contract length")
    start_date: Optional[date] = Field(None, description="Defaults to the tenancy's rent start date")
