"""Domain models - pure Python dataclasses representing the billing ledger"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Dict, List, Optional, Tuple

# Floating-point tolerance for every paid/due comparison (0.01 currency units)
EPSILON = 0.01

# Charges created during an edit session carry this id prefix until saved
PLACEHOLDER_PREFIX = "temp-"


class ChargeStatus(str, Enum):
    """Status label derived from a charge's monetary and calendar state"""

    PAID = "paid"
    PARTIAL = "partial"
    OVERDUE = "overdue"
    NOT_YET_DUE = "not_yet_due"


class PaymentKind(str, Enum):
    """What a payment is for: rent goes through the ledger, the rest does not"""

    RENT = "rent"
    DEPOSIT = "deposit"
    ADVANCE = "advance"


@dataclass
class ExpenseItem:
    """Itemized supplemental charge (utilities, cleaning, ...)"""

    id: str
    name: str
    amount: float


@dataclass
class Charge:
    """Single periodic billing obligation"""

    id: str
    due_date: date
    base_amount: float
    extra_amount: float = 0.0
    paid_amount: float = 0.0
    status: ChargeStatus = ChargeStatus.NOT_YET_DUE
    occupant_payments: Optional[Dict[int, float]] = None
    expense_items: List[ExpenseItem] = field(default_factory=list)
    sequence_index: Optional[int] = None
    is_supplemental: bool = False

    @property
    def gross_amount(self) -> float:
        return self.base_amount + self.extra_amount

    @property
    def amount_due(self) -> float:
        return self.gross_amount - self.paid_amount

    @property
    def is_placeholder(self) -> bool:
        return self.id.startswith(PLACEHOLDER_PREFIX)


@dataclass
class OverflowAccount:
    """
    Banked payment not yet attributed to any charge.

    `committed` is what the last save persisted; `pending_delta` is what the
    current edit session has added (or, when negative, taken) since then.
    Both are spent as one pool.
    """

    committed: float = 0.0
    pending_delta: float = 0.0

    @property
    def balance(self) -> float:
        return self.committed + self.pending_delta

    def deposit(self, amount: float) -> None:
        self.pending_delta += amount

    def withdraw(self, amount: float) -> float:
        """Take up to `amount` from the pool, returning what was actually taken"""
        taken = min(amount, max(self.balance, 0.0))
        self.pending_delta -= taken
        return taken


@dataclass
class AllocationResult:
    """Output of applying one signed payment to a schedule"""

    charges: List[Charge]
    overflow: OverflowAccount
    applied_to_charges: float = 0.0
    overflow_added: float = 0.0
    unresolved_remainder: float = 0.0


@dataclass
class TenancyTerms:
    """Tenancy settings the engine reads but never writes"""

    rent_amount: float
    due_day: str = "last"
    rent_start_date: Optional[date] = None


@dataclass
class LoadedLedger:
    """What the persistence collaborator returns for one tenancy"""

    tenancy_id: str
    charges: List[Charge]
    committed_overflow: float
    occupant_count: int
    terms: TenancyTerms
    balances: Dict[PaymentKind, float] = field(default_factory=dict)  # deposit / advance fields


@dataclass
class LedgerChangeSet:
    """Minimal set of writes produced by a commit"""

    charges_to_upsert: List[Charge]
    charge_ids_to_delete: List[str]
    new_overflow: float
    balance_adjustments: Dict[PaymentKind, float] = field(default_factory=dict)


@dataclass(frozen=True)
class LedgerSnapshot:
    """Value copy of a session's working state, used for undo/redo"""

    charges: Tuple[Charge, ...]
    pending_overflow_delta: float
    pending_refunds: Tuple[Tuple[str, float], ...]
    placeholder_counter: int


@dataclass
class PaymentOutcome:
    """What a session reports back after `apply_payment`"""

    kind: PaymentKind
    amount: float
    applied_to_charges: float = 0.0
    overflow_added: float = 0.0
    unresolved_remainder: float = 0.0
    new_balance: Optional[float] = None  # deposit/advance only

    @property
    def has_shortfall(self) -> bool:
        return self.unresolved_remainder > EPSILON


@dataclass
class CommitResult:
    """Outcome of a successful commit"""

    upserted: int
    deleted: int
    swept_to_charges: float
    new_overflow: float
    id_map: Dict[str, str] = field(default_factory=dict)


@dataclass
class LedgerSummary:
    """Tenant-facing balance overview"""

    total_gross: float
    total_paid: float
    outstanding: float
    overflow_balance: float
    status_counts: Dict[ChargeStatus, int]
    next_due: Optional[Charge] = None
