"""Pytest fixtures for testing"""

import copy
import pytest
from datetime import date
from typing import Callable, Dict, Generator, List, Optional
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker, Session
from rent_ledger.api.main import create_app
from rent_ledger.infrastructure.database.models import Base, Tenancy
from rent_ledger.infrastructure.database.session import build_engine, get_db
from rent_ledger.domain.exceptions import PersistenceError, TenancyNotFoundError
from rent_ledger.domain.models import (
    Charge,
    LedgerChangeSet,
    LoadedLedger,
    PaymentKind,
    TenancyTerms,
)


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = build_engine(TEST_DATABASE_URL)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Fixed reference date so statuses are deterministic
TODAY = date(2025, 6, 15)


class InMemoryLedgerStore:
    """LedgerStore fake that keeps one tenancy in memory"""

    def __init__(
        self,
        charges: List[Charge],
        committed_overflow: float = 0.0,
        occupant_count: int = 1,
        terms: Optional[TenancyTerms] = None,
        tenancy_id: str = "tenancy-1",
    ):
        self.tenancy_id = tenancy_id
        self.charges: Dict[str, Charge] = {c.id: copy.deepcopy(c) for c in charges}
        self.overflow = committed_overflow
        self.occupant_count = occupant_count
        self.terms = terms or TenancyTerms(rent_amount=1000.0, due_day="last", rent_start_date=date(2025, 5, 1))
        self.balances = {PaymentKind.DEPOSIT: 0.0, PaymentKind.ADVANCE: 0.0}
        self.commits: List[LedgerChangeSet] = []
        self.fail_commit = False
        self._next_id = 100

    def load(self, tenancy_id: str) -> LoadedLedger:
        if tenancy_id != self.tenancy_id:
            raise TenancyNotFoundError(f"Tenancy {tenancy_id} not found")
        return LoadedLedger(
            tenancy_id=self.tenancy_id,
            charges=sorted((copy.deepcopy(c) for c in self.charges.values()), key=lambda c: c.due_date),
            committed_overflow=self.overflow,
            occupant_count=self.occupant_count,
            terms=self.terms,
            balances=dict(self.balances),
        )

    def commit(self, tenancy_id: str, changes: LedgerChangeSet) -> Dict[str, str]:
        if self.fail_commit:
            raise PersistenceError("database unavailable")
        self.commits.append(copy.deepcopy(changes))
        id_map = {}
        for charge in changes.charges_to_upsert:
            stored = copy.deepcopy(charge)
            if charge.is_placeholder:
                self._next_id += 1
                stored.id = f"chg-{self._next_id}"
                id_map[charge.id] = stored.id
            self.charges[stored.id] = stored
        for charge_id in changes.charge_ids_to_delete:
            self.charges.pop(charge_id, None)
        self.overflow = changes.new_overflow
        for kind, amount in changes.balance_adjustments.items():
            self.balances[kind] += amount
        return id_map


@pytest.fixture
def today() -> date:
    return TODAY


@pytest.fixture
def monthly_charges() -> Callable[..., List[Charge]]:
    """Factory for consecutive month-end rent charges starting May 2025"""

    def build(count: int = 3, gross: float = 1000.0, paid: Optional[List[float]] = None) -> List[Charge]:
        due_dates = [date(2025, 5, 31), date(2025, 6, 30), date(2025, 7, 31), date(2025, 8, 31), date(2025, 9, 30)]
        paid = paid or [0.0] * count
        return [
            Charge(
                id=f"chg-{i + 1}",
                due_date=due_dates[i],
                base_amount=gross,
                paid_amount=paid[i],
                sequence_index=i + 1,
            )
            for i in range(count)
        ]

    return build


@pytest.fixture
def store_factory(monthly_charges) -> Callable[..., InMemoryLedgerStore]:
    def build(charges: Optional[List[Charge]] = None, **kwargs) -> InMemoryLedgerStore:
        return InMemoryLedgerStore(charges if charges is not None else monthly_charges(), **kwargs)

    return build


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db: Session) -> TestClient:
    """Create FastAPI test client with test database"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)


@pytest.fixture
def tenancy(db: Session) -> Tenancy:
    """Single-occupant tenancy with a three-month contract"""
    record = Tenancy(
        tenant_name="Maria Santos",
        occupant_count=1,
        rent_amount=1000.0,
        due_day="last",
        rent_start_date=date(2025, 5, 1),
        contract_months=3,
    )
    db.add(record)
    db.commit()
    return record
