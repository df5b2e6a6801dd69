"""Integration tests for API endpoints"""

import pytest
from datetime import date
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session
from rent_ledger.infrastructure.database.models import Tenancy


@pytest.fixture
def scheduled(client: TestClient, tenancy: Tenancy) -> str:
    """Tenancy with its three-month schedule already generated"""
    response = client.post(f"/v1/tenancies/{tenancy.id}/schedule", json={})
    assert response.status_code == 201
    return tenancy.id


def _edit(client: TestClient, tenancy_id: str, *operations):
    return client.post(f"/v1/tenancies/{tenancy_id}/ledger/edits", json={"operations": list(operations)})


def _paid(ledger):
    return [c["paid_amount"] for c in ledger["charges"]]


def test_health_endpoint(client: TestClient):
    """Test health check endpoint"""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "rent-ledger"}


def test_metrics_endpoint(client: TestClient, scheduled: str):
    """Test Prometheus metrics endpoint"""
    _edit(client, scheduled, {"op": "payment", "amount": 100})

    response = client.get("/metrics")
    assert response.status_code == 200
    assert "rent_ledger_payments_total" in response.text
    assert "rent_ledger_commits_total" in response.text


def test_request_id_is_echoed(client: TestClient):
    response = client.get("/health", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"


def test_create_schedule(client: TestClient, tenancy: Tenancy):
    """POST /v1/tenancies/{id}/schedule creates one charge per contract month"""
    response = client.post(f"/v1/tenancies/{tenancy.id}/schedule", json={})

    assert response.status_code == 201
    data = response.json()
    assert [c["due_date"] for c in data["charges"]] == ["2025-05-31", "2025-06-30", "2025-07-31"]
    assert [c["sequence_index"] for c in data["charges"]] == [1, 2, 3]
    assert all(c["gross_amount"] == 1000.0 for c in data["charges"])
    assert not any(c["id"].startswith("temp-") for c in data["charges"])
    assert data["summary"]["outstanding"] == 3000.0


def test_create_schedule_overrides(client: TestClient, tenancy: Tenancy):
    response = client.post(
        f"/v1/tenancies/{tenancy.id}/schedule",
        json={"contract_months": 2, "start_date": "2025-01-10"},
    )

    assert response.status_code == 201
    assert [c["due_date"] for c in response.json()["charges"]] == ["2025-01-31", "2025-02-28"]


def test_create_schedule_twice_conflicts(client: TestClient, scheduled: str):
    response = client.post(f"/v1/tenancies/{scheduled}/schedule", json={})
    assert response.status_code == 409


def test_create_schedule_invalid_terms(client: TestClient, tenancy: Tenancy):
    response = client.post(f"/v1/tenancies/{tenancy.id}/schedule", json={"contract_months": -1})
    assert response.status_code == 422


def test_create_schedule_unknown_tenancy(client: TestClient):
    response = client.post("/v1/tenancies/missing/schedule", json={})
    assert response.status_code == 404


def test_get_ledger(client: TestClient, scheduled: str):
    response = client.get(f"/v1/tenancies/{scheduled}/ledger")

    assert response.status_code == 200
    data = response.json()
    assert data["tenancy_id"] == scheduled
    assert data["occupant_count"] == 1
    assert data["overflow_balance"] == 0.0
    assert len(data["charges"]) == 3


def test_get_ledger_not_found(client: TestClient):
    """Test GET /v1/tenancies/{id}/ledger with an unknown id"""
    response = client.get("/v1/tenancies/00000000-0000-0000-0000-000000000000/ledger")
    assert response.status_code == 404


def test_payment_fills_oldest_first(client: TestClient, scheduled: str):
    response = _edit(client, scheduled, {"op": "payment", "amount": 2500})

    assert response.status_code == 200
    data = response.json()
    assert _paid(data["ledger"]) == [1000.0, 1000.0, 500.0]
    assert [c["status"] for c in data["ledger"]["charges"]][:2] == ["paid", "paid"]
    assert data["ledger"]["charges"][2]["status"] == "partial"
    assert data["charges_upserted"] == 3
    assert data["warnings"] == []

    persisted = client.get(f"/v1/tenancies/{scheduled}/ledger").json()
    assert _paid(persisted) == [1000.0, 1000.0, 500.0]


def test_excess_payment_is_banked(client: TestClient, scheduled: str):
    response = _edit(client, scheduled, {"op": "payment", "amount": 3100})

    data = response.json()
    assert data["warnings"] == ["100.00 excess payment banked as overflow"]
    assert data["ledger"]["overflow_balance"] == pytest.approx(100.0)


def test_refund_shortfall_warns(client: TestClient, scheduled: str):
    response = _edit(client, scheduled, {"op": "payment", "amount": -200})

    assert response.status_code == 200
    assert response.json()["warnings"] == ["200.00 could not be deducted: no more paid amounts"]


def test_rejected_edit_commits_nothing(client: TestClient, scheduled: str):
    """A rejected operation aborts the batch, including earlier operations"""
    ledger = client.get(f"/v1/tenancies/{scheduled}/ledger").json()
    first, second = ledger["charges"][0], ledger["charges"][1]

    response = _edit(
        client,
        scheduled,
        {"op": "payment", "amount": 500},
        {"op": "edit_due_date", "charge_id": second["id"], "due_date": first["due_date"]},
    )

    assert response.status_code == 422
    assert "previous charge" in response.json()["detail"]
    assert _paid(client.get(f"/v1/tenancies/{scheduled}/ledger").json()) == [0.0, 0.0, 0.0]


def test_edit_unknown_charge(client: TestClient, scheduled: str):
    response = _edit(client, scheduled, {"op": "delete", "charge_id": "nope"})
    assert response.status_code == 422


def test_empty_batch_rejected(client: TestClient, scheduled: str):
    response = _edit(client, scheduled)
    assert response.status_code == 422


def test_unknown_operation_rejected(client: TestClient, scheduled: str):
    response = _edit(client, scheduled, {"op": "explode"})
    assert response.status_code == 422


def test_edits_unknown_tenancy(client: TestClient):
    response = _edit(client, "missing", {"op": "payment", "amount": 10})
    assert response.status_code == 404


def test_undo_within_batch(client: TestClient, scheduled: str):
    response = _edit(client, scheduled, {"op": "payment", "amount": 500}, {"op": "undo"})

    data = response.json()
    assert _paid(data["ledger"]) == [0.0, 0.0, 0.0]
    assert data["charges_upserted"] == 0


def test_undo_with_nothing_to_undo(client: TestClient, scheduled: str):
    response = _edit(client, scheduled, {"op": "undo"}, {"op": "redo"})

    assert response.status_code == 200
    assert response.json()["warnings"] == ["Nothing to undo", "Nothing to redo"]


def test_delete_sweeps_refund_to_next_charge(client: TestClient, scheduled: str):
    _edit(client, scheduled, {"op": "payment", "amount": 1300})
    ledger = client.get(f"/v1/tenancies/{scheduled}/ledger").json()
    second_id = ledger["charges"][1]["id"]

    response = _edit(client, scheduled, {"op": "delete", "charge_id": second_id})

    data = response.json()
    assert data["charges_deleted"] == 1
    assert data["swept_to_charges"] == pytest.approx(300.0)
    assert _paid(data["ledger"]) == [1000.0, 300.0]
    assert data["ledger"]["overflow_balance"] == pytest.approx(0.0)
    assert [c["sequence_index"] for c in data["ledger"]["charges"]] == [1, 2]


def test_insert_and_extras(client: TestClient, scheduled: str):
    ledger = client.get(f"/v1/tenancies/{scheduled}/ledger").json()
    first_id = ledger["charges"][0]["id"]

    response = _edit(
        client,
        scheduled,
        {"op": "insert"},
        {"op": "edit_extras", "charge_id": first_id, "items": [{"name": "Water", "amount": 120.5}]},
        {"op": "payment", "amount": 1100},
    )

    data = response.json()
    charges = data["ledger"]["charges"]
    assert len(charges) == 4
    assert charges[-1]["due_date"] == "2025-08-31"
    assert not charges[-1]["id"].startswith("temp-")
    assert charges[0]["gross_amount"] == pytest.approx(1120.5)
    assert charges[0]["expense_items"][0]["name"] == "Water"
    assert charges[0]["expense_items"][0]["id"]
    assert charges[0]["status"] == "partial"


def test_extras_with_bad_amount_rejected(client: TestClient, scheduled: str):
    ledger = client.get(f"/v1/tenancies/{scheduled}/ledger").json()

    response = _edit(
        client,
        scheduled,
        {"op": "edit_extras", "charge_id": ledger["charges"][0]["id"], "items": [{"name": "Water", "amount": 0}]},
    )

    assert response.status_code == 422


def test_deposit_updates_tenancy_only(client: TestClient, db: Session, scheduled: str):
    response = _edit(client, scheduled, {"op": "payment", "amount": 5000, "kind": "deposit"})

    assert response.status_code == 200
    assert _paid(response.json()["ledger"]) == [0.0, 0.0, 0.0]
    assert db.get(Tenancy, scheduled).security_deposit == 5000.0


def test_rejected_batch_does_not_save_deposit(client: TestClient, db: Session, scheduled: str):
    response = _edit(
        client,
        scheduled,
        {"op": "payment", "amount": 5000, "kind": "deposit"},
        {"op": "edit_due_date", "charge_id": "unknown", "due_date": "2025-06-15"},
    )

    assert response.status_code == 422
    assert db.get(Tenancy, scheduled).security_deposit == 0.0


def test_shared_tenancy_targeted_payment(client: TestClient, db: Session):
    record = Tenancy(
        tenant_name="Shared Flat",
        occupant_count=2,
        rent_amount=1000.0,
        due_day="last",
        rent_start_date=date(2025, 5, 1),
        contract_months=2,
    )
    db.add(record)
    db.commit()
    client.post(f"/v1/tenancies/{record.id}/schedule", json={})

    response = _edit(client, record.id, {"op": "payment", "amount": 500, "target_occupant": 0})

    charge = response.json()["ledger"]["charges"][0]
    assert charge["occupant_payments"] == {"0": 500.0, "1": 0.0}
    assert charge["paid_amount"] == 500.0
    assert charge["status"] == "partial"


def test_targeted_payment_on_single_occupant_rejected(client: TestClient, scheduled: str):
    response = _edit(client, scheduled, {"op": "payment", "amount": 500, "target_occupant": 0})
    assert response.status_code == 422
