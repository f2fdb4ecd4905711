from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import pytest

from database import Base
from main import app, get_db

OFX = (
    "<OFX><BANKTRANLIST>\n"
    "<STMTTRN>\n<TRNTYPE>DEBIT\n<DTPOSTED>20250305\n<TRNAMT>-89.90\n"
    "<FITID>123\n<MEMO>UBER * TRIP 03/06\n</STMTTRN>\n"
    "</BANKTRANLIST></OFX>\n"
)


@pytest.fixture()
def client():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    testing_session = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    def override_get_db():
        db = testing_session()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def _create_card(client: TestClient) -> str:
    response = client.post(
        "/api/accounts",
        json={"name": "Nubank", "type": "CREDIT_CARD", "closing_day": 3, "due_day": 10},
    )
    assert response.status_code == 201
    return response.json()["id"]


def test_statement_import_and_invoice_lifecycle(client: TestClient) -> None:
    card_id = _create_card(client)

    preview = client.post(
        "/api/import/preview",
        files={"file": ("extrato.ofx", OFX.encode("latin-1"), "application/x-ofx")},
        data={"source": "OFX"},
    )
    assert preview.status_code == 200
    body = preview.json()
    assert body["errors"] == []
    assert body["candidates"][0]["status"] == "NEW"
    assert body["candidates"][0]["entry"]["installment"] == {"current": 3, "total": 6}

    confirm = client.post(
        "/api/import/confirm",
        json={
            "destination": {"account_id": card_id, "invoice_month": "03/2025"},
            "candidates": body["candidates"],
        },
    )
    assert confirm.status_code == 200
    inserted = confirm.json()["inserted"]
    assert [row["invoice_month"] for row in inserted] == ["03/2025", "04/2025", "05/2025", "06/2025"]

    invoice = {"account_id": card_id, "invoice_month": "03/2025"}
    closed = client.post("/api/invoices/close", json=invoice)
    assert closed.status_code == 201
    assert closed.json()["description"] == "Fatura Nubank - 03/2025"
    assert closed.json()["amount_cents"] == 8_990
    assert closed.json()["date"] == "2025-03-10"

    assert client.post("/api/invoices/close", json=invoice).status_code == 409

    invoices = client.get(f"/api/cards/{card_id}/invoices").json()
    march = next(item for item in invoices if item["invoice_month"] == "03/2025")
    assert march["is_closed"] is True
    assert march["transaction_count"] == 1

    reopened = client.post("/api/invoices/reopen", json=invoice)
    assert reopened.status_code == 200
    assert reopened.json()["deleted_payment_id"] == closed.json()["id"]
    assert client.post("/api/invoices/reopen", json=invoice).status_code == 409


def test_error_statuses(client: TestClient) -> None:
    assert client.get("/api/cards/missing/invoices").status_code == 404
    assert client.delete("/api/transactions/missing").status_code == 404
    assert client.get("/api/cashflow", params={"year": 2025, "month": 13}).status_code == 400
    progress = client.get("/api/budgets/progress", params={"month": 12, "year": 2025})
    assert progress.status_code == 400

    account = client.post("/api/accounts", json={"name": "Conta", "type": "BANK"}).json()
    split_mismatch = client.post(
        "/api/transactions",
        json={
            "description": "Feira",
            "amount_cents": 10_000,
            "type": "EXPENSE",
            "account_id": account["id"],
            "splits": [{"category_name": "Alimentação", "amount_cents": 5_000}],
        },
    )
    assert split_mismatch.status_code == 400

    card_without_days = client.post(
        "/api/accounts", json={"name": "Visa", "type": "CREDIT_CARD"}
    )
    assert card_without_days.status_code == 422


def test_budget_progress_and_cashflow(client: TestClient) -> None:
    account = client.post(
        "/api/accounts",
        json={"name": "Conta", "type": "BANK", "initial_balance_cents": 100_000},
    ).json()
    category = client.post(
        "/api/categories", json={"name": "Alimentação", "type": "EXPENSE"}
    ).json()
    client.post(
        "/api/transactions",
        json={
            "description": "Mercado",
            "amount_cents": 20_000,
            "date": "2025-10-05",
            "type": "EXPENSE",
            "category": "Alimentação",
            "account_id": account["id"],
        },
    )

    budget = client.put(
        "/api/budgets",
        json={"category_id": category["id"], "month": 9, "year": 2025, "amount_cents": 50_000},
    )
    assert budget.status_code == 200

    progress = client.get("/api/budgets/progress", params={"month": 9, "year": 2025}).json()
    assert progress["summary"]["usage_percent"] == 40.0
    assert progress["categories"][0]["remaining_cents"] == 30_000

    days = client.get("/api/cashflow", params={"year": 2025, "month": 10}).json()
    assert days[4]["end_cents"] == 80_000
    assert len(days) == 31
