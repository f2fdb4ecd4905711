import logging
from dataclasses import asdict
from typing import Optional

from fastapi import Depends, FastAPI, File, Form, HTTPException, UploadFile
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from cashflow import DayBalance
from config import get_settings
from database import SessionLocal, init_db
from errors import PersistenceError, StateConflictError
from models import Account, Budget, Category, Transaction
from schemas import (
    AccountIn,
    BudgetGenerateIn,
    BudgetIn,
    BulkIdsIn,
    CategoryIn,
    ImportConfirmIn,
    InvoiceCloseIn,
    ReallocationIn,
    TransactionIn,
    TransactionUpdateIn,
    YearlyBudgetIn,
)
from services import (
    AccountService,
    BudgetService,
    CashflowService,
    CategoryService,
    ImportService,
    InvoiceService,
    LedgerService,
    TransactionService,
)

settings = get_settings()
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Ledger")


@app.on_event("startup")
def startup_event():
    init_db()
    logger.info(
        f"startup: timezone={settings.timezone} "
        f"default_category={settings.default_category}"
    )


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, PersistenceError):
        return HTTPException(status_code=503, detail=str(exc))
    if isinstance(exc, StateConflictError):
        return HTTPException(status_code=409, detail=str(exc))
    if "not found" in str(exc).lower():
        return HTTPException(status_code=404, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


async def read_upload(file: UploadFile) -> str:
    raw = await file.read()
    try:
        return raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        # Brazilian bank exports are frequently Latin-1
        logger.info(f"upload_decoded: filename={file.filename} encoding=latin-1")
        return raw.decode("latin-1")


def account_payload(account: Account) -> dict[str, object]:
    return {
        "id": account.id,
        "name": account.name,
        "type": account.type.value,
        "initial_balance_cents": account.initial_balance_cents,
        "closing_day": account.closing_day,
        "due_day": account.due_day,
        "is_default": account.is_default,
    }


def category_payload(category: Category) -> dict[str, object]:
    return {
        "id": category.id,
        "name": category.name,
        "type": category.type.value,
        "subtype": category.subtype.value,
        "impacts_budget": category.impacts_budget,
    }


def transaction_payload(txn: Transaction) -> dict[str, object]:
    return {
        "id": txn.id,
        "description": txn.description,
        "amount_cents": txn.amount_cents,
        "date": txn.date.isoformat(),
        "type": txn.type.value,
        "category": txn.category,
        "is_applied": txn.is_applied,
        "account_id": txn.account_id,
        "invoice_month": txn.invoice_month,
        "fitid": txn.fitid,
        "observations": txn.observations,
        "batch_id": txn.batch_id,
        "installment_number": txn.installment_number,
        "total_installments": txn.total_installments,
        "splits": [
            {"category_name": split.category_name, "amount_cents": split.amount_cents}
            for split in txn.splits
        ],
    }


def budget_payload(budget: Budget) -> dict[str, object]:
    return {
        "id": budget.id,
        "category_id": budget.category_id,
        "month": budget.month,
        "year": budget.year,
        "amount_cents": budget.amount_cents,
    }


def day_payload(day: DayBalance) -> dict[str, object]:
    return {
        "date": day.day.isoformat(),
        "start_cents": day.start_cents,
        "income_cents": day.income_cents,
        "expense_cents": day.expense_cents,
        "end_cents": day.end_cents,
        "transactions": [transaction_payload(txn) for txn in day.transactions],
    }


@app.get("/api/accounts")
def list_accounts(db: Session = Depends(get_db)):
    return [account_payload(account) for account in AccountService(db).list_all()]


@app.post("/api/accounts", status_code=201)
def create_account(data: AccountIn, db: Session = Depends(get_db)):
    try:
        account = AccountService(db).create(data)
    except (ValueError, PersistenceError) as exc:
        raise http_error(exc) from exc
    return account_payload(account)


@app.delete("/api/accounts/{account_id}", status_code=204)
def delete_account(account_id: str, db: Session = Depends(get_db)):
    try:
        AccountService(db).delete(account_id)
    except (ValueError, PersistenceError) as exc:
        raise http_error(exc) from exc


@app.get("/api/categories")
def list_categories(db: Session = Depends(get_db)):
    return [category_payload(category) for category in CategoryService(db).list_all()]


@app.post("/api/categories", status_code=201)
def create_category(data: CategoryIn, db: Session = Depends(get_db)):
    try:
        category = CategoryService(db).create(data)
    except (ValueError, PersistenceError) as exc:
        raise http_error(exc) from exc
    return category_payload(category)


@app.delete("/api/categories/{category_id}", status_code=204)
def delete_category(category_id: str, db: Session = Depends(get_db)):
    try:
        CategoryService(db).delete(category_id)
    except (ValueError, PersistenceError) as exc:
        raise http_error(exc) from exc


@app.post("/api/import/preview")
async def import_preview(
    file: UploadFile = File(...),
    source: str = Form("OFX"),
    db: Session = Depends(get_db),
):
    content = await read_upload(file)
    try:
        preview = ImportService(db).preview(content, source)
    except ValueError as exc:
        raise http_error(exc) from exc
    return {
        "candidates": [c.model_dump(mode="json") for c in preview.candidates],
        "errors": preview.errors,
    }


@app.post("/api/import/confirm")
def import_confirm(data: ImportConfirmIn, db: Session = Depends(get_db)):
    try:
        result = ImportService(db).confirm(
            data.candidates, data.destination, data.selections
        )
    except (ValueError, PersistenceError) as exc:
        raise http_error(exc) from exc
    return {
        "inserted": [transaction_payload(txn) for txn in result.inserted],
        "updated": [transaction_payload(txn) for txn in result.updated],
        "skipped": result.skipped,
    }


@app.post("/api/import/categories")
async def import_categories(file: UploadFile = File(...), db: Session = Depends(get_db)):
    content = await read_upload(file)
    try:
        created, errors = ImportService(db).import_categories(content)
    except (ValueError, PersistenceError) as exc:
        raise http_error(exc) from exc
    return {"created": [category_payload(c) for c in created], "errors": errors}


@app.post("/api/import/accounts")
async def import_accounts(file: UploadFile = File(...), db: Session = Depends(get_db)):
    content = await read_upload(file)
    try:
        created, errors = ImportService(db).import_accounts(content)
    except (ValueError, PersistenceError) as exc:
        raise http_error(exc) from exc
    return {"created": [account_payload(a) for a in created], "errors": errors}


@app.get("/api/transactions")
def list_transactions(db: Session = Depends(get_db)):
    return [transaction_payload(txn) for txn in LedgerService(db).transactions()]


@app.get("/api/transactions/export.csv")
def export_transactions_endpoint(db: Session = Depends(get_db)):
    csv_text = ImportService(db).export()
    return StreamingResponse(
        iter([csv_text]),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="transacoes.csv"'},
    )


@app.get("/api/transactions/pending")
def pending_transactions_endpoint(db: Session = Depends(get_db)):
    overdue, upcoming = CashflowService(db).pending()
    return {
        "overdue": [transaction_payload(txn) for txn in overdue],
        "upcoming": [transaction_payload(txn) for txn in upcoming],
    }


@app.post("/api/transactions", status_code=201)
def create_transaction(data: TransactionIn, db: Session = Depends(get_db)):
    try:
        created = TransactionService(db).create(data)
    except (ValueError, PersistenceError) as exc:
        raise http_error(exc) from exc
    return [transaction_payload(txn) for txn in created]


@app.put("/api/transactions/{transaction_id}")
def update_transaction(
    transaction_id: str,
    data: TransactionUpdateIn,
    all_installments: bool = False,
    db: Session = Depends(get_db),
):
    service = TransactionService(db)
    try:
        if all_installments:
            updated = service.update_installments(transaction_id, data)
        else:
            updated = [service.update(transaction_id, data)]
    except (ValueError, PersistenceError) as exc:
        raise http_error(exc) from exc
    return [transaction_payload(txn) for txn in updated]


@app.post("/api/transactions/toggle-status")
def toggle_transaction_status(data: BulkIdsIn, db: Session = Depends(get_db)):
    try:
        updated = TransactionService(db).toggle_status(data.ids)
    except (ValueError, PersistenceError) as exc:
        raise http_error(exc) from exc
    return [transaction_payload(txn) for txn in updated]


@app.post("/api/transactions/delete")
def delete_transactions(data: BulkIdsIn, db: Session = Depends(get_db)):
    try:
        deleted = TransactionService(db).delete_batch(data.ids)
    except (ValueError, PersistenceError) as exc:
        raise http_error(exc) from exc
    return {"deleted": deleted}


@app.delete("/api/transactions/{transaction_id}", status_code=204)
def delete_transaction(transaction_id: str, db: Session = Depends(get_db)):
    try:
        TransactionService(db).delete(transaction_id)
    except (ValueError, PersistenceError) as exc:
        raise http_error(exc) from exc


@app.get("/api/cards/{account_id}/invoices")
def list_card_invoices(account_id: str, db: Session = Depends(get_db)):
    try:
        invoices = InvoiceService(db).list(account_id)
    except ValueError as exc:
        raise http_error(exc) from exc
    return [asdict(invoice) for invoice in invoices]


@app.get("/api/cards/{account_id}/invoices/open")
def open_card_invoices(account_id: str, db: Session = Depends(get_db)):
    service = InvoiceService(db)
    try:
        return {
            "months": service.open_months(account_id),
            "default": service.default_month(account_id),
        }
    except ValueError as exc:
        raise http_error(exc) from exc


@app.post("/api/invoices/close", status_code=201)
def close_invoice(data: InvoiceCloseIn, db: Session = Depends(get_db)):
    try:
        payment = InvoiceService(db).close(data.account_id, data.invoice_month)
    except (ValueError, PersistenceError) as exc:
        raise http_error(exc) from exc
    return transaction_payload(payment)


@app.post("/api/invoices/reopen")
def reopen_invoice(data: InvoiceCloseIn, db: Session = Depends(get_db)):
    try:
        payment = InvoiceService(db).reopen(data.account_id, data.invoice_month)
    except (ValueError, PersistenceError) as exc:
        raise http_error(exc) from exc
    return {"deleted_payment_id": payment.id}


@app.get("/api/budgets")
def list_budgets(
    month: Optional[int] = None, year: Optional[int] = None, db: Session = Depends(get_db)
):
    return [budget_payload(budget) for budget in BudgetService(db).list(month, year)]


@app.put("/api/budgets")
def upsert_budget(data: BudgetIn, db: Session = Depends(get_db)):
    try:
        budget = BudgetService(db).upsert(data)
    except (ValueError, PersistenceError) as exc:
        raise http_error(exc) from exc
    return budget_payload(budget)


@app.put("/api/budgets/yearly")
def set_yearly_budget(data: YearlyBudgetIn, db: Session = Depends(get_db)):
    try:
        budgets = BudgetService(db).set_yearly(data)
    except (ValueError, PersistenceError) as exc:
        raise http_error(exc) from exc
    return [budget_payload(budget) for budget in budgets]


@app.post("/api/budgets/generate")
def generate_budgets(data: BudgetGenerateIn, db: Session = Depends(get_db)):
    try:
        budgets = BudgetService(db).generate(data)
    except (ValueError, PersistenceError) as exc:
        raise http_error(exc) from exc
    return [budget_payload(budget) for budget in budgets]


@app.post("/api/budgets/reallocate")
def reallocate_budget(data: ReallocationIn, db: Session = Depends(get_db)):
    try:
        budgets = BudgetService(db).reallocate(data)
    except (ValueError, PersistenceError) as exc:
        raise http_error(exc) from exc
    return [budget_payload(budget) for budget in budgets]


@app.get("/api/budgets/progress")
def budget_progress(month: int, year: int, db: Session = Depends(get_db)):
    if not 0 <= month <= 11:
        raise HTTPException(status_code=400, detail="Month must be between 0 and 11")
    service = BudgetService(db)
    return {
        "summary": asdict(service.summary(month, year)),
        "global_available_cents": service.global_available(),
        "categories": [asdict(item) for item in service.progress(month, year)],
    }


@app.delete("/api/budgets/{budget_id}", status_code=204)
def delete_budget(budget_id: str, db: Session = Depends(get_db)):
    try:
        BudgetService(db).delete(budget_id)
    except (ValueError, PersistenceError) as exc:
        raise http_error(exc) from exc


@app.get("/api/cashflow")
def cashflow(
    year: int, month: int, account_id: Optional[str] = None, db: Session = Depends(get_db)
):
    if not 1 <= month <= 12:
        raise HTTPException(status_code=400, detail="Month must be between 1 and 12")
    try:
        days = CashflowService(db).month(year, month, account_id)
    except ValueError as exc:
        raise http_error(exc) from exc
    return [day_payload(day) for day in days]
