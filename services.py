from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from budgets import (
    CategoryProgress,
    MonthlySummary,
    category_progress,
    generate_yearly_budgets,
    global_available_cents,
    monthly_summary,
    plan_reallocation,
    planned_cents,
    realized_cents,
    remaining_cents,
    validate_splits,
    yearly_budget_rows,
)
from cashflow import DayBalance, pending_transactions, project_month
from categorize import MULTIPLE_CATEGORIES
from config import get_settings
from csv_utils import export_transactions, parse_statement_csv
from errors import PersistenceError, StateConflictError
from installments import build_splits, expand_candidate, expand_manual
from invoices import (
    PAYMENT_CATEGORY,
    InvoiceSummary,
    build_payment_transaction,
    default_invoice_month,
    find_payment_transaction,
    invoice_card_for,
    invoice_name,
    is_invoice_closed,
    list_invoices,
    open_invoice_months,
)
from merge import apply_selections, classify_entries
from models import (
    Account,
    Budget,
    Category,
    CategorySubtype,
    Transaction,
    TransactionSplit,
    TransactionType,
    new_id,
)
from ofx_utils import parse_ofx
from periods import local_today
from schemas import (
    AccountIn,
    BudgetGenerateIn,
    BudgetIn,
    CategoryIn,
    ImportCandidate,
    ImportDestinationIn,
    ImportKind,
    ImportSelectionIn,
    ImportStatus,
    ReallocationIn,
    TransactionIn,
    TransactionUpdateIn,
    YearlyBudgetIn,
)

logger = logging.getLogger(__name__)


def commit_or_raise(session: Session, operation: str) -> None:
    try:
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error(f"{operation}_failed: error={exc}")
        raise PersistenceError(str(exc)) from exc


def get_account(session: Session, account_id: str) -> Account:
    account = session.get(Account, account_id)
    if not account:
        raise ValueError("Account not found")
    return account


def check_destination(account: Optional[Account], invoice_month: Optional[str]) -> None:
    """Invoice months belong to credit cards and credit cards need one."""
    if account is not None and account.is_credit_card:
        if not invoice_month:
            raise ValueError(f"Credit card {account.name} requires an invoice month")
    elif invoice_month:
        raise ValueError("Invoice month is only valid for credit card accounts")


def ensure_open_buckets(
    account: Account, months: Iterable[str], transactions: list[Transaction]
) -> None:
    for month in sorted(set(months)):
        if is_invoice_closed(account, month, transactions):
            raise StateConflictError(
                f"Invoice {invoice_name(account, month)} is closed"
            )


def ensure_not_payment_name(descriptions: Iterable[str], accounts: list[Account]) -> None:
    """Invoice payment rows are only written by closing an invoice."""
    for description in descriptions:
        card = invoice_card_for(description, accounts)
        if card is not None:
            raise StateConflictError(
                f"'{description.strip()}' is reserved for the {card.name} invoice payment; "
                "close the invoice instead"
            )


@dataclass
class LedgerSnapshot:
    accounts: list[Account]
    categories: list[Category]
    transactions: list[Transaction]
    budgets: list[Budget]


class LedgerService:
    """Read side: the full current collections, as the engines expect them."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def accounts(self) -> list[Account]:
        return list(self.session.scalars(select(Account).order_by(Account.name)))

    def categories(self) -> list[Category]:
        stmt = select(Category).order_by(Category.type, Category.name)
        return list(self.session.scalars(stmt))

    def transactions(self) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .options(selectinload(Transaction.splits))
            .order_by(Transaction.date.desc(), Transaction.created_at.desc())
        )
        return list(self.session.scalars(stmt))

    def budgets(self) -> list[Budget]:
        stmt = select(Budget).order_by(Budget.year, Budget.month)
        return list(self.session.scalars(stmt))

    def snapshot(self) -> LedgerSnapshot:
        return LedgerSnapshot(
            accounts=self.accounts(),
            categories=self.categories(),
            transactions=self.transactions(),
            budgets=self.budgets(),
        )


class CategoryService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_all(self) -> list[Category]:
        return LedgerService(self.session).categories()

    def get(self, category_id: str) -> Category:
        category = self.session.get(Category, category_id)
        if not category:
            raise ValueError("Category not found")
        return category

    def find_by_name(self, name: str) -> Optional[Category]:
        return self.session.scalar(
            select(Category).where(func.lower(Category.name) == name.strip().lower())
        )

    def create(self, data: CategoryIn) -> Category:
        if self.find_by_name(data.name):
            raise ValueError("Category with this name already exists")
        category = Category(
            id=new_id(),
            name=data.name.strip(),
            type=data.type,
            subtype=data.subtype,
            impacts_budget=data.impacts_budget,
        )
        self.session.add(category)
        commit_or_raise(self.session, "category_create")
        self.session.refresh(category)
        return category

    def ensure(
        self,
        name: str,
        txn_type: TransactionType,
        subtype: CategorySubtype,
        impacts_budget: bool = True,
    ) -> Category:
        """Return the category called ``name``, adding it to the session if missing.

        Nothing is committed; the caller's operation does that.
        """
        category = self.find_by_name(name)
        if category:
            return category
        category = Category(
            id=new_id(),
            name=name,
            type=txn_type,
            subtype=subtype,
            impacts_budget=impacts_budget,
        )
        self.session.add(category)
        logger.info(f"category_auto_created: name={name}")
        return category

    def import_rows(self, rows: Iterable[CategoryIn]) -> list[Category]:
        existing = {category.name.lower() for category in self.list_all()}
        created: list[Category] = []
        for row in rows:
            key = row.name.strip().lower()
            if key in existing:
                logger.info(f"category_import_skipped: name={row.name} reason=exists")
                continue
            existing.add(key)
            category = Category(
                id=new_id(),
                name=row.name.strip(),
                type=row.type,
                subtype=row.subtype,
                impacts_budget=row.impacts_budget,
            )
            self.session.add(category)
            created.append(category)
        commit_or_raise(self.session, "category_import")
        logger.info(f"category_import: created={len(created)}")
        return created

    def delete(self, category_id: str) -> None:
        category = self.get(category_id)
        used = self.session.scalar(
            select(func.count(Transaction.id)).where(
                or_(
                    Transaction.category == category.name,
                    Transaction.splits.any(TransactionSplit.category_name == category.name),
                )
            )
        )
        if used:
            raise ValueError("Cannot delete category used in transactions")
        budgeted = self.session.scalar(
            select(func.count(Budget.id)).where(Budget.category_id == category.id)
        )
        if budgeted:
            raise ValueError("Cannot delete category used in budgets")
        self.session.delete(category)
        commit_or_raise(self.session, "category_delete")


class AccountService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def list_all(self) -> list[Account]:
        return LedgerService(self.session).accounts()

    def get(self, account_id: str) -> Account:
        return get_account(self.session, account_id)

    def _build(self, data: AccountIn) -> Account:
        if data.is_default:
            # one default account per type
            for other in self.session.scalars(
                select(Account).where(
                    Account.type == data.type, Account.is_default.is_(True)
                )
            ):
                other.is_default = False
        return Account(
            id=new_id(),
            name=data.name.strip(),
            type=data.type,
            initial_balance_cents=data.initial_balance_cents,
            closing_day=data.closing_day,
            due_day=data.due_day,
            is_default=data.is_default,
        )

    def create(self, data: AccountIn) -> Account:
        account = self._build(data)
        self.session.add(account)
        commit_or_raise(self.session, "account_create")
        self.session.refresh(account)
        return account

    def import_rows(self, rows: Iterable[AccountIn]) -> list[Account]:
        created = []
        for row in rows:
            account = self._build(row)
            self.session.add(account)
            created.append(account)
        commit_or_raise(self.session, "account_import")
        logger.info(f"account_import: created={len(created)}")
        return created

    def delete(self, account_id: str) -> None:
        account = self.get(account_id)
        referenced = self.session.scalar(
            select(func.count(Transaction.id)).where(Transaction.account_id == account.id)
        )
        if referenced:
            raise ValueError("Cannot delete account with transactions")
        self.session.delete(account)
        commit_or_raise(self.session, "account_delete")


class TransactionService:
    def __init__(self, session: Session, today: Optional[date] = None) -> None:
        self.session = session
        self.today = today

    def _today(self) -> date:
        return self.today or local_today()

    def get(self, transaction_id: str) -> Transaction:
        stmt = (
            select(Transaction)
            .options(selectinload(Transaction.splits))
            .where(Transaction.id == transaction_id)
        )
        txn = self.session.scalar(stmt)
        if not txn:
            raise ValueError("Transaction not found")
        return txn

    def _get_many(self, ids: Iterable[str]) -> list[Transaction]:
        ids = list(dict.fromkeys(ids))
        found = list(self.session.scalars(select(Transaction).where(Transaction.id.in_(ids))))
        missing = set(ids) - {txn.id for txn in found}
        if missing:
            raise ValueError(f"Transaction not found: {', '.join(sorted(missing))}")
        return found

    def _expand(
        self, data: TransactionIn, history: list[Transaction], accounts: list[Account]
    ) -> list[Transaction]:
        account = get_account(self.session, data.account_id) if data.account_id else None
        if account is not None and account.is_credit_card and not data.invoice_month:
            data = data.model_copy(
                update={"invoice_month": default_invoice_month(account, history, self._today())}
            )
        check_destination(account, data.invoice_month)
        validate_splits(data.amount_cents, data.splits)
        rows = expand_manual(
            data,
            account,
            today=self._today(),
            default_category=get_settings().default_category,
        )
        ensure_not_payment_name([row.description for row in rows], accounts)
        if account is not None and account.is_credit_card:
            ensure_open_buckets(account, [row.invoice_month for row in rows], history)
        return rows

    def create(self, data: TransactionIn) -> list[Transaction]:
        return self.create_batch([data])

    def create_batch(self, items: Iterable[TransactionIn]) -> list[Transaction]:
        history = LedgerService(self.session).transactions()
        accounts = LedgerService(self.session).accounts()
        created: list[Transaction] = []
        for data in items:
            created.extend(self._expand(data, history, accounts))
        self.session.add_all(created)
        commit_or_raise(self.session, "transaction_create")
        logger.info(f"transaction_create: rows={len(created)}")
        return created

    def _apply_update(
        self,
        txn: Transaction,
        data: TransactionUpdateIn,
        history: list[Transaction],
        accounts: list[Account],
    ) -> None:
        if data.description.strip() != txn.description:
            if invoice_card_for(txn.description, accounts) is not None:
                raise StateConflictError(
                    f"Transaction {txn.description} pays an invoice; reopen the invoice instead"
                )
            ensure_not_payment_name([data.description], accounts)
        validate_splits(data.amount_cents, data.splits)
        account = get_account(self.session, data.account_id) if data.account_id else None
        check_destination(account, data.invoice_month)
        moved = (data.account_id, data.invoice_month) != (txn.account_id, txn.invoice_month)
        if account is not None and account.is_credit_card and moved:
            ensure_open_buckets(account, [data.invoice_month], history)

        txn.description = data.description.strip()
        txn.amount_cents = data.amount_cents
        txn.date = data.date
        txn.type = data.type
        txn.category = MULTIPLE_CATEGORIES if data.splits else data.category.strip()
        txn.is_applied = data.is_applied
        txn.account_id = data.account_id
        txn.invoice_month = data.invoice_month
        txn.observations = data.observations
        txn.splits = build_splits(data.splits)

    def update(self, transaction_id: str, data: TransactionUpdateIn) -> Transaction:
        return self.update_batch({transaction_id: data})[0]

    def update_batch(self, updates: dict[str, TransactionUpdateIn]) -> list[Transaction]:
        history = LedgerService(self.session).transactions()
        by_id = {txn.id: txn for txn in history}
        accounts = LedgerService(self.session).accounts()
        updated: list[Transaction] = []
        try:
            for transaction_id, data in updates.items():
                txn = by_id.get(transaction_id)
                if txn is None:
                    raise ValueError("Transaction not found")
                self._apply_update(txn, data, history, accounts)
                updated.append(txn)
        except ValueError:
            # drop edits already applied to earlier rows of the batch
            self.session.rollback()
            raise
        commit_or_raise(self.session, "transaction_update")
        logger.info(f"transaction_update: rows={len(updated)}")
        return updated

    def update_installments(
        self, transaction_id: str, data: TransactionUpdateIn
    ) -> list[Transaction]:
        """Edit every installment sharing the batch of ``transaction_id``.

        Each installment keeps its own date, bucket and numbering; the other
        fields are copied from ``data``.
        """
        txn = self.get(transaction_id)
        if not txn.batch_id:
            return [self.update(transaction_id, data)]
        siblings = self.session.scalars(
            select(Transaction).where(Transaction.batch_id == txn.batch_id)
        ).all()
        updates = {
            sibling.id: data.model_copy(
                update={
                    "date": sibling.date,
                    "invoice_month": sibling.invoice_month,
                    "account_id": sibling.account_id,
                    "is_applied": sibling.is_applied,
                }
            )
            for sibling in siblings
        }
        updates[txn.id] = data
        return self.update_batch(updates)

    def toggle_status(self, ids: Iterable[str]) -> list[Transaction]:
        transactions = self._get_many(ids)
        for txn in transactions:
            txn.is_applied = not txn.is_applied
        commit_or_raise(self.session, "transaction_toggle_status")
        logger.info(f"transaction_toggle_status: rows={len(transactions)}")
        return transactions

    def delete(self, transaction_id: str) -> None:
        self.delete_batch([transaction_id])

    def delete_batch(self, ids: Iterable[str]) -> int:
        transactions = self._get_many(ids)
        accounts = LedgerService(self.session).accounts()
        for txn in transactions:
            if invoice_card_for(txn.description, accounts) is not None:
                raise StateConflictError(
                    f"Transaction {txn.description} pays an invoice; reopen the invoice instead"
                )
        for txn in transactions:
            self.session.delete(txn)
        commit_or_raise(self.session, "transaction_delete")
        logger.info(f"transaction_delete: rows={len(transactions)}")
        return len(transactions)


@dataclass
class ImportPreview:
    candidates: list[ImportCandidate]
    errors: list[str]


@dataclass
class ImportResult:
    inserted: list[Transaction] = field(default_factory=list)
    updated: list[Transaction] = field(default_factory=list)
    skipped: int = 0


class ImportService:
    def __init__(self, session: Session, today: Optional[date] = None) -> None:
        self.session = session
        self.today = today

    def _today(self) -> date:
        return self.today or local_today()

    def preview(self, content: str, source: str) -> ImportPreview:
        source = source.upper()
        if source == "OFX":
            entries, errors = parse_ofx(content)
        elif source == "CSV":
            known = [category.name for category in CategoryService(self.session).list_all()]
            entries, errors = parse_statement_csv(
                content, ImportKind.transactions, known_categories=known
            )
        else:
            raise ValueError(f"Unsupported statement format '{source}'")
        history = LedgerService(self.session).transactions()
        candidates = classify_entries(entries, history, source=source)
        logger.info(
            f"import_preview: source={source} entries={len(candidates)} errors={len(errors)}"
        )
        return ImportPreview(candidates=candidates, errors=errors)

    def confirm(
        self,
        candidates: list[ImportCandidate],
        destination: ImportDestinationIn,
        selections: Iterable[ImportSelectionIn] = (),
    ) -> ImportResult:
        """Persist the selected candidates into ``destination`` in one commit.

        Known fitids are never inserted twice. An UPDATE_VALUE candidate only
        rewrites the amount of the row it points at.
        """
        chosen = [c for c in apply_selections(candidates, selections) if c.selected]
        if not chosen:
            raise ValueError("No import candidates selected")
        account = get_account(self.session, destination.account_id)
        check_destination(account, destination.invoice_month)

        history = LedgerService(self.session).transactions()
        by_id = {txn.id: txn for txn in history}
        known_fitids = {txn.fitid for txn in history if txn.fitid}
        accounts = LedgerService(self.session).accounts()
        settings = get_settings()
        today = self._today()

        result = ImportResult()
        new_amounts: list[tuple[Transaction, ImportCandidate]] = []
        for candidate in chosen:
            if candidate.status == ImportStatus.update_value:
                existing = by_id.get(candidate.existing_id or "")
                if existing is None:
                    raise ValueError("Transaction not found")
                if existing.account is not None and existing.invoice_month:
                    ensure_open_buckets(existing.account, [existing.invoice_month], history)
                new_amounts.append((existing, candidate))
                continue
            if candidate.entry.fitid and candidate.entry.fitid in known_fitids:
                result.skipped += 1
                continue
            validate_splits(candidate.entry.amount_cents, candidate.entry.splits)
            result.inserted.extend(
                expand_candidate(
                    candidate,
                    account,
                    destination.invoice_month,
                    today=today,
                    default_category=settings.default_category,
                )
            )
            if candidate.entry.fitid:
                known_fitids.add(candidate.entry.fitid)

        ensure_not_payment_name([txn.description for txn in result.inserted], accounts)
        if account.is_credit_card:
            ensure_open_buckets(
                account, [txn.invoice_month for txn in result.inserted], history
            )
        for existing, candidate in new_amounts:
            existing.amount_cents = candidate.entry.amount_cents
            existing.type = candidate.entry.type
            result.updated.append(existing)
        self.session.add_all(result.inserted)
        commit_or_raise(self.session, "import_confirm")
        logger.info(
            f"import_confirm: account={account.name} inserted={len(result.inserted)} "
            f"updated={len(result.updated)} skipped={result.skipped}"
        )
        return result

    def import_categories(self, content: str) -> tuple[list[Category], list[str]]:
        rows, errors = parse_statement_csv(content, ImportKind.categories)
        return CategoryService(self.session).import_rows(rows), errors

    def import_accounts(self, content: str) -> tuple[list[Account], list[str]]:
        rows, errors = parse_statement_csv(content, ImportKind.accounts)
        return AccountService(self.session).import_rows(rows), errors

    def export(self) -> str:
        return export_transactions(LedgerService(self.session).transactions())


class InvoiceService:
    def __init__(self, session: Session, today: Optional[date] = None) -> None:
        self.session = session
        self.today = today

    def _today(self) -> date:
        return self.today or local_today()

    def _card(self, account_id: str) -> Account:
        account = get_account(self.session, account_id)
        if not account.is_credit_card:
            raise ValueError(f"Account {account.name} is not a credit card")
        return account

    def list(self, account_id: str) -> list[InvoiceSummary]:
        account = self._card(account_id)
        history = LedgerService(self.session).transactions()
        return list_invoices(account, history, self._today())

    def open_months(self, account_id: str) -> list[str]:
        account = self._card(account_id)
        history = LedgerService(self.session).transactions()
        return open_invoice_months(account, history, self._today())

    def default_month(self, account_id: str) -> str:
        account = self._card(account_id)
        history = LedgerService(self.session).transactions()
        return default_invoice_month(account, history, self._today())

    def close(self, account_id: str, invoice_month: str) -> Transaction:
        account = self._card(account_id)
        history = LedgerService(self.session).transactions()
        if is_invoice_closed(account, invoice_month, history):
            raise StateConflictError(
                f"Invoice {invoice_name(account, invoice_month)} is already closed"
            )
        payment = build_payment_transaction(account, invoice_month, history)
        CategoryService(self.session).ensure(
            PAYMENT_CATEGORY, TransactionType.expense, CategorySubtype.fixed
        )
        self.session.add(payment)
        commit_or_raise(self.session, "invoice_close")
        logger.info(
            f"invoice_close: invoice={payment.description} "
            f"amount_cents={payment.amount_cents} due={payment.date.isoformat()}"
        )
        return payment

    def reopen(self, account_id: str, invoice_month: str) -> Transaction:
        account = self._card(account_id)
        history = LedgerService(self.session).transactions()
        payment = find_payment_transaction(account, invoice_month, history)
        if payment is None:
            raise StateConflictError(
                f"No payment found for {invoice_name(account, invoice_month)}"
            )
        self.session.delete(payment)
        commit_or_raise(self.session, "invoice_reopen")
        logger.info(
            f"invoice_reopen: invoice={invoice_name(account, invoice_month)} "
            f"payment_id={payment.id}"
        )
        return payment


class BudgetService:
    def __init__(self, session: Session, today: Optional[date] = None) -> None:
        self.session = session
        self.today = today

    def _today(self) -> date:
        return self.today or local_today()

    def list(self, month: Optional[int] = None, year: Optional[int] = None) -> list[Budget]:
        stmt = select(Budget).order_by(Budget.year, Budget.month)
        if month is not None:
            stmt = stmt.where(Budget.month == month)
        if year is not None:
            stmt = stmt.where(Budget.year == year)
        return list(self.session.scalars(stmt))

    def upsert(self, data: BudgetIn) -> Budget:
        return self.upsert_batch([data])[0]

    def upsert_batch(self, rows: Iterable[BudgetIn], operation: str = "budget_upsert") -> list[Budget]:
        rows = list(rows)
        for category_id in {row.category_id for row in rows}:
            CategoryService(self.session).get(category_id)
        existing = {
            (budget.category_id, budget.month, budget.year): budget
            for budget in self.session.scalars(
                select(Budget).where(Budget.year.in_({row.year for row in rows}))
            )
        }
        saved: list[Budget] = []
        for row in rows:
            key = (row.category_id, row.month, row.year)
            budget = existing.get(key)
            if budget is None:
                budget = Budget(
                    id=new_id(),
                    category_id=row.category_id,
                    month=row.month,
                    year=row.year,
                    amount_cents=row.amount_cents,
                )
                self.session.add(budget)
                existing[key] = budget
            else:
                budget.amount_cents = row.amount_cents
            saved.append(budget)
        commit_or_raise(self.session, operation)
        logger.info(f"{operation}: rows={len(saved)}")
        return saved

    def set_yearly(self, data: YearlyBudgetIn) -> list[Budget]:
        rows = yearly_budget_rows(data.category_id, data.year, data.amount_cents)
        return self.upsert_batch(rows, operation="budget_set_yearly")

    def generate(self, data: BudgetGenerateIn) -> list[Budget]:
        snapshot = LedgerService(self.session).snapshot()
        rows = generate_yearly_budgets(
            snapshot.categories,
            snapshot.transactions,
            data.year,
            self._today(),
            amounts=data.amounts,
        )
        if not rows:
            return []
        return self.upsert_batch(rows, operation="budget_generate")

    def reallocate(self, data: ReallocationIn) -> list[Budget]:
        source = CategoryService(self.session).get(data.source_category_id)
        snapshot = LedgerService(self.session).snapshot()
        planned = planned_cents(snapshot.budgets, source.id, data.month, data.year)
        realized = realized_cents(snapshot.transactions, source.name, data.month, data.year)
        available = remaining_cents(planned, realized)
        moved = sum(adjustment.delta_cents for adjustment in data.adjustments)
        rows = plan_reallocation(snapshot.budgets, data.adjustments, data.month, data.year)
        logger.info(
            f"budget_reallocate: source={source.name} available_cents={available} "
            f"moved_cents={moved} targets={len(rows)}"
        )
        return self.upsert_batch(rows, operation="budget_reallocate")

    def progress(self, month: int, year: int) -> list[CategoryProgress]:
        snapshot = LedgerService(self.session).snapshot()
        return [
            category_progress(category, snapshot.budgets, snapshot.transactions, month, year)
            for category in snapshot.categories
            if category.type == TransactionType.expense and category.impacts_budget
        ]

    def summary(self, month: int, year: int) -> MonthlySummary:
        snapshot = LedgerService(self.session).snapshot()
        return monthly_summary(snapshot.budgets, snapshot.transactions, month, year)

    def global_available(self) -> int:
        snapshot = LedgerService(self.session).snapshot()
        return global_available_cents(snapshot.budgets, snapshot.transactions)

    def delete(self, budget_id: str) -> None:
        budget = self.session.get(Budget, budget_id)
        if not budget:
            raise ValueError("Budget not found")
        self.session.delete(budget)
        commit_or_raise(self.session, "budget_delete")


class CashflowService:
    def __init__(self, session: Session, today: Optional[date] = None) -> None:
        self.session = session
        self.today = today

    def month(
        self, year: int, month: int, account_id: Optional[str] = None
    ) -> list[DayBalance]:
        snapshot = LedgerService(self.session).snapshot()
        return project_month(
            snapshot.accounts, snapshot.transactions, year, month, account_id
        )

    def pending(self) -> tuple[list[Transaction], list[Transaction]]:
        transactions = LedgerService(self.session).transactions()
        return pending_transactions(transactions, self.today or local_today())
