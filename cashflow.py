from dataclasses import dataclass, field
from datetime import date
from typing import Optional, Sequence

from models import Account, AccountType, Transaction, TransactionType
from periods import days_in_month, month_start


@dataclass
class DayBalance:
    day: date
    start_cents: int
    income_cents: int
    expense_cents: int
    end_cents: int
    transactions: list[Transaction] = field(default_factory=list)


def _signed(txn: Transaction) -> int:
    return txn.amount_cents if txn.type == TransactionType.income else -txn.amount_cents


def _cash_filter(accounts: Sequence[Account], account_id: Optional[str]):
    card_ids = {acc.id for acc in accounts if acc.type == AccountType.credit_card}

    def matches(txn: Transaction) -> bool:
        # card purchases move money only when the invoice is paid
        if txn.invoice_month or txn.account_id in card_ids:
            return False
        if account_id is not None:
            return txn.account_id == account_id
        return True

    return matches


def opening_balance_cents(
    accounts: Sequence[Account], account_id: Optional[str]
) -> int:
    if account_id is None:
        return sum(
            acc.initial_balance_cents for acc in accounts if acc.type == AccountType.bank
        )
    for acc in accounts:
        if acc.id == account_id:
            if acc.type == AccountType.credit_card:
                raise ValueError("Cash flow is not available for credit card accounts")
            return acc.initial_balance_cents
    raise ValueError("Account not found")


def project_month(
    accounts: Sequence[Account],
    transactions: Sequence[Transaction],
    year: int,
    month: int,
    account_id: Optional[str] = None,
) -> list[DayBalance]:
    """Day-by-day running balance for one calendar month (``month`` is 1-12).

    Without ``account_id`` the balance covers every bank account plus
    transactions not tied to any account; credit-card activity never counts.
    """
    matches = _cash_filter(accounts, account_id)
    relevant = [txn for txn in transactions if matches(txn)]
    first_day = month_start(year, month)

    running = opening_balance_cents(accounts, account_id)
    running += sum(_signed(txn) for txn in relevant if txn.date < first_day)

    by_day: dict[date, list[Transaction]] = {}
    for txn in relevant:
        if txn.date.year == year and txn.date.month == month:
            by_day.setdefault(txn.date, []).append(txn)

    days: list[DayBalance] = []
    for day_number in range(1, days_in_month(year, month) + 1):
        day = date(year, month, day_number)
        day_txns = by_day.get(day, [])
        income = sum(
            txn.amount_cents for txn in day_txns if txn.type == TransactionType.income
        )
        expense = sum(
            txn.amount_cents for txn in day_txns if txn.type == TransactionType.expense
        )
        end = running + income - expense
        days.append(
            DayBalance(
                day=day,
                start_cents=running,
                income_cents=income,
                expense_cents=expense,
                end_cents=end,
                transactions=day_txns,
            )
        )
        running = end
    return days


def pending_transactions(
    transactions: Sequence[Transaction], today: date
) -> tuple[list[Transaction], list[Transaction]]:
    """Split unapplied transactions into ``(overdue, upcoming)`` by date."""
    pending = sorted(
        (txn for txn in transactions if not txn.is_applied), key=lambda t: t.date
    )
    overdue = [txn for txn in pending if txn.date < today]
    upcoming = [txn for txn in pending if txn.date >= today]
    return overdue, upcoming
