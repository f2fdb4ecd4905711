"""Credit-card invoice buckets.

An invoice is never stored. It is the set of transactions sharing one card
``account_id`` and one ``invoice_month`` (``MM/YYYY``), and it counts as
closed once a transaction described ``"Fatura {card} - MM/YYYY"`` exists.
"""

import re
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional, Sequence

from models import Account, Transaction, TransactionType, new_id
from periods import (
    days_in_month,
    format_invoice_month,
    invoice_month_for,
    invoice_month_key,
    parse_invoice_month,
    shift_invoice_month,
    shift_month,
)

PAYMENT_CATEGORY = "Pagamento Fatura"
PAYMENT_OBSERVATIONS = "Gerado automaticamente pelo fechamento de fatura"
# how far past a closed bucket default_invoice_month keeps looking
MAX_CLOSED_SKIPS = 12
_MONTH_SUFFIX = re.compile(r"\d{2}/\d{4}")


@dataclass
class InvoiceSummary:
    account_id: str
    invoice_month: str
    name: str
    total_cents: int
    is_closed: bool
    transaction_count: int


def invoice_name(account: Account, invoice_month: str) -> str:
    return f"Fatura {account.name} - {invoice_month}"


def invoice_card_for(description: str, accounts: Iterable[Account]) -> Optional[Account]:
    """The card whose invoice ``description`` names, if it names one."""
    description = description.strip()
    for account in accounts:
        if not account.is_credit_card:
            continue
        prefix = f"Fatura {account.name} - "
        if description.startswith(prefix) and _MONTH_SUFFIX.fullmatch(
            description[len(prefix):]
        ):
            return account
    return None


def _require_card(account: Account) -> None:
    if not account.is_credit_card:
        raise ValueError(f"Account {account.name} is not a credit card")


def bucket_transactions(
    account: Account, invoice_month: str, transactions: Iterable[Transaction]
) -> list[Transaction]:
    return [
        txn
        for txn in transactions
        if txn.account_id == account.id and txn.invoice_month == invoice_month
    ]


def is_invoice_closed(
    account: Account, invoice_month: str, transactions: Iterable[Transaction]
) -> bool:
    name = invoice_name(account, invoice_month)
    return any(txn.description == name for txn in transactions)


def invoice_total_cents(
    account: Account, invoice_month: str, transactions: Iterable[Transaction]
) -> int:
    total = 0
    for txn in bucket_transactions(account, invoice_month, transactions):
        if txn.type == TransactionType.expense:
            total += txn.amount_cents
        else:
            total -= txn.amount_cents
    return total


def _window(today: date, before: int, after: int) -> tuple[str, str]:
    current = invoice_month_for(today)
    return shift_invoice_month(current, -before), shift_invoice_month(current, after)


def _month_range(start: str, end: str) -> list[str]:
    months = []
    month = start
    while invoice_month_key(month) <= invoice_month_key(end):
        months.append(month)
        month = shift_invoice_month(month, 1)
    return months


def invoice_months(
    account: Account,
    transactions: Sequence[Transaction],
    today: date,
    *,
    before: int = 12,
    after: int = 12,
) -> list[str]:
    """Every bucket from ``before`` months ago to ``after`` months ahead.

    The range is widened to cover the earliest and latest bucket the card
    actually uses, so old or far-future installments stay reachable.
    """
    start, end = _window(today, before, after)
    for txn in transactions:
        if txn.account_id != account.id or not txn.invoice_month:
            continue
        key = invoice_month_key(txn.invoice_month)
        if key < invoice_month_key(start):
            start = txn.invoice_month
        if key > invoice_month_key(end):
            end = txn.invoice_month
    return _month_range(start, end)


def summarize_invoice(
    account: Account, invoice_month: str, transactions: Sequence[Transaction]
) -> InvoiceSummary:
    return InvoiceSummary(
        account_id=account.id,
        invoice_month=invoice_month,
        name=invoice_name(account, invoice_month),
        total_cents=invoice_total_cents(account, invoice_month, transactions),
        is_closed=is_invoice_closed(account, invoice_month, transactions),
        transaction_count=len(bucket_transactions(account, invoice_month, transactions)),
    )


def list_invoices(
    account: Account,
    transactions: Sequence[Transaction],
    today: date,
    *,
    before: int = 12,
    after: int = 12,
) -> list[InvoiceSummary]:
    _require_card(account)
    return [
        summarize_invoice(account, month, transactions)
        for month in invoice_months(account, transactions, today, before=before, after=after)
    ]


def open_invoice_months(
    account: Account,
    transactions: Sequence[Transaction],
    today: date,
    *,
    before: int = 1,
    after: int = 16,
) -> list[str]:
    """Buckets a new purchase may be posted to.

    Same range as :func:`invoice_months` (so older buckets that still hold
    history stay selectable) without the closed ones.
    """
    _require_card(account)
    return [
        month
        for month in invoice_months(account, transactions, today, before=before, after=after)
        if not is_invoice_closed(account, month, transactions)
    ]


def default_invoice_month(
    account: Account, transactions: Sequence[Transaction], today: date
) -> str:
    _require_card(account)
    year, month = today.year, today.month
    if account.closing_day and today.day >= account.closing_day:
        year, month = shift_month(year, month, 1)
    candidate = format_invoice_month(year, month)
    for _ in range(MAX_CLOSED_SKIPS):
        if not is_invoice_closed(account, candidate, transactions):
            return candidate
        candidate = shift_invoice_month(candidate, 1)
    raise ValueError(f"No open invoice for {account.name} in the next {MAX_CLOSED_SKIPS} months")


def payment_due_date(account: Account, invoice_month: str) -> date:
    if not account.due_day:
        raise ValueError(f"Credit card {account.name} has no due day")
    year, month = parse_invoice_month(invoice_month)
    return date(year, month, min(account.due_day, days_in_month(year, month)))


def build_payment_transaction(
    account: Account, invoice_month: str, transactions: Sequence[Transaction]
) -> Transaction:
    """The pending bill payment that closes a bucket.

    The payment is not linked to the card, so it counts against the bank
    balance once settled rather than inside the invoice it pays.
    """
    _require_card(account)
    total = invoice_total_cents(account, invoice_month, transactions)
    if total < 0:
        raise ValueError(
            f"Invoice {invoice_name(account, invoice_month)} has a negative total"
        )
    return Transaction(
        id=new_id(),
        description=invoice_name(account, invoice_month),
        amount_cents=total,
        date=payment_due_date(account, invoice_month),
        type=TransactionType.expense,
        category=PAYMENT_CATEGORY,
        is_applied=False,
        observations=PAYMENT_OBSERVATIONS,
        account_id=None,
        invoice_month=None,
    )


def find_payment_transaction(
    account: Account, invoice_month: str, transactions: Sequence[Transaction]
) -> Optional[Transaction]:
    name = invoice_name(account, invoice_month)
    payments = [txn for txn in transactions if txn.category == PAYMENT_CATEGORY]
    for txn in payments:
        if txn.description == name:
            return txn

    # renamed or retyped payments, e.g. "fatura  nubank 03/2025"
    card_part, _, month_part = name.partition(" - ")
    card_token = card_part.replace("Fatura", "").strip().lower()
    month_token = month_part.strip()
    for txn in payments:
        if card_token in txn.description.lower() and month_token in txn.description:
            return txn
    return None
