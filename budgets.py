import re
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Mapping, Optional, Sequence

from errors import SplitValidationError
from models import Budget, Category, Transaction, TransactionType
from periods import parse_invoice_month
from schemas import BudgetAdjustmentIn, BudgetIn, SplitIn

# largest accepted gap between a split total and its transaction, exclusive
SPLIT_TOLERANCE_CENTS = 5

_SPLIT_AMOUNT_SUFFIX = re.compile(r":\s*[-+]?[\d.,]+\s*$")


@dataclass
class CategoryProgress:
    category_id: str
    category_name: str
    planned_cents: int
    realized_cents: int
    remaining_cents: int
    overspent_cents: int


@dataclass
class MonthlySummary:
    month: int
    year: int
    budgeted_cents: int
    realized_cents: int
    remaining_cents: int
    usage_percent: float


def validate_splits(amount_cents: int, splits: Sequence[SplitIn]) -> None:
    if not splits:
        return
    total = sum(split.amount_cents for split in splits)
    if abs(total - amount_cents) >= SPLIT_TOLERANCE_CENTS:
        raise SplitValidationError(
            f"Split total {total / 100:.2f} does not match amount {amount_cents / 100:.2f}"
        )


def clean_split_name(name: str) -> str:
    """Drop a trailing ``": 123,45"`` left over from inline split specs."""
    return _SPLIT_AMOUNT_SUFFIX.sub("", name or "").strip()


def effective_month(txn: Transaction) -> tuple[int, int]:
    """``(year, month0)`` a transaction counts towards.

    Card purchases count in their invoice month, everything else in the month
    of its date. ``month0`` is 0-11 like :class:`models.Budget`.
    """
    if txn.invoice_month:
        year, month = parse_invoice_month(txn.invoice_month)
        return year, month - 1
    return txn.date.year, txn.date.month - 1


def planned_cents(
    budgets: Iterable[Budget], category_id: str, month: int, year: int
) -> int:
    for budget in budgets:
        if (
            budget.category_id == category_id
            and budget.month == month
            and budget.year == year
        ):
            return budget.amount_cents
    return 0


def realized_cents(
    transactions: Iterable[Transaction], category_name: str, month: int, year: int
) -> int:
    total = 0
    for txn in transactions:
        if txn.type != TransactionType.expense:
            continue
        if effective_month(txn) != (year, month):
            continue
        if txn.splits:
            total += sum(
                split.amount_cents
                for split in txn.splits
                if clean_split_name(split.category_name) == category_name
            )
        elif txn.category == category_name:
            total += txn.amount_cents
    return total


def remaining_cents(planned: int, realized: int) -> int:
    return max(0, planned - realized)


def category_progress(
    category: Category,
    budgets: Sequence[Budget],
    transactions: Sequence[Transaction],
    month: int,
    year: int,
) -> CategoryProgress:
    planned = planned_cents(budgets, category.id, month, year)
    realized = realized_cents(transactions, category.name, month, year)
    return CategoryProgress(
        category_id=category.id,
        category_name=category.name,
        planned_cents=planned,
        realized_cents=realized,
        remaining_cents=remaining_cents(planned, realized),
        overspent_cents=realized - planned if planned > 0 and realized > planned else 0,
    )


def plan_reallocation(
    budgets: Sequence[Budget],
    adjustments: Iterable[BudgetAdjustmentIn],
    month: int,
    year: int,
) -> list[BudgetIn]:
    """Budget rows to upsert when moving money into other categories.

    Each target ends at its current planned amount plus ``delta_cents``.
    Nothing checks the deltas against what the source category has left.
    """
    return [
        BudgetIn(
            category_id=adjustment.category_id,
            month=month,
            year=year,
            amount_cents=planned_cents(budgets, adjustment.category_id, month, year)
            + adjustment.delta_cents,
        )
        for adjustment in adjustments
    ]


def monthly_summary(
    budgets: Iterable[Budget],
    transactions: Iterable[Transaction],
    month: int,
    year: int,
) -> MonthlySummary:
    budgeted = sum(
        budget.amount_cents
        for budget in budgets
        if budget.month == month and budget.year == year
    )
    realized = sum(
        txn.amount_cents
        for txn in transactions
        if txn.type == TransactionType.expense and effective_month(txn) == (year, month)
    )
    if budgeted > 0:
        usage = min(realized / budgeted * 100, 100.0)
    else:
        usage = 100.0 if realized > 0 else 0.0
    return MonthlySummary(
        month=month,
        year=year,
        budgeted_cents=budgeted,
        realized_cents=realized,
        remaining_cents=budgeted - realized,
        usage_percent=round(usage, 2),
    )


def global_available_cents(
    budgets: Iterable[Budget], transactions: Iterable[Transaction]
) -> int:
    income = sum(
        txn.amount_cents for txn in transactions if txn.type == TransactionType.income
    )
    return income - sum(budget.amount_cents for budget in budgets)


def yearly_budget_rows(category_id: str, year: int, amount_cents: int) -> list[BudgetIn]:
    return [
        BudgetIn(category_id=category_id, month=month, year=year, amount_cents=amount_cents)
        for month in range(12)
    ]


def year_to_date_average_cents(
    category: Category, transactions: Iterable[Transaction], today: date
) -> int:
    spent = sum(
        txn.amount_cents
        for txn in transactions
        if txn.category == category.name
        and txn.type == TransactionType.expense
        and txn.date.year == today.year
    )
    average = Decimal(spent) / Decimal(today.month)
    return int(average.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def generate_yearly_budgets(
    categories: Iterable[Category],
    transactions: Sequence[Transaction],
    target_year: int,
    today: date,
    amounts: Optional[Mapping[str, int]] = None,
) -> list[BudgetIn]:
    """Twelve budget rows per expense category for ``target_year``.

    Amounts default to the category's average monthly spend of the current
    year; ``amounts`` maps category ids to explicit values and restricts the
    run to those categories. Categories ending at zero are skipped.
    """
    rows: list[BudgetIn] = []
    for category in categories:
        if category.type != TransactionType.expense or not category.impacts_budget:
            continue
        if amounts is not None:
            if category.id not in amounts:
                continue
            amount = amounts[category.id]
        else:
            amount = year_to_date_average_cents(category, transactions, today)
        if amount > 0:
            rows.extend(yearly_budget_rows(category.id, target_year, amount))
    return rows
