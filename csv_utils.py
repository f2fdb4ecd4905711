import csv
import logging
import re
from datetime import date
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from io import StringIO
from typing import Iterable, Sequence, Union

from budgets import validate_splits
from categorize import MULTIPLE_CATEGORIES
from errors import ParseError, SplitValidationError
from installments import detect_installments
from models import AccountType, CategorySubtype, Transaction, TransactionType
from schemas import AccountIn, CategoryIn, ImportKind, SplitIn, StatementEntry

logger = logging.getLogger(__name__)

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_INCOME_LABELS = {"RECEITA", "INCOME"}
_FIXED_LABELS = {"FIXA", "FIXED"}
_YES_LABELS = {"SIM", "YES", "TRUE"}
_CARD_LABELS = {"CARTAO", "CREDIT_CARD"}

EXPORT_HEADER = ["Data", "Descricao", "Valor", "Tipo", "Categoria"]

ParsedRow = Union[StatementEntry, CategoryIn, AccountIn]


def sanitize_csv_value(value: str) -> str:
    """
    Sanitize CSV values to prevent formula injection by prefixing dangerous patterns with tab.
    """
    if not value or value.strip() == "":
        return ""

    value = value.strip()

    if value.startswith(("=", "+", "-", "@", "\t", "\r")):
        return "\t" + value

    for pattern in (r"^cmd\s*", r"^powershell\s*", r"^http[s]?://"):
        if re.match(pattern, value, re.IGNORECASE):
            return "\t" + value

    return value


def detect_delimiter(content: str) -> str:
    header = (content or "").splitlines()[0] if content else ""
    return ";" if ";" in header else ","


def parse_number(value: str) -> Decimal:
    """Parse ``1.234,56``, ``1234,56`` or ``1234.56``; blank means zero."""
    clean = (value or "").strip().replace("R$", "").replace(" ", "")
    if not clean:
        return Decimal("0")
    if "," in clean and "." in clean:
        clean = clean.replace(".", "").replace(",", ".", 1)
    elif "," in clean:
        clean = clean.replace(",", ".", 1)
    try:
        return Decimal(clean)
    except InvalidOperation as exc:
        raise ValueError(f"Invalid amount '{value}'") from exc


def to_cents(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _match_category(name: str, known: dict[str, str]) -> str:
    clean = name.strip()
    return known.get(clean.lower(), clean)


def parse_split_spec(raw: str, known: dict[str, str]) -> list[SplitIn]:
    """Read ``"Cat1: 100; Cat2: 50"``; parts without a usable amount are ignored."""
    splits: list[SplitIn] = []
    for part in raw.split(";"):
        pieces = part.split(":")
        if len(pieces) < 2:
            continue
        name, amount_raw = pieces[0].strip(), pieces[1].strip()
        if not name or not amount_raw:
            continue
        try:
            amount = parse_number(amount_raw)
        except ValueError:
            logger.debug(f"csv_split_part_ignored: part={part!r}")
            continue
        splits.append(
            SplitIn(
                category_name=_match_category(name, known),
                amount_cents=abs(to_cents(amount)),
            )
        )
    return splits


def _parse_transaction_row(
    cols: list[str], delimiter: str, known: dict[str, str]
) -> StatementEntry:
    if len(cols) < 3:
        raise ParseError("Expected at least date, description and amount")
    raw_date = cols[0].strip()
    if not _DATE_RE.match(raw_date):
        raise ParseError(f"Invalid date '{raw_date}', expected YYYY-MM-DD")
    try:
        posted = date.fromisoformat(raw_date)
    except ValueError as exc:
        raise ParseError(f"Invalid date '{raw_date}'") from exc
    description = cols[1].strip().replace('"', "") or "Sem descrição"
    try:
        amount = parse_number(cols[2])
    except ValueError as exc:
        raise ParseError(str(exc)) from exc
    raw_type = cols[3].strip().upper() if len(cols) > 3 else ""
    txn_type = (
        TransactionType.income if raw_type in _INCOME_LABELS else TransactionType.expense
    )
    # the category may itself contain the delimiter
    raw_category = delimiter.join(cols[4:]).strip().replace('"', "")

    category = None
    splits: list[SplitIn] = []
    if ";" in raw_category and ":" in raw_category:
        splits = parse_split_spec(raw_category, known)
        if len(splits) == 1:
            category = splits[0].category_name
            splits = []
        elif splits:
            category = MULTIPLE_CATEGORIES
    if category is None and raw_category:
        category = _match_category(raw_category, known)

    amount_cents = abs(to_cents(amount))
    try:
        validate_splits(amount_cents, splits)
    except SplitValidationError as exc:
        raise ParseError(str(exc)) from exc

    return StatementEntry(
        date=posted,
        amount_cents=amount_cents,
        type=txn_type,
        description=description,
        category=category,
        splits=splits,
        installment=detect_installments(description),
    )


def _parse_category_row(cols: list[str]) -> CategoryIn:
    def col(idx: int) -> str:
        return cols[idx].strip().upper() if len(cols) > idx else ""

    name = cols[0].strip().replace('"', "") if cols else ""
    if not name:
        raise ParseError("Name is required")
    return CategoryIn(
        name=name,
        type=TransactionType.income if col(1) in _INCOME_LABELS else TransactionType.expense,
        subtype=CategorySubtype.fixed if col(2) in _FIXED_LABELS else CategorySubtype.variable,
        impacts_budget=col(3) in _YES_LABELS,
    )


def _parse_day(value: str):
    value = value.strip()
    if not value:
        return None
    if not value.isdigit():
        raise ParseError(f"Invalid day '{value}'")
    return int(value)


def _parse_account_row(cols: list[str]) -> AccountIn:
    cols = cols + [""] * (5 - len(cols))
    name = cols[0].strip().replace('"', "")
    if not name:
        raise ParseError("Name is required")
    account_type = (
        AccountType.credit_card
        if cols[1].strip().upper() in _CARD_LABELS
        else AccountType.bank
    )
    try:
        balance = to_cents(parse_number(cols[2]))
    except ValueError as exc:
        raise ParseError(str(exc)) from exc
    closing_day = _parse_day(cols[3])
    due_day = _parse_day(cols[4])
    if account_type == AccountType.credit_card and (closing_day is None or due_day is None):
        raise ParseError("Credit cards need closing and due days")
    return AccountIn(
        name=name,
        type=account_type,
        initial_balance_cents=balance,
        closing_day=closing_day,
        due_day=due_day,
    )


def parse_statement_csv(
    content: str,
    kind: ImportKind = ImportKind.transactions,
    known_categories: Iterable[str] = (),
) -> tuple[list[ParsedRow], list[str]]:
    delimiter = detect_delimiter(content)
    known = {name.lower(): name for name in known_categories}
    reader = csv.reader(StringIO(content or ""), delimiter=delimiter)
    next(reader, None)

    rows: list[ParsedRow] = []
    errors: list[str] = []
    for idx, cols in enumerate(reader, start=1):
        if not any(col.strip() for col in cols):
            continue
        try:
            if kind == ImportKind.transactions:
                rows.append(_parse_transaction_row(cols, delimiter, known))
            elif kind == ImportKind.categories:
                rows.append(_parse_category_row(cols))
            else:
                rows.append(_parse_account_row(cols))
        except ValueError as exc:
            logger.warning(f"csv_row_skipped: kind={kind.value} row={idx} reason={exc}")
            errors.append(f"Row {idx}: {exc}")
    return rows, errors


def format_split_spec(transaction: Transaction) -> str:
    return "; ".join(
        f"{split.category_name}: {split.amount_cents / 100:.2f}"
        for split in transaction.splits
    )


def export_transactions(transactions: Sequence[Transaction]) -> str:
    output = StringIO()
    writer = csv.writer(output, delimiter=";")
    writer.writerow(EXPORT_HEADER)
    for txn in transactions:
        category = format_split_spec(txn) if txn.splits else txn.category
        writer.writerow(
            [
                txn.date.isoformat(),
                sanitize_csv_value(txn.description),
                f"{txn.amount_cents / 100:.2f}",
                "RECEITA" if txn.type == TransactionType.income else "DESPESA",
                sanitize_csv_value(category or ""),
            ]
        )
    return output.getvalue()
