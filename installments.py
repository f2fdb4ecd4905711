import re
from datetime import date
from typing import Optional

from categorize import MULTIPLE_CATEGORIES
from models import Account, Transaction, TransactionSplit, TransactionType, new_id
from periods import add_months, shift_invoice_month
from schemas import ImportCandidate, InstallmentHint, SplitIn, TransactionIn

INSTALLMENT_PATTERNS = (
    # Parc 01/10, Parcela 2-6, x 01/10
    re.compile(r"(?:Parc(?:ela)?\.?|x)\s*(\d{1,2})\s*[/-]\s*(\d{1,2})", re.IGNORECASE),
    # 01 de 10
    re.compile(r"(\d{1,2})\s+de\s+(\d{1,2})", re.IGNORECASE),
    re.compile(r"\b(\d{1,2})/(\d{1,2})\b"),
)


def detect_installments(description: str) -> Optional[InstallmentHint]:
    """Find an ``N/M`` installment marker in a statement description.

    Patterns are tried in order and only the first match of each pattern is
    considered; the first one with ``0 < N <= M <= 99`` wins.
    """
    for pattern in INSTALLMENT_PATTERNS:
        match = pattern.search(description or "")
        if not match:
            continue
        current = int(match.group(1))
        total = int(match.group(2))
        if 0 < current <= total <= 99:
            return InstallmentHint(current=current, total=total)
    return None


def build_splits(splits: list[SplitIn]) -> list[TransactionSplit]:
    return [
        TransactionSplit(
            position=idx,
            category_name=split.category_name,
            amount_cents=split.amount_cents,
        )
        for idx, split in enumerate(splits)
    ]


def expand_candidate(
    candidate: ImportCandidate,
    account: Account,
    invoice_month: Optional[str],
    *,
    today: date,
    default_category: str,
) -> list[Transaction]:
    """Materialize one confirmed statement line into its installments.

    Card destinations place installment ``i`` in the bucket ``i`` months after
    ``invoice_month`` and date every row ``today``; bank destinations move the
    statement date forward one month per installment.
    """
    entry = candidate.entry
    hint = entry.installment
    count = hint.remaining_to_generate if hint else 1
    first_number = hint.current if hint else 1
    total = hint.total if hint else 1
    batch_id = new_id() if count > 1 else None

    description = candidate.friendly_description or entry.description
    if candidate.friendly_description:
        observations = f"{candidate.source}: {entry.description}"
    else:
        observations = f"Importado via {candidate.source}"

    transactions: list[Transaction] = []
    for i in range(count):
        if account.is_credit_card:
            txn_date = today
            txn_invoice = shift_invoice_month(invoice_month, i)
        else:
            txn_date = add_months(entry.date, i)
            txn_invoice = None
        transactions.append(
            Transaction(
                id=candidate.id if i == 0 else new_id(),
                description=description,
                amount_cents=entry.amount_cents,
                date=txn_date,
                type=entry.type,
                category=candidate.category or default_category,
                is_applied=True,
                observations=observations,
                account_id=account.id,
                invoice_month=txn_invoice,
                fitid=entry.fitid if i == 0 else None,
                batch_id=batch_id,
                installment_number=first_number + i if total > 1 else None,
                total_installments=total if total > 1 else None,
                splits=build_splits(entry.splits),
            )
        )
    return transactions


def expand_manual(
    data: TransactionIn,
    account: Optional[Account],
    *,
    today: date,
    default_category: str,
) -> list[Transaction]:
    count = data.installments
    batch_id = new_id() if count > 1 else None
    is_card = account is not None and account.is_credit_card
    # manual card entries are always purchases
    txn_type = TransactionType.expense if is_card else data.type
    base_date = data.date or today
    if data.splits:
        category = MULTIPLE_CATEGORIES
    else:
        category = (data.category or "").strip() or default_category

    transactions: list[Transaction] = []
    for i in range(count):
        if is_card:
            txn_date = today
            txn_invoice = shift_invoice_month(data.invoice_month, i)
            is_applied = True
        else:
            txn_date = add_months(base_date, i)
            txn_invoice = None
            is_applied = data.is_applied if i == 0 else False

        observations = data.observations
        if count > 1:
            suffix = f"Parcela {i + 1}/{count}"
            observations = f"{observations} - {suffix}" if observations else suffix

        transactions.append(
            Transaction(
                id=new_id(),
                description=data.description.strip(),
                amount_cents=data.amount_cents,
                date=txn_date,
                type=txn_type,
                category=category,
                is_applied=is_applied,
                observations=observations,
                account_id=account.id if account else None,
                invoice_month=txn_invoice,
                batch_id=batch_id,
                installment_number=i + 1 if count > 1 else None,
                total_installments=count if count > 1 else None,
                splits=build_splits(data.splits),
            )
        )
    return transactions
