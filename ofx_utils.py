import logging
import re
from datetime import date
from typing import Optional

from csv_utils import parse_number, to_cents
from errors import ParseError
from installments import detect_installments
from models import TransactionType
from schemas import StatementEntry

logger = logging.getLogger(__name__)

_BLOCK_RE = re.compile(r"<STMTTRN>(.*?)</STMTTRN>", re.DOTALL | re.IGNORECASE)
_INCOME_TRNTYPES = {"CREDIT", "DEP"}
# Card statements list the payment of the previous invoice as a credit.
_CARD_PAYMENT_MARKER = "pagamento recebido"
DEFAULT_DESCRIPTION = "Movimentação OFX"


def _tag(block: str, name: str) -> str:
    match = re.search(rf"<{name}>([^<\r\n]*)", block, re.IGNORECASE)
    return match.group(1).strip() if match else ""


def parse_ofx_date(value: str) -> date:
    digits = value.strip()[:8]
    if len(digits) < 8 or not digits.isdigit():
        raise ParseError(f"Invalid DTPOSTED '{value}'")
    try:
        return date(int(digits[:4]), int(digits[4:6]), int(digits[6:8]))
    except ValueError as exc:
        raise ParseError(f"Invalid DTPOSTED '{value}'") from exc


def _parse_block(block: str) -> Optional[StatementEntry]:
    raw_type = _tag(block, "TRNTYPE").upper()
    raw_amount = _tag(block, "TRNAMT")
    if not raw_amount:
        raise ParseError("Missing TRNAMT")
    try:
        amount = parse_number(raw_amount)
    except ValueError as exc:
        raise ParseError(f"Invalid TRNAMT '{raw_amount}'") from exc
    posted = parse_ofx_date(_tag(block, "DTPOSTED"))
    description = _tag(block, "MEMO") or _tag(block, "NAME") or DEFAULT_DESCRIPTION

    if raw_type in _INCOME_TRNTYPES or amount > 0:
        txn_type = TransactionType.income
    else:
        txn_type = TransactionType.expense

    if (
        txn_type == TransactionType.income
        and _CARD_PAYMENT_MARKER in description.lower()
    ):
        return None

    return StatementEntry(
        date=posted,
        amount_cents=abs(to_cents(amount)),
        type=txn_type,
        description=description,
        fitid=_tag(block, "FITID") or None,
        installment=detect_installments(description),
    )


def parse_ofx(content: str) -> tuple[list[StatementEntry], list[str]]:
    """Read every ``<STMTTRN>`` block of an OFX/QFX export.

    Broken blocks are reported in the returned error list and skipped; the
    rest of the file is still parsed.
    """
    entries: list[StatementEntry] = []
    errors: list[str] = []
    for idx, block in enumerate(_BLOCK_RE.findall(content or ""), start=1):
        try:
            entry = _parse_block(block)
        except ValueError as exc:
            logger.warning(f"ofx_block_skipped: block={idx} reason={exc}")
            errors.append(f"Block {idx}: {exc}")
            continue
        if entry is None:
            logger.debug(f"ofx_block_dropped: block={idx} reason=card_payment")
            continue
        entries.append(entry)
    return entries, errors
