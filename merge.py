from typing import Iterable, Optional, Sequence

from categorize import infer_category
from models import Transaction, new_id
from schemas import ImportCandidate, ImportSelectionIn, ImportStatus, StatementEntry


def _find_by_fitid(fitid: Optional[str], history: Sequence[Transaction]):
    if not fitid:
        return None
    for txn in history:
        if txn.fitid and txn.fitid == fitid:
            return txn
    return None


def _is_same_entry(entry: StatementEntry, txn: Transaction) -> bool:
    return (
        txn.date == entry.date
        and txn.description == entry.description
        and txn.amount_cents == entry.amount_cents
    )


def classify_entry(
    entry: StatementEntry, history: Sequence[Transaction], *, source: str
) -> ImportCandidate:
    """Decide whether a parsed statement line is new, a duplicate or an update.

    A matching fitid wins over the date/description/amount comparison. The
    category comes from the line itself when it carries one, else from
    :func:`categorize.infer_category`.
    """
    category = entry.category or infer_category(entry.description, history)

    existing = _find_by_fitid(entry.fitid, history)
    if existing is not None:
        if existing.amount_cents != entry.amount_cents:
            return ImportCandidate(
                id=existing.id,
                entry=entry,
                status=ImportStatus.update_value,
                source=source,
                category=category,
                existing_id=existing.id,
            )
        return ImportCandidate(
            id=new_id(),
            entry=entry,
            status=ImportStatus.duplicate,
            source=source,
            selected=False,
            category=category,
            existing_id=existing.id,
        )

    for txn in history:
        if _is_same_entry(entry, txn):
            return ImportCandidate(
                id=new_id(),
                entry=entry,
                status=ImportStatus.duplicate,
                source=source,
                selected=False,
                category=category,
                existing_id=txn.id,
            )

    return ImportCandidate(
        id=new_id(),
        entry=entry,
        status=ImportStatus.new,
        source=source,
        category=category,
    )


def classify_entries(
    entries: Iterable[StatementEntry],
    history: Iterable[Transaction],
    *,
    source: str,
) -> list[ImportCandidate]:
    """Classify a whole statement.

    A fitid repeated inside the same statement is only NEW (or UPDATE_VALUE)
    once; later lines carrying it come back as unselected duplicates.
    """
    history = list(history)
    first_by_fitid: dict[str, ImportCandidate] = {}
    candidates: list[ImportCandidate] = []
    for entry in entries:
        first = first_by_fitid.get(entry.fitid) if entry.fitid else None
        if first is not None:
            candidates.append(
                ImportCandidate(
                    id=new_id(),
                    entry=entry,
                    status=ImportStatus.duplicate,
                    source=source,
                    selected=False,
                    category=first.category,
                    existing_id=first.existing_id,
                )
            )
            continue
        candidate = classify_entry(entry, history, source=source)
        if entry.fitid:
            first_by_fitid[entry.fitid] = candidate
        candidates.append(candidate)
    return candidates


def apply_selections(
    candidates: Sequence[ImportCandidate], selections: Iterable[ImportSelectionIn]
) -> list[ImportCandidate]:
    """Return copies of ``candidates`` with the caller's choices applied.

    Candidates without a selection keep their default. Unknown ids raise
    ``ValueError``.
    """
    by_id = {selection.candidate_id: selection for selection in selections}
    known_ids = {candidate.id for candidate in candidates}
    unknown = set(by_id) - known_ids
    if unknown:
        raise ValueError(f"Unknown import candidate(s): {', '.join(sorted(unknown))}")

    result: list[ImportCandidate] = []
    for candidate in candidates:
        selection = by_id.get(candidate.id)
        if selection is None:
            result.append(candidate.model_copy())
            continue
        result.append(
            candidate.model_copy(
                update={
                    "selected": selection.selected,
                    "category": (selection.category or "").strip()
                    or candidate.category,
                    "friendly_description": (selection.friendly_description or "").strip()
                    or candidate.friendly_description,
                }
            )
        )
    return result
