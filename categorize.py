from typing import Iterable

from models import Transaction

MULTIPLE_CATEGORIES = "Múltiplas Categorias"

# Checked in insertion order, first substring hit wins.
KEYWORD_CATEGORIES: dict[str, str] = {
    "uber": "Transporte",
    "99app": "Transporte",
    "ifood": "Alimentação",
    "netflix": "Assinaturas",
    "spotify": "Assinaturas",
    "amazon": "Compras",
    "mercado livre": "Compras",
    "supermercado": "Alimentação",
    "posto": "Transporte",
    "farmacia": "Saúde",
    "drogaria": "Saúde",
}

MIN_FUZZY_LENGTH = 3


def infer_category(description: str, history: Iterable[Transaction]) -> str:
    """Guess a category for ``description`` from past transactions.

    Rules, first hit wins:

    1. a past transaction with the same description (case-insensitive);
    2. the longest past description contained in the new one, or containing
       it, ignoring strings of ``MIN_FUZZY_LENGTH`` characters or fewer;
    3. the ``KEYWORD_CATEGORIES`` table.

    Returns an empty string when nothing matches.
    """
    history = list(history)
    new_desc = (description or "").lower()

    for txn in history:
        if txn.description.lower() == new_desc:
            return txn.category

    by_length = sorted(history, key=lambda t: len(t.description), reverse=True)
    for txn in by_length:
        old_desc = txn.description.lower()
        if len(old_desc) > MIN_FUZZY_LENGTH and old_desc in new_desc:
            return txn.category
        if len(new_desc) > MIN_FUZZY_LENGTH and new_desc in old_desc:
            return txn.category

    for keyword, category in KEYWORD_CATEGORIES.items():
        if keyword in new_desc:
            return category
    return ""
