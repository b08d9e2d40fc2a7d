from __future__ import annotations

from typing import Iterable, List, Sequence, Set

from completeseries.core.merge import is_hidden_asin, is_series_hidden
from completeseries.core.models import BookRecord, HiddenItem


def owned_asins(book_metadata: Iterable[dict]) -> Set[str]:
    """ASINs from the persisted existingBookMetadata list."""
    out: Set[str] = set()
    for entry in book_metadata:
        asin = str((entry or {}).get("asin") or "").strip().upper()
        if asin and asin != "UNKNOWN ASIN":
            out.add(asin)
    return out


def find_missing_books(
    books: Sequence[BookRecord],
    owned: Set[str],
    hidden: Sequence[HiddenItem] = (),
    *,
    series_name: str = "",
) -> List[BookRecord]:
    """Books of one series the user neither owns nor has hidden, in series order."""
    if series_name and is_series_hidden(hidden, series_name):
        return []
    return [
        b for b in books
        if b.asin.upper() not in owned and not is_hidden_asin(hidden, b.asin)
    ]
