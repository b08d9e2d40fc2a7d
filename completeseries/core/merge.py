from __future__ import annotations

from typing import Iterable, List, Sequence, Set

from completeseries.core.models import HiddenItem, HiddenKey


def merge_hidden_items(local: Iterable[HiddenItem], server: Iterable[HiddenItem]) -> List[HiddenItem]:
    """
    Union of both lists by identity key. Server items go first, so the
    server's copy wins when both sides hold the same key; local-only items
    follow in their original order.

    There are no tombstones: an item unhidden locally but still held by the
    server comes back.
    """
    seen: Set[HiddenKey] = set()
    merged: List[HiddenItem] = []
    for item in [*server, *local]:
        key = item.key
        if key in seen:
            continue
        seen.add(key)
        merged.append(item)
    return merged


def has_new_items(merged: Sequence[HiddenItem], server: Sequence[HiddenItem]) -> bool:
    server_keys = {item.key for item in server}
    return any(item.key not in server_keys for item in merged)


def needs_write_back(merged: Sequence[HiddenItem], server: Sequence[HiddenItem]) -> bool:
    return len(merged) != len(server) or has_new_items(merged, server)


# -----------------------------
# Visibility helpers
# -----------------------------
def is_hidden(items: Iterable[HiddenItem], candidate: HiddenItem) -> bool:
    # Series match on name alone; books also need the same ASIN (editions share titles).
    for h in items:
        if h.type != candidate.type or h.series != candidate.series:
            continue
        if candidate.type == "series" or h.asin == candidate.asin:
            return True
    return False


def is_hidden_asin(items: Iterable[HiddenItem], asin: str) -> bool:
    return any(h.asin == asin for h in items if h.asin)


def is_series_hidden(items: Iterable[HiddenItem], series: str) -> bool:
    return any(h.type == "series" and h.series == series for h in items)


def hidden_count_in_series(items: Iterable[HiddenItem], series: str) -> int:
    return sum(1 for h in items if h.type == "book" and h.series == series)


def sort_hidden(items: Iterable[HiddenItem]) -> List[HiddenItem]:
    return sorted(items, key=lambda h: (h.series.lower(), h.title.lower()))


def hide_item(items: Sequence[HiddenItem], item: HiddenItem) -> List[HiddenItem]:
    if is_hidden(items, item):
        return list(items)
    return sort_hidden([*items, item])


def unhide_item(items: Sequence[HiddenItem], item: HiddenItem) -> List[HiddenItem]:
    # By identity key: the stored copy may differ in its other fields.
    return sort_hidden(h for h in items if h.key != item.key)
