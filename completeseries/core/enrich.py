from __future__ import annotations

import re
from dataclasses import replace
from typing import List, Sequence, Tuple

from completeseries.core.models import BookRecord
from completeseries.core.pages import Page, as_soup, find_asin_element

_PLACEHOLDER_RE = re.compile(r"Book\s+\d+")
_RELEASE_DATE_RE = re.compile(r"Release date[:\s]*([A-Za-z]+\s+\d{1,2},?\s+\d{4})", re.I)
_HEADING_CLASS_RE = re.compile(r"\bbc-heading\b")
_SERIES_LABEL_RE = re.compile(r"^Series:\s*", re.I)
_AUDIOBOOK_SUFFIX_RE = re.compile(r"\s*Audiobooks?\s*$", re.I)
_LEADING_THE_RE = re.compile(r"^The\s+", re.I)
_FIRST_INT_RE = re.compile(r"(\d+)")


def is_placeholder_title(title: str) -> bool:
    return bool(_PLACEHOLDER_RE.fullmatch((title or "").strip()))


def backfill_details(records: Sequence[BookRecord], page: Page) -> List[BookRecord]:
    """
    Second pass over the page for every extracted record, looking only inside
    the element that carries the record's ASIN:
      - a "Book N" placeholder title takes the bc-heading text when that text
        is longer
      - records without a release date pick up "Release date: Mon D, YYYY"
    """
    soup = as_soup(page)
    out = []
    for rec in records:
        scope = find_asin_element(soup, rec.asin)
        if scope is None:
            out.append(rec)
            continue
        if is_placeholder_title(rec.title):
            heading = scope.find(class_=_HEADING_CLASS_RE)
            text = heading.get_text(" ", strip=True) if heading is not None else ""
            if len(text) > len(rec.title):
                rec = replace(rec, title=text)
        if not rec.release_date:
            m = _RELEASE_DATE_RE.search(scope.get_text(" ", strip=True))
            if m:
                rec = replace(rec, release_date=m.group(1))
        out.append(rec)
    return out


def resolve_series_name(page: Page) -> str:
    title = as_soup(page).title
    if title is None:
        return ""
    name = title.get_text().split("|", 1)[0].strip()
    name = _SERIES_LABEL_RE.sub("", name)
    name = _AUDIOBOOK_SUFFIX_RE.sub("", name)
    return name.strip()


def filter_by_series_name(records: Sequence[BookRecord], series_name: str) -> List[BookRecord]:
    records = list(records)
    base = (series_name or "").strip()
    if not base:
        return records
    flexible = _LEADING_THE_RE.sub("", base)
    base_l = base.lower()
    flexible_l = flexible.lower()
    kept = [
        r for r in records
        if base_l in (r.title or "").lower() or flexible_l in (r.title or "").lower()
    ]
    # Never filter down to nothing; a strict miss usually means an odd page title.
    return kept if kept else records


def book_number_key(record: BookRecord) -> int:
    m = _FIRST_INT_RE.search(record.title or "")
    return int(m.group(1)) if m else 0


def sort_by_book_number(records: Sequence[BookRecord]) -> List[BookRecord]:
    return sorted(records, key=book_number_key)


def enrich_records(records: Sequence[BookRecord], page: Page) -> Tuple[str, List[BookRecord]]:
    """Backfill, resolve the series name, filter to the series, and sort."""
    soup = as_soup(page)
    detailed = backfill_details(records, soup)
    series_name = resolve_series_name(soup)
    kept = filter_by_series_name(detailed, series_name)
    ordered = sort_by_book_number(kept)
    if series_name:
        ordered = [replace(r, series_name=series_name) for r in ordered]
    return series_name, ordered
