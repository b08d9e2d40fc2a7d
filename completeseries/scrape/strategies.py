# completeseries/scrape/strategies.py
"""
Extraction strategies for Audible series pages.

Each strategy is a pure function `page -> List[BookRecord]` over a parsed
page. They are tried in the order of STRATEGIES and the first non-empty result
wins, so a later strategy never sees (or adds to) records found by an earlier
one.
"""
from __future__ import annotations

import html as html_lib
import json
import logging
import re
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from bs4 import BeautifulSoup

from completeseries.core.models import (
    SOURCE_ARIA,
    SOURCE_BOOK_NUM,
    SOURCE_JSON_LD,
    SOURCE_LI,
    SOURCE_LINK,
    BookRecord,
)
from completeseries.core.pages import Page, as_soup, element_asin

logger = logging.getLogger(__name__)

Strategy = Callable[[Page], List[BookRecord]]

_URL_ASIN_RE = re.compile(r"/([A-Z0-9]{10})(?:\?|$)")
_PATH_ASIN_RE = re.compile(r"([A-Z0-9]{10})$")
_UI_VERB_RE = re.compile(r"^(Buy|Add|Listen|Play|Sample|Preview|Reviews?)", re.I)
_BOOK_MARKER_RE = re.compile(r"Book\s+(\d+)", re.I)


def decode_text(text: str) -> str:
    return html_lib.unescape((text or "").strip()).strip()


def _dedupe(pairs: Iterable[BookRecord]) -> List[BookRecord]:
    seen = set()
    out: List[BookRecord] = []
    for rec in pairs:
        if not rec.asin or rec.asin in seen:
            continue
        seen.add(rec.asin)
        out.append(rec)
    return out


# -----------------------------
# 1. JSON-LD
# -----------------------------
def asin_from_url(url: str) -> str:
    m = _URL_ASIN_RE.search(url or "")
    return m.group(1) if m else ""


def _is_audiobook(item: Dict) -> bool:
    typ = item.get("@type")
    if isinstance(typ, list):
        return "Audiobook" in typ
    return typ == "Audiobook"


def _flatten_ld(payload) -> List[Dict]:
    if isinstance(payload, list):
        items: List[Dict] = []
        for p in payload:
            items.extend(_flatten_ld(p))
        return items
    if not isinstance(payload, dict):
        return []
    if isinstance(payload.get("@graph"), list):
        return [i for i in payload["@graph"] if isinstance(i, dict)]
    return [payload]


def _ld_authors(author) -> Tuple[str, ...]:
    if not author:
        return ()
    if not isinstance(author, list):
        author = [author]
    names = []
    for a in author:
        name = a.get("name") if isinstance(a, dict) else a
        if name:
            names.append(str(name))
    return tuple(names)


def _optional_str(val) -> Optional[str]:
    return str(val) if val not in (None, "") else None


def parse_json_ld_book(item: Dict) -> BookRecord:
    return BookRecord(
        asin=asin_from_url(str(item.get("url") or "")),
        title=decode_text(str(item.get("name") or "")),
        authors=_ld_authors(item.get("author")),
        release_date=_optional_str(item.get("datePublished")),
        duration=_optional_str(item.get("duration")),
        source=SOURCE_JSON_LD,
    )


def extract_json_ld(page: Page) -> List[BookRecord]:
    soup = as_soup(page)
    records: List[BookRecord] = []
    for script in soup.find_all("script", type="application/ld+json"):
        block = script.string or script.get_text() or ""
        try:
            payload = json.loads(block)
        except ValueError:
            logger.debug("skipping unparseable ld+json block (%s chars)", len(block))
            continue
        for item in _flatten_ld(payload):
            if _is_audiobook(item):
                records.append(parse_json_ld_book(item))
    return _dedupe(records)


# -----------------------------
# 2. Product list items
# -----------------------------
def extract_list_items(page: Page) -> List[BookRecord]:
    records = []
    for li in as_soup(page).select("li[data-asin]"):
        asin = element_asin(li)
        link = li.select_one("h3 a")
        if not asin or link is None:
            continue
        title = link.get_text(" ", strip=True)
        if title:
            records.append(BookRecord(asin=asin, title=title, source=SOURCE_LI))
    return _dedupe(records)


# -----------------------------
# 3. Product detail links
# -----------------------------
def extract_links(page: Page) -> List[BookRecord]:
    records = []
    for a in as_soup(page).select('a[href^="/pd/"]'):
        path = str(a.get("href") or "")[len("/pd/"):].split("?", 1)[0]
        m = _PATH_ASIN_RE.search(path)
        if not m:
            continue
        title = a.get_text(" ", strip=True)
        # "Buy now", "Listen", "Sample"... are buttons, not titles.
        if not title or _UI_VERB_RE.match(title):
            continue
        records.append(BookRecord(asin=m.group(1), title=title, source=SOURCE_LINK))
    return _dedupe(records)


# -----------------------------
# 4. aria-label
# -----------------------------
def extract_aria_labels(page: Page) -> List[BookRecord]:
    records = []
    for el in as_soup(page).select("[data-asin][aria-label]"):
        asin = element_asin(el)
        title = str(el.get("aria-label") or "").strip()
        if asin and title:
            records.append(BookRecord(asin=asin, title=title, source=SOURCE_ARIA))
    return _dedupe(records)


# -----------------------------
# 5. "Book N" markers
# -----------------------------
def extract_book_numbers(page: Page) -> List[BookRecord]:
    records = []
    for marker in as_soup(page).find_all(string=_BOOK_MARKER_RE):
        if marker.parent is not None and marker.parent.name in ("script", "style", "title"):
            continue
        num = _BOOK_MARKER_RE.search(marker).group(1)
        # The marker belongs to the next product element after it.
        target = marker.find_next(attrs={"data-asin": True})
        asin = element_asin(target) if target is not None else ""
        if not asin:
            continue
        records.append(
            BookRecord(
                asin=asin,
                title=f"Book {num}",
                book_number=int(num),
                source=SOURCE_BOOK_NUM,
            )
        )
    return _dedupe(records)


STRATEGIES: Tuple[Tuple[str, Strategy], ...] = (
    (SOURCE_JSON_LD, extract_json_ld),
    (SOURCE_LI, extract_list_items),
    (SOURCE_LINK, extract_links),
    (SOURCE_ARIA, extract_aria_labels),
    (SOURCE_BOOK_NUM, extract_book_numbers),
)


def run_strategies(page: Page, strategies: Iterable[Tuple[str, Strategy]] = STRATEGIES) -> Tuple[str, List[BookRecord]]:
    """Return (strategy name, records) for the first strategy that finds anything."""
    soup: BeautifulSoup = as_soup(page)
    for name, strategy in strategies:
        records = strategy(soup)
        if records:
            logger.debug("strategy hit | name=%s | records=%s", name, len(records))
            return name, records
        logger.debug("strategy miss | name=%s", name)
    return "", []
