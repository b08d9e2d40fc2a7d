from __future__ import annotations

import re
from typing import Optional, Union

from bs4 import BeautifulSoup, Tag

Page = Union[str, BeautifulSoup]

ASIN_RE = re.compile(r"[A-Z0-9]{10}", re.I)


def as_soup(page: Page) -> BeautifulSoup:
    if isinstance(page, BeautifulSoup):
        return page
    return BeautifulSoup(page or "", "html.parser")


def element_asin(el: Tag) -> str:
    """The element's data-asin value, uppercased, or "" when it is not a 10-char ASIN."""
    value = str(el.get("data-asin") or "").strip()
    return value.upper() if ASIN_RE.fullmatch(value) else ""


def _holds_only(el: Tag, asin: str) -> bool:
    found = [element_asin(x) for x in el.find_all(attrs={"data-asin": True})]
    found.append(element_asin(el))
    return all(a in ("", asin) for a in found)


def find_asin_element(soup: BeautifulSoup, asin: str) -> Optional[Tag]:
    """
    The product container for `asin`: the first element carrying it, widened
    to its enclosing <li> when that list item holds no other ASIN.
    """
    for el in soup.find_all(attrs={"data-asin": True}):
        if element_asin(el) != asin:
            continue
        if el.name != "li":
            li = el.find_parent("li")
            if li is not None and _holds_only(li, asin):
                return li
        return el
    return None
