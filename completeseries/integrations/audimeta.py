from __future__ import annotations

import logging
from typing import Dict, List, Optional, Tuple
from urllib.parse import quote

from completeseries.core.errors import InvalidInput, MalformedData
from completeseries.core.models import NO_POSITION, SOURCE_AUDIMETA, BookRecord
from completeseries.core.regions import normalize_region
from .http_client import RateLimitedFetcher

AUDIMETA_BASE_URL = "https://audimeta.de"
logger = logging.getLogger(__name__)


def build_metadata_url(kind: str, asin: str, region: str, base_url: str = AUDIMETA_BASE_URL) -> str:
    asin = (asin or "").strip()
    if not asin:
        raise InvalidInput("Missing required field: asin")
    region = normalize_region(region)
    a = quote(asin, safe="")
    base = base_url.rstrip("/")
    if kind == "book":
        return f"{base}/book/{a}?cache=true&region={region}"
    if kind == "series":
        return f"{base}/series/{a}/books?region={region}&cache=true"
    raise InvalidInput(f"unknown metadata type: {kind}")


def _names(val) -> Tuple[str, ...]:
    if not val:
        return ()
    if not isinstance(val, list):
        val = [val]
    out = []
    for v in val:
        name = v.get("name") if isinstance(v, dict) else v
        if name:
            out.append(str(name))
    return tuple(out)


def _series_entry(book: Dict, series_asin: Optional[str]) -> Tuple[str, str]:
    series = book.get("series") or []
    if isinstance(series, dict):
        series = [series]
    pick = None
    for s in series:
        if not isinstance(s, dict):
            continue
        if series_asin and s.get("asin") == series_asin:
            pick = s
            break
        if pick is None:
            pick = s
    if not pick:
        return "", NO_POSITION
    position = str(pick.get("position") or "").strip() or NO_POSITION
    return str(pick.get("name") or ""), position


def parse_metadata_book(book: Dict, series_asin: Optional[str] = None) -> Optional[BookRecord]:
    asin = str(book.get("asin") or "").strip().upper()
    if not asin:
        return None
    series_name, position = _series_entry(book, series_asin)
    return BookRecord(
        asin=asin,
        title=str(book.get("title") or ""),
        subtitle=book.get("subtitle") or None,
        series_name=series_name,
        series_position=position,
        release_date=book.get("releaseDate") or None,
        authors=_names(book.get("authors")),
        source=SOURCE_AUDIMETA,
    )


class MetadataClient:
    """audimeta.de book/series lookups; rate limiting is handled by the fetcher."""

    def __init__(self, fetcher: RateLimitedFetcher, base_url: str = AUDIMETA_BASE_URL) -> None:
        self.fetcher = fetcher
        self.base_url = base_url
        self.last_headers: Dict[str, Optional[str]] = {}

    def _get(self, url: str) -> object:
        resp = self.fetcher.fetch(url, "GET", {"Accept": "application/json"})
        self.last_headers = resp.headers
        logger.debug(
            "audimeta | url=%s | limit=%s | remaining=%s | cached=%s",
            url,
            resp.headers.get("x-ratelimit-limit"),
            resp.headers.get("x-ratelimit-remaining"),
            resp.headers.get("x-cached"),
        )
        return resp.body

    def fetch_book(self, asin: str, region: str = "us") -> Optional[BookRecord]:
        data = self._get(build_metadata_url("book", asin, region, self.base_url))
        if not isinstance(data, dict):
            raise MalformedData(f"unexpected book payload for {asin}")
        return parse_metadata_book(data)

    def fetch_series_books(self, series_asin: str, region: str = "us") -> List[BookRecord]:
        data = self._get(build_metadata_url("series", series_asin, region, self.base_url))
        if isinstance(data, dict):
            data = data.get("books") or data.get("results") or []
        if not isinstance(data, list):
            raise MalformedData(f"unexpected series payload for {series_asin}")
        out: List[BookRecord] = []
        seen = set()
        for item in data:
            if not isinstance(item, dict):
                continue
            rec = parse_metadata_book(item, series_asin)
            if rec is None or rec.asin in seen:
                continue
            seen.add(rec.asin)
            out.append(rec)
        return out
