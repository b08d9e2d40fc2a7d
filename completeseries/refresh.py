# completeseries/refresh.py
from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Tuple

from completeseries.config import AppConfig
from completeseries.core.errors import CompleteSeriesError
from completeseries.core.models import (
    NO_POSITION,
    REFRESH_COMPLETE,
    REFRESH_ERROR,
    REFRESH_RUNNING,
    RefreshResult,
    SeriesBook,
    SeriesFirstBook,
)
from completeseries.core.store import SnapshotStore, utc_now_iso
from completeseries.integrations.abs_client import AbsClient
from completeseries.integrations.http_client import RateLimitedFetcher

logger = logging.getLogger(__name__)

UNKNOWN_SERIES = "Unknown Series"
UNKNOWN_TITLE = "Unknown Title"
UNKNOWN_ASIN = "Unknown ASIN"
NO_SUBTITLE = "No Subtitle"


def series_position(series_name: str) -> str:
    """'Mistborn #3' -> '3'; no '#' -> 'N/A'."""
    if "#" not in (series_name or ""):
        return NO_POSITION
    return series_name.rpartition("#")[2].strip()


def _metadata(book: Dict) -> Dict:
    media = book.get("media") if isinstance(book, dict) else None
    meta = media.get("metadata") if isinstance(media, dict) else None
    return meta if isinstance(meta, dict) else {}


def derive_series_lists(series_items: Iterable[Dict]) -> Tuple[List[SeriesFirstBook], List[SeriesBook]]:
    first_books: List[SeriesFirstBook] = []
    all_books: List[SeriesBook] = []
    for series in series_items:
        name = series.get("name") or UNKNOWN_SERIES
        books = [b for b in (series.get("books") or []) if isinstance(b, dict)]
        if books:
            meta = _metadata(books[0])
            first_books.append(
                SeriesFirstBook(
                    series=name,
                    title=meta.get("title") or UNKNOWN_TITLE,
                    asin=meta.get("asin") or UNKNOWN_ASIN,
                )
            )
        for book in books:
            meta = _metadata(book)
            all_books.append(
                SeriesBook(
                    series=name,
                    title=meta.get("title") or UNKNOWN_TITLE,
                    asin=meta.get("asin") or UNKNOWN_ASIN,
                    subtitle=meta.get("subtitle") or NO_SUBTITLE,
                    series_position=series_position(meta.get("seriesName") or ""),
                )
            )
    return first_books, all_books


class RefreshOrchestrator:
    """
    Full library refresh:
      refreshing -> authenticate -> book libraries -> paginate series -> persist
    Any failure after the status flip records "error" and leaves the stored
    lists as they were.
    """

    def __init__(
        self,
        config: AppConfig,
        store: SnapshotStore,
        fetcher: Optional[RateLimitedFetcher] = None,
        client: Optional[AbsClient] = None,
    ) -> None:
        self.config = config
        self.store = store
        self.client = client or AbsClient(config.abs_url, fetcher or RateLimitedFetcher())

    def _authenticate(self) -> None:
        if self.config.use_api_key:
            self.client.token = self.config.api_key
            return
        self.client.login(self.config.username, self.config.password)

    def _collect(self) -> Tuple[List[SeriesFirstBook], List[SeriesBook]]:
        first_books: List[SeriesFirstBook] = []
        all_books: List[SeriesBook] = []
        libraries = self.client.book_libraries()
        logger.info("refresh | book libraries=%s", len(libraries))
        for library in libraries:
            firsts, books = derive_series_lists(self.client.iter_series(str(library["id"])))
            logger.info(
                "refresh | library=%s | series=%s | books=%s",
                library.get("name") or library["id"],
                len(firsts),
                len(books),
            )
            first_books.extend(firsts)
            all_books.extend(books)
        return first_books, all_books

    def run(self) -> RefreshResult:
        # Raises ConfigurationError before anything is touched.
        self.config.validate()

        self.store.set_refresh_status(REFRESH_RUNNING)
        try:
            self._authenticate()
            first_books, all_books = self._collect()
            stamp = utc_now_iso()

            def _apply(doc: dict) -> None:
                doc["existingFirstBookASINs"] = [b.to_dict() for b in first_books]
                doc["existingBookMetadata"] = [b.to_dict() for b in all_books]
                doc["lastUpdated"] = stamp
                doc["serverConfig"]["lastRefresh"] = stamp
                doc["serverConfig"]["refreshStatus"] = REFRESH_COMPLETE

            self.store.update(_apply, tolerate_malformed=True)
        except Exception as e:
            # Any failure ends the run in "error"; stored lists stay untouched.
            if isinstance(e, CompleteSeriesError):
                logger.error("refresh failed | err=%s", e)
            else:
                logger.exception("refresh failed unexpectedly")
            self.store.set_refresh_status(REFRESH_ERROR)
            return RefreshResult(status="error", message=str(e))

        logger.info("refresh complete | series=%s | books=%s", len(first_books), len(all_books))
        return RefreshResult(
            status="success",
            message="Refresh completed",
            series_count=len(first_books),
            book_count=len(all_books),
            last_refresh=stamp,
        )
