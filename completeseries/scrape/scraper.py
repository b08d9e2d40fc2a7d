"""Audible series page scraper (fallback when the metadata API is incomplete)."""
from __future__ import annotations

import logging
from typing import Optional

from completeseries.core.enrich import enrich_records
from completeseries.core.errors import FetchFailed, InvalidInput, RateLimitExceeded, RequestFailed
from completeseries.core.models import SeriesSnapshot
from completeseries.core.pages import as_soup
from completeseries.core.regions import normalize_region, series_url
from completeseries.integrations.http_client import RateLimitedFetcher
from .strategies import run_strategies

logger = logging.getLogger(__name__)

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}
PAGE_TIMEOUT = (10.0, 30.0)


def parse_series_page(html: str, series_asin: str, region: str) -> SeriesSnapshot:
    """Run the extraction chain and enrichment over an already-fetched page."""
    soup = as_soup(html)
    strategy, records = run_strategies(soup)
    series_name, books = enrich_records(records, soup)
    logger.info(
        "scraped series | asin=%s | region=%s | strategy=%s | books=%s | name=%s",
        series_asin,
        region,
        strategy or "(none)",
        len(books),
        series_name,
    )
    return SeriesSnapshot(
        series_asin=series_asin,
        series_name=series_name,
        region=region,
        books=tuple(books),
    )


class SeriesPageScraper:
    def __init__(self, fetcher: Optional[RateLimitedFetcher] = None) -> None:
        self.fetcher = fetcher or RateLimitedFetcher()

    def fetch_page(self, url: str) -> str:
        # Storefront pages carry no retry hint; a 429 fails the scrape at once.
        try:
            resp = self.fetcher.fetch(
                url,
                "GET",
                BROWSER_HEADERS,
                expect_json=False,
                timeout=PAGE_TIMEOUT,
                max_retries=0,
            )
        except RateLimitExceeded as e:
            raise FetchFailed(url, 429, "rate limited") from e
        except RequestFailed as e:
            raise FetchFailed(url, e.status_code, e.body or None) from e
        if resp.status_code != 200 or not resp.body:
            raise FetchFailed(url, resp.status_code, "empty body" if resp.status_code == 200 else None)
        return str(resp.body)

    def scrape(self, series_asin: str, region: str = "us") -> SeriesSnapshot:
        series_asin = (series_asin or "").strip()
        if not series_asin:
            raise InvalidInput("Missing required field: asin")
        region = normalize_region(region)
        url = series_url(series_asin, region)
        html = self.fetch_page(url)
        return parse_series_page(html, series_asin, region)
