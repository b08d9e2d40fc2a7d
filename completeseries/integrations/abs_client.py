from __future__ import annotations

import logging
from typing import Dict, Iterator, List, Optional

from completeseries.core.errors import AuthenticationFailed, MalformedData, RequestFailed
from .http_client import RateLimitedFetcher

logger = logging.getLogger(__name__)

SERIES_PAGE_SIZE = 100
LOGIN_TIMEOUT = (10.0, 30.0)
LIST_TIMEOUT = (10.0, 30.0)
SERIES_TIMEOUT = (10.0, 60.0)


class AbsClient:
    """Minimal AudiobookShelf API client: login, libraries, paginated series."""

    def __init__(self, base_url: str, fetcher: RateLimitedFetcher, token: Optional[str] = None) -> None:
        self.base_url = (base_url or "").rstrip("/")
        self.fetcher = fetcher
        self.token = token

    def _auth_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/json",
        }

    def login(self, username: str, password: str) -> str:
        url = f"{self.base_url}/login"
        try:
            data = self.fetcher.post_json(
                url,
                {"username": username, "password": password},
                {"Content-Type": "application/json", "Accept": "application/json"},
                timeout=LOGIN_TIMEOUT,
            )
        except RequestFailed as e:
            raise AuthenticationFailed(f"Authentication failed: HTTP {e.status_code} - {e.body}") from e
        except MalformedData as e:
            raise AuthenticationFailed(f"Authentication failed: {e}") from e

        token = None
        if isinstance(data, dict) and isinstance(data.get("user"), dict):
            token = data["user"].get("token")
        if not token:
            raise AuthenticationFailed("No auth token in login response")
        self.token = str(token)
        logger.info("abs login ok | server=%s", self.base_url)
        return self.token

    def list_libraries(self) -> List[Dict]:
        url = f"{self.base_url}/api/libraries"
        try:
            data = self.fetcher.get_json(url, self._auth_headers(), timeout=LIST_TIMEOUT)
        except RequestFailed as e:
            raise RequestFailed(url, e.status_code, f"Failed to fetch libraries: HTTP {e.status_code}") from e
        if not isinstance(data, dict):
            raise MalformedData("unexpected libraries payload")
        libs = data.get("libraries") or []
        return [lib for lib in libs if isinstance(lib, dict)]

    def book_libraries(self) -> List[Dict]:
        return [
            lib for lib in self.list_libraries()
            if lib.get("mediaType") == "book" and lib.get("id")
        ]

    def series_page(self, library_id: str, page: int, limit: int = SERIES_PAGE_SIZE) -> Dict:
        url = f"{self.base_url}/api/libraries/{library_id}/series?limit={limit}&page={page}"
        try:
            data = self.fetcher.get_json(url, self._auth_headers(), timeout=SERIES_TIMEOUT)
        except RequestFailed as e:
            raise RequestFailed(url, e.status_code, f"Failed to fetch series page {page}: HTTP {e.status_code}") from e
        if not isinstance(data, dict):
            raise MalformedData(f"unexpected series payload (library={library_id} page={page})")
        return data

    def iter_series(self, library_id: str, limit: int = SERIES_PAGE_SIZE) -> Iterator[Dict]:
        """
        Yield every series of one library.

        Pages are requested from 0 until the number of fetched results reaches
        the first `total` the server reports. Without a total, one page is all
        there is. An empty page stops the loop early.
        """
        page = 0
        total: Optional[int] = None
        fetched = 0
        while True:
            data = self.series_page(library_id, page, limit)
            results = data.get("results") or []
            if total is None and data.get("total") is not None:
                total = int(data["total"])
            for series in results:
                if isinstance(series, dict):
                    yield series
            fetched += len(results)
            page += 1
            logger.debug(
                "series page | library=%s | page=%s | fetched=%s | total=%s",
                library_id,
                page,
                fetched,
                total,
            )
            if total is None or fetched >= total:
                return
            if not results:
                logger.warning("empty series page before total | library=%s | fetched=%s/%s", library_id, fetched, total)
                return
