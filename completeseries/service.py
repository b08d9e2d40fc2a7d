"""
Embedding surface for the pipeline.

Every method answers with a dict carrying a `status` discriminator:
"not_configured" (server storage unavailable, use local state), "error"
(the feature broke), or "success".
"""
from __future__ import annotations

import logging
from typing import Dict, Optional

from completeseries.config import AppConfig
from completeseries.core.errors import (
    CompleteSeriesError,
    ConfigurationError,
    FetchFailed,
    InvalidInput,
    MalformedData,
    RateLimitExceeded,
    RequestFailed,
)
from completeseries.core.models import REFRESH_IDLE, SeriesSnapshot
from completeseries.core.regions import normalize_region
from completeseries.core.store import SAVEABLE_KEYS, SnapshotStore
from completeseries.integrations.audimeta import MetadataClient
from completeseries.integrations.http_client import RateLimitedFetcher
from completeseries.refresh import RefreshOrchestrator
from completeseries.scrape.scraper import SeriesPageScraper

logger = logging.getLogger(__name__)

NOT_CONFIGURED = {
    "status": "not_configured",
    "message": "Server not configured. Using client-side storage only.",
}


def _error(message: str, **extra) -> Dict[str, object]:
    out: Dict[str, object] = {"status": "error", "message": message}
    out.update(extra)
    return out


class LibraryService:
    def __init__(
        self,
        config: AppConfig,
        store: Optional[SnapshotStore] = None,
        fetcher: Optional[RateLimitedFetcher] = None,
        *,
        scraper: Optional[SeriesPageScraper] = None,
        metadata: Optional[MetadataClient] = None,
        orchestrator: Optional[RefreshOrchestrator] = None,
    ) -> None:
        self.config = config
        self.store = store or SnapshotStore(config.data_file)
        self.fetcher = fetcher or RateLimitedFetcher()
        self.scraper = scraper or SeriesPageScraper(self.fetcher)
        self.metadata = metadata or MetadataClient(self.fetcher, config.audimeta_base_url)
        self._orchestrator = orchestrator

    @property
    def orchestrator(self) -> RefreshOrchestrator:
        if self._orchestrator is None:
            self._orchestrator = RefreshOrchestrator(self.config, self.store, self.fetcher)
        return self._orchestrator

    def get_configuration_status(self) -> Dict[str, object]:
        last_refresh = None
        refresh_status = REFRESH_IDLE
        if self.store.exists():
            try:
                server_config = self.store.load()["serverConfig"]
                last_refresh = server_config.get("lastRefresh")
                refresh_status = server_config.get("refreshStatus") or REFRESH_IDLE
            except CompleteSeriesError as e:
                logger.warning("config status without refresh info | err=%s", e)
        return {
            "status": "success",
            "configured": self.config.is_configured,
            "serverUrl": self.config.server_origin,
            "authMethod": self.config.auth_method,
            "hasCredentials": self.config.has_credentials,
            "lastRefresh": last_refresh,
            "refreshStatus": refresh_status,
            "audibleRegion": self.config.audible_region,
        }

    def get_persisted_snapshot(self) -> Dict[str, object]:
        if not self.config.is_configured:
            return dict(NOT_CONFIGURED)
        source = "file" if self.store.exists() else "default"
        try:
            data = self.store.load()
        except CompleteSeriesError as e:
            return _error(str(e))
        return {"status": "success", "data": data, "source": source}

    def save_hidden_state(self, payload: object) -> Dict[str, object]:
        if not self.config.is_configured:
            return dict(NOT_CONFIGURED)
        if not isinstance(payload, dict):
            return _error("Invalid JSON input")
        unknown = sorted(k for k in payload if k not in SAVEABLE_KEYS)
        if unknown:
            return _error(f"Unknown keys: {', '.join(unknown)}. Allowed: {', '.join(SAVEABLE_KEYS)}")
        present = [k for k in SAVEABLE_KEYS if k in payload]
        if not present:
            return _error(f"No valid data keys provided. Allowed: {', '.join(SAVEABLE_KEYS)}")
        for key in present:
            if not isinstance(payload[key], list):
                return _error(f"Key '{key}' must be an array")
        try:
            doc = self.store.save_fields({k: payload[k] for k in present})
        except CompleteSeriesError as e:
            return _error(str(e))
        return {
            "status": "success",
            "saved": True,
            "message": "Data saved successfully",
            "lastUpdated": doc["lastUpdated"],
        }

    def trigger_refresh(self) -> Dict[str, object]:
        try:
            result = self.orchestrator.run()
        except ConfigurationError as e:
            return _error(str(e))
        except CompleteSeriesError as e:
            logger.error("refresh could not record its status | err=%s", e)
            return _error(str(e))
        return result.to_dict()

    def scrape_series_fallback(self, asin: str, region: Optional[str] = None) -> Dict[str, object]:
        try:
            snapshot = self.scraper.scrape(asin, region or self.config.audible_region)
        except InvalidInput as e:
            return _error(str(e))
        except FetchFailed as e:
            return _error("Failed to fetch Audible series page", httpCode=e.http_code, detail=e.reason)
        except CompleteSeriesError as e:
            return _error(str(e))
        out: Dict[str, object] = {"status": "success"}
        out.update(snapshot.to_dict())
        return out

    def lookup_series_books(self, asin: str, region: Optional[str] = None) -> SeriesSnapshot:
        """
        Series book list from the metadata API, or from the Audible page when
        the API has nothing (empty result, HTTP error, rate limit exhausted).
        """
        region = normalize_region(region or self.config.audible_region)
        try:
            books = self.metadata.fetch_series_books(asin, region)
        except (RequestFailed, RateLimitExceeded, MalformedData) as e:
            logger.warning("metadata lookup failed, scraping instead | asin=%s | err=%s", asin, e)
            books = []
        if books:
            name = next((b.series_name for b in books if b.series_name), "")
            return SeriesSnapshot(series_asin=asin, series_name=name, region=region, books=tuple(books))
        logger.info("metadata sparse, using series page | asin=%s | region=%s", asin, region)
        return self.scraper.scrape(asin, region)
