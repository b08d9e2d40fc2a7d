from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

from completeseries.core.errors import CompleteSeriesError
from completeseries.core.merge import hide_item, merge_hidden_items, needs_write_back, unhide_item
from completeseries.core.models import REFRESH_IDLE, HiddenItem
from completeseries.service import LibraryService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ServerStatus:
    configured: bool = False
    server_url: Optional[str] = None
    auth_method: Optional[str] = None
    last_refresh: Optional[str] = None
    refresh_status: str = REFRESH_IDLE
    audible_region: str = "us"

    @classmethod
    def from_dict(cls, d: Dict[str, object]) -> "ServerStatus":
        return cls(
            configured=bool(d.get("configured")),
            server_url=d.get("serverUrl"),
            auth_method=d.get("authMethod"),
            last_refresh=d.get("lastRefresh"),
            refresh_status=str(d.get("refreshStatus") or REFRESH_IDLE),
            audible_region=str(d.get("audibleRegion") or "us"),
        )


class HiddenItemsSync:
    """
    Client side of the hidden-items protocol.

    The server status is fetched once and cached on this object; call
    status(force_refresh=True) or invalidate() to re-read it.
    """

    def __init__(self, service: LibraryService) -> None:
        self.service = service
        self._status: Optional[ServerStatus] = None

    def status(self, force_refresh: bool = False) -> ServerStatus:
        if self._status is not None and not force_refresh:
            return self._status
        try:
            self._status = ServerStatus.from_dict(self.service.get_configuration_status())
        except CompleteSeriesError as e:
            logger.warning("server status check failed | err=%s", e)
            self._status = ServerStatus()
        return self._status

    def invalidate(self) -> None:
        self._status = None

    def _server_items(self) -> Optional[List[HiddenItem]]:
        result = self.service.get_persisted_snapshot()
        if result.get("status") != "success":
            if result.get("status") == "error":
                logger.warning("server data unavailable | msg=%s", result.get("message"))
            return None
        raw = result["data"].get("hiddenItems") or []
        return [HiddenItem.from_dict(d) for d in raw if isinstance(d, dict)]

    def sync(self, local: Sequence[HiddenItem]) -> List[HiddenItem]:
        """
        Merge local hidden items with the server's. The merged list is written
        back when it differs from what the server holds. Best effort: any
        failure returns the local items unchanged.
        """
        local = list(local)
        if not self.status().configured:
            return local
        try:
            server = self._server_items()
            if server is None:
                return local
            merged = merge_hidden_items(local, server)
            if needs_write_back(merged, server):
                logger.info("sync | writing back %s hidden items (server had %s)", len(merged), len(server))
                self.save(merged)
            return merged
        except CompleteSeriesError as e:
            logger.warning("sync failed, using local data | err=%s", e)
            return local

    def save(self, items: Sequence[HiddenItem]) -> bool:
        if not self.status().configured:
            return False
        result = self.service.save_hidden_state({"hiddenItems": [i.to_dict() for i in items]})
        if result.get("status") != "success":
            logger.warning("saving hidden items failed | msg=%s", result.get("message"))
            return False
        return True

    def _rewrite(self, change: Callable[[List[HiddenItem]], List[HiddenItem]]) -> Optional[List[HiddenItem]]:
        # Full-set save: the only way an unhide reaches the server.
        if not self.status().configured:
            return None
        server = self._server_items()
        if server is None:
            return None
        items = change(server)
        if items == server:
            return items
        if not self.save(items):
            return None
        return items

    def hide(self, item: HiddenItem) -> Optional[List[HiddenItem]]:
        """Add `item` to the server's hidden items. None when the server copy could not be updated."""
        return self._rewrite(lambda items: hide_item(items, item))

    def unhide(self, item: HiddenItem) -> Optional[List[HiddenItem]]:
        return self._rewrite(lambda items: unhide_item(items, item))
