# completeseries/cli.py
from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

from .config import AppConfig, load_dotenv, load_settings_file
from .core.errors import CompleteSeriesError
from .core.merge import hidden_count_in_series
from .core.missing import find_missing_books, owned_asins
from .core.models import HiddenItem
from .integrations.http_client import RateLimitedFetcher
from .io.utils import atomic_write_json
from .service import LibraryService
from .sync import HiddenItemsSync


LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}

try:
    from rich.console import Console
    from rich.logging import RichHandler
except Exception:
    Console = None
    RichHandler = None


def _setup_logging(level_name: str) -> None:
    level = LOG_LEVELS.get(level_name.lower(), logging.INFO)
    if RichHandler:
        logging.basicConfig(
            level=level,
            format="%(message)s",
            datefmt="[%X]",
            handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)],
        )
    else:
        logging.basicConfig(
            level=level,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
            stream=sys.stderr,
        )


def _emit(result: object) -> int:
    print(json.dumps(result, ensure_ascii=False, indent=2))
    if isinstance(result, dict) and result.get("status") == "error":
        return 1
    return 0


def _read_json(path: str) -> object:
    try:
        return json.loads(Path(path).read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise SystemExit(f"File not found: {path}") from e
    except ValueError as e:
        raise SystemExit(f"Invalid JSON in {path}: {e}") from e


def _cmd_sync(service: LibraryService, path: str) -> int:
    raw = _read_json(path) if Path(path).exists() else []
    if not isinstance(raw, list):
        raise SystemExit(f"{path} must hold a JSON array of hidden items")
    local = [HiddenItem.from_dict(d) for d in raw if isinstance(d, dict)]
    merged = HiddenItemsSync(service).sync(local)
    atomic_write_json([i.to_dict() for i in merged], path)
    return _emit({"status": "success", "local": len(local), "merged": len(merged)})


def _cmd_missing(service: LibraryService, asin: str, region: Optional[str]) -> int:
    data = service.store.load_or_default()
    snapshot = service.lookup_series_books(asin, region)
    hidden = [HiddenItem.from_dict(d) for d in data["hiddenItems"] if isinstance(d, dict)]
    missing = find_missing_books(
        snapshot.books,
        owned_asins(data["existingBookMetadata"]),
        hidden,
        series_name=snapshot.series_name,
    )
    return _emit({
        "status": "success",
        "seriesAsin": snapshot.series_asin,
        "seriesName": snapshot.series_name,
        "region": snapshot.region,
        "seriesBookCount": len(snapshot.books),
        "hiddenInSeries": hidden_count_in_series(hidden, snapshot.series_name),
        "missing": [b.to_dict() for b in missing],
    })


def _cmd_hide(service: LibraryService, args: argparse.Namespace, unhide: bool = False) -> int:
    item = HiddenItem(type=args.type, series=args.series, title=args.title, asin=args.asin or None)
    sync = HiddenItemsSync(service)
    if not sync.status().configured:
        return _emit({"status": "not_configured", "message": "Server not configured. Nothing to update."})
    items = sync.unhide(item) if unhide else sync.hide(item)
    if items is None:
        return _emit({"status": "error", "message": "Could not update hidden items on the server"})
    return _emit({"status": "success", "hiddenItems": [i.to_dict() for i in items]})


def _add_item_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("type", choices=("series", "book"), help="What to (un)hide")
    p.add_argument("series", help="Series name")
    p.add_argument("--title", default="", help="Book title (books only)")
    p.add_argument("--asin", default=None, help="Book ASIN; identifies the item when given")


def main(argv: Optional[List[str]] = None) -> int:
    logger = logging.getLogger(__name__)
    ap = argparse.ArgumentParser(
        prog="completeseries",
        description="Find the books missing from your AudiobookShelf series",
    )
    ap.add_argument("--settings", default=None, help="YAML settings file (ABS_URL, ABS_USERNAME, ...)")
    ap.add_argument("--env-file", default=".env", help=".env file to load before reading the environment")
    ap.add_argument("--data-file", default=None, help="Override DATA_FILE (persisted JSON document)")
    ap.add_argument("--max-retries", type=int, default=3, help="Retries after HTTP 429 before giving up")
    ap.add_argument("--log-level", default="info", help="Log level: debug, info, warning, error")

    sub = ap.add_subparsers(dest="command", required=True)
    sub.add_parser("status", help="Show configuration and refresh status")
    sub.add_parser("show", help="Print the persisted library snapshot")
    sub.add_parser("refresh", help="Re-fetch all series from AudiobookShelf")

    p_scrape = sub.add_parser("scrape", help="Scrape an Audible series page")
    p_scrape.add_argument("asin", help="Series ASIN")
    p_scrape.add_argument("--region", default=None, help="Audible region code (us, uk, de, ...)")

    p_save = sub.add_parser("save-hidden", help="Save hiddenItems/existing* lists from a JSON file")
    p_save.add_argument("file", help="JSON object with any of hiddenItems, existingFirstBookASINs, existingBookMetadata")

    p_sync = sub.add_parser("sync", help="Merge a local hidden-items JSON file with the server copy")
    p_sync.add_argument("file", help="Local hidden items (JSON array); rewritten with the merged result")

    p_hide = sub.add_parser("hide", help="Hide a series or book on the server")
    _add_item_args(p_hide)
    p_unhide = sub.add_parser("unhide", help="Unhide a series or book on the server")
    _add_item_args(p_unhide)

    p_missing = sub.add_parser("missing", help="List books of a series missing from the library")
    p_missing.add_argument("asin", help="Series ASIN")
    p_missing.add_argument("--region", default=None, help="Audible region code")

    args = ap.parse_args(argv)
    _setup_logging(args.log_level)

    used = load_dotenv(args.env_file)
    if used:
        logger.info("loaded .env: %s", used)
    if args.settings:
        try:
            load_settings_file(args.settings)
        except CompleteSeriesError as e:
            raise SystemExit(str(e)) from e

    config = AppConfig.from_env()
    if args.data_file:
        config = replace(config, data_file=args.data_file)
    service = LibraryService(config, fetcher=RateLimitedFetcher(max_retries=args.max_retries))

    try:
        if args.command == "status":
            return _emit(service.get_configuration_status())
        if args.command == "show":
            return _emit(service.get_persisted_snapshot())
        if args.command == "refresh":
            return _emit(service.trigger_refresh())
        if args.command == "scrape":
            return _emit(service.scrape_series_fallback(args.asin, args.region))
        if args.command == "save-hidden":
            return _emit(service.save_hidden_state(_read_json(args.file)))
        if args.command == "sync":
            return _cmd_sync(service, args.file)
        if args.command == "hide":
            return _cmd_hide(service, args)
        if args.command == "unhide":
            return _cmd_hide(service, args, unhide=True)
        if args.command == "missing":
            return _cmd_missing(service, args.asin, args.region)
    except CompleteSeriesError as e:
        logger.error("%s failed: %s", args.command, e)
        return _emit({"status": "error", "message": str(e)})
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
