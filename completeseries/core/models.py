from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple, Union

SOURCE_JSON_LD = "json_ld"
SOURCE_LI = "li_parse"
SOURCE_LINK = "link_parse"
SOURCE_ARIA = "aria_parse"
SOURCE_BOOK_NUM = "book_num_parse"
SOURCE_AUDIMETA = "audimeta"

REFRESH_IDLE = "idle"
REFRESH_RUNNING = "refreshing"
REFRESH_COMPLETE = "complete"
REFRESH_ERROR = "error"
REFRESH_STATES = (REFRESH_IDLE, REFRESH_RUNNING, REFRESH_COMPLETE, REFRESH_ERROR)

NO_POSITION = "N/A"


@dataclass(frozen=True)
class BookRecord:
    asin: str
    title: str
    source: str
    subtitle: Optional[str] = None
    series_name: str = ""
    series_position: str = NO_POSITION
    release_date: Optional[str] = None
    authors: Tuple[str, ...] = ()
    duration: Optional[str] = None
    book_number: Optional[int] = None

    def to_dict(self) -> Dict[str, object]:
        out: Dict[str, object] = {
            "asin": self.asin,
            "title": self.title,
            "seriesName": self.series_name,
            "seriesPosition": self.series_position,
            "source": self.source,
        }
        if self.subtitle is not None:
            out["subtitle"] = self.subtitle
        if self.release_date is not None:
            out["releaseDate"] = self.release_date
        if self.authors:
            out["authors"] = list(self.authors)
        if self.duration is not None:
            out["duration"] = self.duration
        if self.book_number is not None:
            out["bookNumber"] = self.book_number
        return out


@dataclass(frozen=True)
class SeriesSnapshot:
    series_asin: str
    series_name: str
    region: str
    books: Tuple[BookRecord, ...] = ()

    def to_dict(self) -> Dict[str, object]:
        return {
            "seriesAsin": self.series_asin,
            "seriesName": self.series_name,
            "region": self.region,
            "bookCount": len(self.books),
            "books": [b.to_dict() for b in self.books],
            "source": "audible_direct",
        }


# -----------------------------
# Hidden items
# -----------------------------
@dataclass(frozen=True)
class ByAsin:
    asin: str


@dataclass(frozen=True)
class ByTriplet:
    type: str
    series: str
    title: str


HiddenKey = Union[ByAsin, ByTriplet]


@dataclass(frozen=True)
class HiddenItem:
    type: str  # "series" | "book"
    series: str
    title: str
    asin: Optional[str] = None

    @property
    def key(self) -> HiddenKey:
        if self.asin:
            return ByAsin(self.asin)
        return ByTriplet(self.type, self.series, self.title)

    @classmethod
    def from_dict(cls, d: Dict[str, object]) -> "HiddenItem":
        asin = d.get("asin")
        return cls(
            type=str(d.get("type") or ""),
            series=str(d.get("series") or ""),
            title=str(d.get("title") or ""),
            asin=str(asin) if asin else None,
        )

    def to_dict(self) -> Dict[str, str]:
        out = {"type": self.type, "series": self.series, "title": self.title}
        if self.asin is not None:
            out["asin"] = self.asin
        return out


# -----------------------------
# Library refresh output
# -----------------------------
@dataclass(frozen=True)
class SeriesFirstBook:
    series: str
    title: str
    asin: str

    def to_dict(self) -> Dict[str, str]:
        return {"series": self.series, "title": self.title, "asin": self.asin}


@dataclass(frozen=True)
class SeriesBook:
    series: str
    title: str
    asin: str
    subtitle: str
    series_position: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "series": self.series,
            "title": self.title,
            "asin": self.asin,
            "subtitle": self.subtitle,
            "seriesPosition": self.series_position,
        }


@dataclass(frozen=True)
class RefreshResult:
    status: str  # "success" | "error"
    message: str = ""
    series_count: int = 0
    book_count: int = 0
    last_refresh: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == "success"

    def to_dict(self) -> Dict[str, object]:
        if not self.ok:
            return {"status": "error", "message": self.message}
        return {
            "status": "success",
            "message": self.message or "Refresh completed",
            "seriesCount": self.series_count,
            "bookCount": self.book_count,
            "lastRefresh": self.last_refresh,
        }


@dataclass(frozen=True)
class FetchResponse:
    status_code: int
    body: object
    headers: Dict[str, Optional[str]] = field(default_factory=dict)
