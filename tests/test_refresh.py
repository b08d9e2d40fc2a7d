import pytest

from completeseries import refresh as refresh_mod
from completeseries.config import AppConfig
from completeseries.core.errors import ConfigurationError, RequestFailed
from completeseries.core.store import SnapshotStore

ABS = "https://abs.local"


def _config(tmp_path, **overrides) -> AppConfig:
    values = dict(
        abs_url=ABS,
        username="reader",
        password="secret",
        api_key="",
        use_api_key=False,
        data_file=str(tmp_path / "cs.json"),
    )
    values.update(overrides)
    return AppConfig(**values)


def _book(title: str, asin: str, series_name: str, subtitle=None) -> dict:
    return {"media": {"metadata": {"title": title, "asin": asin, "seriesName": series_name, "subtitle": subtitle}}}


class FakeAbsFetcher:
    """Routes get_json/post_json by URL; values may be payloads or exceptions."""

    def __init__(self, routes, on_call=None) -> None:
        self.routes = routes
        self.on_call = on_call
        self.calls = []

    def _answer(self, method, url, headers):
        self.calls.append((method, url, headers))
        if self.on_call:
            self.on_call()
        answer = self.routes[url]
        if isinstance(answer, Exception):
            raise answer
        return answer

    def get_json(self, url, headers=None, **kwargs):
        return self._answer("GET", url, headers)

    def post_json(self, url, body, headers=None, **kwargs):
        return self._answer("POST", url, headers)


def _series_url(page: int, library: str = "lib1") -> str:
    return f"{ABS}/api/libraries/{library}/series?limit=100&page={page}"


def test_series_position() -> None:
    assert refresh_mod.series_position("Mistborn #3") == "3"
    assert refresh_mod.series_position("Mistborn") == "N/A"
    assert refresh_mod.series_position("Stormlight #2 #2.5") == "2.5"
    assert refresh_mod.series_position("") == "N/A"


def test_derive_series_lists_defaults() -> None:
    firsts, books = refresh_mod.derive_series_lists([
        {"name": "Mistborn", "books": [_book("The Final Empire", "B002UZMLXM", "Mistborn #1")]},
        {"books": [{"media": {}}]},
        {"name": "Empty", "books": []},
    ])

    assert [f.to_dict() for f in firsts] == [
        {"series": "Mistborn", "title": "The Final Empire", "asin": "B002UZMLXM"},
        {"series": "Unknown Series", "title": "Unknown Title", "asin": "Unknown ASIN"},
    ]
    assert books[0].to_dict() == {
        "series": "Mistborn",
        "title": "The Final Empire",
        "asin": "B002UZMLXM",
        "subtitle": "No Subtitle",
        "seriesPosition": "1",
    }
    assert books[1].series_position == "N/A"


def test_refresh_success(tmp_path) -> None:
    config = _config(tmp_path)
    store = SnapshotStore(config.data_file)
    seen_status = []
    fetcher = FakeAbsFetcher(
        {
            f"{ABS}/login": {"user": {"token": "tok-123"}},
            f"{ABS}/api/libraries": {"libraries": [
                {"id": "lib1", "name": "Books", "mediaType": "book"},
                {"id": "pods", "name": "Podcasts", "mediaType": "podcast"},
            ]},
            _series_url(0): {"total": 2, "results": [
                {"name": "Mistborn", "books": [
                    _book("The Final Empire", "B002UZMLXM", "Mistborn #1"),
                    _book("The Well of Ascension", "B002V0QK4C", "Mistborn #2", "Mistborn Book 2"),
                ]},
                {"name": "Dune", "books": [_book("Dune", "B002V1OF70", "Dune #1")]},
            ]},
        },
        on_call=lambda: seen_status.append(store.load()["serverConfig"]["refreshStatus"]),
    )

    result = refresh_mod.RefreshOrchestrator(config, store, fetcher).run()

    assert result.ok
    assert result.series_count == 2
    assert result.book_count == 3
    assert set(seen_status) == {"refreshing"}
    assert all("pods" not in url for _, url, _ in fetcher.calls)
    assert fetcher.calls[1][2]["Authorization"] == "Bearer tok-123"

    doc = store.load()
    assert doc["serverConfig"]["refreshStatus"] == "complete"
    assert doc["serverConfig"]["lastRefresh"] == result.last_refresh == doc["lastUpdated"]
    assert [b["asin"] for b in doc["existingFirstBookASINs"]] == ["B002UZMLXM", "B002V1OF70"]
    assert doc["existingBookMetadata"][1]["subtitle"] == "Mistborn Book 2"
    assert doc["existingBookMetadata"][1]["seriesPosition"] == "2"
    assert result.to_dict()["seriesCount"] == 2


def test_pagination_failure_keeps_previous_lists(tmp_path) -> None:
    config = _config(tmp_path)
    store = SnapshotStore(config.data_file)
    previous_first = [{"series": "Old", "title": "Old Book", "asin": "B000000OLD"}]
    previous_all = [{"series": "Old", "title": "Old Book", "asin": "B000000OLD", "subtitle": "No Subtitle",
                     "seriesPosition": "1"}]
    store.save_fields({"existingFirstBookASINs": previous_first, "existingBookMetadata": previous_all})

    page_one = [{"name": f"Series {i}", "books": [_book(f"Book {i}", f"B{i:09d}", f"Series {i} #1")]}
                for i in range(100)]
    fetcher = FakeAbsFetcher({
        f"{ABS}/login": {"user": {"token": "tok"}},
        f"{ABS}/api/libraries": {"libraries": [{"id": "lib1", "mediaType": "book"}]},
        _series_url(0): {"total": 250, "results": page_one},
        _series_url(1): RequestFailed(_series_url(1), 502, "Bad Gateway"),
    })

    result = refresh_mod.RefreshOrchestrator(config, store, fetcher).run()

    assert result.status == "error"
    assert "series page 1" in result.message
    doc = store.load()
    assert doc["existingFirstBookASINs"] == previous_first
    assert doc["existingBookMetadata"] == previous_all
    assert doc["serverConfig"]["refreshStatus"] == "error"
    assert _series_url(2) not in [url for _, url, _ in fetcher.calls]


def test_api_key_skips_login(tmp_path) -> None:
    config = _config(tmp_path, username="", password="", api_key="abs-key", use_api_key=True)
    fetcher = FakeAbsFetcher({
        f"{ABS}/api/libraries": {"libraries": [{"id": "lib1", "mediaType": "book"}]},
        _series_url(0): {"results": [{"name": "Dune", "books": [_book("Dune", "B002V1OF70", "Dune #1")]}]},
    })

    result = refresh_mod.RefreshOrchestrator(config, SnapshotStore(config.data_file), fetcher).run()

    assert result.ok
    assert [url for _, url, _ in fetcher.calls] == [f"{ABS}/api/libraries", _series_url(0)]
    assert fetcher.calls[0][2]["Authorization"] == "Bearer abs-key"


def test_login_without_token_is_error(tmp_path) -> None:
    config = _config(tmp_path)
    store = SnapshotStore(config.data_file)
    fetcher = FakeAbsFetcher({f"{ABS}/login": {"user": {}}})

    result = refresh_mod.RefreshOrchestrator(config, store, fetcher).run()

    assert result.to_dict() == {"status": "error", "message": "No auth token in login response"}
    assert store.load()["serverConfig"]["refreshStatus"] == "error"


def test_missing_configuration_touches_nothing(tmp_path) -> None:
    config = _config(tmp_path, password="")
    store = SnapshotStore(config.data_file)
    fetcher = FakeAbsFetcher({})

    with pytest.raises(ConfigurationError):
        refresh_mod.RefreshOrchestrator(config, store, fetcher).run()

    assert not store.exists()
    assert fetcher.calls == []
