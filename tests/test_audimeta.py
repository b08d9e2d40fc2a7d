import pytest

from completeseries.core.errors import InvalidInput, MalformedData
from completeseries.core.models import FetchResponse
from completeseries.integrations import audimeta


class FakeFetcher:
    def __init__(self, body, headers=None) -> None:
        self.body = body
        self.headers = headers or {}
        self.urls = []

    def fetch(self, url, method="GET", headers=None, body=None, **kwargs):
        self.urls.append(url)
        return FetchResponse(200, self.body, self.headers)


def test_metadata_urls() -> None:
    assert audimeta.build_metadata_url("book", "B002UZMLXM", "UK") == (
        "https://audimeta.de/book/B002UZMLXM?cache=true&region=uk"
    )
    assert audimeta.build_metadata_url("series", "B0182NWM2C", "", "http://meta.local/") == (
        "http://meta.local/series/B0182NWM2C/books?region=us&cache=true"
    )
    with pytest.raises(InvalidInput):
        audimeta.build_metadata_url("book", " ", "us")
    with pytest.raises(InvalidInput):
        audimeta.build_metadata_url("author", "B002UZMLXM", "us")


def test_series_books_pick_matching_series_entry() -> None:
    payload = [
        {
            "asin": "b002uzmlxm",
            "title": "The Final Empire",
            "releaseDate": "2009-03-10",
            "authors": [{"name": "Brandon Sanderson"}],
            "series": [
                {"asin": "B0OTHER000", "name": "Cosmere", "position": "1"},
                {"asin": "B0182NWM2C", "name": "Mistborn", "position": "1"},
            ],
        },
        {"asin": "B002UZMLXM", "title": "duplicate"},
        {"title": "no asin"},
        {"asin": "B002V0QK4C", "title": "The Well of Ascension", "series": {"name": "Mistborn"}},
    ]
    fetcher = FakeFetcher(payload, {"x-ratelimit-remaining": "42"})
    client = audimeta.MetadataClient(fetcher)

    books = client.fetch_series_books("B0182NWM2C", "us")

    assert [b.asin for b in books] == ["B002UZMLXM", "B002V0QK4C"]
    assert books[0].series_name == "Mistborn"
    assert books[0].series_position == "1"
    assert books[0].authors == ("Brandon Sanderson",)
    assert books[1].series_position == "N/A"
    assert client.last_headers == {"x-ratelimit-remaining": "42"}


def test_series_books_accepts_wrapped_payload() -> None:
    client = audimeta.MetadataClient(FakeFetcher({"books": [{"asin": "B002UZMLXM", "title": "The Final Empire"}]}))
    assert len(client.fetch_series_books("B0182NWM2C")) == 1


def test_series_books_rejects_odd_payload() -> None:
    client = audimeta.MetadataClient(FakeFetcher("<html>"))
    with pytest.raises(MalformedData):
        client.fetch_series_books("B0182NWM2C")


def test_fetch_book() -> None:
    client = audimeta.MetadataClient(FakeFetcher({"asin": "B002UZMLXM", "title": "The Final Empire", "subtitle": ""}))

    book = client.fetch_book("B002UZMLXM", "de")

    assert book.title == "The Final Empire"
    assert book.subtitle is None
    assert client.fetcher.urls == ["https://audimeta.de/book/B002UZMLXM?cache=true&region=de"]
