from completeseries.core import enrich
from completeseries.core.models import SOURCE_BOOK_NUM, SOURCE_LI, BookRecord


def _rec(asin: str, title: str, **kwargs) -> BookRecord:
    return BookRecord(asin=asin, title=title, source=kwargs.pop("source", SOURCE_LI), **kwargs)


def test_series_name_cleanup() -> None:
    assert enrich.resolve_series_name("<title>Series: Dune Audiobooks | Audible.com</title>") == "Dune"
    assert enrich.resolve_series_name("<TITLE>The Expanse Audiobook</TITLE>") == "The Expanse"
    assert enrich.resolve_series_name("<title>Caf&eacute; Stories | Audible.fr</title>") == "Café Stories"
    assert enrich.resolve_series_name("<html></html>") == ""


def test_filter_uses_flexible_variant() -> None:
    records = [
        _rec("B000000001", "Expanse: Leviathan Wakes"),
        _rec("B000000002", "Unrelated Novel"),
    ]

    kept = enrich.filter_by_series_name(records, "The Expanse")

    assert [r.asin for r in kept] == ["B000000001"]


def test_filter_never_empties() -> None:
    records = [_rec("B000000001", "Leviathan Wakes"), _rec("B000000002", "Caliban's War")]

    assert enrich.filter_by_series_name(records, "The Expanse") == records
    assert enrich.filter_by_series_name(records, "") == records


def test_sort_by_first_integer_is_stable() -> None:
    records = [
        _rec("B000000010", "Saga, Book 10"),
        _rec("B000000002", "Saga, Book 2"),
        _rec("B00000000A", "Saga Prequel"),
        _rec("B00000000B", "Saga Novella"),
        _rec("B000000001", "Saga, Book 1"),
    ]

    out = enrich.sort_by_book_number(records)

    assert [r.title for r in out] == [
        "Saga Prequel",
        "Saga Novella",
        "Saga, Book 1",
        "Saga, Book 2",
        "Saga, Book 10",
    ]


def test_placeholder_title_takes_longer_heading() -> None:
    html = (
        '<div data-asin="B002UZMLXM"><h3 class="bc-heading">The Final Empire</h3></div>'
        '<div data-asin="B002V0QK4C"><h3 class="bc-heading">Wo</h3></div>'
    )
    records = [
        _rec("B002UZMLXM", "Book 1", source=SOURCE_BOOK_NUM, book_number=1),
        _rec("B002V0QK4C", "Book 2", source=SOURCE_BOOK_NUM, book_number=2),
    ]

    out = enrich.backfill_details(records, html)

    assert out[0].title == "The Final Empire"
    assert out[1].title == "Book 2"


def test_real_titles_are_not_placeholders() -> None:
    assert enrich.is_placeholder_title("Book 3")
    assert not enrich.is_placeholder_title("Book 3: The Hero of Ages")
    assert not enrich.is_placeholder_title("The Book 3")


def test_release_date_fills_only_missing() -> None:
    html = '<li data-asin="B002UZMLXM">Release date: Mar 10, 2009</li><li data-asin="B002V0QK4C">Release date: 09-21-09</li>'
    records = [
        _rec("B002UZMLXM", "The Final Empire"),
        _rec("B002V0QK4C", "The Well of Ascension"),
        _rec("B002GYI9C4", "The Hero of Ages", release_date="2009-10-14"),
    ]

    out = enrich.backfill_details(records, html)

    assert [r.release_date for r in out] == ["Mar 10, 2009", None, "2009-10-14"]


def test_enrich_records_stamps_series_name() -> None:
    html = "<title>Mistborn Audiobooks | Audible.com</title>"
    records = [_rec("B000000002", "Mistborn 2"), _rec("B000000001", "Mistborn 1"), _rec("B000000009", "Elantris")]

    name, out = enrich.enrich_records(records, html)

    assert name == "Mistborn"
    assert [r.asin for r in out] == ["B000000001", "B000000002"]
    assert all(r.series_name == "Mistborn" for r in out)


def test_release_date_stays_inside_its_product() -> None:
    html = (
        '<li data-asin="B000000001"><h3 class="bc-heading">Dune</h3></li>'
        '<li data-asin="B000000002"><h3 class="bc-heading">Dune Messiah</h3>'
        "<span>Release date: March 1, 2020</span></li>"
    )
    records = [_rec("B000000001", "Dune"), _rec("B000000002", "Dune Messiah")]

    out = enrich.backfill_details(records, html)

    assert [r.release_date for r in out] == [None, "March 1, 2020"]


def test_placeholder_heading_is_not_borrowed_from_next_product() -> None:
    html = (
        '<ul><li><div data-asin="B000000001"><span>Book 1</span></div></li>'
        '<li><div data-asin="B000000002"><h3 class="bc-heading">Children of Dune</h3></div>'
        '<h3 class="bc-heading">ignored outer heading</h3></li></ul>'
    )
    records = [
        _rec("B000000001", "Book 1", source=SOURCE_BOOK_NUM, book_number=1),
        _rec("B000000002", "Book 2", source=SOURCE_BOOK_NUM, book_number=2),
    ]

    out = enrich.backfill_details(records, html)

    assert out[0].title == "Book 1"
    assert out[1].title == "Children of Dune"
