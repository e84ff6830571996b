import asyncio
from datetime import date

import pytest

import registry
from conftest import make_entry
from models import DocumentKind, DocumentStatus, RegistryEntry, RegistryQuery
from registry import InMemoryRegistry, RegistryBrowser


def numbers(entries):
    return sorted(entry.number for entry in entries)


def test_search_matches_number_case_insensitively(registry_entries):
    result = registry.apply(registry_entries, RegistryQuery(search_text="fac"))

    assert result.total_count == 3
    assert numbers(result.matched) == ["FAC-2024-001", "FAC-2024-002", "FAC-2024-003"]


def test_search_matches_counterparty(registry_entries):
    result = registry.apply(registry_entries, RegistryQuery(search_text="NORTE"))

    assert numbers(result.matched) == ["FAC-2024-003"]


def test_empty_search_matches_everything(registry_entries):
    assert registry.apply(registry_entries, RegistryQuery()).total_count == 5


def test_date_bounds_are_inclusive(registry_entries):
    query = RegistryQuery(date_from=date(2024, 1, 18), date_to=date(2024, 1, 22))

    result = registry.apply(registry_entries, query)

    assert numbers(result.matched) == ["EXT-2024-015", "FAC-2024-002", "FAC-2024-003"]


def test_open_ended_date_bounds(registry_entries):
    after = registry.apply(registry_entries, RegistryQuery(date_from=date(2024, 1, 22)))
    before = registry.apply(registry_entries, RegistryQuery(date_to=date(2024, 1, 15)))

    assert after.total_count == 2
    assert numbers(before.matched) == ["FAC-2024-001"]


def test_search_and_dates_combine(registry_entries):
    query = RegistryQuery(search_text="EXT", date_from=date(2024, 1, 20))

    assert numbers(registry.apply(registry_entries, query).matched) == ["EXT-2024-022"]


def test_inverted_range_matches_nothing(registry_entries):
    query = RegistryQuery(date_from=date(2024, 1, 25), date_to=date(2024, 1, 15))

    assert registry.apply(registry_entries, query).total_count == 0


@pytest.mark.parametrize(
    "query",
    [
        RegistryQuery(),
        RegistryQuery(search_text="fac"),
        RegistryQuery(date_from=date(2024, 1, 18)),
        RegistryQuery(search_text="s.", date_to=date(2024, 1, 22)),
    ],
)
def test_filtering_is_idempotent(registry_entries, query):
    once = registry.apply(registry_entries, query).matched

    assert registry.apply(once, query).matched == once


def test_matches_are_newest_first(registry_entries):
    dates = [entry.date for entry in registry.apply(registry_entries, RegistryQuery()).matched]

    assert dates == sorted(dates, reverse=True)


def test_pagination(many_entries):
    query = RegistryQuery(page_size=10)

    first = registry.apply(many_entries, query)
    last = registry.apply(many_entries, query.with_page(3))
    beyond = registry.apply(many_entries, query.with_page(4))

    assert first.total_pages == 3
    assert len(first.entries) == 10
    assert len(last.entries) == 5
    assert beyond.entries == []
    assert beyond.total_count == 25


def test_no_matches_has_zero_pages(registry_entries):
    result = registry.apply(registry_entries, RegistryQuery(search_text="zzz"))

    assert result.total_pages == 0
    assert result.entries == []
    assert registry.clamp_page(5, result.total_pages) == 1


def test_clamp_page():
    assert registry.clamp_page(0, 3) == 1
    assert registry.clamp_page(2, 3) == 2
    assert registry.clamp_page(9, 3) == 3


def test_changing_filters_resets_page():
    query = RegistryQuery(page=4)

    assert query.with_search("fac").page == 1
    assert query.with_date_range(date(2024, 1, 1), None).page == 1
    assert query.with_page(2).page == 2


def test_clearing_filters():
    query = RegistryQuery(search_text="fac", date_from=date(2024, 1, 1),
                          date_to=date(2024, 2, 1), page=3, page_size=25)

    cleared = query.cleared()

    assert cleared.search_text == ""
    assert cleared.date_from is None
    assert cleared.date_to is None
    assert cleared.page == 1
    assert cleared.page_size == 25


def test_entry_parses_backend_names_and_truncates_timestamps():
    entry = RegistryEntry.model_validate({
        "id": 7, "fecha": "2024-03-01T17:45:00Z", "tipo": "Subida", "numero": "EXT-9",
        "cliente": "Proveedor", "total": 10.5, "estado": "Pendiente",
    })

    assert entry.id == "7"
    assert entry.date == date(2024, 3, 1)
    assert entry.kind is DocumentKind.UPLOADED
    assert entry.status is DocumentStatus.PENDING


def test_browser_search_goes_back_to_first_page(many_entries):
    browser = RegistryBrowser(InMemoryRegistry(many_entries), page_size=10)
    asyncio.run(browser.refresh())
    browser.go_to_page(3)

    page = asyncio.run(browser.search("FAC-01"))

    assert browser.query.page == 1
    assert page.total_count == 10


def test_browser_clamps_requested_page(many_entries):
    browser = RegistryBrowser(InMemoryRegistry(many_entries), page_size=10)
    asyncio.run(browser.refresh())

    page = browser.go_to_page(12)

    assert page.page == 3
    assert len(page.entries) == 5


def test_browser_clear_filters(registry_entries):
    browser = RegistryBrowser(InMemoryRegistry(registry_entries))
    asyncio.run(browser.search("fac"))
    asyncio.run(browser.filter_dates(date(2024, 1, 20), None))

    page = asyncio.run(browser.clear_filters())

    assert page.total_count == 5
    assert browser.query == RegistryQuery(page_size=10)


def test_entries_with_same_date_keep_order():
    day = date(2024, 5, 1)
    entries = [make_entry(i, day, number=f"FAC-{i}") for i in range(3)]

    result = registry.apply(entries, RegistryQuery())

    assert [entry.id for entry in result.matched] == ["0", "1", "2"]
