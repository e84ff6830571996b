"""Registry query engine: search, date-range filtering and pagination.

``apply`` works on whatever entries it is given, so it behaves the same on
a server-filtered listing, a full unfiltered dump or an in-memory fixture.
"""
import logging
import math
from abc import ABC, abstractmethod
from datetime import date
from typing import Iterable, List, Optional

from pydantic import BaseModel, ConfigDict

from models import RegistryEntry, RegistryQuery

logger = logging.getLogger(__name__)


class RegistryPage(BaseModel):
    model_config = ConfigDict(frozen=True)

    matched: List[RegistryEntry]
    total_count: int
    total_pages: int
    page: int
    entries: List[RegistryEntry]


def matches_search(entry: RegistryEntry, search_text: str) -> bool:
    if not search_text:
        return True
    needle = search_text.lower()
    return needle in entry.number.lower() or needle in entry.counterparty_name.lower()


def matches_dates(entry: RegistryEntry, date_from: Optional[date], date_to: Optional[date]) -> bool:
    if date_from is not None and entry.date < date_from:
        return False
    if date_to is not None and entry.date > date_to:
        return False
    return True


def total_pages_for(count: int, page_size: int) -> int:
    return math.ceil(count / page_size)


def clamp_page(page: int, total_pages: int) -> int:
    return min(max(1, page), max(1, total_pages))


def apply(entries: Iterable[RegistryEntry], query: RegistryQuery) -> RegistryPage:
    """Filter, order newest first and slice out the requested page"""
    matched = [
        entry for entry in entries
        if matches_search(entry, query.search_text)
        and matches_dates(entry, query.date_from, query.date_to)
    ]
    # sorted() is stable, so entries sharing a date keep their relative order
    matched = sorted(matched, key=lambda entry: entry.date, reverse=True)

    start = (query.page - 1) * query.page_size
    return RegistryPage(
        matched=matched,
        total_count=len(matched),
        total_pages=total_pages_for(len(matched), query.page_size),
        page=query.page,
        entries=matched[start:start + query.page_size],
    )


class RegistryPort(ABC):
    @abstractmethod
    async def fetch(self, query: RegistryQuery) -> List[RegistryEntry]:
        ...


class InMemoryRegistry(RegistryPort):
    """Unfiltered fixture data; the engine does all the filtering"""

    def __init__(self, entries: Iterable[RegistryEntry] = ()):
        self.entries = list(entries)

    async def fetch(self, query: RegistryQuery) -> List[RegistryEntry]:
        return list(self.entries)


class HttpRegistry(RegistryPort):
    def __init__(self, backend):
        self.backend = backend

    async def fetch(self, query: RegistryQuery) -> List[RegistryEntry]:
        return await self.backend.list_registry(
            search=query.search_text,
            date_from=query.date_from,
            date_to=query.date_to,
        )


class RegistryBrowser:
    """Current query plus the last fetched listing"""

    def __init__(self, port: RegistryPort, page_size: int = 10):
        self.port = port
        self.query = RegistryQuery(page_size=page_size)
        self.entries: List[RegistryEntry] = []

    async def refresh(self) -> RegistryPage:
        self.entries = await self.port.fetch(self.query)
        logger.info(f"Fetched {len(self.entries)} registry entries")
        return self.current_page()

    def current_page(self) -> RegistryPage:
        return apply(self.entries, self.query)

    async def search(self, search_text: str) -> RegistryPage:
        self.query = self.query.with_search(search_text)
        return await self.refresh()

    async def filter_dates(self, date_from: Optional[date], date_to: Optional[date]) -> RegistryPage:
        self.query = self.query.with_date_range(date_from, date_to)
        return await self.refresh()

    async def clear_filters(self) -> RegistryPage:
        self.query = self.query.cleared()
        return await self.refresh()

    def go_to_page(self, page: int) -> RegistryPage:
        total = self.current_page().total_pages
        self.query = self.query.with_page(clamp_page(page, total))
        return self.current_page()
