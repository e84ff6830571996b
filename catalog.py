"""Read ports for the client and product catalogs.

The line set and the dashboard only see ``CatalogPort``. ``HttpCatalog`` is
wired in production and keeps one copy of each list per session;
``InMemoryCatalog`` backs tests and offline demos.
"""
import logging
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional

from models import Client, Product

logger = logging.getLogger(__name__)


class CatalogPort(ABC):
    @abstractmethod
    async def list_clients(self) -> List[Client]:
        ...

    @abstractmethod
    async def list_products(self) -> List[Product]:
        ...

    async def find_client(self, client_ref: str) -> Optional[Client]:
        for client in await self.list_clients():
            if client.id == client_ref:
                return client
        return None

    async def find_product(self, product_ref: str) -> Optional[Product]:
        for product in await self.list_products():
            if product.id == product_ref:
                return product
        return None

    def clear(self) -> None:
        """Drop any cached reference data"""


class InMemoryCatalog(CatalogPort):
    def __init__(self, clients: Iterable[Client] = (), products: Iterable[Product] = ()):
        self.clients = list(clients)
        self.products = list(products)

    async def list_clients(self) -> List[Client]:
        return list(self.clients)

    async def list_products(self) -> List[Product]:
        return list(self.products)


class HttpCatalog(CatalogPort):
    """Catalog backed by the sealing API, cached until the session ends"""

    def __init__(self, backend):
        self.backend = backend
        self._clients: Optional[List[Client]] = None
        self._products: Optional[List[Product]] = None

    async def list_clients(self) -> List[Client]:
        if self._clients is None:
            self._clients = await self.backend.get_clients()
            logger.info(f"Loaded {len(self._clients)} clients from catalog")
        return list(self._clients)

    async def list_products(self) -> List[Product]:
        if self._products is None:
            self._products = await self.backend.get_products()
            logger.info(f"Loaded {len(self._products)} products from catalog")
        return list(self._products)

    def clear(self) -> None:
        self._clients = None
        self._products = None
