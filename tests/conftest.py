import json
from datetime import date
from decimal import Decimal

import httpx
import pytest

from backend import SealingBackend
from catalog import InMemoryCatalog
from dashboard import Dashboard
from database import SessionStore
from models import Client, Product, RegistryEntry
from registry import InMemoryRegistry
from session_gate import SessionGate

BASE_URL = "https://api.test/sionver"

CLIENTS = [
    Client(id="1", name="Empresa ABC S.L.", nif="B12345678"),
    Client(id="2", name="Consultora XYZ S.A.", nif="A87654321"),
    Client(id="3", name="Tecnologías 2000 S.L.", nif="B11111111"),
]

PRODUCTS = [
    Product(id="1", name="Servicio de consultoría", price=Decimal("150")),
    Product(id="2", name="Desarrollo web", price=Decimal("500")),
    Product(id="3", name="Mantenimiento mensual", price=Decimal("200")),
]

REGISTRY_ROWS = [
    {"id": "1", "fecha": "2024-01-15", "tipo": "Emitida", "numero": "FAC-2024-001",
     "cliente": "Empresa ABC S.L.", "total": 1210.00, "estado": "Registrada"},
    {"id": "2", "fecha": "2024-01-18", "tipo": "Subida", "numero": "EXT-2024-015",
     "cliente": "Proveedor XYZ", "total": 543.21, "estado": "Registrada"},
    {"id": "3", "fecha": "2024-01-20", "tipo": "Emitida", "numero": "FAC-2024-002",
     "cliente": "Consultora Tech S.A.", "total": 3025.50, "estado": "Pendiente"},
    {"id": "4", "fecha": "2024-01-22", "tipo": "Emitida", "numero": "FAC-2024-003",
     "cliente": "Industrias Norte", "total": 890.00, "estado": "Registrada"},
    {"id": "5", "fecha": "2024-01-25", "tipo": "Subida", "numero": "EXT-2024-022",
     "cliente": "Suministros Globales", "total": 1567.80, "estado": "Error"},
]


class FakeApi:
    """Stands in for the sealing API behind an httpx.MockTransport"""

    def __init__(self):
        self.requests = []
        self.routes = {}

    def reply(self, method, endpoint, status=200, json=None):
        self.routes[(method, "/sionver" + endpoint)] = (status, json)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        status, body = self.routes.get((request.method, request.url.path), (404, {"message": "Not found"}))
        return httpx.Response(status, json=body)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def json_body(self, index=-1):
        return json.loads(self.requests[index].content)


@pytest.fixture
def store(tmp_path):
    return SessionStore(str(tmp_path / "session.db"))


@pytest.fixture
def gate(store):
    gate = SessionGate(store)
    gate.login("ana@example.com", "tok-123")
    return gate


@pytest.fixture
def api():
    return FakeApi()


@pytest.fixture
def backend(gate, api):
    return SealingBackend(gate, base_url=BASE_URL, transport=api.transport())


@pytest.fixture
def catalog():
    return InMemoryCatalog(CLIENTS, PRODUCTS)


@pytest.fixture
def registry_entries():
    return [RegistryEntry.model_validate(row) for row in REGISTRY_ROWS]


@pytest.fixture
def dashboard(gate, backend, catalog, registry_entries):
    return Dashboard(gate, backend, catalog, InMemoryRegistry(registry_entries), page_size=10)


def make_entry(entry_id, day, number="FAC-X", name="Cliente"):
    return RegistryEntry(
        id=str(entry_id), date=day, kind="Emitida", number=number,
        counterparty_name=name, total_amount=Decimal("100.00"), status="Registrada",
    )


@pytest.fixture
def many_entries():
    return [make_entry(i, date(2024, 2, 1 + (i % 28)), number=f"FAC-{i:03d}") for i in range(25)]
