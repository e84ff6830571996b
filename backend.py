"""HTTP client for the remote sealing API.

Every authenticated call reads the bearer token from the injected session
gate before building the request, so a missing credential fails with
``AuthenticationError`` without touching the network.
"""
import logging
from datetime import date
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from config import config
from errors import AuthenticationError, NetworkError
from models import (
    Client, CompanyProfile, InvoiceDraft, Product, RegistryEntry,
    SubmissionResult, UploadedDocument,
)

logger = logging.getLogger(__name__)


def build_invoice_payload(draft: InvoiceDraft) -> Dict[str, Any]:
    """Body for POST /factura/emitir"""
    return {
        "clientRef": draft.client_ref,
        "lines": [
            {
                "description": line.description,
                "quantity": line.quantity,
                "unitPrice": float(line.unit_price),
                "taxRate": line.tax_rate.value,
            }
            for line in draft.lines
        ],
        "notes": draft.notes,
    }


def _items(data: Any, key: str) -> List[Any]:
    # Listing endpoints answer either a bare array or an envelope object
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        return data.get(key) or data.get("items") or []
    return []


class SealingBackend:
    def __init__(self, session, base_url: str = None, timeout: float = None,
                 transport: httpx.AsyncBaseTransport = None):
        self.session = session
        self.base_url = base_url or config.API_BASE_URL
        self.timeout = timeout or config.API_TIMEOUT_SECONDS
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self.transport)

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            message = body.get("message") or body.get("detail")
            if isinstance(message, str) and message:
                return message
        return f"Request failed (HTTP {response.status_code})"

    async def _request(self, method: str, endpoint: str, authenticated: bool = True, **kwargs) -> Any:
        headers = {"Accept": "application/json"}
        if authenticated:
            headers["Authorization"] = f"Bearer {self.session.current.bearer_token()}"

        try:
            async with self._client() as client:
                response = await client.request(method, endpoint, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            logger.error(f"Backend unreachable for {method} {endpoint}: {type(e).__name__}: {e}",
                         extra={'error_type': 'network_error'})
            raise NetworkError("Network error. Check your connection and try again.")

        if not response.is_success:
            message = self._error_message(response)
            logger.warning(f"Backend rejected {method} {endpoint} with {response.status_code}: {message}",
                           extra={'error_type': 'network_error'})
            raise NetworkError(message, status_code=response.status_code)

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            raise NetworkError("Unexpected response from server.", status_code=response.status_code)

    def _parse_items(self, model, data: Any, key: str) -> list:
        try:
            return [model.model_validate(item) for item in _items(data, key)]
        except ValidationError as e:
            logger.error(f"Malformed {key} response: {e}")
            raise NetworkError("Unexpected response from server.")

    def _parse_result(self, data: Any) -> SubmissionResult:
        try:
            return SubmissionResult.model_validate(data)
        except ValidationError as e:
            logger.error(f"Malformed submission response: {e}")
            raise NetworkError("Unexpected response from server.")

    # Auth

    async def login(self, email: str, password: str) -> str:
        data = await self._request("POST", "/auth/login", authenticated=False,
                                   json={"email": email, "password": password})
        token = (data.get("token") or data.get("access_token")) if isinstance(data, dict) else None
        if not token:
            raise AuthenticationError("Login response did not include a token.")
        return token

    async def register(self, email: str, password: str) -> Dict[str, Any]:
        return await self._request("POST", "/auth/register", authenticated=False,
                                   json={"email": email, "password": password})

    # Profile

    async def get_profile(self) -> CompanyProfile:
        data = await self._request("GET", "/user/profile")
        return CompanyProfile.model_validate(data or {})

    async def update_profile(self, profile: CompanyProfile) -> CompanyProfile:
        data = await self._request("POST", "/user/profile", json=profile.model_dump(by_alias=True))
        return CompanyProfile.model_validate(data) if data else profile

    async def get_subscription_status(self) -> Dict[str, Any]:
        return await self._request("GET", "/user/subscription/status")

    # Catalog

    async def get_clients(self) -> List[Client]:
        data = await self._request("GET", "/catalog/clientes")
        return self._parse_items(Client, data, "clientes")

    async def get_products(self) -> List[Product]:
        data = await self._request("GET", "/catalog/productos")
        return self._parse_items(Product, data, "productos")

    # Intake

    async def issue_invoice(self, draft: InvoiceDraft) -> SubmissionResult:
        data = await self._request("POST", "/factura/emitir", json=build_invoice_payload(draft))
        return self._parse_result(data)

    async def upload_pdf(self, document: UploadedDocument) -> SubmissionResult:
        files = {"pdf": (document.filename, document.payload, document.content_type)}
        data = await self._request("POST", "/factura/cargar_pdf", files=files)
        return self._parse_result(data)

    # Registry

    async def list_registry(self, search: str = "", date_from: Optional[date] = None,
                            date_to: Optional[date] = None) -> List[RegistryEntry]:
        params = {}
        if search:
            params["search"] = search
        if date_from:
            params["date_from"] = date_from.isoformat()
        if date_to:
            params["date_to"] = date_to.isoformat()

        data = await self._request("GET", "/registro/listado", params=params)
        return self._parse_items(RegistryEntry, data, "facturas")
