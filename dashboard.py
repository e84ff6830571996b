"""One user's dashboard workspace.

Wires the session gate, the sealing backend, the catalog and registry ports
and both intake workflows. The HTTP layer talks only to this object.
"""
import logging
from datetime import date
from typing import Any, Dict, Optional

from backend import SealingBackend
from catalog import CatalogPort, HttpCatalog
from config import config
from database import SessionStore
from intake import ComposeIntake, UploadIntake
from models import CompanyProfile
from pdf_generator import render_draft_pdf
from registry import HttpRegistry, RegistryBrowser, RegistryPage, RegistryPort
from session_gate import SessionContext, SessionGate

logger = logging.getLogger(__name__)


class Dashboard:
    def __init__(self, gate: SessionGate, backend: SealingBackend, catalog: CatalogPort,
                 registry_port: RegistryPort, page_size: int = None, max_upload_bytes: int = None):
        self.gate = gate
        self.backend = backend
        self.catalog = catalog
        self.registry_port = registry_port
        self.page_size = page_size or config.REGISTRY_PAGE_SIZE
        self.max_upload_bytes = max_upload_bytes or config.max_file_size_bytes
        self.profile: Optional[CompanyProfile] = None
        self._reset_workspace()

    @classmethod
    def create(cls, store: SessionStore = None, transport=None) -> "Dashboard":
        """Production wiring: HTTP catalog and registry on top of one backend client"""
        gate = SessionGate(store or SessionStore())
        backend = SealingBackend(gate, transport=transport)
        return cls(gate, backend, HttpCatalog(backend), HttpRegistry(backend))

    def _reset_workspace(self) -> None:
        self.compose = ComposeIntake(self.backend, self.catalog)
        self.upload = UploadIntake(self.backend, self.max_upload_bytes)
        self.registry = RegistryBrowser(self.registry_port, self.page_size)

    @property
    def session(self) -> SessionContext:
        return self.gate.current

    # Session lifecycle

    def start(self) -> SessionContext:
        self.gate.store.cleanup_expired_sessions()
        return self.gate.restore()

    async def sign_in(self, email: str, password: str) -> SessionContext:
        token = await self.backend.login(email, password)
        self._drop_session_data()
        return self.gate.login(email, token)

    async def register(self, email: str, password: str) -> Dict[str, Any]:
        return await self.backend.register(email, password)

    def logout(self) -> SessionContext:
        """Tear down the session and everything that belonged to it"""
        context = self.gate.logout()
        self._drop_session_data()
        return context

    def _drop_session_data(self) -> None:
        self.catalog.clear()
        self.profile = None
        self._reset_workspace()

    # Profile

    async def get_profile(self) -> CompanyProfile:
        self.profile = await self.backend.get_profile()
        return self.profile

    async def update_profile(self, profile: CompanyProfile) -> CompanyProfile:
        self.profile = await self.backend.update_profile(profile)
        logger.info("Company profile updated")
        return self.profile

    async def subscription_status(self) -> Dict[str, Any]:
        return await self.backend.get_subscription_status()

    # Draft preview

    async def preview_pdf(self) -> bytes:
        draft = self.compose.draft
        client = await self.catalog.find_client(draft.client_ref) if draft.client_ref else None
        return render_draft_pdf(draft, self.compose.totals(), client=client, profile=self.profile)

    # Registry

    async def browse_registry(self, search: Optional[str] = None, date_from: Optional[date] = None,
                              date_to: Optional[date] = None, page: Optional[int] = None) -> RegistryPage:
        """Apply the requested filters; changing any of them goes back to page 1"""
        query = self.registry.query
        search = search or ""
        if search != query.search_text:
            query = query.with_search(search)
        if (date_from, date_to) != (query.date_from, query.date_to):
            query = query.with_date_range(date_from, date_to)
        filters_changed = query != self.registry.query
        self.registry.query = query

        result = await self.registry.refresh()
        if page is not None and not filters_changed and page != result.page:
            result = self.registry.go_to_page(page)
        return result
