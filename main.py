from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from typing import Any, Optional
import logging
import json as json_lib
from collections import defaultdict

from fastapi import FastAPI, File, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

from config import config
from dashboard import Dashboard
from errors import (
    AuthenticationError, CannotRemoveLastLine, DashboardError, InvalidLineValue,
    InvalidUpload, LineNotFound, NetworkError, ProductNotFound,
    SubmissionInProgress, UnsupportedFileType,
)
from intake import IntakeSnapshot, IntakeState
from models import CompanyProfile

logger = logging.getLogger(__name__)


class StructuredFormatter(logging.Formatter):
    def format(self, record):
        log_obj = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        # Add extra fields if present
        if hasattr(record, 'error_type'):
            log_obj['error_type'] = record.error_type
        if hasattr(record, 'line_id'):
            log_obj['line_id'] = record.line_id
        if hasattr(record, 'state'):
            log_obj['state'] = record.state

        return json_lib.dumps(log_obj)


def configure_logging():
    json_handler = logging.FileHandler(config.LOG_FILE.replace('.log', '_structured.json'))
    json_handler.setFormatter(StructuredFormatter())

    standard_handler = logging.StreamHandler()
    standard_handler.setFormatter(logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s'))

    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL),
        handlers=[json_handler, standard_handler]
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)


# Error tracking metrics
error_metrics = defaultdict(lambda: {'count': 0, 'last_error': None})


def track_error(error_type: str, details: str = None):
    """Track error occurrences for monitoring"""
    error_metrics[error_type]['count'] += 1
    error_metrics[error_type]['last_error'] = {
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'details': details
    }

    logger.error(
        f"Error tracked: {error_type}",
        extra={'error_type': error_type}
    )


ERROR_STATUS = {
    LineNotFound: 404,
    ProductNotFound: 404,
    CannotRemoveLastLine: 409,
    SubmissionInProgress: 409,
    InvalidLineValue: 422,
    InvalidUpload: 422,
    UnsupportedFileType: 415,
    AuthenticationError: 401,
    NetworkError: 502,
}


def status_for(error: DashboardError) -> int:
    for error_class, status in ERROR_STATUS.items():
        if isinstance(error, error_class):
            return status
    return 400


class LoginRequest(BaseModel):
    email: str
    password: str


class LineUpdate(BaseModel):
    field: str
    value: Any = None


class ProductSelection(BaseModel):
    product_ref: str


class ClientSelection(BaseModel):
    client_ref: Optional[str] = None


class NotesUpdate(BaseModel):
    notes: Optional[str] = None


def intake_view(snapshot: IntakeSnapshot) -> dict:
    view = snapshot.model_dump(mode='json')
    view['can_submit'] = snapshot.can_submit
    return view


def draft_view(dashboard: Dashboard) -> dict:
    compose = dashboard.compose
    return {
        "draft": compose.draft.model_dump(mode='json'),
        "totals": compose.totals().model_dump(mode='json'),
        "intake": intake_view(compose.snapshot),
    }


def upload_view(dashboard: Dashboard) -> dict:
    document = dashboard.upload.file
    return {
        "file": None if document is None else {
            "filename": document.filename,
            "content_type": document.content_type,
            "size_bytes": document.size_bytes,
        },
        "intake": intake_view(dashboard.upload.snapshot),
    }


def submission_response(snapshot: IntakeSnapshot, body: dict) -> JSONResponse:
    if snapshot.state is IntakeState.SUCCEEDED:
        return JSONResponse(body)
    if snapshot.state is IntakeState.FAILED:
        track_error(snapshot.error_type or 'submission_failed', snapshot.error)
        return JSONResponse(body, status_code=502 if snapshot.error_type == NetworkError.error_type else 401)
    return JSONResponse(body, status_code=422)


def create_app(dashboard: Dashboard = None) -> FastAPI:
    """Build the dashboard API; tests pass a pre-wired dashboard"""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, 'dashboard', None) is None:
            configure_logging()
            config.validate()
            app.state.dashboard = Dashboard.create()
        context = app.state.dashboard.start()
        logger.info(f"Dashboard started (authenticated: {context.is_authenticated})")
        yield

    app = FastAPI(title="INALTERA Dashboard API", lifespan=lifespan)
    app.state.dashboard = dashboard

    # Configure rate limiting
    limiter = Limiter(key_func=get_remote_address)
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.exception_handler(DashboardError)
    async def dashboard_error_handler(request: Request, exc: DashboardError):
        track_error(exc.error_type, exc.message)
        return JSONResponse(
            status_code=status_for(exc),
            content={"detail": exc.message, "error_type": exc.error_type},
        )

    def get_dashboard(request: Request) -> Dashboard:
        return request.app.state.dashboard

    def require_session(request: Request) -> Dashboard:
        board = get_dashboard(request)
        board.session.bearer_token()
        return board

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        health_status = {
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "checks": {}
        }

        try:
            board = app.state.dashboard
            board.gate.store.load_auth()
            health_status["checks"]["session_store"] = "healthy"
        except Exception as e:
            health_status["checks"]["session_store"] = f"unhealthy: {str(e)}"
            health_status["status"] = "degraded"
            logger.error(f"Session store health check failed: {str(e)}")

        return health_status

    @app.get("/metrics")
    async def get_metrics():
        """Get error metrics"""
        return {
            "error_metrics": dict(error_metrics),
            "timestamp": datetime.now(timezone.utc).isoformat()
        }

    # Session

    @app.get("/session")
    async def session_status(request: Request):
        context = get_dashboard(request).session
        return {
            "authenticated": context.is_authenticated,
            "user": context.user.model_dump() if context.user else None,
        }

    @app.post("/session/login")
    @limiter.limit(f"{config.RATE_LIMIT_PER_MINUTE}/minute")
    async def login(request: Request, payload: LoginRequest):
        if not payload.email or not payload.password:
            raise HTTPException(status_code=400, detail="Please fill in every field")
        context = await get_dashboard(request).sign_in(payload.email, payload.password)
        return {"authenticated": True, "user": context.user.model_dump()}

    @app.post("/session/register")
    @limiter.limit(f"{config.RATE_LIMIT_PER_MINUTE}/minute")
    async def register(request: Request, payload: LoginRequest):
        return await get_dashboard(request).register(payload.email, payload.password)

    @app.post("/session/logout")
    async def logout(request: Request):
        get_dashboard(request).logout()
        return {"authenticated": False}

    # Profile

    @app.get("/profile")
    async def get_profile(request: Request):
        profile = await require_session(request).get_profile()
        return profile.model_dump(by_alias=True)

    @app.put("/profile")
    async def update_profile(request: Request, payload: CompanyProfile):
        profile = await require_session(request).update_profile(payload)
        return profile.model_dump(by_alias=True)

    @app.get("/profile/subscription")
    async def subscription(request: Request):
        return await require_session(request).subscription_status()

    # Catalog

    @app.get("/catalog/clients")
    async def list_clients(request: Request):
        clients = await require_session(request).catalog.list_clients()
        return [client.model_dump(mode='json') for client in clients]

    @app.get("/catalog/products")
    async def list_products(request: Request):
        products = await require_session(request).catalog.list_products()
        return [product.model_dump(mode='json') for product in products]

    # Draft composition

    @app.get("/draft")
    async def get_draft(request: Request):
        return draft_view(require_session(request))

    @app.post("/draft/reset")
    async def reset_draft(request: Request):
        board = require_session(request)
        board.compose.discard()
        return draft_view(board)

    @app.post("/draft/lines")
    async def add_line(request: Request):
        board = require_session(request)
        line_id = board.compose.add_line()
        return {"line_id": line_id, **draft_view(board)}

    @app.patch("/draft/lines/{line_id}")
    async def update_line(request: Request, line_id: str, payload: LineUpdate):
        board = require_session(request)
        board.compose.update_line(line_id, payload.field, payload.value)
        return draft_view(board)

    @app.delete("/draft/lines/{line_id}")
    async def remove_line(request: Request, line_id: str):
        board = require_session(request)
        board.compose.remove_line(line_id)
        return draft_view(board)

    @app.post("/draft/lines/{line_id}/product")
    async def select_product(request: Request, line_id: str, payload: ProductSelection):
        board = require_session(request)
        await board.compose.select_product(line_id, payload.product_ref)
        return draft_view(board)

    @app.put("/draft/client")
    async def set_client(request: Request, payload: ClientSelection):
        board = require_session(request)
        board.compose.set_client(payload.client_ref)
        return draft_view(board)

    @app.put("/draft/notes")
    async def set_notes(request: Request, payload: NotesUpdate):
        board = require_session(request)
        board.compose.set_notes(payload.notes)
        return draft_view(board)

    @app.get("/draft/preview")
    async def preview(request: Request):
        pdf = await require_session(request).preview_pdf()
        return Response(
            content=pdf,
            media_type="application/pdf",
            headers={"Content-Disposition": 'inline; filename="borrador.pdf"'},
        )

    @app.post("/draft/submit")
    @limiter.limit(config.SUBMIT_RATE_LIMIT)
    async def submit_draft(request: Request):
        board = require_session(request)
        snapshot = await board.compose.submit()
        return submission_response(snapshot, draft_view(board))

    # PDF upload

    @app.get("/upload")
    async def get_upload(request: Request):
        return upload_view(require_session(request))

    @app.post("/upload")
    async def select_upload(request: Request, file: UploadFile = File(...)):
        board = require_session(request)
        payload = await file.read()
        board.upload.select_file(file.filename, file.content_type, payload)
        return upload_view(board)

    @app.delete("/upload")
    async def change_upload(request: Request):
        board = require_session(request)
        board.upload.change_file()
        return upload_view(board)

    @app.post("/upload/submit")
    @limiter.limit(config.SUBMIT_RATE_LIMIT)
    async def submit_upload(request: Request):
        board = require_session(request)
        snapshot = await board.upload.submit()
        return submission_response(snapshot, upload_view(board))

    # Registry

    @app.get("/registry")
    async def browse_registry(request: Request, search: str = "", date_from: Optional[date] = None,
                              date_to: Optional[date] = None, page: Optional[int] = None):
        board = require_session(request)
        result = await board.browse_registry(search, date_from, date_to, page)
        return {
            "query": board.registry.query.model_dump(mode='json'),
            **result.model_dump(mode='json', exclude={'matched'}),
        }

    @app.post("/registry/clear")
    async def clear_registry_filters(request: Request):
        board = require_session(request)
        result = await board.registry.clear_filters()
        return {
            "query": board.registry.query.model_dump(mode='json'),
            **result.model_dump(mode='json', exclude={'matched'}),
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=config.HOST, port=config.PORT)
