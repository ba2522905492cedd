"""FastAPI application exposing user, session, refund and upload endpoints."""

import logging
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, File, Query, Request, Response, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, Counter, generate_latest
from pydantic import ValidationError
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from sqlalchemy.orm import Session

from .auth import create_access_token, get_db, get_settings, require_roles
from .config import Settings
from .database import create_db_engine, create_session_factory, init_db
from .errors import AppError, error_message, register_error_handlers
from .schemas import (
    Pagination,
    RefundCreate,
    RefundListResponse,
    RefundOut,
    RefundResponse,
    RefundShowResponse,
    SessionCreate,
    SessionResponse,
    UploadedFile,
    UploadResponse,
    UserCreate,
    UserOut,
)
from .security import Identity, verify_password
from .services import (
    create_refund,
    create_user,
    get_refund,
    get_user_by_email,
    list_refunds,
    total_pages,
)
from .storage import TMP, UPLOAD, DiskStorage

logger = logging.getLogger(__name__)

SENSITIVE_RATE_LIMIT = "5/minute"
UPLOAD_CHUNK_SIZE = 1024 * 1024

# Prometheus counter to track API requests by method, endpoint and status code
REQUEST_COUNTER = Counter(
    "api_requests_total",
    "Total API requests",
    ["method", "endpoint", "status"],
)
SESSION_FAILURE_COUNTER = Counter(
    "session_failures_total", "Total rejected login attempts"
)
UPLOAD_COUNTER = Counter("uploads_total", "Total receipt uploads", ["outcome"])

router = APIRouter()


async def log_requests(request: Request, call_next):
    """Log incoming requests and their outcomes while updating metrics."""
    logger.info("request %s %s", request.method, request.url.path)
    try:
        response = await call_next(request)
        REQUEST_COUNTER.labels(
            method=request.method,
            endpoint=request.url.path,
            status=str(response.status_code),
        ).inc()
        logger.info(
            "response %s %s status %s",
            request.method,
            request.url.path,
            response.status_code,
        )
        return response
    except Exception:
        REQUEST_COUNTER.labels(
            method=request.method,
            endpoint=request.url.path,
            status="500",
        ).inc()
        logger.exception("error handling %s %s", request.method, request.url.path)
        raise


async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content={"message": f"Limite de requisições excedido: {exc.detail}"},
    )


def get_storage(request: Request) -> DiskStorage:
    return request.app.state.storage


def register(request: Request, payload: UserCreate, db: Session = Depends(get_db)):
    """Register a user; the response has no body."""
    create_user(
        db,
        name=payload.name,
        email=payload.email,
        password=payload.password,
        role=payload.role,
    )
    return Response(status_code=201)


def login(
    request: Request,
    payload: SessionCreate,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Exchange e-mail and password for a signed session token."""
    user = get_user_by_email(db, payload.email)
    if user is None or not verify_password(payload.password, user.password):
        SESSION_FAILURE_COUNTER.inc()
        raise AppError("E-mail ou senha inválida", 401)

    token = create_access_token(user.id, user.role, settings)
    logger.info("session created user=%s role=%s", user.id, user.role)
    return SessionResponse(token=token, user=UserOut.model_validate(user))


@router.post("/refunds", response_model=RefundResponse, status_code=201)
def post_refund(
    payload: RefundCreate,
    identity: Identity = Depends(require_roles("employee")),
    db: Session = Depends(get_db),
    storage: DiskStorage = Depends(get_storage),
):
    """Record a refund request owned by the caller.

    The receipt must already have been persisted through the upload endpoint.
    """
    if not storage.exists(payload.filename, UPLOAD):
        raise AppError("Arquivo não encontrado")
    refund = create_refund(
        db,
        user_id=identity.id,
        name=payload.name,
        category=payload.category,
        amount=payload.amount,
        filename=payload.filename,
    )
    return RefundResponse(refund=RefundOut.model_validate(refund))


@router.get("/refunds", response_model=RefundListResponse)
def get_refunds(
    name: str = "",
    page: int = Query(1, ge=1),
    per_page: int = Query(10, ge=1, alias="perPage"),
    identity: Identity = Depends(require_roles("manager")),
    db: Session = Depends(get_db),
):
    """Return paginated refunds, optionally filtered by the owner's name."""
    records, total = list_refunds(db, name=name, page=page, per_page=per_page)
    return RefundListResponse(
        refunds=[RefundOut.model_validate(r) for r in records],
        pagination=Pagination(
            page=page,
            per_page=per_page,
            total_records=total,
            total_pages=total_pages(total, per_page),
        ),
    )


@router.get("/refunds/{refund_id}", response_model=RefundShowResponse)
def show_refund(
    refund_id: uuid.UUID,
    identity: Identity = Depends(require_roles("employee", "manager")),
    db: Session = Depends(get_db),
):
    """Return a single refund with its owner, or ``null`` when it does not exist."""
    refund = get_refund(db, str(refund_id))
    if refund is None:
        return RefundShowResponse(refund=None)
    if identity.role == "employee" and refund.user_id != identity.id:
        raise AppError("Não autorizado", 401)
    return RefundShowResponse(refund=RefundOut.model_validate(refund))


@router.post("/uploads", response_model=UploadResponse)
def upload_receipt(
    file: UploadFile = File(...),
    identity: Identity = Depends(require_roles("employee")),
    settings: Settings = Depends(get_settings),
    storage: DiskStorage = Depends(get_storage),
):
    """Stage a receipt in temporary storage, validate it and persist it."""
    original = file.filename or ""
    filename = storage.generate_filename(original)
    tmp_path = storage.tmp_path(filename)
    storage.tmp_folder.mkdir(parents=True, exist_ok=True)

    size = 0
    try:
        with open(tmp_path, "wb") as out:
            while True:
                chunk = file.file.read(UPLOAD_CHUNK_SIZE)
                if not chunk:
                    break
                size += len(chunk)
                if size > settings.max_file_size:
                    # Already rejected; stop writing.
                    break
                out.write(chunk)
    except OSError:
        storage.delete_file(filename, TMP)
        raise

    try:
        UploadedFile.model_validate(
            {"filename": original, "mimetype": file.content_type or "", "size": size},
            context={
                "accepted_types": settings.accepted_image_types,
                "max_file_size": settings.max_file_size,
            },
        )
    except ValidationError as exc:
        storage.delete_file(filename, TMP)
        UPLOAD_COUNTER.labels(outcome="rejected").inc()
        logger.info("rejected upload user=%s size=%s", identity.id, size)
        raise AppError(error_message(exc.errors()[0]))

    persisted = storage.save_file(filename)
    UPLOAD_COUNTER.labels(outcome="persisted").inc()
    return UploadResponse(filename=persisted)


@router.get("/metrics", include_in_schema=False)
def metrics() -> Response:
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)


def build_credentials_router(limiter: Limiter) -> APIRouter:
    """Routes that accept credentials, throttled by the app's own ``limiter``."""
    credentials = APIRouter()
    credentials.add_api_route(
        "/users",
        limiter.limit(SENSITIVE_RATE_LIMIT)(register),
        methods=["POST"],
        status_code=201,
    )
    credentials.add_api_route(
        "/sessions",
        limiter.limit(SENSITIVE_RATE_LIMIT)(login),
        methods=["POST"],
        response_model=SessionResponse,
    )
    return credentials


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db(app.state.engine)
    app.state.storage.ensure_folders()
    yield
    app.state.engine.dispose()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the application around one ``Settings`` instance."""
    settings = settings or Settings()
    if not settings.jwt_secret:
        logger.warning("JWT_SECRET is not set; sessions cannot be issued or verified")

    app = FastAPI(title=settings.api_title, lifespan=lifespan)
    engine = create_db_engine(settings.database_url)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = create_session_factory(engine)
    app.state.storage = DiskStorage(settings.tmp_folder, settings.uploads_folder)

    limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
    register_error_handlers(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(log_requests)
    app.include_router(build_credentials_router(limiter))
    app.include_router(router)
    return app
