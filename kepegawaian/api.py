"""FastAPI app for employee records and their documents.

The store and upload storage are built once in the lifespan handler and
reach the routes through ``Depends``.
"""
from __future__ import annotations

import logging
import time
import traceback
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import APIRouter, Depends, FastAPI, Form, HTTPException, Request, UploadFile, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, PlainTextResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, ConfigDict
from starlette.datastructures import UploadFile as StarletteUploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import Settings, get_settings
from .db import create_engine, create_session_maker, safe_url
from .logging_config import setup_logging
from .migrations import bootstrap_schema
from .store import EmployeeForm, EmployeeNotFoundError, EmployeeStore, ValidationError
from .uploads import UploadError, UploadStorage

logger = logging.getLogger(__name__)


# Pydantic response models
class EmployeeResponse(BaseModel):
    """Employee as returned to the dashboard."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    nip: str | None
    position: str
    category: str
    division: str
    education: str | None
    religion: str | None
    phone: str | None
    email: str | None
    doc_ktp: str | None
    doc_sk_pangkat: str | None
    doc_sk_berkala: str | None
    doc_sk_jabatan: str | None
    created_at: datetime


class StatsResponse(BaseModel):
    total: int
    asn: int
    p3k: int


class DivisionShareResponse(BaseModel):
    division: str
    count: int
    percentage: float


class CreatedResponse(BaseModel):
    id: int


class SuccessResponse(BaseModel):
    success: bool = True


class HealthResponse(BaseModel):
    status: str
    database: str


def error_body(message: str, **extra) -> dict:
    return {"error": message, **{k: v for k, v in extra.items() if v is not None}}


# Dependencies
def get_store(request: Request) -> EmployeeStore:
    return request.app.state.store


def get_upload_storage(request: Request) -> UploadStorage:
    return request.app.state.uploads


def employee_form(
    name: str | None = Form(None),
    nip: str | None = Form(None),
    position: str | None = Form(None),
    category: str | None = Form(None),
    division: str | None = Form(None),
    education: str | None = Form(None),
    religion: str | None = Form(None),
    phone: str | None = Form(None),
    email: str | None = Form(None),
) -> EmployeeForm:
    """Collect the multipart text fields into a validated form."""
    return EmployeeForm.from_submitted({
        "name": name,
        "nip": nip,
        "position": position,
        "category": category,
        "division": division,
        "education": education,
        "religion": religion,
        "phone": phone,
        "email": email,
    })


async def document_files(request: Request) -> dict[str, list[UploadFile]]:
    """Group every file part of the multipart body by field name.

    Read from the raw form so that repeated parts under one name and parts
    under unexpected names all reach validation.
    """
    form = await request.form()
    files: dict[str, list[UploadFile]] = {}
    for key, value in form.multi_items():
        if isinstance(value, StarletteUploadFile):
            files.setdefault(key, []).append(value)
    return files


router = APIRouter(prefix="/api")


@router.get("/health", response_model=HealthResponse)
async def health(store: EmployeeStore = Depends(get_store)):
    """Health check including a database round trip."""
    try:
        await store.ping()
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"status": "error", "database": str(e)},
        )
    return HealthResponse(status="ok", database="connected")


@router.get("/employees", response_model=list[EmployeeResponse])
async def list_employees(
    search: str | None = None,
    category: str | None = None,
    store: EmployeeStore = Depends(get_store),
):
    """List employees newest first, optionally filtered."""
    return await store.list_all(search=search, category=category)


@router.get("/employees/stats", response_model=StatsResponse)
async def employee_stats(store: EmployeeStore = Depends(get_store)) -> StatsResponse:
    stats = await store.stats()
    return StatsResponse(total=stats.total, asn=stats.asn, p3k=stats.p3k)


@router.get("/employees/stats/divisions", response_model=list[DivisionShareResponse])
async def division_stats(store: EmployeeStore = Depends(get_store)) -> list[DivisionShareResponse]:
    """Headcount and percentage per division for the dashboard bars."""
    return [
        DivisionShareResponse(division=s.division, count=s.count, percentage=s.percentage)
        for s in await store.division_breakdown()
    ]


@router.post(
    "/employees",
    response_model=CreatedResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_employee(
    form: EmployeeForm = Depends(employee_form),
    files: dict[str, list[UploadFile]] = Depends(document_files),
    store: EmployeeStore = Depends(get_store),
    storage: UploadStorage = Depends(get_upload_storage),
) -> CreatedResponse:
    """Create an employee with up to four PDF documents.

    Documents are validated before anything is written. If the row is
    rejected, documents saved for this request are removed again.
    """
    documents = await storage.save_all(files)
    try:
        employee_id = await store.create(form, documents)
    except Exception:
        storage.remove(documents.values())
        raise
    return CreatedResponse(id=employee_id)


@router.put("/employees/{employee_id}", response_model=SuccessResponse)
async def update_employee(
    employee_id: int,
    form: EmployeeForm = Depends(employee_form),
    files: dict[str, list[UploadFile]] = Depends(document_files),
    store: EmployeeStore = Depends(get_store),
    storage: UploadStorage = Depends(get_upload_storage),
) -> SuccessResponse:
    """Overwrite an employee. Documents not re-uploaded keep their stored file."""
    documents = await storage.save_all(files)
    try:
        await store.update(employee_id, form, documents)
    except Exception:
        storage.remove(documents.values())
        raise
    return SuccessResponse()


@router.delete("/employees/{employee_id}", response_model=SuccessResponse)
async def delete_employee(
    employee_id: int,
    store: EmployeeStore = Depends(get_store),
) -> SuccessResponse:
    await store.delete(employee_id)
    return SuccessResponse()


# Must stay the last route on this router
@router.api_route(
    "/{path:path}",
    methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"],
    include_in_schema=False,
)
async def api_not_found(request: Request, path: str):
    url = request.url.path
    if request.url.query:
        url = f"{url}?{request.url.query}"
    logger.warning(f"[404 API] {request.method} {url}")
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content=error_body(
            f"Endpoint API tidak ditemukan: {request.method} {url}",
            path=url,
            method=request.method,
        ),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the database, bootstrap the schema and prepare the upload directory."""
    settings: Settings = app.state.settings
    setup_logging(settings.logging)
    logger.info(f"Starting {settings.app_name} v{settings.version} ({settings.environment.value})")

    storage = UploadStorage(settings.uploads)
    try:
        upload_dir = storage.ensure_directory()
        logger.info(f"Upload directory is ready: {upload_dir.resolve()}")
    except OSError as e:
        logger.error(f"Error with upload directory: {e}")

    logger.info(f"Initializing database at: {safe_url(settings.db.url)}")
    engine = create_engine(settings.db)
    try:
        added = await bootstrap_schema(engine)
    except Exception as e:
        logger.critical(f"Failed to connect to database: {e}", exc_info=True)
        await engine.dispose()
        raise
    if added:
        logger.info(f"Added columns: {', '.join(added)}")
    logger.info("Database connection successful")

    app.state.store = EmployeeStore(create_session_maker(engine))
    app.state.uploads = storage

    yield

    await engine.dispose()
    logger.info("Application shutting down")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the application for the given settings (environment by default)."""
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        version=settings.version,
        description="Data pegawai ASN dan P3K beserta dokumen pendukung",
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.1f} ms)")
        return response

    # Exception handlers
    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        logger.warning(f"Validation error on {request.method} {request.url.path}: {exc}")
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=error_body(str(exc)))

    @app.exception_handler(UploadError)
    async def upload_error_handler(request: Request, exc: UploadError):
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=error_body(exc.message))

    @app.exception_handler(EmployeeNotFoundError)
    async def not_found_handler(request: Request, exc: EmployeeNotFoundError):
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content=error_body(str(exc)))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=422,
            content=error_body("Data permintaan tidak valid.", details=jsonable_encoder(exc.errors())),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def server_error_handler(request: Request, exc: Exception):
        logger.error(f"Server error on {request.method} {request.url.path}: {exc}", exc_info=True)
        details = None
        if not settings.is_production:
            details = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        return JSONResponse(
            status_code=getattr(exc, "status_code", status.HTTP_500_INTERNAL_SERVER_ERROR),
            content=error_body(str(exc) or "Terjadi kesalahan internal pada server.", details=details),
        )

    @app.get("/ping", response_class=PlainTextResponse, include_in_schema=False)
    async def ping() -> str:
        return "pong"

    app.include_router(router)

    @app.get(settings.uploads.url_prefix + "/{filename}", tags=["Uploads"])
    async def get_upload(filename: str, storage: UploadStorage = Depends(get_upload_storage)):
        """Serve a stored document."""
        try:
            path = storage.path_for(filename)
        except FileNotFoundError:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File tidak ditemukan.")
        return FileResponse(path)

    if settings.frontend_dist.is_dir():
        logger.info(f"Serving frontend from: {settings.frontend_dist.resolve()}")
        app.mount("/", StaticFiles(directory=settings.frontend_dist, html=True), name="frontend")

    return app


app = create_app()
