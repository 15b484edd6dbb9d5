"""
EduTracker Progress & Intervention Engine - FastAPI application factory.

This is the main application module that:
1. Builds the local database, record stores and the ProgressEngine
2. Sets up structured JSON logging
3. Implements request ID middleware (X-Request-ID header)
4. Maps engine errors to HTTP responses
5. Runs the outbox sync worker for the lifetime of the app
6. Registers all API route handlers

Serve with: uvicorn edutracker.main:create_app --factory

The application follows a modular architecture:
- routes/: API endpoint handlers
- models/: SQLAlchemy ORM models (local cache tables, sync outbox)
- services/: Business logic (standing, evaluations, groups, attendance,
  discharge, sync)
- logging_config.py: Structured logging configuration
- database.py: Database connection management
"""

import asyncio
import time
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from edutracker.config import Settings
from edutracker.core import build_engine
from edutracker.database import make_engine, make_session_factory, create_tables
from edutracker.errors import (
    EngineError, ValidationError, NotFoundError, DischargeIncompleteError
)
from edutracker.logging_config import (
    setup_logging, get_logger, log_with_context,
    request_id_var, generate_request_id
)
from edutracker.remote import RemoteStore, SupabaseRemoteStore
from edutracker.routes import students, evaluations, reinforcement, catalog, sync
from edutracker.seed import seed_if_empty

VERSION = "1.0.0"

logger = get_logger("http")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the sync worker (when a remote is configured) and stop it on shutdown."""
    engine = app.state.engine
    stop = asyncio.Event()
    worker = None
    if engine.sync is not None:
        worker = asyncio.create_task(engine.sync.run(stop))
    else:
        log_with_context(logger, "INFO", "Remote sync disabled: no remote store configured")
    yield
    stop.set()
    if worker is not None:
        await worker
    if engine.remote is not None:
        await engine.remote.aclose()


def _error_response(request: Request, status_code: int, exc: EngineError, **extra) -> JSONResponse:
    log_with_context(logger, "WARNING",
        "Request rejected: {} {} → {} ({})".format(request.method, request.url.path, status_code, exc),
        extra_data={"error": type(exc).__name__})
    return JSONResponse(status_code=status_code, content={"detail": str(exc), **extra})


def create_app(settings: Settings = None, remote: RemoteStore = None) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Service settings; read from the environment when omitted
        remote: Remote store override; by default a Supabase client is built
            when SUPABASE_URL and SUPABASE_KEY are set
    """
    settings = settings or Settings.from_env()

    # Initialize structured logging before anything else
    setup_logging(settings.log_level)

    db_engine = make_engine(settings.database_url)
    create_tables(db_engine)
    session_factory = make_session_factory(db_engine)

    if remote is None and settings.remote_enabled:
        remote = SupabaseRemoteStore(settings.supabase_url, settings.supabase_key,
                                     timeout=settings.remote_timeout_seconds)

    engine = build_engine(session_factory, settings, remote=remote)
    if settings.seed_demo_data:
        seed_if_empty(engine.local)

    app = FastAPI(
        title="EduTracker Progress & Intervention Engine",
        description=(
            "Tracks student progress against BNCC competencies, manages "
            "reinforcement groups with attendance and discharge, and keeps "
            "the local cache synchronized with the remote store."
        ),
        version=VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.engine = engine

    # CORS for the console frontend. In production, restrict origins.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"]
    )

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        """
        Generates a unique request ID for every HTTP request, stores it in
        the logging context, returns it in X-Request-ID and logs latency.
        """
        req_id = generate_request_id()
        request_id_var.set(req_id)
        start_time = time.time()

        log_with_context(logger, "INFO",
            f"Request started: {request.method} {request.url.path}",
            context={"request_id": req_id},
            extra_data={
                "ip": request.client.host if request.client else "unknown",
                "user_agent": request.headers.get("user-agent", ""),
                "query_params": dict(request.query_params)
            })

        response = await call_next(request)

        duration_ms = (time.time() - start_time) * 1000
        response.headers["X-Request-ID"] = req_id

        log_with_context(logger, "INFO",
            f"Request completed: {request.method} {request.url.path} → {response.status_code}",
            context={"request_id": req_id},
            extra_data={
                "duration_ms": round(duration_ms, 2),
                "status_code": response.status_code
            })
        return response

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        return _error_response(request, 400, exc)

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return _error_response(request, 404, exc)

    @app.exception_handler(DischargeIncompleteError)
    async def discharge_incomplete_handler(request: Request, exc: DischargeIncompleteError):
        return _error_response(
            request, 409, exc,
            history_id=exc.history_id,
            retry=f"DELETE /api/reinforcement/groups/{exc.group_id}/members/{exc.student_id}",
        )

    app.include_router(students.router, tags=["Students"])
    app.include_router(evaluations.router, tags=["Evaluations"])
    app.include_router(reinforcement.router, tags=["Reinforcement"])
    app.include_router(catalog.router, tags=["Catalog"])
    app.include_router(sync.router, tags=["Sync"])

    @app.get("/health", tags=["Health"])
    def health_check():
        """Health check endpoint for Docker health checks and monitoring."""
        return {
            "status": "healthy",
            "service": "edutracker-backend",
            "version": VERSION,
            "remote_sync": engine.sync is not None,
        }

    return app
