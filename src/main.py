# src/main.py

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from api.rate_limit import setup_rate_limiter
from api.routes import router
from config import Settings, get_settings
from engine.db import build_session_factory
from engine.errors import ScanPlatformError
from engine.job_manager import JobManager
from engine.job_store import JobStore
from tools.base import RunnerAdapter
from tools.jenkins_adapter import JenkinsAdapter
from typing import Optional
import logging
import uuid


def _error_body(code: str, message: str, trace_id: str) -> dict:
    return {"success": False, "error": {"code": code, "message": message, "trace_id": trace_id}}


def create_app(
    settings: Optional[Settings] = None,
    runner: Optional[RunnerAdapter] = None,
    store: Optional[JobStore] = None,
) -> FastAPI:
    """
    Build the API. Run with ``uvicorn main:create_app --factory``.

    ``runner`` and ``store`` default to a Jenkins adapter and a SQLAlchemy
    store built from ``settings``.
    """
    settings = settings or get_settings()

    # Configure structured logging
    logging.basicConfig(
        level=settings.log_level.upper(),
        format='%(asctime)s %(levelname)s %(name)s %(message)s'
    )

    runner = runner or JenkinsAdapter.from_settings(settings)
    store = store or JobStore(build_session_factory(settings.database_url))

    app = FastAPI(title="Scan Orchestrator")
    app.state.settings = settings
    app.state.job_manager = JobManager(store, runner)

    # Middleware added later wraps earlier ones: CORS, then trace id, then the rate limiter.
    setup_rate_limiter(app, settings)

    def internal_error(trace_id: str, exc: Exception) -> JSONResponse:
        message = "Internal server error" if settings.is_production else str(exc)
        return JSONResponse(status_code=500, content=_error_body("INTERNAL_ERROR", message, trace_id))

    @app.middleware("http")
    async def add_trace_id_and_log(request: Request, call_next):
        trace_id = str(uuid.uuid4())
        request.state.trace_id = trace_id
        logging.info(f"[trace_id={trace_id}] Incoming request: {request.method} {request.url.path}")
        try:
            response = await call_next(request)
        except Exception as exc:
            logging.exception(f"[trace_id={trace_id}] Unhandled error: {exc}")
            response = internal_error(trace_id, exc)
        response.headers["X-Trace-Id"] = trace_id
        return response

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Trace-Id"],
    )

    @app.exception_handler(ScanPlatformError)
    async def scan_platform_error_handler(request: Request, exc: ScanPlatformError):
        trace_id = getattr(request.state, "trace_id", "unknown")
        if exc.status_code >= 500:
            logging.error(f"[trace_id={trace_id}] {exc.code}: {exc.message} cause={exc.__cause__}")
        else:
            logging.info(f"[trace_id={trace_id}] {exc.code}: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=_error_body(exc.code, exc.message, trace_id))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        trace_id = getattr(request.state, "trace_id", "unknown")
        errors = exc.errors()
        first = errors[0] if errors else {}
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg', 'invalid request')}" if location else first.get("msg", "invalid request")
        return JSONResponse(status_code=400, content=_error_body("VALIDATION_ERROR", message, trace_id))

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        trace_id = getattr(request.state, "trace_id", str(uuid.uuid4()))
        logging.error(f"[trace_id={trace_id}] Exception: {exc}")
        return internal_error(trace_id, exc)

    app.include_router(router)

    @app.on_event("shutdown")
    def on_shutdown():
        close = getattr(runner, "close", None)
        if close:
            close()

    logging.info(f"Scan orchestrator configured. runner={settings.jenkins_url} job={settings.jenkins_job_name}")
    return app
