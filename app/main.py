import asyncio
import logging
import time
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import Depends, FastAPI
from fastapi import HTTPException
from fastapi import Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

from app.api.v1.holidays import router as holidays_router
from app.api.v1.realtime import router as realtime_router
from app.api.v1.reservations import router as reservations_router
from app.api.v1.users import router as users_router
from app.core.config import settings
from app.core.exceptions import http_exception_handler, validation_exception_handler
from app.core.logging import setup_logging
from app.core.metrics import REQUEST_COUNT, REQUEST_LATENCY, render_metrics
from app.core.request_context import request_id_ctx_var
from app.db.session import SessionLocal, get_db
from app.realtime.hub import build_realtime_hub
from app.realtime.registry import run_idle_sweeper

setup_logging()
logger = logging.getLogger("app.request")


@asynccontextmanager
async def lifespan(app: FastAPI):
    sweeper = asyncio.create_task(
        run_idle_sweeper(
            app.state.realtime.registry,
            interval=settings.ws_sweep_interval_seconds,
            timeout=settings.ws_idle_timeout_seconds,
        )
    )
    logger.info(
        "realtime_started sweep_interval=%ss idle_timeout=%ss",
        settings.ws_sweep_interval_seconds,
        settings.ws_idle_timeout_seconds,
    )
    try:
        yield
    finally:
        sweeper.cancel()
        try:
            await sweeper
        except asyncio.CancelledError:
            pass


app = FastAPI(title="Dental Scheduler API", version="1.0.0", lifespan=lifespan)
app.state.realtime = build_realtime_hub(SessionLocal)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)

app.include_router(reservations_router)
app.include_router(holidays_router)
app.include_router(users_router)
app.include_router(realtime_router)


@app.middleware("http")
async def observability_middleware(request: Request, call_next):
    request_id = request.headers.get("x-request-id") or str(uuid4())
    token = request_id_ctx_var.set(request_id)
    start = time.perf_counter()
    path = request.url.path
    method = request.method
    try:
        response = await call_next(request)
    except Exception:
        elapsed = time.perf_counter() - start
        REQUEST_COUNT.labels(method=method, path=path, status_code=500).inc()
        REQUEST_LATENCY.labels(method=method, path=path).observe(elapsed)
        logger.exception(
            "request_failed method=%s path=%s status=500 duration_ms=%.2f",
            method,
            path,
            elapsed * 1000,
        )
        request_id_ctx_var.reset(token)
        raise

    elapsed = time.perf_counter() - start
    REQUEST_COUNT.labels(method=method, path=path, status_code=response.status_code).inc()
    REQUEST_LATENCY.labels(method=method, path=path).observe(elapsed)
    response.headers["X-Request-ID"] = request_id
    logger.info(
        "request_completed method=%s path=%s status=%s duration_ms=%.2f",
        method,
        path,
        response.status_code,
        elapsed * 1000,
    )
    request_id_ctx_var.reset(token)
    return response


@app.get("/health", tags=["health"])
def health(request: Request, db: Session = Depends(get_db)) -> JSONResponse:
    checks = {"database": False, "filesystem": False}
    try:
        db.execute(text("SELECT 1"))
        checks["database"] = True
    except Exception:
        logger.exception("health_check_failed check=database")
    try:
        checks["filesystem"] = request.app.state.realtime.storage.is_writable()
    except OSError:
        logger.exception("health_check_failed check=filesystem")

    healthy = all(checks.values())
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={
            "status": "ok" if healthy else "degraded",
            "checks": checks,
            "connections": request.app.state.realtime.registry.count(),
        },
    )


@app.get("/metrics", tags=["observability"])
def metrics() -> Response:
    payload, content_type = render_metrics()
    return Response(content=payload, media_type=content_type)
