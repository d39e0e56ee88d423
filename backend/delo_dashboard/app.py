"""FastAPI application setup for the DeloMemory dashboard."""

from __future__ import annotations

import time
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from delo_dashboard.api.dependencies import (
    get_app_settings,
    get_current_principal,
    get_database,
    get_query_cache,
)
from delo_dashboard.api.routes_admin import router as admin_router
from delo_dashboard.api.routes_keys import router as keys_router
from delo_dashboard.api.routes_knowledge import router as knowledge_router
from delo_dashboard.api.routes_monitor import router as monitor_router
from delo_dashboard.api.routes_settings import router as settings_router
from delo_dashboard.core.errors import install_error_handlers
from delo_dashboard.core.logging import configure_logging, get_logger
from delo_dashboard.core.metrics import REQUEST_COUNT, REQUEST_LATENCY

configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Open the database and build the query cache before serving."""
    settings = get_app_settings()
    get_database()
    get_query_cache()
    logger.info("Dashboard ready", extra={"ctx_db_path": str(settings.db_path)})
    yield


app = FastAPI(
    title="DeloMemory Dashboard",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_app_settings().cors_origins,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

install_error_handlers(app)


@app.middleware("http")
async def record_request_metrics(request: Request, call_next):
    start_time = time.perf_counter()
    response = await call_next(request)
    route = request.scope.get("route")
    endpoint = getattr(route, "path", request.url.path)
    REQUEST_LATENCY.labels(endpoint=endpoint, method=request.method).observe(time.perf_counter() - start_time)
    REQUEST_COUNT.labels(endpoint=endpoint, method=request.method, status=str(response.status_code)).inc()
    return response


authenticated = [Depends(get_current_principal)]

app.include_router(admin_router, prefix="", tags=["admin"])
app.include_router(monitor_router, prefix="/api", tags=["monitor"], dependencies=authenticated)
app.include_router(knowledge_router, prefix="/api", tags=["explore"], dependencies=authenticated)
app.include_router(keys_router, prefix="/api", tags=["keys"], dependencies=authenticated)
app.include_router(settings_router, prefix="/api", tags=["settings"])
