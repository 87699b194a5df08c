"""FastAPI application wiring for the storefront service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from psycopg_pool import ConnectionPool
import uvicorn

from .api.catalog import router as catalog_router
from .api.routes import router as auth_router
from .config import Settings, get_settings
from .domain.contracts import AuthConfig, LockoutConfig
from .domain.service import AuthService
from .repository import AccountRepository, DocumentRepository, ensure_schema
from .security.tokens import TokenIssuer

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def build_auth_service(repository: AccountRepository, settings: Settings) -> AuthService:
    """Assemble the auth service from explicit configuration values."""
    config = AuthConfig(
        bcrypt_rounds=settings.bcrypt_rounds,
        lockout=LockoutConfig(
            max_attempts=settings.login_max_attempts,
            lock_duration=timedelta(seconds=settings.login_lock_seconds),
        ),
    )
    tokens = TokenIssuer(settings.token_secret, ttl_seconds=settings.token_ttl_seconds)
    return AuthService(repository, tokens, config)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialise shared resources (Postgres pool, services) for the app lifecycle."""
    pool = ConnectionPool(settings.database_url, open=False)
    pool.open()
    ensure_schema(pool)
    app.state.pool = pool
    app.state.auth_service = build_auth_service(AccountRepository(pool), settings)
    app.state.products = DocumentRepository(pool, "products")
    app.state.releases = DocumentRepository(pool, "releases")
    if settings.token_secret == "dev-secret-change-me":
        logger.warning("TOKEN_SECRET is not set, using the development secret")
    try:
        yield
    finally:
        pool.close()
        pool.wait_close()


app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in settings.cors_origins.split(",") if origin.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    max_age=600,
)


async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    """Answer any error that escaped the routes with a generic 500."""
    logger.error("unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error."},
    )


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(Exception, unhandled_error)


install_error_handlers(app)


@app.get("/healthz", tags=["health"])
def healthz() -> dict[str, str]:
    """Return a minimal readiness indicator used by orchestration systems."""
    return {"status": "ok"}


@app.get("/metrics", tags=["health"])
def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


app.include_router(auth_router)
app.include_router(catalog_router)


def run() -> None:
    """Serve the application with uvicorn on the configured host and port."""
    uvicorn.run(
        app,
        host=settings.http_host,
        port=settings.http_port,
        log_level=settings.log_level.lower(),
    )
