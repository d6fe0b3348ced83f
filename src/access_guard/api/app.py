"""FastAPI application with lifespan management."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime, timedelta
from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from access_guard.api.middleware import RequestLoggingMiddleware
from access_guard.api.routes.client_keys import router as client_keys_router
from access_guard.api.routes.mfa import router as mfa_router
from access_guard.auth.client_keys import ClientKeyManager
from access_guard.auth.key_store import ClientKeyStore
from access_guard.auth.rate_limiter import SlidingWindowRateLimiter
from access_guard.config import Settings, settings
from access_guard.errors import (
    InvalidVerificationToken,
    RateLimitExceeded,
    StoreUnavailable,
)
from access_guard.gateway.gateway import RequestGateway
from access_guard.gateway.middleware import (
    GatewayMiddleware,
    RequestSessionResolver,
    no_session,
)
from access_guard.gateway.routes import DEFAULT_ROUTES, RouteTable, load_route_table
from access_guard.logging_config import configure_logging
from access_guard.mfa.manager import MFAManager
from access_guard.mfa.store import MFAStore
from access_guard.mfa.totp import TOTPEngine

logger = structlog.get_logger()

HEALTH_CHECK_TIMEOUT = 5.0


async def _cleanup_loop(limiter: SlidingWindowRateLimiter, interval: int) -> None:
    """Periodic cleanup of expired rate limit entries."""
    while True:
        await asyncio.sleep(interval)
        try:
            cleaned = await asyncio.to_thread(limiter.cleanup)
            if cleaned:
                logger.debug("rate_limiter_cleanup", keys_removed=cleaned)
        except Exception:
            logger.exception("rate_limiter_cleanup_error")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Manage application startup and shutdown.

    Startup:
        - Configure logging.
        - Start rate limiter cleanup task.
    Shutdown:
        - Cancel cleanup task.
        - Dispose database engine (close connection pool), if any.
    """
    cfg: Settings = app.state.settings
    configure_logging(environment=str(cfg.environment), log_level=cfg.log_level)

    cleanup_task = asyncio.create_task(
        _cleanup_loop(app.state.limiter, cfg.rate_limit_cleanup_interval_seconds)
    )
    logger.info("app_started", environment=str(cfg.environment))
    yield

    cleanup_task.cancel()
    engine: AsyncEngine | None = app.state.engine
    if engine is not None:
        await engine.dispose()
    logger.info("app_stopped")


def _sql_stores(cfg: Settings) -> tuple[MFAStore, ClientKeyStore, Any, Any]:
    """SQL adapters over the shared async engine."""
    from access_guard.storage.cipher import build_cipher
    from access_guard.storage.client_key_repository import SqlClientKeyStore
    from access_guard.storage.database import async_session, engine
    from access_guard.storage.mfa_repository import SqlMFAStore

    return (
        SqlMFAStore(async_session, build_cipher(cfg)),
        SqlClientKeyStore(async_session),
        engine,
        async_session,
    )


def create_app(
    *,
    app_settings: Settings | None = None,
    mfa_store: MFAStore | None = None,
    key_store: ClientKeyStore | None = None,
    session_resolver: RequestSessionResolver = no_session,
    routes: RouteTable | None = None,
    limiter: SlidingWindowRateLimiter | None = None,
) -> FastAPI:
    """Build the application.

    Stores default to the PostgreSQL adapters; tests pass in-memory
    stores. ``session_resolver`` is the identity provider hook: it maps a
    request to a ``SessionDescriptor`` or None.

    Raises:
        RouteTableError: the route table is inconsistent.
    """
    cfg = app_settings or settings
    routes = routes or load_route_table(DEFAULT_ROUTES)
    limiter = limiter or SlidingWindowRateLimiter(stripes=cfg.rate_limit_lock_stripes)

    engine: AsyncEngine | None = None
    session_factory: async_sessionmaker[AsyncSession] | None = None
    if mfa_store is None or key_store is None:
        sql_mfa, sql_keys, engine, session_factory = _sql_stores(cfg)
        mfa_store = mfa_store or sql_mfa
        key_store = key_store or sql_keys

    app = FastAPI(
        title="Access Guard",
        description="MFA, client keys and request gating for the workshop platform",
        version="0.1.0",
        lifespan=lifespan,
        debug=cfg.is_dev,
    )
    app.state.settings = cfg
    app.state.engine = engine
    app.state.session_factory = session_factory
    app.state.limiter = limiter
    app.state.mfa_manager = MFAManager(
        mfa_store,
        TOTPEngine(
            period=cfg.totp_period_seconds,
            digits=cfg.totp_digits,
            window=cfg.totp_window,
        ),
        issuer=cfg.mfa_issuer,
        backup_code_count=cfg.backup_code_count,
        store_timeout=cfg.store_timeout_seconds,
        limiter=limiter,
        attempt_limit=cfg.mfa_attempt_limit,
        attempt_window_ms=cfg.mfa_attempt_window_seconds * 1000,
    )
    app.state.client_key_manager = ClientKeyManager(
        key_store,
        limiter,
        store_timeout=cfg.store_timeout_seconds,
        default_rate_limit=cfg.client_key_default_rate_limit,
    )
    app.state.gateway = RequestGateway(
        routes,
        limiter,
        freshness=timedelta(minutes=cfg.session_freshness_minutes),
        resolve_timeout=cfg.store_timeout_seconds,
        window_ms=cfg.rate_limit_window_seconds * 1000,
    )

    app.add_middleware(
        GatewayMiddleware,
        gateway=app.state.gateway,
        session_resolver=session_resolver,
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_allowed_origins,
        allow_credentials=cfg.cors_allow_credentials,
        allow_methods=cfg.cors_allowed_methods,
        allow_headers=cfg.cors_allowed_headers,
    )

    _register_handlers(app)
    app.include_router(mfa_router, prefix="/api/v1")
    app.include_router(client_keys_router, prefix="/api/v1")
    return app


def _register_handlers(app: FastAPI) -> None:
    @app.get("/health")
    async def health() -> JSONResponse:
        """Deep health check. Verifies DB connectivity when SQL-backed."""
        checks: dict[str, str] = {}
        overall = "ok"

        session_factory = app.state.session_factory
        if session_factory is not None:
            try:
                async with session_factory() as session:
                    await asyncio.wait_for(
                        session.execute(text("SELECT 1")),
                        timeout=HEALTH_CHECK_TIMEOUT,
                    )
                checks["db"] = "ok"
            except (TimeoutError, OperationalError, SQLAlchemyError) as e:
                logger.warning("health_check_db_error", error=type(e).__name__)
                checks["db"] = f"error: {type(e).__name__}"
                overall = "degraded"
        else:
            checks["db"] = "in-memory"

        checks["rate_limiter_keys"] = str(len(app.state.limiter))
        status_code = 200 if overall == "ok" else 503
        return JSONResponse(
            status_code=status_code,
            content={
                "status": overall,
                "checks": checks,
                "timestamp": datetime.now(UTC).isoformat(timespec="seconds"),
            },
        )

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(
        request: Request, exc: RateLimitExceeded
    ) -> JSONResponse:
        return JSONResponse(
            status_code=429,
            content={"detail": "Rate limit exceeded"},
            headers={"Retry-After": str(exc.retry_after_seconds)},
        )

    @app.exception_handler(StoreUnavailable)
    async def store_unavailable_handler(
        request: Request, exc: StoreUnavailable
    ) -> JSONResponse:
        logger.error("store_unavailable", path=request.url.path, error=str(exc))
        return JSONResponse(
            status_code=503,
            content={"detail": "Service temporarily unavailable"},
        )

    @app.exception_handler(InvalidVerificationToken)
    async def invalid_token_handler(
        request: Request, exc: InvalidVerificationToken
    ) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"detail": "Invalid verification token", "valid": False},
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request,
        exc: Exception,
    ) -> JSONResponse:
        """Catch-all handler for unhandled exceptions."""
        logger.error("unhandled_exception", exc_info=exc, path=request.url.path)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )


app = create_app()
