"""Anime Verse Entitlements — FastAPI application entry point."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from entitlements.api.v1.admin import router as admin_router
from entitlements.api.v1.badges import router as badges_router
from entitlements.api.v1.payments import router as payments_router
from entitlements.api.v1.subscriptions import router as subscriptions_router
from entitlements.api.v1.webhooks import router as webhooks_router
from entitlements.billing.gateways.registry import build_default_registry
from entitlements.config import settings
from entitlements.database import async_session_factory
from entitlements.errors import PersistenceError
from entitlements.services.store import EntitlementStore
from entitlements.services.subscription_service import SubscriptionService

# Configure root logger so all entitlements.* loggers output to stderr.
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan handler for startup and shutdown events."""
    # Startup: one store and one gateway registry per process
    gateways = build_default_registry(settings)
    app.state.subscription_service = SubscriptionService(
        EntitlementStore(async_session_factory), gateways
    )
    yield
    # Shutdown: close gateway connections, then dispose the engine
    from entitlements.database import engine

    await gateways.aclose()
    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Badge entitlement and payment ledger for Anime Verse.",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routers
app.include_router(badges_router)
app.include_router(subscriptions_router)
app.include_router(payments_router)
app.include_router(admin_router)
app.include_router(webhooks_router)


@app.get("/health", tags=["health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy", "service": settings.app_name}


@app.get("/", tags=["root"])
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
    }


@app.exception_handler(PersistenceError)
async def persistence_error_handler(request: Request, exc: PersistenceError) -> JSONResponse:
    """A ledger write was rolled back; nothing was persisted."""
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": {"message": "Ledger write failed", "code": "persistence_error"}},
    )
