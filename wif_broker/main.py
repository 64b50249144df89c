from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

from wif_broker.modules.identity.api.admin import router as admin_router
from wif_broker.modules.identity.api.host import LocalHost
from wif_broker.modules.identity.api.oidc import router as oidc_router
from wif_broker.modules.identity.domain.exchange import FederatedCredentialExchanger
from wif_broker.modules.identity.domain.scheduler import RefreshScheduler
from wif_broker.modules.identity.domain.service import WorkloadIdentityApp
from wif_broker.shared.core.config import Settings, get_settings
from wif_broker.shared.core.crypto import CryptoProvider
from wif_broker.shared.core.exceptions import BrokerException
from wif_broker.shared.core.logging import setup_logging
from wif_broker.shared.core.middleware import RequestIDMiddleware, SecurityHeadersMiddleware
from wif_broker.shared.store import KeyValueStore, SQLStore, load_store

logger = structlog.get_logger()


async def broker_exception_handler(request: Request, exc: BrokerException) -> JSONResponse:
    """Log the full fault; return only the message and code."""
    logger.error(
        "request_failed",
        path=request.url.path,
        code=exc.code,
        error=exc.message,
        details=exc.details,
    )
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message, "code": exc.code})


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[KeyValueStore] = None,
    crypto: Optional[CryptoProvider] = None,
    exchanger: Optional[FederatedCredentialExchanger] = None,
) -> FastAPI:
    settings = settings or get_settings()

    # This runs BEFORE the app starts (setup) and AFTER it stops (teardown).
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("app_starting", app=settings.APP_NAME, version=settings.VERSION)

        kv_store = store or load_store(settings)
        if isinstance(kv_store, SQLStore):
            await kv_store.init_schema()

        host = LocalHost(settings)
        wif_app = WorkloadIdentityApp(kv_store, host, crypto=crypto, exchanger=exchanger, settings=settings)
        host.bind(wif_app)

        app.state.settings = settings
        app.state.host = host
        app.state.wif_app = wif_app

        # Initial sync: provisions the key pair and mints a token when config is complete
        await host.sync()

        scheduler = RefreshScheduler(wif_app.on_scheduled_trigger, settings.REFRESH_INTERVAL_MINUTES)
        scheduler.start()
        app.state.scheduler = scheduler

        yield

        logger.info("app_stopping", app=settings.APP_NAME)
        scheduler.stop()
        if isinstance(kv_store, SQLStore) and store is None:
            await kv_store.close()

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.VERSION,
        lifespan=lifespan,
    )

    Instrumentator().instrument(app).expose(app, include_in_schema=False)
    app.add_exception_handler(BrokerException, broker_exception_handler)

    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/health")
    async def health_check():
        status = app.state.host.status
        return {
            "status": "active",
            "app": settings.APP_NAME,
            "version": settings.VERSION,
            "installation": status.new_status.value if status else None,
            "scheduler": app.state.scheduler.get_status(),
        }

    app.include_router(admin_router)
    # Catch-all: must be registered last
    app.include_router(oidc_router)
    return app


def get_app() -> FastAPI:
    """ASGI factory: `uvicorn wif_broker.main:get_app --factory`."""
    setup_logging()
    return create_app()
