from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from rcn_api.core.settings import settings
from rcn_api.db.session import async_session
from .api.routes import api_router
from .core.logging import configure_logging
from .observability.tracing import configure_tracing
from .services.errors import TransientError
from .services.roles import AdminRoleAudit


APP_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.admin_addresses:
        try:
            async with async_session() as session:
                report = await AdminRoleAudit(session, settings.admin_addresses).sync_admin_addresses()
        except TransientError as exc:
            logger.error("Admin address validation skipped", error=str(exc))
            app.state.admin_address_report = None
        else:
            app.state.admin_address_report = report
            if not report.healthy:
                logger.error(
                    "Admin addresses need attention",
                    conflicts=[conflict.address for conflict in report.conflicts],
                    invalid=[address for address, _ in report.invalid],
                )
    else:
        app.state.admin_address_report = None
        logger.info("Admin address validation skipped", reason="admin_addresses is empty")

    yield


def create_app() -> FastAPI:
    """Application factory for the RCN redemption API."""
    configure_logging(
        service_name="rcn-api",
        environment=settings.environment,
        version=APP_VERSION,
        level=settings.log_level,
    )

    app = FastAPI(
        title="RCN Redemption API",
        version=APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    configure_tracing(
        app,
        service_name="rcn-api",
        service_version=APP_VERSION,
        environment=settings.environment,
    )

    app.include_router(api_router)

    @app.get("/healthz", tags=["Health"])
    async def health_check() -> dict[str, str]:
        return {
            "status": "ok",
            "environment": settings.environment,
            "version": APP_VERSION,
        }

    return app
