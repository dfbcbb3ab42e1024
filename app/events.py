import logging

from fastapi import FastAPI

from app.core.settings import settings
from app.db.session import engine

logger = logging.getLogger(__name__)


def register_event_handlers(app: FastAPI) -> None:
    @app.on_event("startup")
    async def on_startup() -> None:
        logger.info(
            "Application startup environment=%s default_carrier=%s",
            settings.environment,
            settings.default_carrier_slug,
        )
        if settings.test_payment_fixtures_enabled:
            logger.warning("Sandbox payment fixtures are enabled")

    @app.on_event("shutdown")
    async def on_shutdown() -> None:
        logger.info("Application shutdown")
        await engine.dispose()
