# main.py
"""Gateway application: explicit composition and health-check lifecycle"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from config import settings
from services.logger_config import setup_logging
from api.endpoints import router
from services.factory import build_gateway
from services.gateway import Gateway

setup_logging()
logger = logging.getLogger(settings.LOGGER_NAME)

def create_app(gateway: Optional[Gateway] = None, health_checks: bool = True) -> FastAPI:
    """
    Build the FastAPI app.

    With no gateway one is built from settings at startup. The gateway is
    owned by the app: its pool's health-check task starts with the app and
    its backends are closed on shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan manager"""
        logger.info("Starting application...")
        app.state.gateway = gateway if gateway is not None else build_gateway(settings)

        if health_checks:
            await app.state.gateway.pool.health_check()
            app.state.gateway.pool.start(settings.HEALTH_CHECK_INTERVAL)
        logger.info("Services initialized")

        yield

        logger.info("Shutting down gateway...")
        await app.state.gateway.aclose()
        logger.info("Application shutdown complete")

    app = FastAPI(
        title=settings.APP_TITLE,
        version=settings.APP_VERSION,
        lifespan=lifespan
    )
    app.include_router(router)
    return app

app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=8000,
        log_level="info"
    )
