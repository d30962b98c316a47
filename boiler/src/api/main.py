"""
FastAPI application for the boiler telemetry dashboard.

The application lifespan builds the pipeline from ``PipelineSettings``
(engine, schema, store, device session with its MQTT listener), starts it,
and on shutdown stops the session and disposes the engine.  A pre-built
session can be injected instead, in which case the lifespan neither starts
nor stops it.

CHANGELOG:
- 2026-10-17: Register alerts, thresholds, consumption and device routers (STORY-016)
- 2026-10-17: Initial creation (STORY-015)
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from boiler.src.api.alerts import router as alerts_router
from boiler.src.api.consumption import router as consumption_router
from boiler.src.api.device import router as device_router
from boiler.src.api.health import router as health_router
from boiler.src.api.realtime import router as realtime_router
from boiler.src.api.thresholds import router as thresholds_router
from boiler.src.pipeline import DeviceSession

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _pipeline_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Build, start and stop the pipeline from environment settings."""
    from boiler.src.config import PipelineSettings
    from boiler.src.db.session import create_engine, init_schema
    from boiler.src.main import configure_logging, log_config_summary
    from boiler.src.pipeline import build_session
    from boiler.src.store import ReadingStore

    settings = PipelineSettings()
    configure_logging(settings.log_level)
    log_config_summary(settings)

    engine = create_engine(settings.database_url)
    try:
        await init_schema(engine)
        session = build_session(settings, ReadingStore(engine))
        await session.start()
        app.state.session = session
        logger.info("Boiler API ready for device %s", session.device_id)
        try:
            yield
        finally:
            logger.info("Boiler API shutting down")
            app.state.session = None
            await session.aclose()
    finally:
        await engine.dispose()


def create_app(session: DeviceSession | None = None) -> FastAPI:
    """Create the API application.

    Args:
        session: Already running session to serve; when omitted the
            lifespan builds one from the environment.
    """
    if session is None:
        lifespan = _pipeline_lifespan
    else:

        @asynccontextmanager
        async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
            app.state.session = session
            yield

    app = FastAPI(
        title="Boiler Telemetry API",
        description="Live boiler telemetry, alerts and consumption reports.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(health_router)
    app.include_router(realtime_router)
    app.include_router(alerts_router)
    app.include_router(thresholds_router)
    app.include_router(consumption_router)
    app.include_router(device_router)

    @app.get("/")
    async def root() -> dict:
        """Root liveness endpoint."""
        return {"status": "ok"}

    return app


app = create_app()
