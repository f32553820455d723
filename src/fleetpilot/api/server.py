import structlog
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from fleetpilot import __version__
from fleetpilot.api.routes import agent, health, models, sessions
from fleetpilot.application.config import EngineSettings
from fleetpilot.application.factory import EngineComponents, EngineFactory

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the engine on startup unless components were injected."""
    if app.state.components is None:
        app.state.components = await EngineFactory(app.state.settings).create()

    await logger.ainfo(
        "fastapi.startup",
        message="fleetpilot API starting...",
        storage_backend=app.state.settings.storage_backend,
    )
    yield
    await logger.ainfo("fastapi.shutdown", message="fleetpilot API shutting down...")


def create_app(
    components: EngineComponents | None = None,
    settings: EngineSettings | None = None,
) -> FastAPI:
    """Create and configure FastAPI application."""

    app = FastAPI(
        title="fleetpilot Decision Engine API",
        description="Action decisions, verification and model routing for browser automation runners",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.settings = settings or EngineSettings()
    app.state.components = components

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(agent.router, prefix="/api/v1", tags=["agent"])
    app.include_router(sessions.router, prefix="/api/v1", tags=["sessions"])
    app.include_router(models.router, prefix="/api/v1", tags=["models"])
    app.include_router(health.router, tags=["health"])

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=app.state.settings.host, port=app.state.settings.port)
