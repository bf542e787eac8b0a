"""FastAPI application factory.

Run with ``uvicorn soulgate.main:app`` or ``python -m soulgate.main``.
"""

from fastapi import FastAPI

from soulgate import __version__
from soulgate.api.routers import api_router, health
from soulgate.config import Settings, get_settings
from soulgate.infrastructure.lifecycle import lifespan


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create the FastAPI application.

    Args:
        settings: Explicit settings (tests); falls back to get_settings() at startup
    """
    app = FastAPI(
        title="SoulGate",
        version=__version__,
        description="Keeps the local music catalog in line with a published artist whitelist",
        lifespan=lifespan,
    )
    if settings is not None:
        app.state.settings = settings

    app.include_router(api_router, prefix="/api")
    app.include_router(health.router, prefix="/health", tags=["Health"])
    return app


app = create_app()


def main() -> None:
    """Run the app with uvicorn."""
    import uvicorn

    uvicorn.run("soulgate.main:app", host="0.0.0.0", port=8000)  # nosec B104


if __name__ == "__main__":
    main()
