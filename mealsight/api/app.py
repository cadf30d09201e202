"""FastAPI application.

Run with:
    uvicorn mealsight.api.app:app   (or: mealsight-api)
"""

import os
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional

import structlog
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from mealsight import __version__
from mealsight.api.routes import router
from mealsight.container import Container, build_container
from mealsight.infrastructure.config import get_settings
from mealsight.infrastructure.logging import configure_logging

logger = structlog.get_logger(__name__)


def _default_container() -> Container:
    settings = get_settings()
    configure_logging(settings.log_level)
    return build_container(settings)


def create_app(container_factory: Optional[Callable[[], Container]] = None) -> FastAPI:
    """
    Build the API.

    Args:
        container_factory: Builds the container at startup (defaults to
            settings from the environment)
    """
    factory = container_factory or _default_container

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        container = factory()
        app.state.container = container
        logger.info(
            "lifespan.ready",
            storage_backend=container.settings.storage_backend,
            photo_analysis=container.pipeline is not None,
        )
        try:
            yield
        finally:
            logger.info("lifespan.shutdown")
            await container.aclose()

    app = FastAPI(title="Mealsight", version=__version__, lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )
    app.include_router(router)
    return app


app = create_app()


def main() -> None:
    """Serve the API (HOST and PORT from the environment)."""
    uvicorn.run(
        "mealsight.api.app:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8080")),
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
    )


if __name__ == "__main__":
    main()
