"""FastAPI application factory for Concert Agent."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI

from concert_agent import __version__
from concert_agent.db.engine import init_db
from concert_agent.ingestion.runner import build_chain_dispatcher

logger = logging.getLogger(__name__)

# Load .env file from project root
_project_root = Path(__file__).parent.parent.parent
_env_file = _project_root / ".env"
if _env_file.exists():
    load_dotenv(_env_file)

# Give in-flight chain triggers this long to go out on shutdown
SHUTDOWN_DRAIN_SECONDS = 10.0


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Own the chain dispatcher for the lifetime of the process."""
    dispatcher = build_chain_dispatcher()
    app.state.chain_dispatcher = dispatcher
    try:
        yield
    finally:
        if dispatcher is not None:
            await dispatcher.drain(timeout=SHUTDOWN_DRAIN_SECONDS)
            await dispatcher.aclose()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Concert Agent",
        description="Batch ingestion engine for Stockholm concert and comedy listings",
        version=__version__,
        lifespan=lifespan,
    )

    # Initialize database tables
    init_db()

    # Include routers (import here to avoid circular imports)
    from concert_agent.web.routes import scrape

    app.include_router(scrape.router)

    return app
