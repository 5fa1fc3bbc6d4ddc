import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from tortoise import Tortoise

from docpipe.api import documents, work
from docpipe.core.config import TORTOISE_ORM
from docpipe.core.queue import get_work_queue

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Handle application startup and shutdown events."""
    logger.info("Starting up the application...")

    # Initialize Tortoise ORM
    await Tortoise.init(config=TORTOISE_ORM)
    logger.info("Database initialized successfully")

    work_queue = get_work_queue()
    await work_queue.start()

    yield

    logger.info("Shutting down the application...")
    # Let admitted pipeline runs finish before the database goes away
    await work_queue.stop(drain=True)
    await Tortoise.close_connections()
    logger.info("Database connections closed")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Document Ingestion Pipeline",
        description="Content-deduplicated document ingestion: extraction, metadata, embedding and indexing.",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Include API routers
    app.include_router(documents.router, prefix="/api/v1", tags=["Documents"])
    app.include_router(work.router, prefix="/api/v1", tags=["Work"])

    @app.get("/health", tags=["Health"])
    async def health_check():
        """Perform a health check."""
        work_queue = get_work_queue()
        return {"status": "ok", "running": work_queue.running_count, "queued": work_queue.depth}

    return app


app = create_app()
