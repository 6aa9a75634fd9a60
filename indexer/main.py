"""
FastAPI application entry point for the record indexer.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import logging
import sys

from indexer.config.settings import get_settings
from indexer.api import config, indexing

# Get settings to access log configuration
settings = get_settings()

# Configure logging with both console and file output
# UTF-8 keeps titles and labels with non-ASCII characters readable
console_handler = logging.StreamHandler(sys.stdout)
console_handler.setLevel(logging.DEBUG)
console_handler.setFormatter(logging.Formatter(
    "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
))
stream_encoding = (getattr(console_handler.stream, 'encoding', None) or '').lower()
if hasattr(console_handler.stream, 'reconfigure') and stream_encoding not in ('utf-8', 'utf8'):
    console_handler.stream.reconfigure(encoding='utf-8', errors='replace')

handlers = [console_handler]

# An empty LOG_FILE disables file logging
if settings.log_file:
    file_handler = logging.FileHandler(settings.log_file, encoding='utf-8')
    file_handler.setFormatter(logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    ))
    handlers.append(file_handler)

logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=handlers,
    force=True
)

# Keep third-party loggers at INFO even in DEBUG mode
logging.getLogger("httpcore").setLevel(logging.INFO)
logging.getLogger("httpx").setLevel(logging.INFO)
logging.getLogger("urllib3").setLevel(logging.INFO)

# Route uvicorn logs through the root logger's handlers and format
uvicorn_access_logger = logging.getLogger("uvicorn.access")
uvicorn_access_logger.handlers = []
uvicorn_access_logger.propagate = True

uvicorn_error_logger = logging.getLogger("uvicorn.error")
uvicorn_error_logger.handlers = []
uvicorn_error_logger.propagate = True

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info(f"Starting record indexer v{settings.version}")
    logger.info(f"Search index: {settings.index_path} (collection '{settings.index_collection}')")
    logger.info(f"Hotfolder: {settings.hotfolder_path}")
    if settings.log_file:
        logger.info(f"Logging to file: {settings.log_file}")

    yield

    indexing.reset_hotfolder()
    logger.info("Shutting down record indexer")


# Create FastAPI app
app = FastAPI(
    title="Record Indexer API",
    description="Search index document assembly for archival records",
    version=settings.version,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(config.router, prefix="/api", tags=["config"])
app.include_router(indexing.router, prefix="/api", tags=["indexing"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "Record Indexer API",
        "version": settings.version,
        "status": "running"
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


def run():
    """Run the API server with uvicorn."""
    import uvicorn

    uvicorn.run(app, host=settings.api_host, port=settings.api_port, log_config=None)


if __name__ == "__main__":
    run()
