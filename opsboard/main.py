"""
FastAPI application entry point for the opsboard API.

Collaborators are built once in the lifespan and stored on ``app.state``:
- one shared httpx.AsyncClient (blob store, remote P&L config)
- the blob store (hosted when BLOB_BASE_URL is set, in-memory otherwise)
  wrapped in a SnapshotStore
- the advisory lock service (blob-backed with a hosted store, in-process otherwise)
- the conversation classifier when OPENAI_API_KEY is set
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import httpx
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from openai import AsyncOpenAI

from opsboard import __version__
from opsboard.api import api_router
from opsboard.api.common import http_exception_handler, validation_exception_handler
from opsboard.core.config import Settings, get_settings
from opsboard.core.locks import BackoffPolicy, BlobLockService, MemoryLockService
from opsboard.core.storage import HttpBlobStore, MemoryBlobStore, SnapshotStore
from opsboard.services.classification import ConversationClassifier

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def build_state(app: FastAPI, settings: Settings, http_client: httpx.AsyncClient) -> None:
    """Attach the storage, lock and classifier collaborators to ``app.state``."""
    policy = BackoffPolicy(
        max_wait_seconds=settings.lock_max_wait_seconds,
        initial_delay_seconds=settings.lock_initial_backoff_seconds,
        max_delay_seconds=settings.lock_max_backoff_seconds,
    )

    if settings.blob_base_url:
        blobs = HttpBlobStore(settings.blob_base_url, settings.blob_read_write_token, http_client)
        snapshot_store = SnapshotStore(blobs)
        lock_service = BlobLockService(snapshot_store, policy=policy)
        logger.info(f"Using hosted blob store at {settings.blob_base_url}")
    else:
        snapshot_store = SnapshotStore(MemoryBlobStore())
        lock_service = MemoryLockService(policy=policy)
        logger.warning("BLOB_BASE_URL not set, using in-memory blob store (data is not persisted)")

    classifier = None
    if settings.openai_api_key:
        classifier = ConversationClassifier(
            AsyncOpenAI(api_key=settings.openai_api_key, base_url=settings.openai_base_url),
            model=settings.openai_model,
            max_chars=settings.classification_max_chars,
        )
        logger.info(f"Conversation classification enabled ({settings.openai_model})")

    app.state.http_client = http_client
    app.state.snapshot_store = snapshot_store
    app.state.lock_service = lock_service
    app.state.classifier = classifier


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    On startup: build the shared HTTP client and injected collaborators.
    On shutdown: close the HTTP and classifier clients.
    """
    settings = get_settings()
    logger.info("opsboard API starting")
    http_client = httpx.AsyncClient(timeout=settings.blob_timeout_seconds)
    build_state(app, settings, http_client)

    yield

    logger.info("opsboard API shutting down")
    if app.state.classifier is not None:
        await app.state.classifier.close()
    await http_client.aclose()


# Create FastAPI application
app = FastAPI(
    title="opsboard API",
    version=__version__,
    description=(
        "Backend for the operations dashboard. Ingests chat analysis, complaint, "
        "NPS and delay-time exports and serves the derived snapshots and P&L."
    ),
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)

app.include_router(api_router)


@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring and load balancer probes."""
    return {"status": "healthy"}


@app.get("/")
async def root():
    """Root endpoint providing API information."""
    return {
        "name": "opsboard API",
        "version": __version__,
        "docs": "/docs",
        "openapi": "/openapi.json",
    }


# Run with uvicorn when executed directly
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "opsboard.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
