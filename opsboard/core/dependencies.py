"""
FastAPI dependency injection module for the opsboard service.

Collaborators (snapshot store, lock service, HTTP client, classifier) are
built once in the application lifespan and stored on ``app.state``; the
dependencies here only hand them to endpoint handlers. Tests replace them
with ``app.dependency_overrides``.

Usage:
    @router.get("/chat-analysis")
    async def get_chat_analysis(store: SnapshotStoreDep):
        ...

    @router.post("/chat-analysis", dependencies=[Depends(require_api_key)])
    async def post_chat_analysis(...):
        ...
"""

import logging
from typing import Annotated, Optional

import httpx
from fastapi import Depends, Header, HTTPException, Request

from opsboard.core.config import Settings, get_settings
from opsboard.core.locks import LockService
from opsboard.core.storage import SnapshotStore
from opsboard.services.classification import ConversationClassifier


logger = logging.getLogger(__name__)


# =============================================================================
# Settings Dependency
# =============================================================================

def get_settings_dependency() -> Settings:
    """
    Return the Settings singleton.

    Thin wrapper around get_settings() so tests can override it:

        app.dependency_overrides[get_settings_dependency] = lambda: test_settings
    """
    return get_settings()


SettingsDep = Annotated[Settings, Depends(get_settings_dependency)]


# =============================================================================
# Application State Dependencies
# =============================================================================

def get_snapshot_store(request: Request) -> SnapshotStore:
    return request.app.state.snapshot_store


def get_lock_service(request: Request) -> LockService:
    return request.app.state.lock_service


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client


def get_classifier(request: Request) -> Optional[ConversationClassifier]:
    """The batch classifier, or None when no OpenAI key is configured."""
    return getattr(request.app.state, 'classifier', None)


SnapshotStoreDep = Annotated[SnapshotStore, Depends(get_snapshot_store)]
LockServiceDep = Annotated[LockService, Depends(get_lock_service)]
HttpClientDep = Annotated[httpx.AsyncClient, Depends(get_http_client)]
ClassifierDep = Annotated[Optional[ConversationClassifier], Depends(get_classifier)]


# =============================================================================
# Authentication
# =============================================================================

def extract_token(authorization: Optional[str]) -> Optional[str]:
    """Token from an Authorization header; both ``Bearer <token>`` and ``<token>`` are accepted."""
    if not authorization:
        return None
    if authorization.startswith('Bearer '):
        return authorization[len('Bearer '):]
    return authorization


def require_api_key(
    settings: SettingsDep,
    authorization: Annotated[Optional[str], Header()] = None,
) -> None:
    """
    Reject the request with 401 unless it carries the ingest API key.

    With no key configured every request is rejected.
    """
    if not settings.ingest_api_key:
        logger.warning("INGEST_API_KEY not set, rejecting authenticated request")
        raise HTTPException(status_code=401, detail='Invalid or missing API key')
    if extract_token(authorization) != settings.ingest_api_key:
        raise HTTPException(status_code=401, detail='Invalid or missing API key')
