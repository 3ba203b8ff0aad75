"""
Pytest configuration and shared fixtures for the opsboard test suite.

Fixtures provided:
- Test settings with a known ingest API key
- An in-memory snapshot store and a lock service that never waits
- Sample conversations and complaints matching the upload formats
- A FastAPI TestClient with every collaborator replaced through
  ``app.dependency_overrides`` (the lifespan is not run)
- A fake OpenAI-compatible client for the batch classifier

Dependencies:
- pytest
- pytest-asyncio (registered through its entry point)
- httpx (TestClient transport and MockTransport)
"""

from types import SimpleNamespace
from typing import Any, Callable, Dict, Generator, List, Optional
from unittest.mock import AsyncMock

import httpx
import pytest
from fastapi.testclient import TestClient

from opsboard.core.config import Settings
from opsboard.core.dependencies import (
    get_classifier,
    get_http_client,
    get_lock_service,
    get_settings_dependency,
    get_snapshot_store,
)
from opsboard.core.locks import BackoffPolicy, MemoryLockService
from opsboard.core.storage import MemoryBlobStore, SnapshotStore
from opsboard.main import app
from opsboard.services.classification import ConversationClassifier
from opsboard.services.entity_resolution import RawRecord


TEST_API_KEY = 'test-key'


# ============================================================
# PYTEST HOOKS
# ============================================================

def pytest_configure(config) -> None:
    """
    Register custom markers.

    - api: tests exercising the HTTP surface through TestClient
    - pipeline: pure pipeline tests with no storage
    """
    config.addinivalue_line('markers', 'api: marks tests that go through the HTTP API')
    config.addinivalue_line('markers', 'pipeline: marks pure pipeline tests')


# ============================================================
# SETTINGS AND COLLABORATORS
# ============================================================

@pytest.fixture
def test_settings() -> Settings:
    """Settings isolated from the environment and any local .env file."""
    return Settings(
        _env_file=None,
        ingest_api_key=TEST_API_KEY,
        blob_base_url=None,
        pnl_config_url=None,
        openai_api_key=None,
        remote_config_retry_delay_seconds=0,
    )


@pytest.fixture
def snapshot_store() -> SnapshotStore:
    return SnapshotStore(MemoryBlobStore())


async def _no_sleep(seconds: float) -> None:
    return None


@pytest.fixture
def no_wait_policy() -> BackoffPolicy:
    """A policy that gives up after the first failed attempt."""
    return BackoffPolicy(max_wait_seconds=0, initial_delay_seconds=0.01, max_delay_seconds=0.01)


@pytest.fixture
def lock_service(no_wait_policy: BackoffPolicy) -> MemoryLockService:
    return MemoryLockService(policy=no_wait_policy, sleep=_no_sleep)


# ============================================================
# FAKE OPENAI CLIENT
# ============================================================

def chat_completion(content: Optional[str]) -> SimpleNamespace:
    """Minimal object shaped like an OpenAI chat completion response."""
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


@pytest.fixture
def fake_openai_client() -> Callable[..., SimpleNamespace]:
    """
    Factory for a fake AsyncOpenAI client.

    ``replies`` maps a substring of the user prompt to the reply content;
    a reply that is an Exception instance is raised instead.

    Usage:
        client = fake_openai_client({'refund': '{"frustrated": true}'})
        classifier = ConversationClassifier(client)
    """
    def factory(replies: Dict[str, Any], default: str = '{"frustrated": false, "confused": false}'):
        async def create(**kwargs):
            prompt = kwargs['messages'][-1]['content']
            for needle, reply in replies.items():
                if needle in prompt:
                    if isinstance(reply, Exception):
                        raise reply
                    return chat_completion(reply)
            return chat_completion(default)

        return SimpleNamespace(
            chat=SimpleNamespace(completions=SimpleNamespace(create=AsyncMock(side_effect=create))),
            close=AsyncMock(return_value=None),
        )

    return factory


# ============================================================
# SAMPLE DATA
# ============================================================

@pytest.fixture
def sample_records() -> List[RawRecord]:
    """
    Four conversations from three people:
    - client K1 in two conversations (one frustrated, one confused)
    - maid M1 in one frustrated conversation
    - one anonymous conversation with no flags
    """
    return [
        RawRecord(conversation_id='c1', client_id='K1', frustrated=True, main_issues=('Visa delay',)),
        RawRecord(conversation_id='c2', client_id='K1', confused=True, main_issues=('Payment',)),
        RawRecord(conversation_id='c3', maid_id='M1', frustrated=True, main_issues=('Visa delay',)),
        RawRecord(conversation_id='c4', key_phrases=('hello',)),
    ]


@pytest.fixture
def sample_conversation_payload() -> List[Dict[str, Any]]:
    """The sample_records people in the upload JSON shape."""
    return [
        {'conversationId': 'c1', 'clientId': 'K1', 'frustrated': True, 'confused': False,
         'mainIssues': ['Visa delay']},
        {'conversationId': 'c2', 'clientId': 'K1', 'frustrated': False, 'confused': True,
         'mainIssues': ['Payment']},
        {'conversationId': 'c3', 'maidId': 'M1', 'frustrated': True, 'confused': False,
         'mainIssues': ['Visa delay']},
        {'conversationId': 'c4', 'frustrated': False, 'confused': False, 'keyPhrases': ['hello']},
    ]


@pytest.fixture
def sample_complaints() -> List[Dict[str, Any]]:
    """Three OEC complaints on one contract: two sales (Jan and Jun 2026)."""
    return [
        {'CONTRACT_ID': 'C1', 'COMPLAINT_TYPE': 'Overseas Employment Certificate',
         'CREATION_DATE': '2026-01-01 09:00:00.000'},
        {'CONTRACT_ID': 'C1', 'COMPLAINT_TYPE': 'Overseas Employment Certificate',
         'CREATION_DATE': '2026-01-20 10:30:00.000'},
        {'CONTRACT_ID': 'C1', 'COMPLAINT_TYPE': 'Overseas Employment Certificate',
         'CREATION_DATE': '2026-06-01 08:00:00.000'},
    ]


# ============================================================
# API CLIENT
# ============================================================

@pytest.fixture
def http_client() -> httpx.AsyncClient:
    """An HTTP client that answers 404 to everything."""
    return httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(404)))


@pytest.fixture
def classifier_holder() -> SimpleNamespace:
    """Set ``.classifier`` inside a test to enable /chat-analysis/classify."""
    return SimpleNamespace(classifier=None)


@pytest.fixture
def api_client(
    test_settings: Settings,
    snapshot_store: SnapshotStore,
    lock_service: MemoryLockService,
    http_client: httpx.AsyncClient,
    classifier_holder: SimpleNamespace,
) -> Generator[TestClient, None, None]:
    """
    TestClient with settings, storage, locks, HTTP client and classifier
    overridden. Overrides are removed after the test.
    """
    app.dependency_overrides[get_settings_dependency] = lambda: test_settings
    app.dependency_overrides[get_snapshot_store] = lambda: snapshot_store
    app.dependency_overrides[get_lock_service] = lambda: lock_service
    app.dependency_overrides[get_http_client] = lambda: http_client
    app.dependency_overrides[get_classifier] = lambda: classifier_holder.classifier
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth_headers() -> Dict[str, str]:
    return {'Authorization': f"Bearer {TEST_API_KEY}"}


@pytest.fixture
def make_classifier(fake_openai_client) -> Callable[..., ConversationClassifier]:
    def factory(replies: Dict[str, Any], **kwargs) -> ConversationClassifier:
        return ConversationClassifier(fake_openai_client(replies), **kwargs)

    return factory
