"""
Shared Test Fixtures for the Feed Sync Client

This module provides common fixtures used across all test modules.
Fixtures include principals, in-memory stores, a settled identity gate,
HTTP responses, and data factories for test objects.
"""

import pytest
from unittest.mock import MagicMock, AsyncMock
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


# =============================================================================
# Identity Fixtures
# =============================================================================

@pytest.fixture
def principal():
    """The signed-in author used by most tests."""
    from data.models import Principal
    return Principal(id="u1", display_name="Alice")


@pytest.fixture
def other_principal():
    """A second user who does not own the test posts."""
    from data.models import Principal
    return Principal(id="u2", display_name="Bob")


@pytest.fixture
def settled_gate():
    """
    Factory fixture for identity gates that have finished session restoration.

    Must be awaited from inside a running event loop.

    Usage:
        async def test_something(settled_gate, principal):
            gate = await settled_gate(principal)

    Returns:
        callable: Async factory taking the restored principal (or None).
    """
    from services.identity_service import IdentityGate

    async def _create(restored=None):
        gate = IdentityGate()
        gate.start(AsyncMock(return_value=restored))
        await gate.await_ready()
        return gate

    return _create


# =============================================================================
# Store Fixtures
# =============================================================================

@pytest.fixture
def document_store():
    """An empty in-memory document store."""
    from data.memory import InMemoryDocumentStore
    return InMemoryDocumentStore()


@pytest.fixture
def blob_store():
    """An empty in-memory blob store."""
    from data.memory import InMemoryBlobStore
    return InMemoryBlobStore()


@pytest.fixture
def image_attachment():
    """A small PNG attachment."""
    from data.models import Attachment
    return Attachment(data=b"\x89PNG\r\n\x1a\nfake-image", content_type="image/png", filename="pic.png")


@pytest.fixture
def feed_pipeline(document_store, blob_store):
    """
    Factory fixture wiring reader, writer and eraser around the in-memory stores.

    Usage:
        async def test_pipeline(feed_pipeline, settled_gate, principal):
            gate = await settled_gate(principal)
            reader, writer, eraser, events = feed_pipeline(gate)

    Returns:
        callable: Factory taking a gate and an optional clock.
    """
    from services.feed_service import FeedReader, FeedWriter, FeedEraser, FeedEvents

    def _create(gate, clock=None):
        events = FeedEvents()
        reader = FeedReader(document_store)
        if clock is None:
            writer = FeedWriter(gate, document_store, blob_store, events)
        else:
            writer = FeedWriter(gate, document_store, blob_store, events, clock=clock)
        eraser = FeedEraser(document_store, blob_store, events)
        return reader, writer, eraser, events

    return _create


@pytest.fixture
def ticking_clock():
    """
    A clock returning strictly increasing timestamps, one second apart.

    Returns:
        callable: Zero-argument clock.
    """
    start = datetime(2024, 1, 15, 10, 0, 0, tzinfo=timezone.utc)
    ticks = {"n": 0}

    def _clock():
        ticks["n"] += 1
        return start + timedelta(seconds=ticks["n"])

    return _clock


# =============================================================================
# Data Model Factories
# =============================================================================

@pytest.fixture
def post_factory():
    """
    Factory fixture for creating Post test objects.

    Usage:
        def test_post(post_factory):
            post = post_factory(body="hello", attachment_ref=None)

    Returns:
        callable: A factory function for creating Post objects.
    """
    from data.models import Post

    def _create_post(
        id: str = "post-1",
        body: str = "Test post content",
        author_id: str = "u1",
        author_display_name: str = "Alice",
        created_at: Optional[datetime] = None,
        attachment_ref: Optional[str] = None,
    ) -> Post:
        return Post(
            id=id,
            body=body,
            author_id=author_id,
            author_display_name=author_display_name,
            created_at=created_at or datetime(2024, 1, 15, 10, 0, 0, tzinfo=timezone.utc),
            attachment_ref=attachment_ref,
        )

    return _create_post


# =============================================================================
# HTTP Response Fixtures
# =============================================================================

@pytest.fixture
def mock_http_response():
    """
    Factory fixture for creating mock HTTP responses.

    Usage:
        def test_http_request(mock_http_response):
            response = mock_http_response(status_code=200, json_data={'key': 'value'})

    Returns:
        callable: A factory function for creating mock responses.
    """
    def _create_response(
        status_code: int = 200,
        json_data: Any = None,
        content: bytes = b'',
        headers: Optional[Dict[str, str]] = None,
    ) -> MagicMock:
        mock_response = MagicMock()
        mock_response.status_code = status_code
        mock_response.ok = 200 <= status_code < 300
        mock_response.reason = "OK" if mock_response.ok else "Error"
        mock_response.content = content
        mock_response.headers = headers or {'Content-Type': 'application/json'}

        if json_data is not None:
            mock_response.json.return_value = json_data
        else:
            mock_response.json.side_effect = ValueError("No JSON data")

        return mock_response

    return _create_response


@pytest.fixture
def mock_http(mock_http_response):
    """
    A stand-in for the requests module passed to the REST clients as ``http``.

    Usage:
        def test_api_call(mock_http):
            mock_http.post.return_value = mock_http.response(json_data={'name': '...'})

    Returns:
        MagicMock: Mock with get/post/patch/delete and a response factory attached.
    """
    http = MagicMock()
    http.response = mock_http_response
    return http


@pytest.fixture
def google_error(mock_http_response):
    """
    Factory for Google API error responses.

    Returns:
        callable: Takes (status_code, message).
    """
    def _create(status_code: int, message: str) -> MagicMock:
        return mock_http_response(status_code=status_code,
                                  json_data={"error": {"code": status_code, "message": message}})

    return _create


# =============================================================================
# Logging Fixtures
# =============================================================================

@pytest.fixture
def capture_logs():
    """
    Capture log messages for assertion in tests.

    Returns:
        list: A list that will contain captured log records.
    """
    import logging

    class LogCapture(logging.Handler):
        def __init__(self):
            super().__init__()
            self.records = []

        def emit(self, record):
            self.records.append(record)

    handler = LogCapture()
    handler.setLevel(logging.DEBUG)

    root_logger = logging.getLogger()
    original_level = root_logger.level
    root_logger.setLevel(logging.DEBUG)
    root_logger.addHandler(handler)

    yield handler.records

    root_logger.removeHandler(handler)
    root_logger.setLevel(original_level)
