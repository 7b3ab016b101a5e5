"""Shared fixtures for relay tests."""

import os

import pytest

# Keep test runs from writing server.log into the working tree
os.environ.setdefault("LOG_FILE", "")

from app.config import Settings  # noqa: E402
from tests.helpers.fakes import FakeConnection, FakeConnector  # noqa: E402


@pytest.fixture
def relay_settings() -> Settings:
    return Settings(
        openai_api_key="test-key",
        handshake_timeout=0,
        mock_redis=True,
        log_file=None,
        persist_conversations=True,
    )


@pytest.fixture
def client_connection() -> FakeConnection:
    return FakeConnection("client")


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()
