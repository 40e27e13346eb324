"""Pytest configuration and fixtures."""

import os
from unittest.mock import patch

import pytest

# Settings are read lazily, but loggers are configured at import time
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-key")
os.environ.setdefault("ANTHROPIC_API_KEY", "test-anthropic-key")
os.environ.setdefault("ENGINE_ENV", "test")

from tests.fakes.fake_ai_client import FakeAIClient  # noqa: E402
from tests.fakes.fake_record_store import FakeRecordStore  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def setup_test_env():
    """Set up test environment variables."""
    os.environ["SUPABASE_URL"] = "https://test.supabase.co"
    os.environ["SUPABASE_SERVICE_ROLE_KEY"] = "test-key"
    os.environ["ANTHROPIC_API_KEY"] = "test-anthropic-key"
    os.environ["ENGINE_ENV"] = "test"


@pytest.fixture(autouse=True)
def no_usage_logging():
    """Keep LLM usage rows away from Supabase."""
    with patch("expertise_engine.core.llm_usage.get_supabase") as mock_sb:
        yield mock_sb


@pytest.fixture
def store() -> FakeRecordStore:
    return FakeRecordStore()


@pytest.fixture
def ai_client() -> FakeAIClient:
    return FakeAIClient()
