"""
Main pytest configuration for entity store tests.

Shared fixtures for repository, store client and domain hook tests.
"""

import os
from typing import Any, Dict, List
from unittest.mock import AsyncMock

import pytest

# Set test environment variables before importing package modules
os.environ["ENVIRONMENT"] = "test"
os.environ["LOG_LEVEL"] = "DEBUG"
os.environ["LOG_JSON"] = "false"
os.environ["CACHE_ENABLED"] = "true"

from entity_store.core.config import Settings
from entity_store.domain.validation import ValidationResult
from entity_store.infrastructure.store import InMemoryStoreClient
from entity_store.repositories import KeyFieldHooks, RetryConfig


class SleepRecorder:
    """Stand-in for asyncio.sleep that records requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class IdNameHooks(KeyFieldHooks):
    """Entities keyed by ``id`` that also require a non-empty ``name``."""

    key_fields = ("id",)
    cache_prefix = "thing"

    def validate_entity(self, entity):
        errors = []
        if not entity.get("id"):
            errors.append("id is required")
        if not entity.get("name"):
            errors.append("name is required")
        return ValidationResult.from_errors(errors)


def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line("markers", "unit: mark test as unit test")
    config.addinivalue_line(
        "markers", "redis: mark test as exercising the Redis store client"
    )


@pytest.fixture
def test_settings() -> Settings:
    """Settings isolated from the process environment cache."""
    return Settings(ENVIRONMENT="test", LOG_LEVEL="DEBUG")


@pytest.fixture
def retry_config() -> RetryConfig:
    return RetryConfig(
        max_retries=3,
        base_delay_seconds=0.1,
        max_delay_seconds=5.0,
        backoff_multiplier=2.0,
    )


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def id_name_hooks() -> IdNameHooks:
    return IdNameHooks()


@pytest.fixture
def mock_store() -> AsyncMock:
    """Store client whose every call is an AsyncMock."""
    store = AsyncMock()
    store.get_item = AsyncMock(return_value=None)
    store.put_item = AsyncMock(return_value=None)
    store.update_item = AsyncMock(return_value=None)
    store.delete_item = AsyncMock(return_value=None)
    store.batch_get_item = AsyncMock(return_value=[])
    store.batch_write_item = AsyncMock(return_value=None)
    store.query = AsyncMock(return_value=[])
    store.scan = AsyncMock(return_value=[])
    return store


@pytest.fixture
def memory_store() -> InMemoryStoreClient:
    return InMemoryStoreClient(tables={"things": ["id"], "pairs": ["siteId", "artifactId"]})


@pytest.fixture
def sample_heritage_site() -> Dict[str, Any]:
    return {
        "siteId": "hampi",
        "name": "Hampi",
        "location": {"latitude": 15.335, "longitude": 76.46},
        "description": "Ruins of the Vijayanagara capital",
        "historicalPeriod": "14th-16th century",
        "culturalSignificance": "UNESCO World Heritage Site",
        "artifacts": [
            {
                "artifactId": "stone-chariot",
                "name": "Stone Chariot",
                "type": "architecture",
                "location": {"x": 10.0, "y": 4.5},
                "qrCodeData": "hampi:stone-chariot",
                "description": "Shrine built as a chariot",
            }
        ],
        "supportedLanguages": ["en", "hi", "kn"],
        "metadata": {
            "createdAt": "2024-01-01T00:00:00Z",
            "updatedAt": "2024-01-02T00:00:00Z",
            "version": "1.0.0",
            "curator": "ASI",
            "tags": ["vijayanagara"],
            "status": "active",
        },
    }


@pytest.fixture
def sample_artifact() -> Dict[str, Any]:
    return {
        "artifactId": "stone-chariot",
        "siteId": "hampi",
        "name": "Stone Chariot",
        "type": "architecture",
        "description": "Shrine built as a chariot",
        "historicalContext": "Built under Krishnadevaraya",
        "culturalSignificance": "Symbol of Karnataka",
        "materials": ["granite"],
        "dimensions": {"height": 7.5},
        "lastUpdated": "2024-01-02T00:00:00Z",
    }


@pytest.fixture
def sample_user_session() -> Dict[str, Any]:
    return {
        "sessionId": "session-1",
        "siteId": "hampi",
        "preferredLanguage": "en",
        "visitStartTime": "2024-01-02T09:00:00Z",
        "scannedArtifacts": ["stone-chariot"],
        "contentInteractions": [
            {
                "contentId": "content-1",
                "interactionType": "play",
                "timestamp": "2024-01-02T09:05:00Z",
                "duration": 42.0,
                "completionPercentage": 80,
            }
        ],
        "conversationHistory": [
            {
                "id": "qa-1",
                "question": "Who built it?",
                "answer": "Krishnadevaraya",
                "timestamp": "2024-01-02T09:06:00Z",
                "language": "en",
                "confidence": 0.9,
                "sources": [
                    {
                        "id": "src-1",
                        "title": "ASI guide",
                        "url": "https://example.org/hampi",
                        "confidence": 0.8,
                    }
                ],
            }
        ],
        "preferences": {"language": "en"},
    }


@pytest.fixture
def sample_cached_content() -> Dict[str, Any]:
    return {
        "contentId": "content-1",
        "artifactId": "stone-chariot",
        "contentType": "audio_guide",
        "language": "en",
        "data": {"audioUrl": "https://example.org/audio.mp3", "duration": 120},
        "metadata": {
            "siteId": "hampi",
            "artifactId": "stone-chariot",
            "contentType": "audio_guide",
            "language": "en",
            "version": "1",
            "createdAt": "2024-01-01T00:00:00Z",
            "updatedAt": "2024-01-01T00:00:00Z",
            "tags": [],
        },
        "cacheSettings": {"ttl": 3600, "priority": 5, "tags": ["audio"]},
        "accessCount": 3,
        "lastAccessed": "2024-01-02T10:00:00Z",
        "expiresAt": "2024-01-03T10:00:00Z",
    }
