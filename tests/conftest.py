"""Common test fixtures for notesync."""

import httpx
import pytest

from tests.fakes import TEST_API_URL, FakeSyncBackend
from notesync.config import config
from notesync.observability import metrics
from notesync.server.operations import NoteOperations
from notesync.services.sync_service import SyncService
from notesync.storage.engine import StorageEngine
from notesync.storage.note_repository import NoteRepository
from notesync.storage.sync_tracker import SyncStatusTracker


@pytest.fixture
def test_config(tmp_path, monkeypatch):
    """Configure with test paths (auto-restored even on crash)."""
    monkeypatch.setattr(config, "base_dir", tmp_path)
    monkeypatch.setattr(config, "database_path", tmp_path / "db" / "test_notes.db")
    monkeypatch.setattr(config, "sync_api_url", TEST_API_URL)
    monkeypatch.setattr(config, "log_dir", tmp_path / "logs")
    yield config


@pytest.fixture
def storage(test_config):
    """Open and migrate a fresh database; closed after the test."""
    with StorageEngine.open(test_config.database_path) as engine:
        engine.migrate()
        yield engine


@pytest.fixture
def note_repository(storage):
    """Create a test note repository."""
    return NoteRepository(storage)


@pytest.fixture
def sync_tracker(storage):
    """Create a test sync status tracker."""
    return SyncStatusTracker(storage)


@pytest.fixture
def fake_backend():
    """A remote sync API that accepts every note by default."""
    return FakeSyncBackend()


@pytest.fixture
def sync_service(sync_tracker, fake_backend):
    """A sync service wired to the fake backend through httpx.MockTransport."""
    return SyncService(
        sync_tracker,
        api_url=TEST_API_URL,
        timeout=5.0,
        transport=httpx.MockTransport(fake_backend),
    )


@pytest.fixture
def operations(note_repository, sync_tracker, sync_service):
    """Create the operation surface over real storage and the fake backend."""
    return NoteOperations(note_repository, sync_tracker, sync_service)


@pytest.fixture(autouse=True)
def _reset_metrics():
    """Keep the global metrics collector isolated between tests."""
    metrics.reset()
    yield
    metrics.reset()
