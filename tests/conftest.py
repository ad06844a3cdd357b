# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from listing_notes.cli.bootstrap import create_initial_state
from listing_notes.core.state import AppState
from listing_notes.tasks.task_store import TaskStore

from .fakes import FakeExtractor, MemoryStorage


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with the composition root.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated from the developer's .env.
    """
    return SimpleNamespace(
        app_name="test",
        log_level="DEBUG",
        api_key="test-key",
        base_url="https://llm.invalid/api/v1",
        llm_models=["test/model-a", "test/model-b"],
        extra_headers={"X-Title": "test"},
        llm_connect_timeout=1.0,
        llm_read_timeout=1.0,
        default_audio_mime="audio/webm",
        data_dir=tmp_path,
        storage_path=tmp_path / "local_storage.json",
    )


@pytest.fixture()
def extractor() -> FakeExtractor:
    return FakeExtractor()


@pytest.fixture()
def storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture()
def store(extractor: FakeExtractor) -> TaskStore:
    return TaskStore(extractor)


@pytest.fixture()
def state(settings: SimpleNamespace, storage: MemoryStorage, extractor: FakeExtractor) -> AppState:
    """
    AppState wired through the real composition root with deterministic fakes
    for the extractor and the key-value store.
    """
    return create_initial_state(settings=settings, storage=storage, extractor=extractor)
