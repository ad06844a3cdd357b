# src/listing_notes/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires the key-value storage, the extractor and the task store into AppState,
- restores persisted tasks and theme, and hooks up snapshot persistence.
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..core.ports import KeyValueStore, ListingExtractor
from ..core.state import AppState
from ..core.theme import load_theme
from ..llm.client import OpenAIListingExtractor, friendly_llm_error_message
from ..llm.offline import OfflineListingExtractor
from ..storage.local_storage import JsonFileStorage
from ..tasks.editor import FormEditor
from ..tasks.persistence import TaskSnapshotWriter, load_tasks
from ..tasks.task_store import TaskStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.storage_path.parent.mkdir(parents=True, exist_ok=True)


def build_extractor(settings) -> ListingExtractor:
    try:
        return OpenAIListingExtractor(settings)
    except RuntimeError as e:
        # Demo / local runs without credentials: tasks fail with this message.
        logger.warning("AI extraction unavailable: %s", friendly_llm_error_message(e))
        return OfflineListingExtractor(str(e))


def create_initial_state(
    *,
    settings=None,
    storage: KeyValueStore | None = None,
    extractor: ListingExtractor | None = None,
) -> AppState:
    """
    Create AppState from the provided settings.

    Settings, storage and extractor are injectable for tests; if settings is
    None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    if storage is None:
        _ensure_local_dirs(settings)
        storage = JsonFileStorage(settings.storage_path)

    if extractor is None:
        extractor = build_extractor(settings)

    task_store = TaskStore(extractor)
    task_store.load(load_tasks(storage))
    task_store.subscribe(TaskSnapshotWriter(storage))

    return AppState(
        settings=settings,
        storage=storage,
        extractor=extractor,
        task_store=task_store,
        editor=FormEditor(task_store),
        theme=load_theme(storage),
    )
