# src/listing_notes/core/state.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..tasks.editor import FormEditor
from ..tasks.task_models import Task
from ..tasks.task_store import TaskStore
from ..tasks.views import TaskViews, ViewName, derive_views
from .media import MediaBlob
from .ports import KeyValueStore, ListingExtractor
from .theme import Theme, save_theme


@dataclass
class AppState:
    """
    Application state owned by the composition root.

    Renderers get read-only snapshots (views()); changes go through the task
    store, the form editor or the helpers below.
    """

    settings: Any
    storage: KeyValueStore
    extractor: ListingExtractor
    task_store: TaskStore
    editor: FormEditor
    theme: Theme = Theme.LIGHT

    # Media attached in the console, sent with the next submission.
    pending_image: MediaBlob | None = None
    pending_audio: MediaBlob | None = None

    # Rows of the last listed view; "/show 2" refers to these.
    listed_view: ViewName = ViewName.LOG
    listed_rows: tuple[Task, ...] = field(default_factory=tuple)

    def views(self) -> TaskViews:
        return derive_views(self.task_store.snapshot())

    def set_theme(self, theme: Theme) -> None:
        self.theme = theme
        save_theme(self.storage, theme)

    def clear_pending_media(self) -> None:
        self.pending_image = None
        self.pending_audio = None
