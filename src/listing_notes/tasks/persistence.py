# src/listing_notes/tasks/persistence.py

"""
Task snapshot <-> key-value store.

Stored under "property_tasks" as a JSON array, camelCase fields:

    {"id", "timestamp", "status", "description",
     "extractedData", "isPublished", "isTemplate",      # success
     "sourceInput": {"text", "image", "audio"},          # failed
     "errorMessage"}                                     # failed

Processing tasks are never written. Failed tasks keep their text; image and
audio are always written as null.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from typing import Any

from ..core.listing import ListingRecord
from ..core.ports import KeyValueStore
from .task_models import FailedTask, ProcessingTask, SuccessTask, Task, TaskStatus
from .task_store import UNKNOWN_ERROR_MESSAGE

logger = logging.getLogger(__name__)

TASKS_KEY = "property_tasks"


def task_to_dict(task: Task) -> dict[str, Any] | None:
    if isinstance(task, ProcessingTask):
        return None

    out: dict[str, Any] = {
        "id": task.id,
        "timestamp": task.timestamp,
        "status": task.status.value,
        "description": task.description,
    }
    if isinstance(task, SuccessTask):
        out["extractedData"] = task.extracted_data.to_dict()
        out["isPublished"] = task.is_published
        out["isTemplate"] = task.is_template
    else:
        out["sourceInput"] = {"text": task.source_text, "image": None, "audio": None}
        out["errorMessage"] = task.error_message
    return out


def task_from_dict(data: Any) -> Task | None:
    """
    Parse one persisted entry. Returns None for entries that are skipped
    (processing); raises ValueError for entries that cannot be understood.
    """
    if not isinstance(data, dict):
        raise ValueError(f"task entry is not an object: {type(data).__name__}")

    task_id = data.get("id")
    if not isinstance(task_id, str) or not task_id:
        raise ValueError("task entry has no id")

    try:
        status = TaskStatus(data.get("status"))
    except ValueError as e:
        raise ValueError(f"task {task_id} has unknown status {data.get('status')!r}") from e

    if status is TaskStatus.PROCESSING:
        return None

    timestamp = int(data.get("timestamp") or 0)
    description = str(data.get("description") or "")

    if status is TaskStatus.SUCCESS:
        raw = data.get("extractedData")
        if not isinstance(raw, dict):
            raise ValueError(f"success task {task_id} has no extractedData")
        return SuccessTask(
            id=task_id,
            timestamp=timestamp,
            description=description,
            extracted_data=ListingRecord.from_dict(raw),
            is_published=bool(data.get("isPublished", False)),
            is_template=bool(data.get("isTemplate", False)),
        )

    source = data.get("sourceInput")
    text = source.get("text") if isinstance(source, dict) else None
    return FailedTask(
        id=task_id,
        timestamp=timestamp,
        description=description,
        source_text=str(text or ""),
        error_message=str(data.get("errorMessage") or UNKNOWN_ERROR_MESSAGE),
    )


def dump_tasks(tasks: Iterable[Task]) -> str:
    entries = [d for d in (task_to_dict(t) for t in tasks) if d is not None]
    return json.dumps(entries, ensure_ascii=False)


def parse_tasks(raw: str | None) -> list[Task]:
    """
    Parse the stored array. Malformed data yields an empty list; a single bad
    entry is dropped on its own.
    """
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except Exception:
        logger.exception("Failed to load tasks: stored value is not valid JSON")
        return []
    if not isinstance(data, list):
        logger.error("Failed to load tasks: stored value is %s, expected a list", type(data).__name__)
        return []

    out: list[Task] = []
    seen: set[str] = set()
    for entry in data:
        try:
            task = task_from_dict(entry)
        except (ValueError, TypeError):
            logger.warning("Dropping unreadable task entry", exc_info=True)
            continue
        if task is None or task.id in seen:
            continue
        seen.add(task.id)
        out.append(task)
    return out


def load_tasks(storage: KeyValueStore) -> list[Task]:
    try:
        raw = storage.get_item(TASKS_KEY)
    except Exception:
        logger.exception("Failed to read %s from storage", TASKS_KEY)
        return []
    tasks = parse_tasks(raw)
    logger.info("Loaded tasks: %d", len(tasks))
    return tasks


def save_tasks(storage: KeyValueStore, tasks: Iterable[Task]) -> None:
    storage.set_item(TASKS_KEY, dump_tasks(tasks))


class TaskSnapshotWriter:
    """Task store listener that writes every snapshot to the key-value store."""

    def __init__(self, storage: KeyValueStore) -> None:
        self._storage = storage

    def __call__(self, snapshot: tuple[Task, ...]) -> None:
        try:
            save_tasks(self._storage, snapshot)
        except Exception:
            logger.exception("Failed to persist task snapshot (%d tasks)", len(snapshot))
