# src/listing_notes/tasks/views.py

"""Tab projections of the task list. Pure functions over a snapshot."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import StrEnum

from .task_models import SuccessTask, Task


class ViewName(StrEnum):
    LOG = "log"
    UNPUBLISHED = "unpublished"
    TEMPLATES = "templates"

    @property
    def title(self) -> str:
        return _TITLES[self]


_TITLES = {
    ViewName.LOG: "任务日志",
    ViewName.UNPUBLISHED: "待发布房源",
    ViewName.TEMPLATES: "我的模版",
}


@dataclass(slots=True, frozen=True)
class TaskViews:
    log: tuple[Task, ...]
    unpublished: tuple[SuccessTask, ...]
    templates: tuple[SuccessTask, ...]

    def get(self, name: ViewName) -> tuple[Task, ...]:
        if name is ViewName.UNPUBLISHED:
            return self.unpublished
        if name is ViewName.TEMPLATES:
            return self.templates
        return self.log


def derive_views(tasks: Iterable[Task]) -> TaskViews:
    log: list[Task] = []
    unpublished: list[SuccessTask] = []
    templates: list[SuccessTask] = []

    for t in tasks:
        if t.is_template:
            # Only success tasks can be templates.
            if isinstance(t, SuccessTask):
                templates.append(t)
            continue
        log.append(t)
        if isinstance(t, SuccessTask) and not t.is_published:
            unpublished.append(t)

    return TaskViews(log=tuple(log), unpublished=tuple(unpublished), templates=tuple(templates))
