# src/listing_notes/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum

from ..core.listing import ListingRecord

AUDIO_INPUT_LABEL = "[语音输入]"
IMAGE_INPUT_LABEL = "[图片输入]"
UNKNOWN_INPUT_LABEL = "未知输入"


class TaskStatus(StrEnum):
    """
    Task lifecycle status.

    processing -> success | failed, exactly once. A retried failed task is
    replaced by a new processing task; it never transitions itself.
    """

    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"


def describe_input(text: str, *, has_image: bool, has_audio: bool) -> str:
    """Label for a processing/failed card: the text itself, else the media kind."""
    if text:
        return text
    if has_audio:
        return AUDIO_INPUT_LABEL
    if has_image:
        return IMAGE_INPUT_LABEL
    return UNKNOWN_INPUT_LABEL


# One class per status, so the fields a status implies are always present.


@dataclass(slots=True, frozen=True)
class ProcessingTask:
    id: str
    timestamp: int
    description: str
    source_text: str = ""

    @property
    def status(self) -> TaskStatus:
        return TaskStatus.PROCESSING

    @property
    def is_template(self) -> bool:
        return False


@dataclass(slots=True, frozen=True)
class SuccessTask:
    id: str
    timestamp: int
    description: str
    extracted_data: ListingRecord
    is_published: bool = False
    is_template: bool = False

    @property
    def status(self) -> TaskStatus:
        return TaskStatus.SUCCESS


@dataclass(slots=True, frozen=True)
class FailedTask:
    id: str
    timestamp: int
    description: str
    source_text: str
    error_message: str

    @property
    def status(self) -> TaskStatus:
        return TaskStatus.FAILED

    @property
    def is_template(self) -> bool:
        return False


Task = ProcessingTask | SuccessTask | FailedTask
