# src/listing_notes/tasks/task_store.py

from __future__ import annotations

import asyncio
import logging
import secrets
import time
from collections.abc import Callable, Iterable
from dataclasses import replace

from ..core.background import run_in_daemon_thread
from ..core.listing import ListingRecord
from ..core.media import MediaBlob, SessionMedia
from ..core.ports import ListingExtractor
from .task_models import (
    FailedTask,
    ProcessingTask,
    SuccessTask,
    Task,
    describe_input,
)

logger = logging.getLogger(__name__)

NO_LISTINGS_MESSAGE = "未能识别到有效房源信息"
UNKNOWN_ERROR_MESSAGE = "未知错误"

TaskListener = Callable[[tuple[Task, ...]], None]

_B36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _now_ms() -> int:
    return int(time.time() * 1000)


def _random_suffix(n: int = 9) -> str:
    return "".join(secrets.choice(_B36) for _ in range(n))


class TaskStore:
    """
    Ordered, newest-first collection of tasks plus their lifecycle.

    Threading model:
    - every mutation runs on the event loop thread (user commands and
      extraction completions), so no locks are needed
    - the blocking extractor call runs in a worker thread; its result is
      applied back on the loop, matched to its placeholder by id

    Media blobs are kept in a side table keyed by task id and never leave
    this process.
    """

    def __init__(
        self,
        extractor: ListingExtractor,
        *,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._extractor = extractor
        self._clock = clock
        self._tasks: list[Task] = []
        self._media: dict[str, SessionMedia] = {}
        self._inflight: dict[str, asyncio.Task[None]] = {}
        self._listeners: list[TaskListener] = []

    # ---- read side ----

    def __len__(self) -> int:
        return len(self._tasks)

    def snapshot(self) -> tuple[Task, ...]:
        return tuple(self._tasks)

    def get(self, task_id: str) -> Task | None:
        idx = self._index_of(task_id)
        return None if idx is None else self._tasks[idx]

    def media_for(self, task_id: str) -> SessionMedia | None:
        return self._media.get(task_id)

    @property
    def in_flight(self) -> int:
        return sum(1 for job in self._inflight.values() if not job.done())

    # ---- change notification ----

    def subscribe(self, listener: TaskListener) -> Callable[[], None]:
        """Call listener(snapshot) after every change. Returns an unsubscribe hook."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self) -> None:
        snap = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snap)
            except Exception:
                logger.exception("Task listener failed listener=%r", listener)

    def load(self, tasks: Iterable[Task]) -> None:
        """Seed from persisted state. Does not notify; processing tasks are dropped."""
        loaded = [t for t in tasks if not isinstance(t, ProcessingTask)]
        self._tasks = loaded
        self._media.clear()
        logger.info("TaskStore loaded total=%d", len(loaded))

    # ---- lifecycle ----

    def submit(
        self,
        text: str = "",
        image: MediaBlob | None = None,
        audio: MediaBlob | None = None,
    ) -> ProcessingTask | None:
        """
        Record a processing task at the head and start extraction.

        Needs at least one of text/image/audio; otherwise nothing happens and
        None is returned. Must be called from inside the running event loop.
        """
        text = (text or "").strip()
        if not text and image is None and audio is None:
            logger.debug("submit ignored: empty input")
            return None
        return self._start(text, image, audio, loop=asyncio.get_running_loop())

    def retry(self, task_id: str) -> ProcessingTask | None:
        """
        Replace a failed task by a new processing task built from its input.

        Media is taken from the side table when this session still has it;
        after a restart only the text is left.
        """
        idx = self._index_of(task_id)
        if idx is None:
            return None
        task = self._tasks[idx]
        if not isinstance(task, FailedTask):
            logger.debug("retry ignored: task %s is %s", task_id, task.status.value)
            return None

        # Raises before anything is removed when there is no running loop.
        loop = asyncio.get_running_loop()

        del self._tasks[idx]
        media = self._media.pop(task_id, None) or SessionMedia()
        logger.info(
            "Retrying task %s (image=%s audio=%s)",
            task_id,
            media.image is not None,
            media.audio is not None,
        )
        return self._start(task.source_text, media.image, media.audio, loop=loop)

    def edit_and_save(
        self,
        task_id: str,
        record: ListingRecord,
        *,
        as_template: bool = False,
    ) -> SuccessTask | None:
        """Write an edited record back in place and mark it published or template."""
        idx = self._index_of(task_id)
        if idx is None:
            return None
        task = self._tasks[idx]
        if not isinstance(task, SuccessTask):
            logger.debug("edit_and_save ignored: task %s is %s", task_id, task.status.value)
            return None

        updated = replace(
            task,
            extracted_data=record,
            description=record.summary(),
            is_published=not as_template,
            is_template=as_template,
        )
        self._tasks[idx] = updated
        logger.info("Task %s saved as %s", task_id, "template" if as_template else "published")
        self._notify()
        return updated

    async def wait_idle(self) -> None:
        """Wait until every extraction started so far (and any it spawns) has resolved."""
        while True:
            pending = [job for job in self._inflight.values() if not job.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    # ---- internals ----

    def _index_of(self, task_id: str) -> int | None:
        for i, t in enumerate(self._tasks):
            if t.id == task_id:
                return i
        return None

    def _new_id(self, prefix: str = "") -> str:
        while True:
            candidate = f"{prefix}{self._clock()}{_random_suffix()}"
            if self._index_of(candidate) is None and candidate not in self._inflight:
                return candidate

    def _start(
        self,
        text: str,
        image: MediaBlob | None,
        audio: MediaBlob | None,
        *,
        loop: asyncio.AbstractEventLoop,
    ) -> ProcessingTask:
        task = ProcessingTask(
            id=self._new_id("processing-"),
            timestamp=self._clock(),
            description=describe_input(text, has_image=image is not None, has_audio=audio is not None),
            source_text=text,
        )
        if image is not None or audio is not None:
            self._media[task.id] = SessionMedia(image=image, audio=audio)

        self._tasks.insert(0, task)
        logger.debug("Task %s -> processing", task.id)
        self._notify()

        job = loop.create_task(self._run_extraction(task.id, text, image, audio), name=f"extract:{task.id}")
        self._inflight[task.id] = job
        job.add_done_callback(lambda _job, tid=task.id: self._inflight.pop(tid, None))
        return task

    async def _run_extraction(
        self,
        task_id: str,
        text: str,
        image: MediaBlob | None,
        audio: MediaBlob | None,
    ) -> None:
        t0 = time.monotonic()
        try:
            listings = await run_in_daemon_thread(
                self._extractor.extract, text, image, audio, name=f"extract:{task_id}"
            )
        except Exception as e:
            logger.info("Extraction failed task_id=%s (%s): %s", task_id, e.__class__.__name__, e)
            self._fail(task_id, text, str(e).strip() or UNKNOWN_ERROR_MESSAGE)
            return

        if not listings:
            logger.info("Extraction returned no listings task_id=%s", task_id)
            self._fail(task_id, text, NO_LISTINGS_MESSAGE)
            return

        logger.info(
            "Extraction ok task_id=%s listings=%d (%.2fs)",
            task_id,
            len(listings),
            time.monotonic() - t0,
        )
        self._succeed(task_id, list(listings))

    def _take_placeholder(self, task_id: str) -> bool:
        idx = self._index_of(task_id)
        if idx is None or not isinstance(self._tasks[idx], ProcessingTask):
            logger.warning("Placeholder %s is gone; dropping extraction result", task_id)
            self._media.pop(task_id, None)
            return False
        del self._tasks[idx]
        return True

    def _succeed(self, task_id: str, listings: list[ListingRecord]) -> None:
        if not self._take_placeholder(task_id):
            return
        self._media.pop(task_id, None)

        new_tasks: list[Task] = []
        for record in listings:
            new_tasks.append(
                SuccessTask(
                    id=self._new_id(),
                    timestamp=self._clock(),
                    description=record.summary(),
                    extracted_data=record,
                    is_published=False,
                    is_template=False,
                )
            )
        self._tasks[0:0] = new_tasks
        self._notify()

    def _fail(self, task_id: str, text: str, message: str) -> None:
        if not self._take_placeholder(task_id):
            return
        media = self._media.pop(task_id, None)

        failed = FailedTask(
            id=self._new_id(),
            timestamp=self._clock(),
            description=describe_input(
                text,
                has_image=bool(media and media.image is not None),
                has_audio=bool(media and media.audio is not None),
            ),
            source_text=text,
            error_message=message,
        )
        if media:
            self._media[failed.id] = media
        self._tasks.insert(0, failed)
        self._notify()
