# tests/test_task_store.py

from __future__ import annotations

import asyncio
import threading
import time

import pytest

from listing_notes.core.background import run_in_daemon_thread
from listing_notes.core.listing import ListingRecord, RentOrSale
from listing_notes.core.media import MediaBlob
from listing_notes.tasks.task_models import (
    FailedTask,
    ProcessingTask,
    SuccessTask,
    TaskStatus,
)
from listing_notes.tasks.task_store import NO_LISTINGS_MESSAGE, UNKNOWN_ERROR_MESSAGE, TaskStore

from .fakes import FakeExtractor, GatedExtractor

IMAGE = MediaBlob(data=b"\x89PNG...", mime_type="image/png", name="room.png")
AUDIO = MediaBlob(data=b"webm-bytes", mime_type="audio/webm", name="note.webm")


def _record(name: str, layout: str = "2室1厅", price: int = 5000) -> ListingRecord:
    return ListingRecord(community_name=name, layout=layout, price=price)


async def _until(predicate, timeout: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


def test_submit_without_input_is_ignored(store: TaskStore, extractor: FakeExtractor) -> None:
    assert store.submit("") is None
    assert store.submit("   ") is None
    assert store.submit() is None
    assert len(store) == 0
    assert extractor.calls == []


@pytest.mark.asyncio
async def test_submit_inserts_processing_task_at_head(store: TaskStore, extractor: FakeExtractor) -> None:
    extractor.push([_record("老房子")])
    store.submit("老房子")
    await store.wait_idle()

    extractor.push([_record("天通苑")])
    task = store.submit("天通苑两居5000")

    assert isinstance(task, ProcessingTask)
    assert task.status is TaskStatus.PROCESSING
    assert task.description == "天通苑两居5000"
    snap = store.snapshot()
    assert snap[0] == task
    assert [t.status for t in snap] == [TaskStatus.PROCESSING, TaskStatus.SUCCESS]

    await store.wait_idle()


@pytest.mark.asyncio
async def test_example_text_becomes_one_success_task(store: TaskStore, extractor: FakeExtractor) -> None:
    extractor.push(
        [ListingRecord(community_name="天通苑", layout="2室1厅", price=5000, rent_or_sale=RentOrSale.RENT)]
    )

    processing = store.submit("天通苑两居5000")
    await store.wait_idle()

    snap = store.snapshot()
    assert len(snap) == 1
    task = snap[0]
    assert isinstance(task, SuccessTask)
    assert task.description == "天通苑 2室1厅 5000元"
    assert task.is_published is False
    assert task.is_template is False
    assert store.get(processing.id) is None
    assert extractor.calls == [("天通苑两居5000", None, None)]


@pytest.mark.asyncio
async def test_batch_result_replaces_placeholder_in_response_order(
    store: TaskStore, extractor: FakeExtractor
) -> None:
    extractor.push([_record("旧")])
    store.submit("旧")
    await store.wait_idle()
    old = store.snapshot()[0]

    extractor.push([_record("天通苑"), _record("回龙观", "1室1厅", 3000), _record("车位", "", 500)])
    processing = store.submit("天通苑两居5000，回龙观一居3000，车位出租500/月")
    await store.wait_idle()

    snap = store.snapshot()
    assert len(snap) == 4
    assert [t.extracted_data.community_name for t in snap[:3]] == ["天通苑", "回龙观", "车位"]
    assert all(isinstance(t, SuccessTask) and not t.is_published for t in snap[:3])
    assert snap[3] == old
    assert processing.id not in {t.id for t in snap}
    assert len({t.id for t in snap}) == 4


@pytest.mark.asyncio
async def test_zero_listings_becomes_failed_task(store: TaskStore, extractor: FakeExtractor) -> None:
    extractor.push([])
    store.submit("随便说说")
    await store.wait_idle()

    (task,) = store.snapshot()
    assert isinstance(task, FailedTask)
    assert task.error_message == NO_LISTINGS_MESSAGE
    assert task.source_text == "随便说说"
    assert task.description == "随便说说"


@pytest.mark.asyncio
async def test_extraction_error_becomes_failed_task(store: TaskStore, extractor: FakeExtractor) -> None:
    extractor.push(RuntimeError("LLM network/timeout error. Try again later or change models."))
    extractor.push(RuntimeError(""))

    store.submit("第一条")
    await store.wait_idle()
    store.submit("第二条")
    await store.wait_idle()

    by_text = {t.source_text: t for t in store.snapshot()}
    assert all(isinstance(t, FailedTask) for t in by_text.values())
    assert by_text["第一条"].error_message.startswith("LLM network/timeout error")
    assert by_text["第二条"].error_message == UNKNOWN_ERROR_MESSAGE


@pytest.mark.asyncio
async def test_failed_description_prefers_audio_then_image(store: TaskStore, extractor: FakeExtractor) -> None:
    extractor.push(RuntimeError("boom"))
    extractor.push(RuntimeError("boom"))

    image_only = store.submit(image=IMAGE)
    await store.wait_idle()
    both = store.submit(image=IMAGE, audio=AUDIO)
    await store.wait_idle()

    assert image_only.description == "[图片输入]"
    assert both.description == "[语音输入]"
    newest, older = store.snapshot()
    assert newest.description == "[语音输入]"
    assert older.description == "[图片输入]"


@pytest.mark.asyncio
async def test_retry_reuses_session_media(store: TaskStore, extractor: FakeExtractor) -> None:
    extractor.push(RuntimeError("boom"))
    store.submit("语音描述", audio=AUDIO)
    await store.wait_idle()
    (failed,) = store.snapshot()
    assert isinstance(failed, FailedTask)
    assert store.media_for(failed.id).audio == AUDIO

    extractor.push([_record("天通苑")])
    retried = store.retry(failed.id)

    assert isinstance(retried, ProcessingTask)
    assert store.get(failed.id) is None
    assert store.snapshot()[0] == retried
    await store.wait_idle()

    assert extractor.calls[-1] == ("语音描述", None, AUDIO)
    (task,) = store.snapshot()
    assert isinstance(task, SuccessTask)
    assert store.media_for(failed.id) is None


@pytest.mark.asyncio
async def test_retry_after_reload_is_text_only(extractor: FakeExtractor) -> None:
    store = TaskStore(extractor)
    store.load(
        [
            FailedTask(id="f1", timestamp=1, description="天通苑", source_text="天通苑", error_message="x"),
            FailedTask(id="f2", timestamp=0, description="[语音输入]", source_text="", error_message="x"),
        ]
    )

    extractor.push([_record("天通苑")])
    extractor.push(RuntimeError("still no audio"))
    first = store.retry("f1")
    await store.wait_idle()
    second = store.retry("f2")
    await store.wait_idle()

    assert extractor.calls == [("天通苑", None, None), ("", None, None)]
    assert first.description == "天通苑"
    assert second.description == "未知输入"


def test_retry_ignores_non_failed_tasks(extractor: FakeExtractor) -> None:
    store = TaskStore(extractor)
    store.load([SuccessTask(id="s1", timestamp=1, description="d", extracted_data=_record("A"))])

    assert store.retry("s1") is None
    assert store.retry("missing") is None
    assert [t.id for t in store.snapshot()] == ["s1"]


@pytest.mark.parametrize("as_template", [True, False])
def test_edit_and_save_marks_published_or_template(extractor: FakeExtractor, as_template: bool) -> None:
    store = TaskStore(extractor)
    store.load([SuccessTask(id="s1", timestamp=1, description="A  0元", extracted_data=ListingRecord("A"))])
    edited = ListingRecord(community_name="天通苑", layout="2室1厅", price=5200, area=89)

    updated = store.edit_and_save("s1", edited, as_template=as_template)

    assert updated is not None
    assert updated.status is TaskStatus.SUCCESS
    assert updated.extracted_data == edited
    assert updated.description == "天通苑 2室1厅 5200元"
    assert updated.is_template is as_template
    assert updated.is_published is (not as_template)
    assert store.snapshot() == (updated,)


def test_edit_and_save_ignores_non_success_tasks(extractor: FakeExtractor) -> None:
    store = TaskStore(extractor)
    failed = FailedTask(id="f1", timestamp=1, description="x", source_text="x", error_message="e")
    store.load([failed])

    assert store.edit_and_save("f1", ListingRecord("A")) is None
    assert store.edit_and_save("missing", ListingRecord("A")) is None
    assert store.snapshot() == (failed,)


def test_load_drops_processing_tasks(extractor: FakeExtractor) -> None:
    store = TaskStore(extractor)
    store.load(
        [
            ProcessingTask(id="p1", timestamp=2, description="x"),
            FailedTask(id="f1", timestamp=1, description="x", source_text="x", error_message="e"),
        ]
    )
    assert [t.id for t in store.snapshot()] == ["f1"]


@pytest.mark.asyncio
async def test_interleaved_completions_resolve_their_own_placeholders() -> None:
    extractor = GatedExtractor()
    gate_a = extractor.expect("A", [_record("甲")])
    gate_b = extractor.expect("B", RuntimeError("B failed"))
    store = TaskStore(extractor)

    task_a = store.submit("A")
    task_b = store.submit("B")
    assert [t.id for t in store.snapshot()] == [task_b.id, task_a.id]
    assert store.in_flight == 2

    # B finishes first although A was submitted first.
    gate_b.set()
    await _until(lambda: store.get(task_b.id) is None)
    snap = store.snapshot()
    assert isinstance(snap[0], FailedTask) and snap[0].source_text == "B"
    assert snap[1] == task_a

    extractor.expect("C", [_record("丙")]).set()
    task_c = store.submit("C")
    gate_a.set()
    await store.wait_idle()

    snap = store.snapshot()
    assert all(not isinstance(t, ProcessingTask) for t in snap)
    assert {t.id for t in snap}.isdisjoint({task_a.id, task_b.id, task_c.id})
    names = sorted(t.extracted_data.community_name for t in snap if isinstance(t, SuccessTask))
    assert names == ["丙", "甲"]
    assert store.in_flight == 0


@pytest.mark.asyncio
async def test_listeners_see_every_change_and_failures_are_contained(
    store: TaskStore, extractor: FakeExtractor
) -> None:
    seen: list[tuple[TaskStatus, ...]] = []

    def broken(_snapshot) -> None:
        raise ValueError("listener bug")

    store.subscribe(broken)
    unsubscribe = store.subscribe(lambda snap: seen.append(tuple(t.status for t in snap)))

    extractor.push([_record("A")])
    store.submit("A")
    await store.wait_idle()

    assert seen == [(TaskStatus.PROCESSING,), (TaskStatus.SUCCESS,)]

    unsubscribe()
    extractor.push([_record("B")])
    store.submit("B")
    await store.wait_idle()
    assert len(seen) == 2


@pytest.mark.asyncio
async def test_ids_stay_unique_with_a_frozen_clock(extractor: FakeExtractor) -> None:
    store = TaskStore(extractor, clock=lambda: 1_700_000_000_000)
    extractor.push([_record("A"), _record("B"), _record("C")])
    extractor.push(RuntimeError("x"))

    store.submit("one")
    store.submit("two")
    await store.wait_idle()

    ids = [t.id for t in store.snapshot()]
    assert len(ids) == 4
    assert len(set(ids)) == 4


def test_retry_without_running_loop_leaves_failed_task_in_place(extractor: FakeExtractor) -> None:
    store = TaskStore(extractor)
    failed = FailedTask(id="f1", timestamp=1, description="天通苑", source_text="天通苑", error_message="x")
    store.load([failed])
    seen: list[tuple] = []
    store.subscribe(seen.append)

    with pytest.raises(RuntimeError):
        store.retry("f1")

    assert store.snapshot() == (failed,)
    assert seen == []
    assert extractor.calls == []


def test_exit_does_not_wait_for_extraction_in_flight() -> None:
    release = threading.Event()

    class BlockingExtractor:
        def extract(self, text, image=None, audio=None):
            release.wait(timeout=10.0)
            return [_record("天通苑")]

    store = TaskStore(BlockingExtractor())

    async def main() -> None:
        store.submit("天通苑两居5000")
        await asyncio.sleep(0.05)

    t0 = time.monotonic()
    try:
        asyncio.run(main())
        elapsed = time.monotonic() - t0
    finally:
        release.set()

    assert elapsed < 1.0
    # The placeholder is left behind; a late result never lands.
    (task,) = store.snapshot()
    assert isinstance(task, ProcessingTask)


@pytest.mark.asyncio
async def test_daemon_thread_propagates_result_and_error() -> None:
    def boom() -> None:
        raise ValueError("bad input")

    assert await run_in_daemon_thread(lambda a, b: a + b, 2, 3) == 5
    with pytest.raises(ValueError, match="bad input"):
        await run_in_daemon_thread(boom)
