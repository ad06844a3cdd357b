# tests/test_commands.py

from __future__ import annotations

import json
from pathlib import Path

import pytest

from listing_notes.cli.commands import CommandRegistry, registry, submit_input
from listing_notes.core.listing import ListingRecord
from listing_notes.core.theme import THEME_KEY, Theme
from listing_notes.tasks.persistence import TASKS_KEY
from listing_notes.tasks.task_models import FailedTask, SuccessTask

from .fakes import FakeExtractor, MemoryStorage


def test_command_registry_routes_and_aliases(state) -> None:
    reg = CommandRegistry()
    called: list[list[str]] = []

    def handler(state, args):
        called.append(args)
        return "ok"

    reg.register("a", handler, "a", aliases=["x"])

    assert reg.handle(state, "/a 1 2") == "ok"
    assert reg.handle(state, "/X") == "ok"
    assert called == [["1", "2"], []]


def test_command_registry_unknown_and_non_command(state) -> None:
    reg = CommandRegistry()
    assert reg.handle(state, "hello") is None
    assert "Unknown command" in (reg.handle(state, "/nope") or "")
    assert "Empty command" in (reg.handle(state, "/") or "")


@pytest.mark.asyncio
async def test_submit_review_and_publish_flow(state, extractor: FakeExtractor, storage: MemoryStorage) -> None:
    extractor.push(
        [
            ListingRecord(community_name="天通苑", layout="2室1厅", price=5000),
            ListingRecord(community_name="回龙观", layout="1室1厅", price=3000),
        ]
    )

    assert submit_input(state, "天通苑两居5000，回龙观一居3000").startswith("已提交识别任务")
    await state.task_store.wait_idle()

    listing = registry.handle(state, "/unpublished")
    assert "待发布房源 (2)" in listing
    assert "天通苑" in listing and "回龙观" in listing

    assert "房源详情确认" in registry.handle(state, "/edit 2")
    assert "5200" in registry.handle(state, "/set price 5200")
    assert registry.handle(state, "/publish") == "房源发布成功！"

    views = state.views()
    assert [t.extracted_data.community_name for t in views.unpublished] == ["天通苑"]
    published = [t for t in views.log if isinstance(t, SuccessTask) and t.is_published]
    assert [t.description for t in published] == ["回龙观 1室1厅 5200元"]

    stored = json.loads(storage.items[TASKS_KEY])
    assert {e["description"] for e in stored} == {"天通苑 2室1厅 5000元", "回龙观 1室1厅 5200元"}


@pytest.mark.asyncio
async def test_save_as_template_moves_listing_to_templates(state, extractor: FakeExtractor) -> None:
    extractor.push([ListingRecord(community_name="天通苑", layout="2室1厅", price=5000)])
    submit_input(state, "天通苑两居5000")
    await state.task_store.wait_idle()

    registry.handle(state, "/log")
    registry.handle(state, "/edit 1")
    reply = registry.handle(state, "/template")

    assert reply.startswith("已存为模版")
    assert "我的模版 (1)" in reply
    views = state.views()
    assert views.log == () and views.unpublished == ()
    assert registry.handle(state, "/publish") == "没有正在编辑的房源。"


@pytest.mark.asyncio
async def test_retry_command_resubmits_failed_task(state, extractor: FakeExtractor) -> None:
    extractor.push(RuntimeError("LLM is rate-limited. Try again later."))
    submit_input(state, "天通苑两居5000")
    await state.task_store.wait_idle()

    log = registry.handle(state, "/log")
    assert "失败" in log and "rate-limited" in log
    assert "只有识别成功" in registry.handle(state, "/edit 1")

    extractor.push([ListingRecord(community_name="天通苑")])
    assert registry.handle(state, "/retry 1") == "已重新提交: 天通苑两居5000"
    # The listed row is gone now.
    assert "不存在" in registry.handle(state, "/retry 1")
    await state.task_store.wait_idle()

    (task,) = state.task_store.snapshot()
    assert isinstance(task, SuccessTask)


@pytest.mark.asyncio
async def test_attached_media_goes_with_next_submission(state, extractor: FakeExtractor, tmp_path: Path) -> None:
    photo = tmp_path / "room.jpg"
    photo.write_bytes(b"jpeg")
    extractor.push(RuntimeError("boom"))

    assert "已添加图片" in registry.handle(state, f"/image {photo}")
    assert registry.handle(state, "/send") == "已提交识别任务: [图片输入]"
    assert state.pending_image is None
    await state.task_store.wait_idle()

    (text, image, audio) = extractor.calls[0]
    assert text == "" and image is not None and image.mime_type == "image/jpeg" and audio is None
    (failed,) = state.task_store.snapshot()
    assert isinstance(failed, FailedTask) and failed.description == "[图片输入]"


def test_unreadable_media_is_reported_without_creating_a_task(state, tmp_path: Path) -> None:
    reply = registry.handle(state, f"/audio {tmp_path / 'missing.webm'}")

    assert reply.startswith("[提示]")
    assert state.pending_audio is None
    assert len(state.task_store) == 0


def test_empty_send_is_silent(state) -> None:
    assert registry.handle(state, "/send") == ""
    assert len(state.task_store) == 0


def test_theme_toggle_is_persisted(state, storage: MemoryStorage) -> None:
    assert state.theme is Theme.LIGHT
    assert registry.handle(state, "/theme") == "Theme: dark"
    assert storage.items[THEME_KEY] == "dark"
    assert registry.handle(state, "/theme light") == "Theme: light"
    assert "Usage" in registry.handle(state, "/theme blue")
    assert storage.items[THEME_KEY] == "light"


def test_state_restores_persisted_tasks_and_theme(settings, extractor: FakeExtractor) -> None:
    from listing_notes.cli.bootstrap import create_initial_state

    storage = MemoryStorage(
        {
            THEME_KEY: "dark",
            TASKS_KEY: json.dumps(
                [
                    {"id": "p", "timestamp": 3, "status": "processing", "description": "lost"},
                    {"id": "f", "timestamp": 2, "status": "failed", "description": "x",
                     "sourceInput": {"text": "x", "image": None, "audio": None}, "errorMessage": "e"},
                ]
            ),
        }
    )

    state = create_initial_state(settings=settings, storage=storage, extractor=extractor)

    assert state.theme is Theme.DARK
    assert [t.id for t in state.task_store.snapshot()] == ["f"]
    # Loading does not rewrite storage.
    assert storage.writes == 0
