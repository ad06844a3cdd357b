# src/listing_notes/cli/render.py

"""Plain-text rendering of task cards and the listing form."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from ..core.listing import ListingRecord, format_number
from ..tasks.editor import FIELD_LABELS
from ..tasks.task_models import FailedTask, ProcessingTask, SuccessTask, Task


def _hhmm(timestamp_ms: int) -> str:
    return datetime.fromtimestamp(timestamp_ms / 1000).astimezone().strftime("%H:%M")


def badge(task: Task) -> str:
    if isinstance(task, ProcessingTask):
        return "处理中"
    if isinstance(task, SuccessTask):
        if task.is_template:
            return "模版"
        return "已发布" if task.is_published else "识别成功"
    return "失败"


def price_label(record: ListingRecord) -> str:
    if record.is_negotiable:
        return "面议"
    return f"¥{format_number(record.price)}"


def render_card(index: int, task: Task) -> str:
    head = f"{index:>2}. [{badge(task)}] {_hhmm(task.timestamp)}"

    if isinstance(task, ProcessingTask):
        return f"{head}  {task.description}"

    if isinstance(task, SuccessTask):
        d = task.extracted_data
        name = d.community_name or "未命名房源"
        return (
            f"{head}  {name} · {d.layout or '-'} · {format_number(d.area)}m² · "
            f"{d.rent_or_sale.label} · {price_label(d)}"
        )

    failed: FailedTask = task
    return f"{head}  {failed.description}\n      ! {failed.error_message or 'Error'}  (/retry {index})"


def render_list(title: str, tasks: Sequence[Task]) -> str:
    if not tasks:
        return f"暂无{title or '数据'}"
    lines = [f"{title} ({len(tasks)})"]
    lines.extend(render_card(i, t) for i, t in enumerate(tasks, start=1))
    return "\n".join(lines)


def render_form(record: ListingRecord, *, task_id: str | None = None) -> str:
    lines = [f"房源详情确认 [{record.rent_or_sale.label}]" + (f"  ({task_id})" if task_id else "")]
    for field, label in FIELD_LABELS.items():
        value = getattr(record, field)
        if field == "rent_or_sale":
            shown = f"{value.value} ({value.label})"
        elif field in ("price", "area"):
            shown = format_number(value)
        else:
            shown = value or ""
        lines.append(f"  {field:<17} {label}: {shown}")
    lines.append("  /set <field> <value> · /publish · /template · /cancel")
    return "\n".join(lines)


def render_detail(task: Task) -> str:
    if isinstance(task, SuccessTask):
        return render_form(task.extracted_data, task_id=task.id)
    lines = [f"[{badge(task)}] {task.description}", f"  id: {task.id}"]
    if isinstance(task, FailedTask):
        lines.append(f"  error: {task.error_message}")
    return "\n".join(lines)
