# src/listing_notes/cli/commands.py

from __future__ import annotations

import logging
from collections.abc import Callable

from ..core.media import MediaError, MediaKind, load_media_file
from ..core.state import AppState
from ..core.theme import Theme
from ..tasks.editor import FIELD_LABELS
from ..tasks.task_models import FailedTask, SuccessTask, Task
from ..tasks.views import ViewName
from .render import render_detail, render_form, render_list

CommandHandler = Callable[[AppState, list[str]], str]

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the console (/help, /log, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(self, state: AppState, line: str) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        return handler(state, args)

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        lines.append("  Any other line is sent for recognition together with attached media.")
        return "\n".join(lines)


registry = CommandRegistry()


# ---- shared helpers ----


def submit_input(state: AppState, text: str) -> str:
    """Submit text plus any attached media. Empty input is ignored silently."""
    task = state.task_store.submit(text, state.pending_image, state.pending_audio)
    if task is None:
        return ""
    state.clear_pending_media()
    return f"已提交识别任务: {task.description}"


def _list_view(state: AppState, view: ViewName) -> str:
    rows = state.views().get(view)
    state.listed_view = view
    state.listed_rows = rows
    return render_list(view.title, rows)


def _pick(state: AppState, args: list[str]) -> Task | str:
    """Resolve "<n>" against the last listed view. Returns the task or an error text."""
    if not args:
        return "Usage: /<command> <n> (n is the number shown in the list)."
    try:
        n = int(args[0])
    except ValueError:
        return f"Not a number: {args[0]}"

    rows = state.listed_rows or state.views().get(state.listed_view)
    if n < 1 or n > len(rows):
        return f"No item #{n} in {state.listed_view.title}."

    current = state.task_store.get(rows[n - 1].id)
    if current is None:
        return "该任务已不存在，请重新列出 (/log)。"
    return current


# ---- handlers ----


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str]) -> str:
    views = state.views()
    models = ", ".join(list(getattr(state.settings, "llm_models", []) or []))
    attached = []
    if state.pending_image is not None:
        attached.append(f"image={state.pending_image.name or state.pending_image.mime_type}")
    if state.pending_audio is not None:
        attached.append(f"audio={state.pending_audio.name or state.pending_audio.mime_type}")
    return (
        "Status:\n"
        f"  Extractor: {state.extractor.__class__.__name__}\n"
        f"  Models (priority -> fallback): {models}\n"
        f"  Theme: {state.theme.value}\n"
        f"  In flight: {state.task_store.in_flight}\n"
        f"  Tasks: log={len(views.log)} unpublished={len(views.unpublished)} templates={len(views.templates)}\n"
        f"  Attached: {', '.join(attached) or '-'}"
    )


def _attach(state: AppState, args: list[str], kind: MediaKind) -> str:
    if not args:
        return f"Usage: /{kind} <path>"
    path = " ".join(args)
    default_mime = str(getattr(state.settings, "default_audio_mime", "") or "audio/webm")
    try:
        blob = load_media_file(path, kind=kind, default_audio_mime=default_mime)
    except MediaError as e:
        return f"[提示] {e}"

    if kind == "image":
        state.pending_image = blob
        return f"已添加图片: {blob.name} ({blob.mime_type}). 输入描述或 /send 提交。"
    state.pending_audio = blob
    return f"已添加语音: {blob.name} ({blob.mime_type}). 输入描述或 /send 提交。"


def cmd_image(state: AppState, args: list[str]) -> str:
    return _attach(state, args, "image")


def cmd_audio(state: AppState, args: list[str]) -> str:
    return _attach(state, args, "audio")


def cmd_clear(state: AppState, args: list[str]) -> str:
    state.clear_pending_media()
    return "已清除附件。"


def cmd_send(state: AppState, args: list[str]) -> str:
    return submit_input(state, " ".join(args))


def cmd_log(state: AppState, args: list[str]) -> str:
    return _list_view(state, ViewName.LOG)


def cmd_unpublished(state: AppState, args: list[str]) -> str:
    return _list_view(state, ViewName.UNPUBLISHED)


def cmd_templates(state: AppState, args: list[str]) -> str:
    return _list_view(state, ViewName.TEMPLATES)


def cmd_show(state: AppState, args: list[str]) -> str:
    picked = _pick(state, args)
    if isinstance(picked, str):
        return picked
    return render_detail(picked)


def cmd_retry(state: AppState, args: list[str]) -> str:
    picked = _pick(state, args)
    if isinstance(picked, str):
        return picked
    if not isinstance(picked, FailedTask):
        return "只有失败的任务可以重试。"
    new_task = state.task_store.retry(picked.id)
    if new_task is None:
        return "只有失败的任务可以重试。"
    return f"已重新提交: {new_task.description}"


def cmd_edit(state: AppState, args: list[str]) -> str:
    picked = _pick(state, args)
    if isinstance(picked, str):
        return picked
    draft = state.editor.open(picked.id) if isinstance(picked, SuccessTask) else None
    if draft is None:
        return "只有识别成功的房源可以编辑。"
    return render_form(draft, task_id=picked.id)


def cmd_set(state: AppState, args: list[str]) -> str:
    """
    /set <field> <value>   field: python name, camelCase name or Chinese label
    """
    if not state.editor.active:
        return "没有正在编辑的房源。先用 /edit <n>。"
    if len(args) < 1:
        return "Usage: /set <field> <value>. Fields: " + ", ".join(FIELD_LABELS)
    try:
        draft = state.editor.set_field(args[0], " ".join(args[1:]))
    except KeyError:
        return f"Unknown field: {args[0]}. Fields: " + ", ".join(FIELD_LABELS)
    return render_form(draft, task_id=state.editor.task_id)


def cmd_form(state: AppState, args: list[str]) -> str:
    if state.editor.draft is None:
        return "没有正在编辑的房源。"
    return render_form(state.editor.draft, task_id=state.editor.task_id)


def cmd_publish(state: AppState, args: list[str]) -> str:
    if state.editor.save(as_template=False) is None:
        return "没有正在编辑的房源。"
    return "房源发布成功！"


def cmd_template(state: AppState, args: list[str]) -> str:
    if state.editor.save(as_template=True) is None:
        return "没有正在编辑的房源。"
    return "已存为模版\n" + _list_view(state, ViewName.TEMPLATES)


def cmd_cancel(state: AppState, args: list[str]) -> str:
    if not state.editor.active:
        return "没有正在编辑的房源。"
    state.editor.close()
    return "已取消编辑。"


def cmd_theme(state: AppState, args: list[str]) -> str:
    """
    /theme              -> toggle light/dark
    /theme light|dark   -> set
    """
    if not args:
        state.set_theme(state.theme.toggled())
        return f"Theme: {state.theme.value}"
    try:
        theme = Theme(args[0].lower())
    except ValueError:
        return "Usage: /theme [light|dark]"
    state.set_theme(theme)
    return f"Theme: {state.theme.value}"


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show extractor, models, counts and attachments.")
registry.register("image", cmd_image, help_text="Attach a photo: /image <path>.", aliases=["img"])
registry.register("audio", cmd_audio, help_text="Attach a voice clip: /audio <path>.", aliases=["voice"])
registry.register("clear", cmd_clear, help_text="Drop attached photo/voice clip.")
registry.register("send", cmd_send, help_text="Submit attached media with optional text: /send [text].")
registry.register("log", cmd_log, help_text="Task log (everything except templates).", aliases=["ls"])
registry.register("unpublished", cmd_unpublished, help_text="Recognised listings not yet published.")
registry.register("templates", cmd_templates, help_text="Saved templates.")
registry.register("show", cmd_show, help_text="Show one item of the last list: /show <n>.")
registry.register("retry", cmd_retry, help_text="Retry a failed task: /retry <n>.")
registry.register("edit", cmd_edit, help_text="Open a recognised listing in the form: /edit <n>.")
registry.register("set", cmd_set, help_text="Change a form field: /set <field> <value>.")
registry.register("form", cmd_form, help_text="Show the form being edited.")
registry.register("publish", cmd_publish, help_text="Save the form and mark it published.")
registry.register("template", cmd_template, help_text="Save the form as a template.")
registry.register("cancel", cmd_cancel, help_text="Close the form without saving.")
registry.register("theme", cmd_theme, help_text="Toggle or set theme: /theme [light|dark].")
