# src/listing_notes/connectors/console_connector.py

from __future__ import annotations

import logging
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..cli.commands import submit_input
from ..cli.render import render_card, render_list
from ..core.background import run_in_daemon_thread
from ..core.state import AppState
from ..tasks.task_models import ProcessingTask, Task
from ..tasks.views import ViewName

logger = logging.getLogger(__name__)

PROMPT = ">>> "


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}", flush=True)


class CompletionPrinter:
    """
    Task store listener that prints the cards produced when a processing
    task resolves, so results show up while the user keeps typing.
    """

    def __init__(self, initial: tuple[Task, ...]) -> None:
        self._known = {t.id for t in initial}
        self._processing = {t.id for t in initial if isinstance(t, ProcessingTask)}

    def __call__(self, snapshot: tuple[Task, ...]) -> None:
        processing = {t.id for t in snapshot if isinstance(t, ProcessingTask)}
        resolved = self._processing - processing
        if resolved:
            fresh = [t for t in snapshot if t.id not in self._known and not isinstance(t, ProcessingTask)]
            for i, t in enumerate(fresh, start=1):
                _print_ts("[任务] " + render_card(i, t).lstrip())
        self._known = {t.id for t in snapshot}
        self._processing = processing


async def run_console_loop(state: AppState) -> None:
    logger.info("Console connector started (theme=%s).", state.theme.value)
    _print_ts(
        "[CONSOLE] 输入房源描述（可一次输入多条），/image 或 /audio 添加附件。"
        " Use /help for commands, /exit to quit.\n"
    )
    print(render_list(ViewName.LOG.title, state.views().log), flush=True)

    unsubscribe = state.task_store.subscribe(CompletionPrinter(state.task_store.snapshot()))

    try:
        while True:
            try:
                # input() blocks; run it off the loop so extractions keep completing
                # and exit is not held up by a pending read.
                user_input = (await run_in_daemon_thread(input, PROMPT, name="console-input")).strip()
            except EOFError:
                logger.info("Console EOF received, exiting.")
                break
            except KeyboardInterrupt:
                logger.info("Console KeyboardInterrupt, exiting.")
                print()
                break

            if not user_input:
                continue

            lowered = user_input.lower()
            if lowered in ("/exit", "/quit"):
                logger.info("Console exit command received.")
                break

            if lowered == "/wait":
                n = state.task_store.in_flight
                if n:
                    _print_ts(f"等待 {n} 个任务完成...")
                await state.task_store.wait_idle()
                print(render_list(ViewName.LOG.title, state.views().log), flush=True)
                continue

            try:
                cmd_response = command_registry.handle(state, user_input)
                if cmd_response is None:
                    cmd_response = submit_input(state, user_input)
            except Exception:
                logger.exception("Command handler crashed.")
                cmd_response = "Internal error while handling a command."

            if cmd_response:
                _print_ts(cmd_response)
    finally:
        unsubscribe()

    logger.info("Console connector finished.")
