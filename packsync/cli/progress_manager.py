"""
Renders progress events from the provisioning engine with Rich.
"""

import asyncio

from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeRemainingColumn,
)

from packsync.core.item_sync import PROGRESS_TASK as ITEM_TASK
from packsync.utils.formatting import format_size

# Tasks counting items rather than bytes.
COUNT_TASKS = (ITEM_TASK,)


class RichProgressSink:
    """
    A ProgressSink that keeps one Rich progress bar per task label.

    Byte-sized tasks show sizes, item-count tasks show "n/m". A task is
    marked finished when it reports ``current == total``.
    """

    def __init__(self, console: Console):
        self.console = console
        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}", justify="left"),
            BarColumn(bar_width=30),
            "[progress.percentage]{task.percentage:>3.0f}%",
            "•",
            TextColumn("{task.fields[detail]}"),
            "•",
            TimeRemainingColumn(),
            console=console,
            transient=False,
        )
        self._tasks: dict[str, TaskID] = {}

    def _detail(self, task: str, current: int, total: int) -> str:
        if task in COUNT_TASKS:
            return f"{current}/{total}"
        return f"{format_size(current)} / {format_size(total)}"

    def emit(
        self, task: str, current: int, total: int, message: str | None = None
    ) -> None:
        description = message or task
        detail = self._detail(task, current, total)
        task_id = self._tasks.get(task)
        if task_id is None:
            task_id = self.progress.add_task(
                description, total=total or None, completed=current, detail=detail
            )
            self._tasks[task] = task_id
        else:
            self.progress.update(
                task_id,
                description=description,
                total=total or None,
                completed=current,
                detail=detail,
            )
        if total and current >= total:
            self.progress.update(task_id, completed=total)
            self.progress.stop_task(task_id)

    async def __aenter__(self) -> "RichProgressSink":
        self.progress.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await asyncio.sleep(0.1)
        self.progress.stop()
