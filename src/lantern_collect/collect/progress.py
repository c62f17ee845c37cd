"""Progress rendering for a collect run."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from lantern_collect.collect.task import CollectTask

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ProgressSnapshot:
    """Counts shown on the progress line."""

    wpt_done: int
    wpt_total: int
    tasks_left: int
    current_url: str | None
    current_wpt_done: int = 0
    current_wpt_total: int = 0
    current_unthrottled_done: int = 0
    current_unthrottled_total: int = 0


def build_progress(
    tasks: Sequence[CollectTask],
    *,
    tasks_left: int,
    current: CollectTask | None,
) -> ProgressSnapshot:
    """Compute a snapshot straight from task state."""

    snapshot = ProgressSnapshot(
        wpt_done=sum(len(task.remote_results) for task in tasks),
        wpt_total=sum(task.remote_expected for task in tasks),
        tasks_left=tasks_left,
        current_url=current.url if current is not None else None,
    )
    if current is not None:
        snapshot.current_wpt_done = len(current.remote_results)
        snapshot.current_wpt_total = current.remote_expected
        snapshot.current_unthrottled_done = len(current.local_results)
        snapshot.current_unthrottled_total = current.samples
    return snapshot


def render_progress(snapshot: ProgressSnapshot) -> str:
    parts = [
        "all wpt:",
        f"{snapshot.wpt_done} / {snapshot.wpt_total}",
        "tasks left:",
        str(snapshot.tasks_left),
    ]
    if snapshot.current_url is not None:
        parts += [
            "current task:",
            snapshot.current_url,
            "wpt",
            _fraction(snapshot.current_wpt_done, snapshot.current_wpt_total),
            "unthrottled",
            _fraction(snapshot.current_unthrottled_done, snapshot.current_unthrottled_total),
        ]
    return " ".join(parts)


def _fraction(done: int, total: int) -> str:
    # Shows the sample currently in flight, not the count finished.
    if done >= total:
        return "(DONE)"
    return f"({done + 1} / {total})"


class ProgressReporter:
    """Routes progress and log lines to an emitter owned by the caller."""

    def __init__(self, emit: Callable[[str], None] | None = None) -> None:
        self._emit = emit
        self.last_line: str | None = None

    def progress(self, line: str) -> None:
        self.last_line = line
        self._write(line)

    def report(
        self,
        tasks: Sequence[CollectTask],
        *,
        tasks_left: int,
        current: CollectTask | None,
    ) -> None:
        self.progress(
            render_progress(build_progress(tasks, tasks_left=tasks_left, current=current)),
        )

    def log(self, message: str) -> None:
        self._write(message)

    def _write(self, line: str) -> None:
        if self._emit is None:
            logger.info("%s", line)
            return
        self._emit(line)
