"""Collect-run orchestrator: remote fan-out, serialized local runs, async commits."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol, TypeVar

from lantern_collect.collect.checkpoint import CheckpointStore
from lantern_collect.collect.failures import FatalCollectError
from lantern_collect.collect.models import CheckpointEntry, RunSet, Sample
from lantern_collect.collect.progress import ProgressReporter
from lantern_collect.collect.task import CollectTask, RemoteRunner, first_started

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LocalRunner(Protocol):
    """Protocol implemented by local sample runners."""

    async def run(self, url: str) -> Sample:
        """Return one valid locally measured sample."""


@dataclass(slots=True)
class CollectRunSummary:
    """Aggregate outcome of one collect run for CLI reporting."""

    collected: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    archive_path: Path | None = None
    run_set: RunSet = field(default_factory=RunSet)


class CollectOrchestrator:
    """Drives every requested URL to a complete checkpoint entry exactly once."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        store: CheckpointStore,
        remote_runner: RemoteRunner,
        local_runner: LocalRunner,
        samples: int,
        reporter: ProgressReporter | None = None,
        start_delay_seconds: float = 10.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        archive: bool = True,
    ) -> None:
        self.store = store
        self.remote_runner = remote_runner
        self.local_runner = local_runner
        self.samples = samples
        self.reporter = reporter or ProgressReporter()
        self.start_delay_seconds = start_delay_seconds
        self.archive = archive
        self._sleep = sleep
        self._tasks: list[CollectTask] = []
        self._pending: list[CollectTask] = []
        self._current: CollectTask | None = None
        self._abort = asyncio.Event()
        self._fatal_error: BaseException | None = None

    async def run(self, urls: Sequence[str]) -> CollectRunSummary:
        # Resume from a previous invocation; forget URLs that are no longer requested.
        run_set = self.store.load().restricted_to(list(urls))
        completed = run_set.completed_urls(self.samples)
        summary = CollectRunSummary(run_set=run_set)

        urls_to_run: list[str] = []
        for url in urls:
            if url in completed:
                self.reporter.log(f"already collected traces for {url}")
                summary.skipped.append(url)
                continue
            urls_to_run.append(url)

        if urls_to_run:
            await self._collect(run_set, urls_to_run)
            summary.collected = urls_to_run

        self._verify(run_set)

        if self.archive:
            self.reporter.progress("archiving ...")
            summary.archive_path = self.store.archive()
        self.reporter.log("done!")
        return summary

    async def _collect(self, run_set: RunSet, urls: list[str]) -> None:
        remote_requests = len(urls) * self.samples
        self.reporter.progress(
            f"About to make {remote_requests} WPT requests. "
            f"You have {self.start_delay_seconds:g} seconds to cancel.",
        )
        await self._sleep(self.start_delay_seconds)

        self._tasks = [
            CollectTask(url, self.samples, on_change=self._on_task_change) for url in urls
        ]
        for task in self._tasks:
            task.start_remote(self.remote_runner, on_failure=self._fail)
        self._pending = list(self._tasks)

        self.reporter.progress("waiting for first WPT run to start")
        commits: list[asyncio.Task[CheckpointEntry]] = []
        try:
            while self._pending:
                task = await self._until_abort(first_started(self._pending))
                self._current = task
                self._report()

                # Local runs share one machine, so they run strictly in series.
                for _ in range(self.samples):
                    sample = await self._until_abort(self.local_runner.run(task.url))
                    task.record_local_sample(sample)

                # Remote runs may still be in flight; commit in the background
                # and move on to the next task's local runs.
                commit = asyncio.create_task(
                    self._commit_when_done(run_set, task),
                    name=f"commit {task.url}",
                )
                commit.add_done_callback(self._commit_done)
                commits.append(commit)

                self._pending.remove(task)
                self._report()

            self._current = None
            await self._until_abort(asyncio.gather(*commits))
        except BaseException:
            for task in self._tasks:
                task.cancel_remote()
            for commit in commits:
                commit.cancel()
            raise

    async def _commit_when_done(self, run_set: RunSet, task: CollectTask) -> CheckpointEntry:
        await task.wait_remote_complete()
        entry = await self.store.commit(run_set, task)
        self._report()
        return entry

    def _commit_done(self, commit: asyncio.Task[CheckpointEntry]) -> None:
        if commit.cancelled():
            return
        error = commit.exception()
        if error is not None:
            self._fail(error)

    def _verify(self, run_set: RunSet) -> None:
        for entry in run_set.entries:
            if len(entry.wpt) != self.samples or len(entry.unthrottled) != self.samples:
                raise FatalCollectError(
                    f"unexpected number of results for {entry.url}: "
                    f"expected {self.samples} wpt and {self.samples} unthrottled, "
                    f"got {len(entry.wpt)} wpt and {len(entry.unthrottled)} unthrottled",
                )

    async def _until_abort(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless a fatal failure elsewhere aborts the run first."""

        job = asyncio.ensure_future(awaitable)
        abort = asyncio.create_task(self._abort.wait())
        try:
            await asyncio.wait({job, abort}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            job.cancel()
            raise
        finally:
            abort.cancel()
        if job.done():
            return job.result()
        job.cancel()
        raise self._fatal_error or FatalCollectError("collect run aborted")

    def _fail(self, error: BaseException) -> None:
        if self._fatal_error is None:
            self._fatal_error = error
        self._abort.set()

    def _on_task_change(self, _task: CollectTask) -> None:
        self._report()

    def _report(self) -> None:
        # Without a current task the line still carries the remote totals.
        self.reporter.report(
            self._tasks,
            tasks_left=len(self._pending),
            current=self._current,
        )
