"""Per-URL collection task and the started-signal fan-in."""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from collections.abc import Callable, Sequence
from typing import Protocol

from lantern_collect.collect.failures import FatalCollectError
from lantern_collect.collect.models import Sample

logger = logging.getLogger(__name__)

_FIRE_ORDER = itertools.count()


class StartedSignal:
    """One-shot signal; firing again is a no-op."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.fired_at: float | None = None
        self.fire_order: int | None = None

    def fire(self) -> bool:
        """Set the signal; return True only for the call that actually fired it."""

        if self._event.is_set():
            return False
        self.fired_at = time.monotonic()
        self.fire_order = next(_FIRE_ORDER)
        self._event.set()
        return True

    def is_set(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


class RemoteRunner(Protocol):
    """Protocol implemented by remote sample runners."""

    async def run(self, url: str, started: StartedSignal) -> Sample:
        """Return one valid sample, firing ``started`` once the measurement is running."""


class CollectTask:
    """Samples collected for one URL.

    Remote jobs are started eagerly and each one writes exactly one entry of
    ``remote_results``.  Local samples are recorded by the orchestrator, one
    at a time and in invocation order.
    """

    def __init__(
        self,
        url: str,
        samples: int,
        *,
        on_change: Callable[[CollectTask], None] | None = None,
    ) -> None:
        self.url = url
        self.samples = samples
        self.started = StartedSignal()
        self.remote_results: list[Sample] = []
        self.local_results: list[Sample] = []
        self._remote_jobs: list[asyncio.Task[Sample]] = []
        self._on_change = on_change

    def start_remote(
        self,
        runner: RemoteRunner,
        *,
        on_failure: Callable[[BaseException], None] | None = None,
    ) -> None:
        """Spawn one independent job per remote sample; must run inside an event loop."""

        if self._remote_jobs:
            raise FatalCollectError(f"remote samples already started for {self.url}")
        for index in range(self.samples):
            job = asyncio.create_task(
                self._collect_remote(runner),
                name=f"wpt[{index + 1}/{self.samples}] {self.url}",
            )
            if on_failure is not None:
                job.add_done_callback(_failure_forwarder(on_failure))
            self._remote_jobs.append(job)

    async def _collect_remote(self, runner: RemoteRunner) -> Sample:
        sample = await runner.run(self.url, self.started)
        self.record_remote_sample(sample)
        return sample

    def record_remote_sample(self, sample: Sample) -> None:
        if self.is_remote_complete():
            raise FatalCollectError(
                f"too many wpt samples for {self.url}: expected {self.samples}",
            )
        self.remote_results.append(sample)
        # A finished sample proves the remote side began, even if no poll saw it running.
        self.started.fire()
        self._notify()

    def record_local_sample(self, sample: Sample) -> None:
        if self.is_local_complete():
            raise FatalCollectError(
                f"too many unthrottled samples for {self.url}: expected {self.samples}",
            )
        self.local_results.append(sample)
        self._notify()

    @property
    def remote_expected(self) -> int:
        return len(self._remote_jobs) or self.samples

    def is_remote_complete(self) -> bool:
        return len(self.remote_results) >= self.samples

    def is_local_complete(self) -> bool:
        return len(self.local_results) >= self.samples

    def is_done(self) -> bool:
        return self.is_remote_complete() and self.is_local_complete()

    async def wait_remote_complete(self) -> list[Sample]:
        """Join every remote job individually and return the recorded samples."""

        for job in self._remote_jobs:
            await job
        return self.remote_results

    def cancel_remote(self) -> None:
        for job in self._remote_jobs:
            if not job.done():
                job.cancel()

    def _notify(self) -> None:
        if self._on_change is not None:
            self._on_change(self)


async def first_started(tasks: Sequence[CollectTask]) -> CollectTask:
    """Wait until any task's started-signal fires and return that task.

    When several signals are already set, the one that fired earliest wins,
    then the earliest position in ``tasks``.  The caller removes the winner
    from the sequence before the next call.
    """

    if not tasks:
        raise ValueError("first_started() needs at least one task")

    ready = _earliest_fired(tasks)
    if ready is not None:
        return ready

    waiters = {asyncio.create_task(task.started.wait()): task for task in tasks}
    try:
        await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for waiter in waiters:
            waiter.cancel()

    ready = _earliest_fired(tasks)
    if ready is None:  # pragma: no cover
        raise FatalCollectError("started-signal wait finished without a fired signal")
    return ready


def _earliest_fired(tasks: Sequence[CollectTask]) -> CollectTask | None:
    fired = [
        (task.started.fire_order or 0, index, task)
        for index, task in enumerate(tasks)
        if task.started.is_set()
    ]
    if not fired:
        return None
    return min(fired, key=lambda item: (item[0], item[1]))[2]


def _failure_forwarder(
    on_failure: Callable[[BaseException], None],
) -> Callable[[asyncio.Task[Sample]], None]:
    def _forward(job: asyncio.Task[Sample]) -> None:
        if job.cancelled():
            return
        error = job.exception()
        if error is not None:
            logger.error("%s failed: %s", job.get_name(), error)
            on_failure(error)

    return _forward
