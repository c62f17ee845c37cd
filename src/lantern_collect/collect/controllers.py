"""Controllers for collect CLI commands."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from lantern_collect.collect.checkpoint import CheckpointStore
from lantern_collect.collect.golden import build_golden
from lantern_collect.collect.local import LocalSampleRunner
from lantern_collect.collect.orchestrator import CollectOrchestrator, CollectRunSummary
from lantern_collect.collect.progress import ProgressReporter
from lantern_collect.collect.wpt import RemoteSampleRunner, WptClient
from lantern_collect.config import Settings

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CollectCommand:
    """CLI input for a collect run."""

    collect_dir: Path | None
    urls: tuple[str, ...]
    samples: int | None
    no_delay: bool = False
    emit: Callable[[str], None] | None = None


@dataclass(slots=True)
class GoldenCommand:
    """CLI input for golden expectations."""

    collect_dir: Path | None
    golden_dir: Path | None
    emit: Callable[[str], None] | None = None


@dataclass(slots=True)
class StatusCommand:
    """CLI input for checkpoint inspection."""

    collect_dir: Path | None
    samples: int | None


class CollectCliController:
    """Builds runners from settings and runs collect, golden and status operations."""

    def collect(self, command: CollectCommand) -> list[str]:
        settings = _settings(command.collect_dir, command.samples)
        urls = settings.validate_for_collect(override_urls=command.urls)
        summary = asyncio.run(
            _run_collect(
                settings=settings,
                urls=urls,
                reporter=ProgressReporter(command.emit),
                start_delay_seconds=0.0 if command.no_delay else settings.start_delay_seconds,
            ),
        )
        lines = [
            "Collect summary: "
            f"collected={len(summary.collected)} skipped={len(summary.skipped)} "
            f"entries={len(summary.run_set.entries)} samples={settings.samples}",
        ]
        if summary.archive_path is not None:
            lines.append(f"Archive: {summary.archive_path}")
        return lines

    def golden(self, command: GoldenCommand) -> list[str]:
        settings = Settings.from_env(collect_dir=command.collect_dir)
        if command.golden_dir is not None:
            settings.golden_dir = command.golden_dir
        settings.validate_for_golden()
        summary = build_golden(
            CheckpointStore(settings.collect_dir),
            settings.golden_dir,
            progress=command.emit,
        )
        lines = [f"Golden summary: sites={len(summary.sites)} skipped={len(summary.skipped)}"]
        lines.extend(f"Skipped (not enough data): {url}" for url in summary.skipped)
        if summary.golden_path is not None:
            lines.append(f"Golden: {summary.golden_path}")
        if summary.archive_path is not None:
            lines.append(f"Archive: {summary.archive_path}")
        return lines

    def status(self, command: StatusCommand) -> list[str]:
        settings = _settings(command.collect_dir, command.samples)
        settings.validate_for_golden()
        run_set = CheckpointStore(settings.collect_dir).load()
        if not run_set.entries:
            return [f"No checkpoint entries in {settings.collect_dir}."]
        lines: list[str] = []
        for entry in run_set.entries:
            state = "complete" if entry.is_complete(settings.samples) else "incomplete"
            lines.append(
                f"{state:<10} wpt={len(entry.wpt)} unthrottled={len(entry.unthrottled)} "
                f"{entry.url}",
            )
        complete = len(run_set.completed_urls(settings.samples))
        lines.append(f"Entries: {len(run_set.entries)} complete={complete}")
        return lines


async def _run_collect(
    *,
    settings: Settings,
    urls: tuple[str, ...],
    reporter: ProgressReporter,
    start_delay_seconds: float,
) -> CollectRunSummary:
    async with WptClient(
        api_key=settings.wpt.api_key,
        base_url=settings.wpt.base_url,
        location=settings.wpt.location,
        timeout_seconds=settings.wpt.request_timeout_seconds,
    ) as client:
        orchestrator = CollectOrchestrator(
            store=CheckpointStore(settings.collect_dir),
            remote_runner=RemoteSampleRunner(
                client,
                retry_delay_seconds=settings.retry_delay_seconds,
                debug=settings.debug,
            ),
            local_runner=LocalSampleRunner(
                artifacts_dir=settings.local.artifacts_dir,
                command_template=settings.local.command_template,
                no_oopifs=settings.local.no_oopifs,
                timeout_seconds=settings.local.timeout_seconds,
                retry_delay_seconds=settings.retry_delay_seconds,
            ),
            samples=settings.samples,
            reporter=reporter,
            start_delay_seconds=start_delay_seconds,
        )
        return await orchestrator.run(urls)


def _settings(collect_dir: Path | None, samples: int | None) -> Settings:
    settings = Settings.from_env(collect_dir=collect_dir)
    if samples is not None:
        settings.samples = samples
    return settings
