"""Checkpoint store: persisted artifacts, the resumable run summary and archives."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
import shutil
from pathlib import Path

from lantern_collect.collect.models import (
    CheckpointEntry,
    RunSet,
    Sample,
    SampleKind,
    SampleRefs,
)
from lantern_collect.collect.task import CollectTask

logger = logging.getLogger(__name__)

SUMMARY_FILENAME = "summary.json"


def sanitize_url(url: str) -> str:
    return re.sub(r"[^a-z0-9]", "-", url, flags=re.IGNORECASE)


def artifact_prefix(url: str, kind: SampleKind, index: int) -> str:
    """Deterministic filename prefix for sample ``index`` (0-based) of ``kind``."""

    return f"{sanitize_url(url)}-mobile-{kind.value}-{index + 1}"


class CheckpointStore:
    """Reads and writes the collect folder.

    ``commit`` is the only writer used while a run is in flight; it holds a
    lock across the whole read-modify-write of the summary.
    """

    def __init__(self, collect_dir: Path) -> None:
        self.collect_dir = collect_dir
        self.summary_path = collect_dir / SUMMARY_FILENAME
        self._lock = asyncio.Lock()

    def load(self) -> RunSet:
        if not self.summary_path.exists():
            return RunSet()
        return RunSet.from_list(json.loads(self.summary_path.read_text("utf-8")))

    def save(self, run_set: RunSet) -> None:
        self.collect_dir.mkdir(parents=True, exist_ok=True)
        tmp_path = self.summary_path.with_name(f".{SUMMARY_FILENAME}.tmp")
        tmp_path.write_text(json.dumps(run_set.to_list(), indent=2), "utf-8")
        os.replace(tmp_path, self.summary_path)

    def save_data(self, filename: str, data: str) -> str:
        self.collect_dir.mkdir(parents=True, exist_ok=True)
        (self.collect_dir / filename).write_text(data, "utf-8")
        return filename

    def read_data(self, filename: str) -> str:
        return (self.collect_dir / filename).read_text("utf-8")

    def persist_samples(
        self,
        url: str,
        kind: SampleKind,
        samples: list[Sample],
    ) -> list[SampleRefs]:
        refs: list[SampleRefs] = []
        for index, sample in enumerate(samples):
            prefix = artifact_prefix(url, kind, index)
            devtools_log: str | None = None
            if sample.devtools_log is not None:
                devtools_log = self.save_data(f"{prefix}-devtoolsLog.json", sample.devtools_log)
            refs.append(
                SampleRefs(
                    lhr=self.save_data(f"{prefix}-lhr.json", sample.lhr),
                    trace=self.save_data(f"{prefix}-trace.json", sample.trace),
                    devtools_log=devtools_log,
                ),
            )
        return refs

    async def commit(self, run_set: RunSet, task: CollectTask) -> CheckpointEntry:
        """Write the task's artifacts, add its entry to ``run_set`` and save the summary."""

        async with self._lock:
            # Artifact writes run off the event loop.
            entry = await asyncio.to_thread(self._write_entry, run_set, task)
        logger.info(
            "committed %s wpt=%d unthrottled=%d",
            task.url,
            len(entry.wpt),
            len(entry.unthrottled),
        )
        return entry

    def _write_entry(self, run_set: RunSet, task: CollectTask) -> CheckpointEntry:
        entry = CheckpointEntry(
            url=task.url,
            wpt=self.persist_samples(task.url, SampleKind.WPT, task.remote_results),
            unthrottled=self.persist_samples(
                task.url,
                SampleKind.UNTHROTTLED,
                task.local_results,
            ),
        )
        run_set.add(entry)
        self.save(run_set)
        return entry

    def archive(self) -> Path:
        """Zip the collect folder next to itself and return the archive path."""

        return archive_dir(self.collect_dir)


def archive_dir(folder: Path) -> Path:
    folder.mkdir(parents=True, exist_ok=True)
    archive = shutil.make_archive(
        str(folder),
        "zip",
        root_dir=folder.parent,
        base_dir=folder.name,
    )
    return Path(archive)
