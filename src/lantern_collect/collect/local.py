"""Subprocess-based runner for local, unthrottled Lighthouse samples."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import shlex
from pathlib import Path

from lantern_collect.collect.failures import SampleRunError
from lantern_collect.collect.lhr import assert_lhr
from lantern_collect.collect.models import Sample
from lantern_collect.collect.retry import repeat_until_pass
from lantern_collect.config import DEFAULT_LOCAL_COMMAND_TEMPLATE

logger = logging.getLogger(__name__)

DEVTOOLS_LOG_FILENAME = "defaultPass.devtoolslog.json"
TRACE_FILENAME = "defaultPass.trace.json"
NO_OOPIFS_FLAG = "--chrome-flags=--disable-features=site-per-process"


def build_run_args(
    *,
    command_template: str,
    url: str,
    artifacts_dir: Path,
    no_oopifs: bool = False,
) -> list[str]:
    """Render the local command template into an argv list."""

    stripped = command_template.strip()
    if not stripped:
        raise SampleRunError("local command template is empty.", transient=False)
    if "{url}" not in stripped:
        raise SampleRunError("local command template must include {url}.", transient=False)
    try:
        rendered = stripped.format(
            url=shlex.quote(url),
            artifacts_dir=shlex.quote(str(artifacts_dir)),
        )
    except (KeyError, IndexError) as error:
        raise SampleRunError(
            f"Unsupported command template placeholder: {error}",
            transient=False,
        ) from error

    argv = shlex.split(rendered)
    if no_oopifs:
        argv.append(NO_OOPIFS_FLAG)
    return argv


class LocalSampleRunner:
    """Runs the local Lighthouse CLI and collects its report and artifacts.

    Only one instance may run at a time; the orchestrator guarantees it.
    """

    def __init__(
        self,
        *,
        artifacts_dir: Path,
        command_template: str = DEFAULT_LOCAL_COMMAND_TEMPLATE,
        no_oopifs: bool = False,
        timeout_seconds: float = 600.0,
        retry_delay_seconds: float = 0.0,
    ) -> None:
        self.artifacts_dir = artifacts_dir
        self.command_template = command_template
        self.no_oopifs = no_oopifs
        self.timeout_seconds = timeout_seconds
        self.retry_delay_seconds = retry_delay_seconds

    async def run(self, url: str) -> Sample:
        return await repeat_until_pass(
            lambda: self.run_once(url),
            description=f"unthrottled run for {url}",
            delay_seconds=self.retry_delay_seconds,
        )

    async def run_once(self, url: str) -> Sample:
        argv = build_run_args(
            command_template=self.command_template,
            url=url,
            artifacts_dir=self.artifacts_dir,
            no_oopifs=self.no_oopifs,
        )
        self._clear_artifacts()

        stdout = await self._execute(argv)
        lhr = assert_lhr(json.loads(stdout))
        devtools_log = self._read_artifact(DEVTOOLS_LOG_FILENAME)
        trace = self._read_artifact(TRACE_FILENAME)
        return Sample(
            # Re-serialize compactly; the CLI pretty-prints.
            lhr=json.dumps(lhr),
            trace=trace,
            devtools_log=devtools_log,
        )

    async def _execute(self, argv: list[str]) -> str:
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=os.environ.copy(),
            )
        except FileNotFoundError as error:
            raise SampleRunError(
                f"local command not found: {argv[0]}",
                transient=False,
            ) from error

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(),
                timeout=self.timeout_seconds,
            )
        except TimeoutError as error:
            await _kill(process)
            raise SampleRunError(
                f"local run timed out after {self.timeout_seconds:g}s",
            ) from error
        except asyncio.CancelledError:
            await _kill(process)
            raise

        if process.returncode != 0:
            tail = stderr.decode("utf-8", errors="replace").strip()[-500:]
            raise SampleRunError(f"local run exited with {process.returncode}: {tail}")
        return stdout.decode("utf-8")

    def _clear_artifacts(self) -> None:
        self.artifacts_dir.mkdir(parents=True, exist_ok=True)
        for filename in (DEVTOOLS_LOG_FILENAME, TRACE_FILENAME):
            (self.artifacts_dir / filename).unlink(missing_ok=True)

    def _read_artifact(self, filename: str) -> str:
        path = self.artifacts_dir / filename
        if not path.exists():
            raise SampleRunError(f"expected artifact missing: {path}")
        return path.read_text("utf-8")


async def _kill(process: asyncio.subprocess.Process) -> None:
    if process.returncode is not None:
        return
    try:
        process.kill()
    except ProcessLookupError:
        return
    await process.wait()
