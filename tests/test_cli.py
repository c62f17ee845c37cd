from __future__ import annotations

import asyncio
import json
from pathlib import Path

import allure
from click.testing import CliRunner

from lantern_collect import __version__
from lantern_collect.collect import controllers
from lantern_collect.collect.checkpoint import CheckpointStore
from lantern_collect.collect.golden import GOLDEN_FILENAME
from lantern_collect.collect.models import CheckpointEntry, RunSet, SampleRefs
from lantern_collect.collect.orchestrator import CollectRunSummary
from lantern_collect.collect.task import CollectTask
from lantern_collect.main import lantern_collect

pytestmark = [
    allure.epic("Trace Collection"),
    allure.feature("CLI"),
]

_ENV_NAMES = (
    "WPT_KEY",
    "LANTERN_COLLECT_WPT_KEY",
    "TEST_URLS",
    "LANTERN_COLLECT_TEST_URLS",
    "SAMPLES",
    "LANTERN_COLLECT_SAMPLES",
)


def _clean_env(monkeypatch) -> None:
    for name in _ENV_NAMES:
        monkeypatch.delenv(name, raising=False)


def test_version_option() -> None:
    result = CliRunner().invoke(lantern_collect, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_collect_without_key_fails_before_any_work(tmp_path: Path, monkeypatch) -> None:
    _clean_env(monkeypatch)

    result = CliRunner().invoke(
        lantern_collect,
        ["collect", "--collect-dir", str(tmp_path), "--url", "https://a.example/"],
    )

    assert result.exit_code != 0
    assert "missing WPT_KEY" in result.output
    assert not (tmp_path / "summary.json").exists()


def test_collect_rejects_invalid_url(tmp_path: Path, monkeypatch) -> None:
    _clean_env(monkeypatch)
    monkeypatch.setenv("WPT_KEY", "secret")

    result = CliRunner().invoke(
        lantern_collect,
        ["collect", "--collect-dir", str(tmp_path), "--url", "not a url"],
    )

    assert result.exit_code != 0
    assert "Invalid test URL" in result.output


def test_collect_passes_settings_to_run_and_prints_summary(tmp_path: Path, monkeypatch) -> None:
    _clean_env(monkeypatch)
    monkeypatch.setenv("LANTERN_COLLECT_WPT_KEY", "secret")
    captured: dict[str, object] = {}

    async def _fake_run_collect(*, settings, urls, reporter, start_delay_seconds):
        captured.update(
            samples=settings.samples,
            urls=urls,
            delay=start_delay_seconds,
            key=settings.wpt.api_key,
        )
        reporter.log("done!")
        await asyncio.sleep(0)
        return CollectRunSummary(
            collected=list(urls),
            run_set=RunSet(entries=[CheckpointEntry(url=url) for url in urls]),
            archive_path=tmp_path / "collect.zip",
        )

    monkeypatch.setattr(controllers, "_run_collect", _fake_run_collect)

    result = CliRunner().invoke(
        lantern_collect,
        [
            "collect",
            "--collect-dir",
            str(tmp_path / "collect"),
            "--url",
            "https://a.example/",
            "--url",
            "https://b.example/",
            "--samples",
            "2",
            "--no-delay",
        ],
    )

    assert result.exit_code == 0, result.output
    assert captured == {
        "samples": 2,
        "urls": ("https://a.example/", "https://b.example/"),
        "delay": 0.0,
        "key": "secret",
    }
    assert "done!" in result.output
    assert "Collect summary: collected=2 skipped=0 entries=2 samples=2" in result.output
    assert f"Archive: {tmp_path / 'collect.zip'}" in result.output


def test_status_reports_complete_and_incomplete_entries(tmp_path: Path, monkeypatch) -> None:
    _clean_env(monkeypatch)
    refs = SampleRefs(lhr="l.json", trace="t.json")
    CheckpointStore(tmp_path).save(
        RunSet(
            entries=[
                CheckpointEntry(url="https://a.example/", wpt=[refs], unthrottled=[refs]),
                CheckpointEntry(url="https://b.example/", wpt=[refs]),
            ],
        ),
    )

    result = CliRunner().invoke(
        lantern_collect,
        ["status", "--collect-dir", str(tmp_path), "--samples", "1"],
    )

    assert result.exit_code == 0, result.output
    lines = result.output.splitlines()
    assert lines[0].startswith("complete ")
    assert lines[0].endswith("https://a.example/")
    assert lines[1].startswith("incomplete wpt=1 unthrottled=0")
    assert lines[-1] == "Entries: 2 complete=1"


def test_status_with_empty_folder(tmp_path: Path, monkeypatch) -> None:
    _clean_env(monkeypatch)

    result = CliRunner().invoke(lantern_collect, ["status", "--collect-dir", str(tmp_path)])

    assert result.exit_code == 0
    assert "No checkpoint entries" in result.output


def test_golden_command_writes_expectations(tmp_path: Path, monkeypatch, make_sample) -> None:
    _clean_env(monkeypatch)
    collect_dir = tmp_path / "collect"
    store = CheckpointStore(collect_dir)
    task = CollectTask("https://a.example/", 5)
    for index in range(5):
        task.record_remote_sample(make_sample(task.url, interactive=1000 + index))
        task.record_local_sample(make_sample(task.url, local=True, interactive=2000 + index))
    asyncio.run(store.commit(RunSet(), task))

    result = CliRunner().invoke(
        lantern_collect,
        ["golden", "--collect-dir", str(collect_dir), "--golden-dir", str(tmp_path / "golden")],
    )

    assert result.exit_code == 0, result.output
    assert "Golden summary: sites=1 skipped=0" in result.output
    golden = json.loads((tmp_path / "golden" / GOLDEN_FILENAME).read_text("utf-8"))
    assert golden["sites"][0]["wpt3g"]["timeToConsistentlyInteractive"] == 1002


def test_status_reports_corrupt_summary_as_cli_error(tmp_path: Path, monkeypatch) -> None:
    _clean_env(monkeypatch)
    (tmp_path / "summary.json").write_text(json.dumps({"url": "https://a.example/"}), "utf-8")

    result = CliRunner().invoke(lantern_collect, ["status", "--collect-dir", str(tmp_path)])

    assert result.exit_code == 1
    assert isinstance(result.exception, SystemExit)
    assert "summary must be a JSON array" in result.output


def test_golden_reports_missing_artifact_as_cli_error(
    tmp_path: Path,
    monkeypatch,
    make_sample,
) -> None:
    _clean_env(monkeypatch)
    collect_dir = tmp_path / "collect"
    store = CheckpointStore(collect_dir)
    task = CollectTask("https://a.example/", 5)
    for _ in range(5):
        task.record_remote_sample(make_sample(task.url))
        task.record_local_sample(make_sample(task.url, local=True))
    entry = asyncio.run(store.commit(RunSet(), task))
    (collect_dir / entry.wpt[0].lhr).unlink()

    result = CliRunner().invoke(
        lantern_collect,
        ["golden", "--collect-dir", str(collect_dir), "--golden-dir", str(tmp_path / "golden")],
    )

    assert result.exit_code == 1
    assert isinstance(result.exception, SystemExit)
    assert "No such file or directory" in result.output
