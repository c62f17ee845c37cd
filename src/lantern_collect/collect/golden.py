"""Golden expectations: pick the median sample per URL from a finished collect run."""

from __future__ import annotations

import json
import logging
import shutil
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TypeVar

from lantern_collect.collect.checkpoint import CheckpointStore, archive_dir
from lantern_collect.collect.failures import FatalCollectError
from lantern_collect.collect.lhr import get_metrics
from lantern_collect.collect.models import SampleRefs

logger = logging.getLogger(__name__)

GOLDEN_FILENAME = "site-index-plus-golden-expectations.json"
MIN_SAMPLES_WITH_METRICS = 5

T = TypeVar("T")


def get_median_by(values: Sequence[T], key: Callable[[T], float]) -> T:
    """Return the median element of ``values`` by ``key``.

    For an even count, the two candidates are the elements at ``n // 2`` and
    ``n // 2 + 1`` of the sorted values, and the first wins only when it is
    strictly closer to the mean.
    """

    if not values:
        raise ValueError("get_median_by() needs at least one value")
    keyed = sorted(((key(value), value) for value in values), key=lambda item: item[0])
    middle = len(keyed) // 2
    if len(keyed) % 2 == 1:
        return keyed[middle][1]

    mean = sum(sort_value for sort_value, _ in keyed) / len(keyed)
    a_value, a = keyed[middle]
    # A two-element list has no n // 2 + 1 neighbour; fall back to the last one.
    b_value, b = keyed[min(middle + 1, len(keyed) - 1)]
    return a if abs(a_value - mean) < abs(b_value - mean) else b


@dataclass(slots=True)
class _RefsWithMetrics:
    refs: SampleRefs
    metrics: dict[str, Any]


def get_median_result(
    url: str,
    results: Sequence[SampleRefs],
    load_lhr: Callable[[str], dict[str, Any]],
) -> SampleRefs | None:
    """Return the sample with the median ``interactive`` metric, or None if too few have one."""

    with_metrics: list[_RefsWithMetrics] = []
    for refs in results:
        metrics = get_metrics(load_lhr(refs.lhr))
        if metrics and metrics.get("interactive"):
            with_metrics.append(_RefsWithMetrics(refs=refs, metrics=metrics))

    if len(with_metrics) < MIN_SAMPLES_WITH_METRICS:
        logger.warning(
            "Not enough data for %s (only found %d). Consider re-running.",
            url,
            len(with_metrics),
        )
        return None
    return get_median_by(with_metrics, lambda item: float(item.metrics["interactive"])).refs


@dataclass(slots=True)
class GoldenSummary:
    """Outcome of a golden aggregation run."""

    sites: list[dict[str, Any]] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    golden_path: Path | None = None
    archive_path: Path | None = None


def build_golden(
    store: CheckpointStore,
    golden_dir: Path,
    *,
    progress: Callable[[str], None] | None = None,
    archive: bool = True,
) -> GoldenSummary:
    """Write golden expectations and copy the median unthrottled artifacts into ``golden_dir``."""

    emit = progress or (lambda line: logger.info("%s", line))
    run_set = store.load()
    summary = GoldenSummary()

    def load_lhr(filename: str) -> dict[str, Any]:
        return json.loads(store.read_data(filename))

    for index, entry in enumerate(run_set.entries):
        emit(f"finding median {index + 1} / {len(run_set.entries)}")
        median_wpt = get_median_result(entry.url, entry.wpt, load_lhr)
        median_unthrottled = get_median_result(entry.url, entry.unthrottled, load_lhr)
        if median_wpt is None or median_unthrottled is None:
            summary.skipped.append(entry.url)
            continue
        if median_unthrottled.devtools_log is None:
            raise FatalCollectError(f"missing devtoolsLog for {entry.url}")

        wpt_metrics = get_metrics(load_lhr(median_wpt.lhr)) or {}
        summary.sites.append(
            {
                "url": entry.url,
                "wpt3g": {
                    "firstContentfulPaint": wpt_metrics.get("firstContentfulPaint"),
                    "firstMeaningfulPaint": wpt_metrics.get("firstMeaningfulPaint"),
                    "timeToFirstInteractive": wpt_metrics.get("firstCPUIdle"),
                    "timeToConsistentlyInteractive": wpt_metrics.get("interactive"),
                    "speedIndex": wpt_metrics.get("speedIndex"),
                    "largestContentfulPaint": wpt_metrics.get("largestContentfulPaint"),
                },
                "unthrottled": {
                    "tracePath": median_unthrottled.trace,
                    "devtoolsLogPath": median_unthrottled.devtools_log,
                },
            },
        )

    if golden_dir.exists():
        shutil.rmtree(golden_dir)
    golden_dir.mkdir(parents=True)
    golden_path = golden_dir / GOLDEN_FILENAME
    golden_path.write_text(json.dumps({"sites": summary.sites}, indent=2), "utf-8")
    summary.golden_path = golden_path

    emit(f"making {GOLDEN_FILENAME}")
    for site in summary.sites:
        for filename in (site["unthrottled"]["devtoolsLogPath"], site["unthrottled"]["tracePath"]):
            shutil.copyfile(store.collect_dir / filename, golden_dir / filename)

    if archive:
        emit("archiving ...")
        summary.archive_path = archive_dir(golden_dir)
    return summary
