"""Shared test fixtures."""

from __future__ import annotations

import json
import sys
from collections.abc import Callable
from typing import Any

import pytest

from lantern_collect.collect.models import Sample

ECHO_LIGHTHOUSE_COMMAND_TEMPLATE = (
    f"{sys.executable} -m lantern_collect.collect.echo_lighthouse {{url}} "
    "--throttling-method=provided --output=json -AG={artifacts_dir}"
)


def _lhr(url: str, *, interactive: float | None = 4000, fcp: float | None = 1000) -> dict[str, Any]:
    metrics: dict[str, Any] = {
        "firstMeaningfulPaint": 1200,
        "firstCPUIdle": 3000,
        "speedIndex": 2000,
        "largestContentfulPaint": 2500,
    }
    if interactive is not None:
        metrics["interactive"] = interactive
    if fcp is not None:
        metrics["firstContentfulPaint"] = fcp
    return {
        "requestedUrl": url,
        "audits": {"metrics": {"details": {"items": [metrics]}}},
    }


@pytest.fixture()
def make_lhr() -> Callable[..., dict[str, Any]]:
    """Build a minimal Lighthouse report that passes validation by default."""
    return _lhr


@pytest.fixture()
def make_sample() -> Callable[..., Sample]:
    def _make(url: str, *, local: bool = False, interactive: float = 4000) -> Sample:
        return Sample(
            lhr=json.dumps(_lhr(url, interactive=interactive)),
            trace=json.dumps({"traceEvents": [{"name": "navigationStart"}]}),
            devtools_log=json.dumps([]) if local else None,
        )

    return _make


@pytest.fixture()
def echo_command_template() -> str:
    return ECHO_LIGHTHOUSE_COMMAND_TEMPLATE
