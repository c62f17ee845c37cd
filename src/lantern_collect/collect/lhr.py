"""Lighthouse report helpers: metric extraction and sample validation."""

from __future__ import annotations

from typing import Any

from lantern_collect.collect.failures import InvalidSampleError

REQUIRED_METRICS: tuple[str, ...] = ("interactive", "firstContentfulPaint")


def get_metrics(lhr: dict[str, Any]) -> dict[str, Any] | None:
    """Return the first item of the ``metrics`` audit details, if present."""

    audits = lhr.get("audits")
    if not isinstance(audits, dict):
        return None
    metrics_audit = audits.get("metrics")
    if not isinstance(metrics_audit, dict):
        return None
    details = metrics_audit.get("details")
    if not isinstance(details, dict):
        return None
    items = details.get("items")
    if not isinstance(items, list) or not items or not isinstance(items[0], dict):
        return None
    return items[0]


def assert_lhr(lhr: Any) -> dict[str, Any]:
    """Validate a Lighthouse report and return it.

    A report is usable only when it exists, reports no runtime error and
    carries every metric in ``REQUIRED_METRICS``.
    """

    if not lhr or not isinstance(lhr, dict):
        raise InvalidSampleError("missing lhr")
    runtime_error = lhr.get("runtimeError")
    if runtime_error:
        raise InvalidSampleError(f"runtime error: {_describe_runtime_error(runtime_error)}")
    metrics = get_metrics(lhr)
    if metrics and all(metrics.get(name) for name in REQUIRED_METRICS):
        return lhr
    raise InvalidSampleError(f"run failed to get metrics for {lhr.get('requestedUrl')}")


def _describe_runtime_error(runtime_error: Any) -> str:
    if isinstance(runtime_error, dict):
        code = runtime_error.get("code", "")
        message = runtime_error.get("message", "")
        return f"{code} {message}".strip()
    return str(runtime_error)
