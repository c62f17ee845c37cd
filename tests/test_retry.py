from __future__ import annotations

import asyncio

import allure
import httpx
import pytest

from lantern_collect.collect.failures import (
    FailureClass,
    FatalCollectError,
    InvalidSampleError,
    SampleRunError,
    classify_failure,
)
from lantern_collect.collect.retry import repeat_until_pass

pytestmark = [
    allure.epic("Trace Collection"),
    allure.feature("Retry Policy"),
]


def test_classifier_treats_network_and_payload_errors_as_transient() -> None:
    assert classify_failure(httpx.ConnectError("boom")) is FailureClass.TRANSIENT
    assert classify_failure(OSError("disk")) is FailureClass.TRANSIENT
    assert classify_failure(ValueError("bad json")) is FailureClass.TRANSIENT
    assert classify_failure(InvalidSampleError("missing lhr")) is FailureClass.TRANSIENT


def test_classifier_honours_sample_run_error_hint() -> None:
    assert classify_failure(SampleRunError("x", transient=False)) is FailureClass.FATAL
    assert classify_failure(SampleRunError("x")) is FailureClass.TRANSIENT


def test_classifier_treats_unknown_errors_as_fatal() -> None:
    assert classify_failure(FatalCollectError("count mismatch")) is FailureClass.FATAL
    assert classify_failure(RuntimeError("bug")) is FailureClass.FATAL
    assert classify_failure(AttributeError("bug")) is FailureClass.FATAL


def test_repeat_until_pass_converges_after_k_failures() -> None:
    attempts: list[int] = []
    failures: list[int] = []

    async def operation() -> str:
        attempts.append(len(attempts) + 1)
        if len(attempts) <= 3:
            raise SampleRunError(f"attempt {len(attempts)} failed")
        return "ok"

    result = asyncio.run(
        repeat_until_pass(
            operation,
            description="flaky",
            on_failure=lambda attempt, _error: failures.append(attempt),
        ),
    )

    assert result == "ok"
    assert attempts == [1, 2, 3, 4]
    assert failures == [1, 2, 3]


def test_repeat_until_pass_propagates_fatal_errors_without_retry() -> None:
    attempts = 0

    async def operation() -> str:
        nonlocal attempts
        attempts += 1
        raise SampleRunError("command not found", transient=False)

    with pytest.raises(SampleRunError, match="command not found"):
        asyncio.run(repeat_until_pass(operation))
    assert attempts == 1


def test_repeat_until_pass_uses_custom_classifier() -> None:
    attempts = 0

    async def operation() -> str:
        nonlocal attempts
        attempts += 1
        if attempts == 1:
            raise KeyError("retry me")
        return "done"

    result = asyncio.run(
        repeat_until_pass(operation, classify=lambda _error: FailureClass.TRANSIENT),
    )

    assert result == "done"
    assert attempts == 2
