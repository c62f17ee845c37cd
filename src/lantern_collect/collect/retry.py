"""Retry-until-pass combinator shared by the sample runners."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from lantern_collect.collect.failures import FailureClass, classify_failure

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def repeat_until_pass(
    operation: Callable[[], Awaitable[T]],
    *,
    classify: Callable[[BaseException], FailureClass] = classify_failure,
    description: str = "operation",
    delay_seconds: float = 0.0,
    on_failure: Callable[[int, Exception], None] | None = None,
) -> T:
    """Await ``operation`` until it succeeds.

    Every transient failure is logged and the operation is started again with
    no attempt limit.  Fatal failures propagate unchanged.  Between attempts
    the loop always yields to the event loop, sleeping ``delay_seconds``.
    """

    attempt = 0
    while True:
        attempt += 1
        try:
            return await operation()
        except Exception as error:
            if classify(error) is FailureClass.FATAL:
                raise
            logger.warning("%s failed on attempt %d: %s", description, attempt, error)
            if on_failure is not None:
                on_failure(attempt, error)
        await asyncio.sleep(delay_seconds)
