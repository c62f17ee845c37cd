"""Failure taxonomy and classification for the sample retry policy."""

from __future__ import annotations

from enum import Enum

import httpx


class FailureClass(str, Enum):
    """Normalized failure classes used by the retry combinator."""

    TRANSIENT = "transient"
    FATAL = "fatal"


class SampleRunError(RuntimeError):
    """Sample collection error with retryability hint."""

    def __init__(self, message: str, *, transient: bool = True) -> None:
        super().__init__(message)
        self.transient = transient


class InvalidSampleError(SampleRunError):
    """Measurement finished but its report cannot be used."""


class FatalCollectError(RuntimeError):
    """Unrecoverable condition that aborts the whole run."""


_TRANSIENT_TYPES: tuple[type[BaseException], ...] = (
    httpx.HTTPError,
    OSError,
    ValueError,
)


def classify_failure(error: BaseException) -> FailureClass:
    """Map an exception raised by a sample runner into a retry class.

    Network errors, filesystem errors and malformed payloads (``ValueError``
    covers JSON decoding) are transient.  ``SampleRunError`` carries its own
    verdict.  Anything else, including ``FatalCollectError``, is treated as
    a contract violation and must not be retried.
    """

    if isinstance(error, FatalCollectError):
        return FailureClass.FATAL
    if isinstance(error, SampleRunError):
        return FailureClass.TRANSIENT if error.transient else FailureClass.FATAL
    if isinstance(error, _TRANSIENT_TYPES):
        return FailureClass.TRANSIENT
    return FailureClass.FATAL
