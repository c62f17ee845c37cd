"""WebPageTest client and the remote sample runner."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import httpx

from lantern_collect.collect.failures import SampleRunError
from lantern_collect.collect.lhr import assert_lhr
from lantern_collect.collect.models import Sample
from lantern_collect.collect.retry import repeat_until_pass
from lantern_collect.collect.task import StartedSignal
from lantern_collect.config import DEFAULT_WPT_BASE_URL, DEFAULT_WPT_LOCATION

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 60.0
DEFAULT_USER_AGENT = "lantern-collect/0.1"

POLL_RUNNING_SECONDS = 30
POLL_PER_QUEUED_TEST_SECONDS = 10
POLL_MAX_SECONDS = 10 * 1000


def poll_wait_seconds(behind_count: int | None) -> int:
    """Seconds to wait before the next poll.

    30 seconds while the test runs, plus 10 for every test queued ahead of
    this one, capped at 10000.
    """

    return min(
        POLL_RUNNING_SECONDS + POLL_PER_QUEUED_TEST_SECONDS * (behind_count or 0),
        POLL_MAX_SECONDS,
    )


@dataclass(slots=True)
class WptTestHandle:
    """Identifiers returned by ``runtest.php``."""

    test_id: str
    json_url: str


@dataclass(slots=True)
class WptPollResult:
    """Parsed status of one poll of a test's JSON endpoint."""

    status_code: int
    status_text: str
    behind_count: int | None = None
    lhr: Any = None

    @property
    def is_complete(self) -> bool:
        return self.status_code == 200

    @property
    def is_pending(self) -> bool:
        return 100 <= self.status_code < 200


class WptClient:
    """Async HTTP wrapper for the WebPageTest API endpoints used by collection."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        api_key: str,
        base_url: str = DEFAULT_WPT_BASE_URL,
        location: str = DEFAULT_WPT_LOCATION,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        user_agent: str = DEFAULT_USER_AGENT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._location = location
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_seconds, connect=10.0),
            headers={"User-Agent": user_agent},
            transport=transport,
            follow_redirects=True,
        )

    async def start_test(self, url: str) -> WptTestHandle:
        response = await self._fetch_json(
            f"{self._base_url}/runtest.php",
            params={
                "k": self._api_key,
                "f": "json",
                "url": url,
                "location": self._location,
                "runs": "1",
                "lighthouse": "1",
                # Make the trace file available over /getgzip.php.
                "lighthouseTrace": "1",
                # Skip the extra WPT analyses such as repeat view.
                "type": "lighthouse",
            },
        )
        status_code = response.get("statusCode")
        if status_code != 200:
            raise SampleRunError(
                f"unexpected status code {status_code} {response.get('statusText', '')}".strip(),
            )
        data = response.get("data")
        if not isinstance(data, dict):
            raise SampleRunError("runtest response is missing data")
        test_id = data.get("testId")
        json_url = data.get("jsonUrl")
        if not isinstance(test_id, str) or not isinstance(json_url, str):
            raise SampleRunError("runtest response is missing testId/jsonUrl")
        return WptTestHandle(test_id=test_id, json_url=json_url)

    async def poll(self, json_url: str) -> WptPollResult:
        response = await self._fetch_json(json_url)
        status_code = response.get("statusCode")
        if not isinstance(status_code, int):
            raise SampleRunError(f"poll response without statusCode from {json_url}")
        data = response.get("data")
        data = data if isinstance(data, dict) else {}
        behind_count = data.get("behindCount")
        return WptPollResult(
            status_code=status_code,
            status_text=str(response.get("statusText", "")),
            behind_count=behind_count if isinstance(behind_count, int) else None,
            lhr=data.get("lighthouse"),
        )

    async def fetch_trace(self, test_id: str) -> dict[str, Any]:
        trace = await self._fetch_json(
            f"{self._base_url}/getgzip.php",
            params={"test": test_id, "file": "lighthouse_trace.json"},
        )
        events = trace.get("traceEvents")
        if not isinstance(events, list):
            raise SampleRunError(f"trace for test {test_id} has no traceEvents")
        # WPT prepends an empty event object.
        trace["traceEvents"] = [event for event in events if event]
        return trace

    async def _fetch_json(
        self,
        url: str,
        params: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        response = await self._client.get(url, params=params)
        if not response.is_success:
            raise SampleRunError(
                f"error fetching {_redact(url)}: {response.status_code} {response.reason_phrase}",
            )
        payload = json.loads(response.text)
        if not isinstance(payload, dict):
            raise SampleRunError(f"expected JSON object from {_redact(url)}")
        return payload

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> WptClient:
        return self

    async def __aexit__(self, *_: object) -> None:
        await self.aclose()


class RemoteSampleRunner:
    """Runs one WebPageTest measurement lifecycle per call, retrying until it passes."""

    def __init__(
        self,
        client: WptClient,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        retry_delay_seconds: float = 0.0,
        debug: bool = False,
    ) -> None:
        self.client = client
        self._sleep = sleep
        self.retry_delay_seconds = retry_delay_seconds
        self._poll_log_level = logging.INFO if debug else logging.DEBUG

    async def run(self, url: str, started: StartedSignal) -> Sample:
        return await repeat_until_pass(
            lambda: self.run_once(url, started),
            description=f"wpt run for {url}",
            delay_seconds=self.retry_delay_seconds,
        )

    async def run_once(self, url: str, started: StartedSignal) -> Sample:
        """Submit, poll until terminal, then fetch the trace."""

        handle = await self.client.start_test(url)
        logger.log(
            self._poll_log_level,
            "wpt test submitted url=%s test_id=%s json_url=%s",
            url,
            handle.test_id,
            handle.json_url,
        )

        while True:
            result = await self.client.poll(handle.json_url)
            if result.is_complete:
                # WPT can finish between two polls without ever reporting "running".
                started.fire()
                lhr = assert_lhr(result.lhr)
                break
            if not result.is_pending:
                raise SampleRunError(
                    f"unexpected response: {result.status_code} {result.status_text}".strip(),
                )
            # No behindCount means the test is running right now.
            if not result.behind_count:
                started.fire()
            seconds = poll_wait_seconds(result.behind_count)
            logger.log(
                self._poll_log_level,
                "poll wpt in %ds url=%s test_id=%s",
                seconds,
                url,
                handle.test_id,
            )
            await self._sleep(seconds)

        trace = await self.client.fetch_trace(handle.test_id)
        return Sample(lhr=json.dumps(lhr), trace=json.dumps(trace))


def _redact(url: str) -> str:
    return url.split("?", 1)[0]
