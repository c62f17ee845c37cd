"""Domain models for collected samples and the resumable run set."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class SampleKind(str, Enum):
    """Which measurement environment produced a sample."""

    WPT = "wpt"
    UNTHROTTLED = "unthrottled"


@dataclass(slots=True)
class Sample:
    """One validated measurement: serialized report plus raw artifacts."""

    lhr: str
    trace: str
    devtools_log: str | None = None


@dataclass(slots=True)
class SampleRefs:
    """Filenames of one persisted sample, relative to the collect folder."""

    lhr: str
    trace: str
    devtools_log: str | None = None

    def to_dict(self) -> dict[str, str]:
        payload = {"lhr": self.lhr, "trace": self.trace}
        if self.devtools_log is not None:
            payload["devtoolsLog"] = self.devtools_log
        return payload

    @classmethod
    def from_dict(cls, raw: Any) -> SampleRefs:
        if not isinstance(raw, dict):
            raise TypeError("sample reference must be an object")
        lhr = raw.get("lhr")
        trace = raw.get("trace")
        devtools_log = raw.get("devtoolsLog")
        if not isinstance(lhr, str) or not isinstance(trace, str):
            raise TypeError("sample reference lhr/trace must be strings")
        if devtools_log is not None and not isinstance(devtools_log, str):
            raise TypeError("sample reference devtoolsLog must be a string when provided")
        return cls(lhr=lhr, trace=trace, devtools_log=devtools_log)


@dataclass(slots=True)
class CheckpointEntry:
    """Persisted references for every sample collected for one URL."""

    url: str
    wpt: list[SampleRefs] = field(default_factory=list)
    unthrottled: list[SampleRefs] = field(default_factory=list)

    def is_complete(self, samples: int) -> bool:
        return len(self.wpt) == samples and len(self.unthrottled) == samples

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "wpt": [refs.to_dict() for refs in self.wpt],
            "unthrottled": [refs.to_dict() for refs in self.unthrottled],
        }

    @classmethod
    def from_dict(cls, raw: Any) -> CheckpointEntry:
        if not isinstance(raw, dict):
            raise TypeError("summary entry must be an object")
        url = raw.get("url")
        if not isinstance(url, str) or not url:
            raise ValueError("summary entry url must be a non-empty string")
        wpt = raw.get("wpt", [])
        unthrottled = raw.get("unthrottled", [])
        if not isinstance(wpt, list) or not isinstance(unthrottled, list):
            raise TypeError(f"summary entry for {url} must hold wpt/unthrottled arrays")
        return cls(
            url=url,
            wpt=[SampleRefs.from_dict(item) for item in wpt],
            unthrottled=[SampleRefs.from_dict(item) for item in unthrottled],
        )


@dataclass(slots=True)
class RunSet:
    """Ordered checkpoint entries; a URL appears at most once."""

    entries: list[CheckpointEntry] = field(default_factory=list)

    def find(self, url: str) -> CheckpointEntry | None:
        for entry in self.entries:
            if entry.url == url:
                return entry
        return None

    def add(self, entry: CheckpointEntry) -> None:
        """Append ``entry``, replacing an existing entry for the same URL in place."""

        for index, existing in enumerate(self.entries):
            if existing.url == entry.url:
                self.entries[index] = entry
                return
        self.entries.append(entry)

    def restricted_to(self, urls: tuple[str, ...] | list[str]) -> RunSet:
        """Drop entries for URLs that are no longer requested."""

        wanted = set(urls)
        return RunSet(entries=[entry for entry in self.entries if entry.url in wanted])

    def completed_urls(self, samples: int) -> set[str]:
        return {entry.url for entry in self.entries if entry.is_complete(samples)}

    def to_list(self) -> list[dict[str, Any]]:
        return [entry.to_dict() for entry in self.entries]

    @classmethod
    def from_list(cls, raw: Any) -> RunSet:
        if not isinstance(raw, list):
            raise TypeError("summary must be a JSON array")
        run_set = cls()
        for item in raw:
            run_set.add(CheckpointEntry.from_dict(item))
        return run_set
