"""Runtime configuration for trace collection."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

DEFAULT_WPT_BASE_URL = "https://www.webpagetest.org"
# Keep the location constant. Chrome Beta is needed for LCP traces.
DEFAULT_WPT_LOCATION = "Dulles_MotoG4:Motorola G (gen 4) - Chrome Beta.3G"
DEFAULT_LOCAL_COMMAND_TEMPLATE = (
    "lighthouse {url} --throttling-method=provided --output=json -AG={artifacts_dir}"
)


@dataclass(slots=True)
class WptSettings:
    """WebPageTest API settings."""

    api_key: str = ""
    base_url: str = DEFAULT_WPT_BASE_URL
    location: str = DEFAULT_WPT_LOCATION
    request_timeout_seconds: float = 60.0


@dataclass(slots=True)
class LocalSettings:
    """Local Lighthouse invocation settings."""

    command_template: str = DEFAULT_LOCAL_COMMAND_TEMPLATE
    artifacts_dir: Path = Path(".tmp/collect-traces-artifacts")
    no_oopifs: bool = False
    timeout_seconds: float = 600.0


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    samples: int = 9
    urls: tuple[str, ...] = ()
    collect_dir: Path = Path("dist/collect-lantern-traces")
    golden_dir: Path = Path("dist/golden-lantern-traces")
    start_delay_seconds: float = 10.0
    retry_delay_seconds: float = 0.0
    debug: bool = False
    wpt: WptSettings = field(default_factory=WptSettings)
    local: LocalSettings = field(default_factory=LocalSettings)

    @classmethod
    def from_env(cls, collect_dir: Path | None = None) -> Settings:
        """Load settings from environment, honouring the legacy collect-script names."""

        return cls(
            samples=int(os.getenv("LANTERN_COLLECT_SAMPLES", os.getenv("SAMPLES", "9"))),
            urls=_collect_urls(),
            collect_dir=collect_dir
            or Path(os.getenv("LANTERN_COLLECT_DIR", "dist/collect-lantern-traces")),
            golden_dir=Path(os.getenv("LANTERN_COLLECT_GOLDEN_DIR", "dist/golden-lantern-traces")),
            start_delay_seconds=float(os.getenv("LANTERN_COLLECT_START_DELAY_SECONDS", "10")),
            retry_delay_seconds=float(os.getenv("LANTERN_COLLECT_RETRY_DELAY_SECONDS", "0")),
            debug=_env_bool("LANTERN_COLLECT_DEBUG", default=_env_bool("DEBUG", default=False)),
            wpt=WptSettings(
                api_key=os.getenv("LANTERN_COLLECT_WPT_KEY", os.getenv("WPT_KEY", "")).strip(),
                base_url=os.getenv("LANTERN_COLLECT_WPT_BASE_URL", DEFAULT_WPT_BASE_URL),
                location=os.getenv("LANTERN_COLLECT_WPT_LOCATION", DEFAULT_WPT_LOCATION),
                request_timeout_seconds=float(
                    os.getenv("LANTERN_COLLECT_WPT_TIMEOUT_SECONDS", "60"),
                ),
            ),
            local=LocalSettings(
                command_template=os.getenv(
                    "LANTERN_COLLECT_LOCAL_COMMAND",
                    DEFAULT_LOCAL_COMMAND_TEMPLATE,
                ),
                artifacts_dir=Path(
                    os.getenv("LANTERN_COLLECT_ARTIFACTS_DIR", ".tmp/collect-traces-artifacts"),
                ),
                no_oopifs=_env_bool(
                    "LANTERN_COLLECT_NO_OOPIFS",
                    default=os.getenv("NO_OOPIFS") == "1",
                ),
                timeout_seconds=float(os.getenv("LANTERN_COLLECT_LOCAL_TIMEOUT_SECONDS", "600")),
            ),
        )

    def validate_for_collect(self, override_urls: tuple[str, ...] = ()) -> tuple[str, ...]:
        """Raise configuration error for an unusable collect run; return effective URLs."""

        if not self.wpt.api_key:
            raise ValueError("missing WPT_KEY. Set LANTERN_COLLECT_WPT_KEY or WPT_KEY.")
        if self.samples <= 0:
            raise ValueError("LANTERN_COLLECT_SAMPLES must be a positive integer.")
        if self.start_delay_seconds < 0:
            raise ValueError("LANTERN_COLLECT_START_DELAY_SECONDS must be >= 0.")
        if self.retry_delay_seconds < 0:
            raise ValueError("LANTERN_COLLECT_RETRY_DELAY_SECONDS must be >= 0.")
        if self.wpt.request_timeout_seconds <= 0:
            raise ValueError("LANTERN_COLLECT_WPT_TIMEOUT_SECONDS must be > 0.")
        if self.local.timeout_seconds <= 0:
            raise ValueError("LANTERN_COLLECT_LOCAL_TIMEOUT_SECONDS must be > 0.")

        effective_urls = normalize_urls(override_urls or self.urls)
        if not effective_urls:
            raise ValueError(
                "At least one test URL is required. "
                "Set LANTERN_COLLECT_TEST_URLS or pass --url.",
            )
        for url in effective_urls:
            _validate_url(url)
        return effective_urls

    def validate_for_golden(self) -> None:
        if self.samples <= 0:
            raise ValueError("LANTERN_COLLECT_SAMPLES must be a positive integer.")


def normalize_urls(values: tuple[str, ...] | list[str]) -> tuple[str, ...]:
    """Strip blanks and duplicates while keeping the first-seen order."""

    deduped: list[str] = []
    seen: set[str] = set()
    for value in values:
        normalized = value.strip()
        if not normalized or normalized in seen:
            continue
        seen.add(normalized)
        deduped.append(normalized)
    return tuple(deduped)


def _collect_urls() -> tuple[str, ...]:
    raw = os.getenv("LANTERN_COLLECT_TEST_URLS", os.getenv("TEST_URLS", "")).strip()
    if not raw:
        return ()
    return normalize_urls(re.split(r"[\s,]+", raw))


def _validate_url(value: str) -> None:
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError(
            f"Invalid test URL: {value!r}. Expected an absolute URL with http:// or https:// scheme.",
        )


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
