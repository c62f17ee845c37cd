"""Local stand-in for the Lighthouse CLI used by integration tests and dry runs."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from lantern_collect.collect.local import DEVTOOLS_LOG_FILENAME, TRACE_FILENAME

_COUNTER_FILENAME = "echo_lighthouse_attempts.json"


def main(argv: list[str] | None = None) -> int:
    """Print a deterministic report and write the two artifact files."""

    parser = argparse.ArgumentParser()
    parser.add_argument("url")
    parser.add_argument("--fail-times", type=int, default=0)
    parser.add_argument("--skip-trace", action="store_true")
    parser.add_argument("--no-metrics", action="store_true")
    args, extra = parser.parse_known_args(argv)

    artifacts_dir = _artifacts_dir(extra)
    if artifacts_dir is None:
        parser.error("-AG=<folder> is required")
    artifacts_dir.mkdir(parents=True, exist_ok=True)

    attempt = _bump_attempt(artifacts_dir)
    if attempt <= args.fail_times:
        print(f"simulated failure {attempt}/{args.fail_times}", file=sys.stderr)
        return 1

    metrics = {} if args.no_metrics else {
        "firstContentfulPaint": 1000 + attempt,
        "firstMeaningfulPaint": 1200 + attempt,
        "firstCPUIdle": 3000 + attempt,
        "interactive": 4000 + attempt,
        "speedIndex": 2000 + attempt,
        "largestContentfulPaint": 2500 + attempt,
    }
    lhr = {
        "requestedUrl": args.url,
        "finalUrl": args.url,
        "audits": {"metrics": {"details": {"items": [metrics]}}},
    }
    (artifacts_dir / DEVTOOLS_LOG_FILENAME).write_text(
        json.dumps([{"method": "Network.requestWillBeSent", "params": {"url": args.url}}]),
        "utf-8",
    )
    if not args.skip_trace:
        (artifacts_dir / TRACE_FILENAME).write_text(
            json.dumps({"traceEvents": [{"name": "navigationStart", "ts": attempt}]}),
            "utf-8",
        )
    print(json.dumps(lhr, indent=2))
    return 0


def _artifacts_dir(extra: list[str]) -> Path | None:
    for arg in extra:
        if arg.startswith("-AG="):
            return Path(arg.removeprefix("-AG="))
    return None


def _bump_attempt(artifacts_dir: Path) -> int:
    counter_path = artifacts_dir / _COUNTER_FILENAME
    attempt = 0
    if counter_path.exists():
        attempt = int(json.loads(counter_path.read_text("utf-8")).get("attempt", 0))
    attempt += 1
    counter_path.write_text(json.dumps({"attempt": attempt}), "utf-8")
    return attempt


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
