"""CLI entrypoint for lantern-collect."""

import logging
from pathlib import Path

import rich_click as click

from lantern_collect import __version__
from lantern_collect.collect.controllers import (
    CollectCliController,
    CollectCommand,
    GoldenCommand,
    StatusCommand,
)
from lantern_collect.collect.failures import FatalCollectError

click.rich_click.USE_MARKDOWN = True
COLLECT_CONTROLLER = CollectCliController()
# Reported as a one-line CLI error instead of a traceback.
_COMMAND_ERRORS = (ValueError, TypeError, OSError, FatalCollectError)


@click.group()
@click.version_option(version=__version__, prog_name="lantern-collect")
@click.option("--verbose", "-v", is_flag=True, help="Log retries and poll decisions.")
def lantern_collect(verbose: bool) -> None:
    """Collect paired WebPageTest and local Lighthouse traces."""

    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@lantern_collect.command("collect")
@click.option(
    "--collect-dir",
    type=click.Path(path_type=Path, file_okay=False),
    default=None,
    help="Folder holding summary.json and collected artifacts.",
)
@click.option("--url", "urls", multiple=True, help="Test URL. Can be repeated.")
@click.option(
    "--samples",
    type=click.IntRange(min=1),
    default=None,
    help="Samples per URL for each environment. Defaults to LANTERN_COLLECT_SAMPLES or 9.",
)
@click.option(
    "--no-delay",
    is_flag=True,
    help="Start WPT requests immediately instead of waiting for the cancel window.",
)
def collect(
    collect_dir: Path | None,
    urls: tuple[str, ...],
    samples: int | None,
    no_delay: bool,
) -> None:
    """Collect WPT and unthrottled samples for every URL, resuming earlier runs."""

    try:
        lines = COLLECT_CONTROLLER.collect(
            CollectCommand(
                collect_dir=collect_dir,
                urls=urls,
                samples=samples,
                no_delay=no_delay,
                emit=click.echo,
            ),
        )
    except _COMMAND_ERRORS as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


@lantern_collect.command("golden")
@click.option(
    "--collect-dir",
    type=click.Path(path_type=Path, file_okay=False),
    default=None,
    help="Folder holding summary.json and collected artifacts.",
)
@click.option(
    "--golden-dir",
    type=click.Path(path_type=Path, file_okay=False),
    default=None,
    help="Output folder for golden expectations. It is recreated from scratch.",
)
def golden(collect_dir: Path | None, golden_dir: Path | None) -> None:
    """Pick median samples and write golden expectations."""

    try:
        lines = COLLECT_CONTROLLER.golden(
            GoldenCommand(collect_dir=collect_dir, golden_dir=golden_dir, emit=click.echo),
        )
    except _COMMAND_ERRORS as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


@lantern_collect.command("status")
@click.option(
    "--collect-dir",
    type=click.Path(path_type=Path, file_okay=False),
    default=None,
    help="Folder holding summary.json and collected artifacts.",
)
@click.option("--samples", type=click.IntRange(min=1), default=None, help="Expected samples.")
def status(collect_dir: Path | None, samples: int | None) -> None:
    """Show complete and incomplete checkpoint entries."""

    try:
        lines = COLLECT_CONTROLLER.status(StatusCommand(collect_dir=collect_dir, samples=samples))
    except _COMMAND_ERRORS as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    lantern_collect()
