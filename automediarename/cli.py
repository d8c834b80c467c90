from __future__ import annotations

import logging
import os
import signal
import threading
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv

from automediarename.config import RawSettings, read_settings, write_settings
from automediarename.errors import ConfigurationError
from automediarename.paths import default_config_path, get_state_root
from automediarename.runner import EXIT_DEGRADED, EXIT_ERROR, EXIT_OK, read_status, run_sync

app = typer.Typer(add_completion=False, help="Rename and recompress new media files in place")

EXAMPLE_RULES = [
    {"pattern": r"IMG_\d{8}_\d{6}.*\.jpe?g", "prefix": "PXL_"},
]


def _setup_logging(verbose: bool) -> None:
    level_name = "DEBUG" if verbose else os.getenv("MEDIA_RENAME_LOG_LEVEL", "INFO")
    logging.basicConfig(
        level=getattr(logging, level_name.upper(), logging.INFO),
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
        datefmt="%H:%M:%S",
    )


def _install_cancel_handlers(event: threading.Event) -> None:
    def _handler(signum: int, _frame: object) -> None:
        logging.getLogger(__name__).warning("Signal %d received; stopping after the current file", signum)
        event.set()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)


@app.command()
def run(
    config: Optional[Path] = typer.Option(None, "--config", help="Settings file. Default: <state dir>/config.json"),
    root: Optional[str] = typer.Option(None, "--root", help="Media root, overriding the settings file"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Walk and select only; change nothing"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    load_dotenv()
    _setup_logging(verbose)

    cancel = threading.Event()
    _install_cancel_handlers(cancel)
    code = run_sync(config, media_root=root, dry_run=dry_run, should_cancel=cancel.is_set)
    raise typer.Exit(code=code)


@app.command()
def status() -> None:
    load_dotenv()
    current = read_status()
    if not current:
        typer.echo("No status found. Run first.")
        raise typer.Exit(code=EXIT_ERROR)

    raw_exit = current.get("last_exit_code", EXIT_ERROR)
    last_exit = int(EXIT_ERROR if raw_exit is None else raw_exit)

    typer.echo(f"last_run: {current.get('last_run', 'unknown')}")
    typer.echo(f"processed: {int(current.get('processed', 0) or 0)}")
    typer.echo(f"last_exit_code: {last_exit}")
    if current.get("error"):
        typer.echo(f"error: {current['error']}")

    counts = current.get("counts") or {}
    if counts:
        typer.echo("counts:")
        for kind in sorted(counts):
            typer.echo(f"  {kind}: {counts[kind]}")

    failures = current.get("failures_by_reason") or {}
    if failures:
        typer.echo("failures_by_reason:")
        for reason in sorted(failures):
            typer.echo(f"  {reason}: {failures[reason]}")

    if last_exit == EXIT_OK:
        raise typer.Exit(code=EXIT_OK)
    raise typer.Exit(code=EXIT_DEGRADED if last_exit == EXIT_DEGRADED else EXIT_ERROR)


@app.command("rules")
def list_rules(
    config: Optional[Path] = typer.Option(None, "--config"),
) -> None:
    load_dotenv()
    path = config or default_config_path(get_state_root())
    try:
        settings = read_settings(path)
    except ConfigurationError as exc:
        typer.echo(str(exc))
        raise typer.Exit(code=EXIT_ERROR)

    if not settings.selection_rules:
        typer.echo("(no rules configured)")
        return
    for index, rule in enumerate(settings.selection_rules, start=1):
        typer.echo(f"{index}. {rule.get('pattern')!s} -> prefix {rule.get('prefix', '')!r}")


@app.command()
def init(
    root: Optional[str] = typer.Option(None, "--root", help="Media root to scan"),
    config: Optional[Path] = typer.Option(None, "--config"),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing settings file"),
) -> None:
    load_dotenv()
    path = config or default_config_path(get_state_root())
    if path.exists() and not force:
        typer.echo(f"{path} already exists (use --force to overwrite)")
        raise typer.Exit(code=EXIT_ERROR)

    settings = RawSettings(media_root=root, selection_rules=list(EXAMPLE_RULES))
    write_settings(path, settings)
    typer.echo(f"Wrote {path}")


if __name__ == "__main__":
    app()
