"""Typer application and CLI entry point for respcache.

The CLI is a thin demonstration and maintenance surface over the
library:

* ``respcache fetch URL`` -- issue a GET through a cached client several
  times and report which attempts were served from the cache.
* ``respcache cache stats`` / ``respcache cache clear`` -- inspect or
  wipe the on-disk mirror used when persistence is enabled.

:func:`main` is the console-script entry point declared in
``pyproject.toml``.  Unhandled exceptions are written to a crash log
under the data directory.
"""

from __future__ import annotations

import asyncio
import signal
import sys
import time
import traceback
from datetime import datetime
from typing import Any, Optional

import typer

from respcache import __version__
from respcache.exit_codes import EXIT_GENERIC_FAILURE, EXIT_SUCCESS


app = typer.Typer(
    name="respcache",
    help="Time-based response cache for httpx clients.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)

cache_app = typer.Typer(no_args_is_help=True)
app.add_typer(cache_app, name="cache", help="Inspect or clear the on-disk cache mirror.")


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"respcache {__version__}")
        raise typer.Exit(code=EXIT_SUCCESS)


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output format."),
    plain_output: bool = typer.Option(False, "--plain", help="Plain text output."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable color output."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress non-essential output."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug output."),
) -> None:
    """Root callback: installs the global output manager and log routing."""
    from respcache.output import OutputFormat, OutputManager, configure_logging, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    output = OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose)
    set_output(output)
    configure_logging(output)


# ------------------------------------------------------------------ #
# fetch
# ------------------------------------------------------------------ #


def _parse_headers(values: list[str]) -> dict[str, str]:
    headers: dict[str, str] = {}
    for value in values:
        name, sep, content = value.partition(":")
        if not sep or not name.strip():
            raise typer.BadParameter(f"Expected 'Name: value', got {value!r}", param_hint="--header")
        headers[name.strip()] = content.strip()
    return headers


def _body(response: Any) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


async def _fetch(
    url: str,
    repeat: int,
    overrides: dict[str, Any],
    headers: dict[str, str],
) -> tuple[list[tuple[int, str, int, float]], Any]:
    from respcache.cache import ResponseCache
    from respcache.client import create_client

    attempts: list[tuple[int, str, int, float]] = []
    response: Any = None
    async with create_client(headers=headers) as client:
        cache = ResponseCache(client)
        await cache.use(**overrides)
        try:
            for attempt in range(1, repeat + 1):
                hits_before = cache.stats()["hits"]
                started = time.perf_counter()
                response = await client.get(url, cache=True)
                elapsed_ms = (time.perf_counter() - started) * 1000
                source = "cache" if cache.stats()["hits"] > hits_before else "network"
                attempts.append((attempt, source, response.status_code, elapsed_ms))
        finally:
            cache.close()
    return attempts, _body(response)


@app.command("fetch")
def fetch_command(
    url: str = typer.Argument(help="Absolute URL to GET."),
    repeat: int = typer.Option(2, "--repeat", "-r", min=1, help="Number of requests to issue."),
    ttl: Optional[int] = typer.Option(None, "--ttl", help="In-memory TTL in milliseconds."),
    persist: bool = typer.Option(False, "--persist", help="Mirror the cache to disk."),
    header: list[str] = typer.Option(
        [], "--header", "-H", help="Extra request header as 'Name: value'. Repeatable."
    ),
) -> None:
    """GET a URL through a cached client and report cache hits.

    Each attempt is reported on stderr as network or cache; the body of
    the last response is printed to stdout.

    Example::

        respcache fetch https://api.example.com/users --repeat 3
        respcache fetch https://api.example.com/users --persist --ttl 5000
    """
    from respcache.exceptions import RespcacheError
    from respcache.output import error, format_response, info

    headers = _parse_headers(header)
    overrides: dict[str, Any] = {}
    if ttl is not None:
        overrides["ttl_memory"] = ttl
    if persist:
        overrides["enable_persistence"] = True

    try:
        attempts, body = asyncio.run(_fetch(url, repeat, overrides, headers))
    except RespcacheError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code)

    for attempt, source, status, elapsed_ms in attempts:
        info(f"#{attempt} {source} HTTP {status} {elapsed_ms:.1f} ms")
    format_response(body)


# ------------------------------------------------------------------ #
# cache stats / clear
# ------------------------------------------------------------------ #


def _open_mirror_storage() -> Any:
    from respcache.cache import DiskKeyValueStore
    from respcache.config import get_storage_dir
    from respcache.exceptions import PersistenceError
    from respcache.output import error

    try:
        return DiskKeyValueStore(get_storage_dir())
    except PersistenceError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code)


@cache_app.command("stats")
def cache_stats() -> None:
    """Show what the on-disk mirror holds.

    Example::

        respcache cache stats
        respcache --json cache stats
    """
    from respcache.cache import SENTINEL_KEY
    from respcache.clock import now_ms
    from respcache.output import print_table

    storage = _open_mirror_storage()
    try:
        keys = storage.keys()
        started = storage.get(SENTINEL_KEY)
    finally:
        storage.close()

    age = "-"
    if started is not None and started.isdigit():
        age = f"{(now_ms() - int(started)) / 1000:.0f}s"
    rows = [
        ["directory", str(storage.directory)],
        ["entries", str(len([k for k in keys if k != SENTINEL_KEY]))],
        ["age", age],
    ]
    print_table(["setting", "value"], rows, title="Cache mirror")


@cache_app.command("clear")
def cache_clear() -> None:
    """Delete every record from the on-disk mirror."""
    from respcache.exceptions import PersistenceError
    from respcache.output import error, success

    storage = _open_mirror_storage()
    try:
        storage.clear()
    except PersistenceError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code)
    finally:
        storage.close()
    success("Cache mirror cleared.")


# ------------------------------------------------------------------ #
# Entry point
# ------------------------------------------------------------------ #


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log() -> str:
    """Write the current traceback under the data directory and return its path."""
    from respcache.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    log_path = logs_dir / f"crash-{datetime.now().strftime('%Y%m%d-%H%M%S')}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``respcache`` console script.

    :class:`~respcache.exceptions.RespcacheError` exits with the error's
    ``exit_code``; anything else produces a crash log and a generic
    failure exit.
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except Exception as exc:
        from respcache.exceptions import RespcacheError
        from respcache.output import error

        if isinstance(exc, RespcacheError):
            error(str(exc))
            sys.exit(exc.exit_code)
        log_path = _write_crash_log()
        error(f"Unexpected error. Debug log: {log_path}")
        sys.exit(EXIT_GENERIC_FAILURE)
