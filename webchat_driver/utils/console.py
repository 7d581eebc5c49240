"""
Terminal output for the CLI, in two flavors.

A person at a terminal gets Rich status lines and a progress bar on stderr,
with the response text alone on stdout. A calling program (--format json)
gets a single JSON document on stdout once the command finishes, assembled
from everything the command reported along the way.

Contents:
- OutputMode / output_mode: the format and quiet flags for this process
- spinner(), create_progress_bar(): Rich widgets, no-ops outside human mode
- success(), error(), warning(), info(): one-line status messages
- print_config_summary(), print_descriptor(), print_profile_status(),
  print_result(): command-specific displays

Examples:
    >>> output_mode.reset("json")
    >>> success("Configuration is valid")   # buffered
    >>> output_mode.flush_json()            # one JSON object on stdout
"""

from __future__ import annotations

import json
import sys
from contextlib import contextmanager
from typing import Any

from rich import box
from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from .logging import redact_debugger_url

FORMATS = ("text", "json")


def _check_format(format_type: str) -> str:
    if format_type not in FORMATS:
        raise ValueError(f"Invalid format: {format_type}. Must be 'text' or 'json'")
    return format_type


class OutputMode:
    """
    Where and how the CLI reports.

    Attributes:
        format: "text" for people, "json" for programs
        quiet: Suppress status chatter (errors and the result still print)
        _json_buffer: Keys collected for the final JSON document

    Examples:
        >>> mode = OutputMode()
        >>> mode.is_human()
        True
        >>> mode.reset("json")
        >>> mode.is_agent()
        True
    """

    def __init__(self, format_type: str = "text", quiet: bool = False):
        """
        Raises:
            ValueError: On a format other than "text" or "json"
        """
        self.format = _check_format(format_type)
        self.quiet = quiet
        self._json_buffer: dict[str, Any] = {}

    def is_human(self) -> bool:
        return self.format == "text"

    def is_agent(self) -> bool:
        return self.format == "json"

    def add_json(self, key: str, value: Any) -> None:
        """Set ``key`` in the pending JSON document (last write wins)."""
        self._json_buffer[key] = value

    def flush_json(self) -> None:
        """
        Write the pending JSON document to stdout and start a new one.

        Does nothing in text mode or when nothing was collected.
        """
        if self.is_agent() and self._json_buffer:
            json.dump(self._json_buffer, sys.stdout, indent=2, ensure_ascii=False)
            sys.stdout.write("\n")
            sys.stdout.flush()
            self._json_buffer.clear()

    def reset(self, format_type: str = "text", quiet: bool = False) -> None:
        """Reconfigure in place (the CLI does this once per command)."""
        self.format = _check_format(format_type)
        self.quiet = quiet
        self._json_buffer.clear()


# Process-wide mode, configured from CLI flags
output_mode = OutputMode()

console = Console()
console_err = Console(stderr=True)


@contextmanager
def spinner(message: str):
    """
    Show a spinner on stderr while the block runs (human mode only).

    Examples:
        >>> with spinner("Loading configuration..."):
        ...     config = load_config(path)
    """
    if output_mode.is_human() and not output_mode.quiet:
        with console_err.status(f"[bold blue]{message}", spinner="dots") as status:
            yield status
    else:
        yield None


def create_progress_bar() -> Progress | NoOpProgress:
    """
    Create the session progress bar (0-100).

    The bar renders on stderr so stdout carries only the response text.
    Returns a NoOpProgress in agent/quiet modes.
    """
    if output_mode.is_human() and not output_mode.quiet:
        return Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            TimeElapsedColumn(),
            console=console_err,
            transient=True,
        )
    return NoOpProgress()


class NoOpProgress:
    """Stand-in for rich.progress.Progress when nothing should render."""

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return None

    def add_task(self, _description: str, total: float | None = None) -> int:
        return 0

    def update(self, _task_id: int, **_kwargs) -> None:
        pass

    def log(self, *_args, **_kwargs) -> None:
        pass


def success(message: str) -> None:
    """Green check on stderr; in JSON mode sets status/message."""
    if output_mode.is_agent():
        output_mode.add_json("status", "success")
        output_mode.add_json("message", message)
    elif not output_mode.quiet:
        console_err.print(f"[green]✓[/green] {message}")


def error(message: str) -> None:
    """
    Red cross on stderr, even in quiet mode.

    JSON mode: sets status to "error" and stores the message under "error".
    """
    if output_mode.is_agent():
        output_mode.add_json("status", "error")
        output_mode.add_json("error", message)
    else:
        console_err.print(f"[red]✗[/red] {message}", style="red")


def warning(message: str) -> None:
    """Yellow warning on stderr; in JSON mode appended to a "warnings" list."""
    if output_mode.is_agent():
        output_mode._json_buffer.setdefault("warnings", []).append(message)
    else:
        console_err.print(f"[yellow]⚠[/yellow] {message}", style="yellow")


def info(message: str) -> None:
    """Status line on stderr in human mode; dropped otherwise."""
    if output_mode.is_human() and not output_mode.quiet:
        console_err.print(f"[blue]ℹ[/blue] {message}")


def print_config_summary(config) -> None:
    """
    Summarize a validated DriverConfig.

    Human mode: Rich table
    Agent mode: Buffer the summary dict as "config"
    """
    browser = config.browser
    timing = config.timing
    selectors = config.selectors

    summary = {
        "target_url": browser.target_url,
        "debug_endpoint": f"{browser.debug_host}:{browser.debug_port}",
        "profile_dir": str(browser.profile_dir),
        "executable_candidates": len(browser.executable_candidates),
        "seed_files": len(browser.seed_files),
        "challenge_timeout_seconds": timing.challenge_timeout_seconds,
        "auth_timeout_seconds": timing.auth_timeout_seconds,
        "response_timeout_seconds": timing.response_timeout_seconds,
        "stability_polls": timing.stability_polls,
        "min_response_chars": timing.min_response_chars,
        "input_selectors": len(selectors.input_selectors),
        "submit_selectors": len(selectors.submit_selectors),
        "response_selectors": len(selectors.response_selectors),
    }

    if output_mode.is_agent():
        output_mode.add_json("config", summary)
        return

    if output_mode.quiet:
        return

    table = Table(title="Configuration", box=box.ROUNDED)
    table.add_column("Setting", style="cyan", no_wrap=True)
    table.add_column("Value", style="magenta")
    for key, value in summary.items():
        table.add_row(key, str(value))

    console.print(table)


def print_descriptor(descriptor) -> None:
    """
    Show a ConnectionDescriptor with its websocket token redacted.
    """
    data = {
        "browser": descriptor.browser,
        "protocol_version": descriptor.protocol_version,
        "websocket_url": redact_debugger_url(descriptor.websocket_url),
    }

    if output_mode.is_agent():
        output_mode.add_json("endpoint", data)
        return

    if output_mode.quiet:
        print(data["websocket_url"])
        return

    table = Table(title="Debug Endpoint", box=box.ROUNDED, show_header=False)
    table.add_column("Field", style="cyan", no_wrap=True)
    table.add_column("Value")
    for key, value in data.items():
        table.add_row(key, value or "-")
    console.print(table)


def print_profile_status(profile_dir: str, first_run: bool, source_profile: str | None) -> None:
    """Report the dedicated profile and whether the next run will seed it."""
    if output_mode.is_agent():
        output_mode.add_json(
            "profile",
            {
                "profile_dir": profile_dir,
                "first_run": first_run,
                "source_profile": source_profile,
            },
        )
        return

    if output_mode.quiet:
        print(f"{profile_dir}\t{'first-run' if first_run else 'initialized'}")
        return

    console.print(f"[bold]Profile directory:[/bold] {profile_dir}")
    if first_run:
        source = source_profile or "(none found, the profile will start empty)"
        console.print(f"[bold]State:[/bold] [yellow]first run[/yellow], seeds from {source}")
    else:
        console.print("[bold]State:[/bold] [green]initialized[/green], reused as-is")


def print_result(text: str, session_id: str | None = None) -> None:
    """
    Emit the response text.

    Human/quiet mode: plain text on stdout (no markup, pipe-friendly)
    Agent mode: Buffer as "result" and flush
    """
    if output_mode.is_agent():
        output_mode.add_json("status", "success")
        if session_id:
            output_mode.add_json("session_id", session_id)
        output_mode.add_json("result", text)
        output_mode.flush_json()
        return

    sys.stdout.write(text)
    if not text.endswith("\n"):
        sys.stdout.write("\n")
    sys.stdout.flush()
