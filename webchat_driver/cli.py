"""
CLI entrypoint for webchat-driver.

Provides a dual-mode command-line interface with:
- Human-friendly output: Rich progress bar, status lines, tables
- Agent-friendly output: Structured JSON for automation
- Quiet mode: bare response text / tab-separated values for shell scripts

Commands:
    run: Drive one session and print the response text
    validate: Validate configuration without touching the browser
    endpoint: Resolve the debug endpoint of an already running browser
    profile: Show the dedicated profile directory and its first-run state

Exit codes:
    0: Success
    1: Configuration or input error (invalid YAML, empty prompt)
    2: Environment error (no browser installed, debug port unreachable)
    3: Stage timeout (verification check, login, response)
    4: Other session failure

Examples:
    # Human-friendly output with a progress bar
    webchat-driver run --prompt "Summarize the attached notes"

    # Prompt from a file, JSON output for automation
    webchat-driver run --prompt-file prompt.txt --format json

    # Prompt from stdin, response into a file
    cat prompt.txt | webchat-driver run --output answer.md

Security:
    - The debugger websocket URL is redacted in every output mode
    - stdout carries only the response (text mode) or one JSON document
"""

import asyncio
import os
import sys
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as package_version
from pathlib import Path

import typer
from rich.traceback import install as install_rich_traceback

from webchat_driver.browser.endpoint import resolve_endpoint
from webchat_driver.browser.launcher import find_source_profile, is_first_run
from webchat_driver.config.loader import load_config
from webchat_driver.driver import SessionDriver, session_slot, validate_instruction
from webchat_driver.events import ErrorEvent, LogEvent, ProgressEvent
from webchat_driver.exceptions import (
    BrowserNotFoundError,
    ConfigFileNotFoundError,
    ConfigurationError,
    DebugPortConnectError,
    SessionBusyError,
    SessionError,
    StageTimeoutError,
)
from webchat_driver.models import DebugEndpointCandidate, Session
from webchat_driver.utils.console import (
    create_progress_bar,
    error,
    info,
    output_mode,
    print_config_summary,
    print_descriptor,
    print_profile_status,
    print_result,
    spinner,
    success,
    warning,
)
from webchat_driver.utils.logging import setup_logging

# Install Rich tracebacks for better error messages
install_rich_traceback(show_locals=False)

# Exit codes
EXIT_SUCCESS = 0
EXIT_CONFIG_ERROR = 1  # Config invalid or prompt unusable
EXIT_ENVIRONMENT_ERROR = 2  # Browser missing or debug port unreachable
EXIT_STAGE_TIMEOUT = 3  # Challenge, login, or response wait exhausted
EXIT_SESSION_FAILURE = 4  # Any other session failure

app = typer.Typer(
    name="webchat-driver",
    help="Drive one ChatGPT web session in your own browser and return the response",
    add_completion=False,
)


def exit_code_for(exc: BaseException) -> int:
    """Map an exception to the CLI exit code."""
    if isinstance(exc, (ConfigurationError, ValueError)):
        return EXIT_CONFIG_ERROR
    if isinstance(exc, (BrowserNotFoundError, DebugPortConnectError)):
        return EXIT_ENVIRONMENT_ERROR
    if isinstance(exc, StageTimeoutError):
        return EXIT_STAGE_TIMEOUT
    return EXIT_SESSION_FAILURE


def _fail(exc: BaseException, error_type: str) -> None:
    """Report ``exc`` in the current output mode and exit with its code."""
    error(str(exc))
    if output_mode.is_agent():
        output_mode.add_json("error_type", error_type)
        output_mode.flush_json()
    raise typer.Exit(exit_code_for(exc))


def _set_output_mode(format_type: str, quiet: bool = False) -> None:
    """Apply --format/--quiet; an unknown format exits with EXIT_CONFIG_ERROR."""
    try:
        output_mode.reset(format_type, quiet)
    except ValueError as e:
        output_mode.reset("text")
        _fail(e, "invalid_format")


def _load_config_or_exit(config: Path | None):
    try:
        with spinner("Loading configuration..."):
            return load_config(config)
    except ConfigFileNotFoundError as e:
        _fail(e, "file_not_found")
    except ConfigurationError as e:
        _fail(e, "validation_error")


def _read_prompt(prompt: str | None, prompt_file: Path | None) -> str:
    """
    Resolve the prompt from --prompt, --prompt-file, or stdin.

    Raises:
        ValueError: If both options are given, or stdin is an interactive terminal
    """
    if prompt is not None and prompt_file is not None:
        raise ValueError("Use either --prompt or --prompt-file, not both.")
    if prompt is not None:
        return prompt
    if prompt_file is not None:
        return prompt_file.read_text(encoding="utf-8")
    if sys.stdin.isatty():
        raise ValueError("No prompt given. Use --prompt, --prompt-file, or pipe it on stdin.")
    return sys.stdin.read()


async def _drive(instruction: str, config) -> tuple[str, Session]:
    """Run the session, rendering channel events as they arrive."""
    async with session_slot():
        session = Session(instruction=instruction)
        driver = SessionDriver(config)

        with create_progress_bar() as progress:
            task_id = progress.add_task("Starting", total=100)
            run_task = asyncio.create_task(driver.run(instruction, session))

            async for event in session.channel:
                if isinstance(event, LogEvent):
                    progress.update(task_id, description=event.message)
                    info(event.message)
                elif isinstance(event, ProgressEvent):
                    progress.update(task_id, completed=event.percent)
                elif isinstance(event, ErrorEvent):
                    progress.update(task_id, description="Failed")
                else:
                    progress.update(task_id, completed=100, description="Done")

            text = await run_task

        return text, session


@app.command()
def run(
    prompt: str | None = typer.Option(
        None,
        "--prompt",
        "-p",
        help="Prompt text to send",
    ),
    prompt_file: Path | None = typer.Option(
        None,
        "--prompt-file",
        help="Read the prompt from this file",
        exists=True,
        file_okay=True,
        dir_okay=False,
    ),
    config: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="YAML file overriding the packaged defaults",
    ),
    output: Path | None = typer.Option(
        None,
        "--output",
        "-o",
        help="Write the response text to this file instead of stdout",
    ),
    format: str = typer.Option(
        "text",
        "--format",
        "-f",
        help="Output format: 'text' (human-friendly) or 'json' (machine-readable)",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Print only the response text",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable debug logging",
    ),
):
    """
    Send one prompt through the browser and print the response.

    This command will:
    1. Quit any running browser and relaunch it on the dedicated profile
    2. Attach over the DevTools protocol and open the target page
    3. Wait out the verification check and the login gate
    4. Enter and submit the prompt
    5. Wait for the response to stop changing and print it

    The browser window stays open afterwards.

    Exit codes:
      0: Success
      1: Configuration or input error
      2: Browser missing or debug port unreachable
      3: Verification, login, or response wait timed out
      4: Other session failure
    """
    _set_output_mode(format, quiet)
    setup_logging(verbose=verbose, quiet_logs=output_mode.is_human())

    try:
        instruction = validate_instruction(_read_prompt(prompt, prompt_file))
    except (ValueError, OSError) as e:
        error(str(e))
        if output_mode.is_agent():
            output_mode.add_json("error_type", "invalid_prompt")
            output_mode.flush_json()
        raise typer.Exit(EXIT_CONFIG_ERROR)

    driver_config = _load_config_or_exit(config)

    try:
        text, session = asyncio.run(_drive(instruction, driver_config))
    except SessionBusyError as e:
        _fail(e, "session_busy")
    except StageTimeoutError as e:
        _fail(e, "stage_timeout")
    except (BrowserNotFoundError, DebugPortConnectError) as e:
        _fail(e, "environment_error")
    except SessionError as e:
        _fail(e, "session_error")
    except Exception as e:
        _fail(e, "unknown_error")

    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(text, encoding="utf-8")
        success(f"Response written to {output} ({len(text):,} characters)")
        if output_mode.is_agent():
            output_mode.add_json("session_id", session.session_id)
            output_mode.add_json("output_path", str(output))
            output_mode.flush_json()
        raise typer.Exit(EXIT_SUCCESS)

    success(f"Response received ({len(text):,} characters)")
    if output_mode.is_agent():
        output_mode.add_json("log", session.log_lines)
    print_result(text, session_id=session.session_id)
    raise typer.Exit(EXIT_SUCCESS)


@app.command()
def validate(
    config: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="YAML file overriding the packaged defaults",
    ),
    format: str = typer.Option(
        "text",
        "--format",
        "-f",
        help="Output format: 'text' or 'json'",
    ),
):
    """
    Validate the configuration without launching the browser.

    Exit codes:
      0: Configuration is valid
      1: Configuration is invalid
    """
    _set_output_mode(format)

    driver_config = _load_config_or_exit(config)

    success("Configuration is valid")
    if output_mode.is_agent():
        output_mode.add_json("valid", True)
    print_config_summary(driver_config)

    if not any(Path(p).exists() for p in driver_config.browser.executable_candidates):
        warning("No browser executable found at any configured location")

    output_mode.flush_json()
    raise typer.Exit(EXIT_SUCCESS)


@app.command()
def endpoint(
    config: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="YAML file overriding the packaged defaults",
    ),
    port: int | None = typer.Option(
        None,
        "--port",
        help="Debug port (defaults to browser.debug_port)",
    ),
    attempts: int = typer.Option(
        3,
        "--attempts",
        min=1,
        help="How many times to poll /json/version",
    ),
    format: str = typer.Option(
        "text",
        "--format",
        "-f",
        help="Output format: 'text' or 'json'",
    ),
):
    """
    Resolve the debug endpoint of a browser that is already running.

    Does not launch or kill anything. The websocket URL is printed redacted.

    Exit codes:
      0: Endpoint resolved
      1: Configuration error
      2: Debug port unreachable
    """
    _set_output_mode(format)
    setup_logging(quiet_logs=True)

    driver_config = _load_config_or_exit(config)
    browser = driver_config.browser
    candidate = DebugEndpointCandidate(
        host=browser.debug_host,
        port=port if port is not None else browser.debug_port,
    )

    try:
        with spinner(f"Polling {candidate.version_url}..."):
            descriptor = asyncio.run(
                resolve_endpoint(
                    candidate,
                    max_attempts=attempts,
                    interval=driver_config.timing.endpoint_interval_seconds,
                    request_timeout=driver_config.timing.endpoint_request_timeout_seconds,
                )
            )
    except DebugPortConnectError as e:
        _fail(e, "environment_error")

    print_descriptor(descriptor)
    output_mode.flush_json()
    raise typer.Exit(EXIT_SUCCESS)


@app.command()
def profile(
    config: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="YAML file overriding the packaged defaults",
    ),
    format: str = typer.Option(
        "text",
        "--format",
        "-f",
        help="Output format: 'text' or 'json'",
    ),
):
    """
    Show the dedicated browser profile and whether the next run seeds it.
    """
    _set_output_mode(format)

    driver_config = _load_config_or_exit(config)
    browser = driver_config.browser
    profile_dir = Path(os.path.expanduser(browser.profile_dir))
    source = find_source_profile(browser.source_profile_candidates)

    print_profile_status(
        str(profile_dir),
        first_run=is_first_run(profile_dir),
        source_profile=str(source) if source is not None else None,
    )
    output_mode.flush_json()
    raise typer.Exit(EXIT_SUCCESS)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit",
    ),
):
    """
    webchat-driver - send a prompt to ChatGPT through your own logged-in browser.

    Use 'webchat-driver COMMAND --help' for detailed command documentation.
    """
    if version:
        from rich.console import Console

        Console().print(f"[bold cyan]webchat-driver[/bold cyan] version {_read_version()}")
        raise typer.Exit(EXIT_SUCCESS)

    if ctx.invoked_subcommand is None:
        from rich.console import Console

        console = Console()
        console.print("[yellow]Use --help to see available commands[/yellow]")
        console.print()
        console.print("Quick start:")
        console.print('  webchat-driver run --prompt "Hello"')


def _read_version() -> str:
    """Read version from package metadata."""
    try:
        return package_version("webchat-driver")
    except PackageNotFoundError:
        return "0.1.0"


if __name__ == "__main__":
    app()
