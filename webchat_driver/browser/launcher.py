"""
Browser process launcher.

Takes exclusive control of a Chromium-family browser: locates the executable,
terminates any running instance that would hold the profile lock, seeds a
dedicated persistent profile from the user's real profile on first run, and
starts the browser detached with remote debugging enabled.

Key components:
- find_browser_executable / find_source_profile: first existing candidate
- browser_process_pattern / terminate_running_browser: best-effort kill, never raises
- is_first_run / seed_profile: one-time copy of session-bearing files
- launch_browser: detached subprocess with the debugging flags
- ProcessLauncher: the whole sequence, driven by BrowserSettings

The dedicated profile is persistent. Once it exists it is reused as-is and
never reseeded, so cookies refreshed by the browser itself survive.

Example:
    >>> launcher = ProcessLauncher(config.browser, config.timing)
    >>> candidate = await launcher.prepare_and_launch()
    >>> candidate.version_url
    'http://127.0.0.1:9222/json/version'
"""

import asyncio
import logging
import os
import re
import shutil
import subprocess
import sys
from collections.abc import Callable, Iterable
from pathlib import Path

from ..config.schema import BrowserSettings, TimingSettings
from ..exceptions import BrowserNotFoundError
from ..models import DebugEndpointCandidate
from ..utils.time import Clock, MonotonicClock

logger = logging.getLogger(__name__)

# Seconds allowed for pkill/taskkill before giving up on it
KILL_COMMAND_TIMEOUT = 3

# Session-bearing files copied from the real profile on first run
DEFAULT_SEED_FILES = (
    "Default/Cookies",
    "Default/Cookies-journal",
    "Default/Login Data",
    "Default/Login Data-journal",
    "Default/Preferences",
    "Default/Secure Preferences",
    "Local State",
)

# Binary names a running Chrome/Chromium shows on Linux; launcher scripts such
# as /usr/bin/google-chrome exec into /opt/google/chrome/chrome
LINUX_PROCESS_NAMES = (
    "chrome",
    "chromium",
    "chromium-browser",
    "google-chrome",
    "google-chrome-stable",
)


def find_browser_executable(candidates: Iterable[str | Path]) -> Path:
    """
    Return the first candidate path that exists.

    Raises:
        BrowserNotFoundError: If none of the candidates exist
    """
    checked = []
    for candidate in candidates:
        path = Path(candidate)
        checked.append(str(path))
        if path.exists():
            logger.debug(f"Using browser executable: {path}")
            return path

    raise BrowserNotFoundError(
        f"No browser executable found (checked {len(checked)} locations)."
    )


def find_source_profile(candidates: Iterable[str | Path]) -> Path | None:
    """Return the first existing real user profile directory, or None."""
    for candidate in candidates:
        path = Path(candidate)
        if path.is_dir():
            return path
    return None


def browser_process_pattern(executable: Path) -> str:
    """
    Kill pattern for the browser that ``executable`` starts.

    - macOS: the .app bundle name ("Google Chrome")
    - Windows: the image name ("chrome.exe")
    - otherwise: an extended regex matching the executable's own name or any
      known Chrome/Chromium binary name as a command-line path component

    Examples:
        >>> browser_process_pattern(Path("/Applications/Chromium.app/Contents/MacOS/Chromium"))
        'Chromium'
        >>> browser_process_pattern(Path("C:/Program Files/Google/Chrome/Application/chrome.exe"))
        'chrome.exe'
    """
    for parent in executable.parents:
        if parent.suffix == ".app":
            return parent.stem

    if executable.suffix.lower() == ".exe":
        return executable.name

    names = dict.fromkeys([executable.name, *LINUX_PROCESS_NAMES])
    alternatives = "|".join(re.sub(r"([.^$*+?()\[\]{}|\\])", r"\\\1", name) for name in names)
    return f"(^|/)({alternatives})( |$)"


def terminate_running_browser(process_pattern: str) -> None:
    """
    Kill running browser instances matching ``process_pattern``.

    Best effort: a missing kill utility, a timeout, or "no process matched"
    are all logged and ignored.
    """
    if sys.platform == "win32":
        image = process_pattern if process_pattern.endswith(".exe") else "chrome.exe"
        command = ["taskkill", "/F", "/IM", image]
    else:
        command = ["pkill", "-9", "-f", process_pattern]

    try:
        completed = subprocess.run(
            command,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            timeout=KILL_COMMAND_TIMEOUT,
            check=False,
        )
        logger.debug(f"{command[0]} exited with {completed.returncode}")
    except (OSError, subprocess.SubprocessError) as e:
        logger.warning(f"Could not terminate running browser ({command[0]}): {e}")


def is_first_run(profile_dir: Path) -> bool:
    """A profile counts as initialized once its Default/ directory exists."""
    return not (profile_dir / "Default").is_dir()


def seed_profile(
    source: Path,
    dest: Path,
    seed_files: Iterable[str] = DEFAULT_SEED_FILES,
    copy_file: Callable[[Path, Path], object] = shutil.copy2,
) -> list[str]:
    """
    Copy the allow-listed session files from ``source`` into ``dest``.

    Missing source files are skipped. A copy that fails (file locked by a
    running browser, permission denied) is logged and skipped; seeding never
    raises for an individual file.

    Args:
        source: Real user profile directory
        dest: Dedicated profile directory
        seed_files: Profile-relative paths to copy
        copy_file: Copy function (injectable for tests)

    Returns:
        Relative names of the files actually copied
    """
    (dest / "Default").mkdir(parents=True, exist_ok=True)

    copied = []
    for relative in seed_files:
        src = source / relative
        if not src.is_file():
            logger.debug(f"Seed file not present, skipping: {relative}")
            continue

        target = dest / relative
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            copy_file(src, target)
        except OSError as e:
            logger.warning(f"Failed to copy profile file {relative}: {e}")
            continue

        copied.append(relative)

    logger.info(
        "Seeded browser profile",
        extra={"context": {"copied": copied, "source": str(source), "dest": str(dest)}},
    )
    return copied


def launch_browser(
    executable: Path,
    port: int,
    profile_dir: Path,
    window_size: tuple[int, int],
) -> subprocess.Popen:
    """
    Start the browser detached so it outlives this process.

    stdio goes to DEVNULL; on POSIX the child gets its own session, on
    Windows its own process group.
    """
    width, height = window_size
    args = [
        str(executable),
        f"--remote-debugging-port={port}",
        f"--user-data-dir={profile_dir}",
        "--no-first-run",
        "--no-default-browser-check",
        f"--window-size={width},{height}",
    ]

    popen_kwargs = {
        "stdin": subprocess.DEVNULL,
        "stdout": subprocess.DEVNULL,
        "stderr": subprocess.DEVNULL,
    }
    if sys.platform == "win32":
        popen_kwargs["creationflags"] = (
            subprocess.DETACHED_PROCESS | subprocess.CREATE_NEW_PROCESS_GROUP
        )
    else:
        popen_kwargs["start_new_session"] = True

    process = subprocess.Popen(args, **popen_kwargs)
    logger.info(f"Launched browser (pid={process.pid}, port={port})")
    return process


class ProcessLauncher:
    """
    Prepare the dedicated profile and launch the browser.

    Attributes:
        settings: Browser settings (executable candidates, profile, port)
        timing: Timing settings (kill settle delay)
        clock: Clock used for the post-kill settle wait
    """

    def __init__(
        self,
        settings: BrowserSettings,
        timing: TimingSettings,
        clock: Clock | None = None,
    ):
        self.settings = settings
        self.timing = timing
        self.clock = clock or MonotonicClock()

    async def prepare_and_launch(self) -> DebugEndpointCandidate:
        """
        Run the launch sequence.

        Returns:
            DebugEndpointCandidate where the browser should publish CDP

        Raises:
            BrowserNotFoundError: If no executable is installed
        """
        executable = find_browser_executable(self.settings.executable_candidates)

        pattern = self.settings.process_pattern or browser_process_pattern(executable)
        await asyncio.to_thread(terminate_running_browser, pattern)
        await self.clock.sleep(self.timing.kill_settle_seconds)

        profile_dir = Path(os.path.expanduser(self.settings.profile_dir))
        if is_first_run(profile_dir):
            source = find_source_profile(self.settings.source_profile_candidates)
            if source is None:
                logger.info("No source profile found; starting with a fresh profile")
                (profile_dir / "Default").mkdir(parents=True, exist_ok=True)
            else:
                await asyncio.to_thread(
                    seed_profile, source, profile_dir, self.settings.seed_files
                )
        else:
            logger.debug(f"Reusing existing profile: {profile_dir}")

        process = launch_browser(
            executable,
            self.settings.debug_port,
            profile_dir,
            (self.settings.window_width, self.settings.window_height),
        )

        return DebugEndpointCandidate(
            host=self.settings.debug_host,
            port=self.settings.debug_port,
            pid=process.pid,
        )
