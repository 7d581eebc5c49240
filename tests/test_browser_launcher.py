"""
Tests for browser.launcher module - executable lookup, profile seeding, launch.

Profiles are built under tmp_path; subprocess calls are mocked.
"""

import errno
import re
import shutil
import subprocess
import threading
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from webchat_driver.browser.launcher import (
    DEFAULT_SEED_FILES,
    ProcessLauncher,
    browser_process_pattern,
    find_browser_executable,
    find_source_profile,
    is_first_run,
    launch_browser,
    seed_profile,
    terminate_running_browser,
)
from webchat_driver.exceptions import BrowserNotFoundError

# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def source_profile(tmp_path):
    """A real-looking user profile with every allow-listed file present."""
    source = tmp_path / "Chrome"
    for relative in DEFAULT_SEED_FILES:
        path = source / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(f"contents of {relative}", encoding="utf-8")
    # not on the allow-list, must never be copied
    (source / "Default" / "History").write_text("history", encoding="utf-8")
    return source


@pytest.fixture
def fake_executable(tmp_path):
    exe = tmp_path / "bin" / "chrome"
    exe.parent.mkdir()
    exe.write_text("#!/bin/sh\n", encoding="utf-8")
    return exe


# ============================================================================
# Lookup
# ============================================================================


class TestFindBrowserExecutable:
    def test_returns_first_existing(self, tmp_path, fake_executable):
        missing = tmp_path / "missing" / "chrome"
        assert find_browser_executable([missing, fake_executable]) == fake_executable

    def test_priority_order_is_respected(self, tmp_path):
        first = tmp_path / "first"
        second = tmp_path / "second"
        first.write_text("", encoding="utf-8")
        second.write_text("", encoding="utf-8")
        assert find_browser_executable([str(second), str(first)]) == second

    def test_none_found_raises_environment_error(self, tmp_path):
        with pytest.raises(BrowserNotFoundError) as exc_info:
            find_browser_executable([tmp_path / "a", tmp_path / "b"])
        assert "checked 2 locations" in str(exc_info.value)
        assert "Install Google Chrome" in exc_info.value.hint


class TestFindSourceProfile:
    def test_first_existing_directory(self, tmp_path, source_profile):
        assert find_source_profile([tmp_path / "nope", source_profile]) == source_profile

    def test_files_are_not_profiles(self, tmp_path):
        not_a_dir = tmp_path / "file"
        not_a_dir.write_text("", encoding="utf-8")
        assert find_source_profile([not_a_dir]) is None

    def test_absent(self, tmp_path):
        assert find_source_profile([tmp_path / "nope"]) is None


# ============================================================================
# Seeding
# ============================================================================


class TestIsFirstRun:
    def test_missing_profile_is_first_run(self, tmp_path):
        assert is_first_run(tmp_path / "profile")

    def test_profile_without_default_is_first_run(self, tmp_path):
        (tmp_path / "profile").mkdir()
        assert is_first_run(tmp_path / "profile")

    def test_initialized_profile(self, tmp_path):
        (tmp_path / "profile" / "Default").mkdir(parents=True)
        assert not is_first_run(tmp_path / "profile")


class TestSeedProfile:
    def test_copies_every_allow_listed_file(self, tmp_path, source_profile):
        dest = tmp_path / "profile"
        copied = seed_profile(source_profile, dest)

        assert copied == list(DEFAULT_SEED_FILES)
        for relative in DEFAULT_SEED_FILES:
            assert (dest / relative).read_text(encoding="utf-8") == f"contents of {relative}"
        assert not (dest / "Default" / "History").exists()

    def test_missing_source_files_are_skipped(self, tmp_path, source_profile):
        (source_profile / "Default" / "Cookies-journal").unlink()
        (source_profile / "Local State").unlink()

        copied = seed_profile(source_profile, tmp_path / "profile")

        assert "Default/Cookies-journal" not in copied
        assert "Local State" not in copied
        assert "Default/Cookies" in copied
        assert len(copied) == len(DEFAULT_SEED_FILES) - 2

    def test_locked_file_is_skipped_and_rest_copied(self, tmp_path, source_profile):
        def copy_file(src: Path, dst: Path):
            if src.name == "Cookies":
                raise PermissionError(errno.EACCES, "locked by another process", str(src))
            return shutil.copy2(src, dst)

        dest = tmp_path / "profile"
        copied = seed_profile(source_profile, dest, copy_file=copy_file)

        assert "Default/Cookies" not in copied
        assert not (dest / "Default" / "Cookies").exists()
        assert "Default/Login Data" in copied
        assert (dest / "Default" / "Login Data").exists()

    def test_missing_and_locked_together(self, tmp_path, source_profile):
        (source_profile / "Default" / "Preferences").unlink()

        def copy_file(src: Path, dst: Path):
            if src.name == "Login Data":
                raise OSError("sharing violation")
            return shutil.copy2(src, dst)

        copied = seed_profile(source_profile, tmp_path / "profile", copy_file=copy_file)

        assert copied == [
            "Default/Cookies",
            "Default/Cookies-journal",
            "Default/Login Data-journal",
            "Default/Secure Preferences",
            "Local State",
        ]

    def test_creates_default_directory_even_when_nothing_copied(self, tmp_path):
        empty_source = tmp_path / "empty"
        empty_source.mkdir()
        dest = tmp_path / "profile"

        assert seed_profile(empty_source, dest) == []
        assert (dest / "Default").is_dir()
        assert not is_first_run(dest)

    def test_custom_allow_list(self, tmp_path, source_profile):
        copied = seed_profile(source_profile, tmp_path / "profile", seed_files=["Local State"])
        assert copied == ["Local State"]


# ============================================================================
# Process control
# ============================================================================


class TestBrowserProcessPattern:
    def test_macos_uses_bundle_name(self):
        exe = Path("/Applications/Google Chrome.app/Contents/MacOS/Google Chrome")
        assert browser_process_pattern(exe) == "Google Chrome"

    def test_windows_uses_image_name(self):
        exe = Path("C:/Program Files/Google/Chrome/Application/chrome.exe")
        assert browser_process_pattern(exe) == "chrome.exe"

    @pytest.mark.parametrize(
        "executable",
        ["/usr/bin/google-chrome", "/usr/bin/google-chrome-stable", "/usr/bin/chromium"],
    )
    @pytest.mark.parametrize(
        "command_line",
        [
            "/opt/google/chrome/chrome --user-data-dir=/tmp/x",
            "/opt/google/chrome/chrome --type=renderer --lang=en-US",
            "/usr/lib/chromium/chromium --remote-debugging-port=9222",
            "/snap/chromium/2890/usr/lib/chromium-browser/chrome",
            "/usr/bin/google-chrome-stable",
        ],
    )
    def test_linux_pattern_matches_running_browser(self, executable, command_line):
        pattern = browser_process_pattern(Path(executable))
        assert re.search(pattern, command_line)

    @pytest.mark.parametrize(
        "command_line",
        [
            "/usr/bin/python -m pytest tests/test_browser_launcher.py",
            "/usr/bin/chromedriver --port=4444",
            "vim /home/me/notes/chrome-tips.txt",
        ],
    )
    def test_linux_pattern_ignores_unrelated_processes(self, command_line):
        pattern = browser_process_pattern(Path("/usr/bin/google-chrome"))
        assert re.search(pattern, command_line) is None

    def test_custom_executable_name_is_included(self):
        pattern = browser_process_pattern(Path("/opt/brave.com/brave/brave-browser"))
        assert re.search(pattern, "/opt/brave.com/brave/brave-browser --no-first-run")


class TestTerminateRunningBrowser:
    def test_uses_pkill_on_posix(self):
        with (
            patch("webchat_driver.browser.launcher.sys.platform", "linux"),
            patch("webchat_driver.browser.launcher.subprocess.run") as mock_run,
        ):
            mock_run.return_value = MagicMock(returncode=1)
            terminate_running_browser("Google Chrome")

        args, kwargs = mock_run.call_args
        assert args[0] == ["pkill", "-9", "-f", "Google Chrome"]
        assert kwargs["timeout"] == 3
        assert kwargs["check"] is False

    def test_uses_taskkill_on_windows(self):
        with (
            patch("webchat_driver.browser.launcher.sys.platform", "win32"),
            patch("webchat_driver.browser.launcher.subprocess.run") as mock_run,
        ):
            mock_run.return_value = MagicMock(returncode=0)
            terminate_running_browser("Google Chrome")

        assert mock_run.call_args[0][0] == ["taskkill", "/F", "/IM", "chrome.exe"]

    @pytest.mark.parametrize(
        "exc",
        [
            FileNotFoundError("pkill"),
            subprocess.TimeoutExpired(cmd="pkill", timeout=3),
        ],
    )
    def test_failures_are_swallowed(self, exc):
        with patch("webchat_driver.browser.launcher.subprocess.run", side_effect=exc):
            terminate_running_browser("Google Chrome")


class TestLaunchBrowser:
    def test_command_line_and_detachment(self, tmp_path, fake_executable):
        with (
            patch("webchat_driver.browser.launcher.sys.platform", "linux"),
            patch("webchat_driver.browser.launcher.subprocess.Popen") as mock_popen,
        ):
            mock_popen.return_value = MagicMock(pid=4321)
            process = launch_browser(fake_executable, 9222, tmp_path / "profile", (1280, 900))

        assert process.pid == 4321
        args, kwargs = mock_popen.call_args
        assert args[0] == [
            str(fake_executable),
            "--remote-debugging-port=9222",
            f"--user-data-dir={tmp_path / 'profile'}",
            "--no-first-run",
            "--no-default-browser-check",
            "--window-size=1280,900",
        ]
        assert kwargs["start_new_session"] is True
        assert kwargs["stdout"] is subprocess.DEVNULL
        assert kwargs["stderr"] is subprocess.DEVNULL


class TestProcessLauncher:
    @pytest.fixture
    def launcher(self, driver_config, fake_clock, fake_executable, source_profile):
        driver_config.browser.executable_candidates = [str(fake_executable)]
        driver_config.browser.source_profile_candidates = [str(source_profile)]
        return ProcessLauncher(driver_config.browser, driver_config.timing, clock=fake_clock)

    @pytest.mark.asyncio
    async def test_first_run_seeds_then_launches(self, launcher, fake_clock, fake_executable):
        profile_dir = launcher.settings.profile_dir
        with (
            patch("webchat_driver.browser.launcher.terminate_running_browser") as mock_kill,
            patch("webchat_driver.browser.launcher.subprocess.Popen") as mock_popen,
        ):
            mock_popen.return_value = MagicMock(pid=777)
            candidate = await launcher.prepare_and_launch()

        mock_kill.assert_called_once_with(browser_process_pattern(fake_executable))
        assert fake_clock.sleeps == [3.0]
        assert (profile_dir / "Default" / "Cookies").exists()
        assert candidate.host == "127.0.0.1"
        assert candidate.port == 9222
        assert candidate.pid == 777

    @pytest.mark.asyncio
    async def test_linux_executable_kills_running_chrome(self, launcher, tmp_path):
        exe = tmp_path / "usr" / "bin" / "google-chrome"
        exe.parent.mkdir(parents=True)
        exe.write_text("#!/bin/sh\nexec /opt/google/chrome/chrome \"$@\"\n", encoding="utf-8")
        launcher.settings.executable_candidates = [str(exe)]

        with (
            patch("webchat_driver.browser.launcher.sys.platform", "linux"),
            patch("webchat_driver.browser.launcher.subprocess.run") as mock_run,
            patch("webchat_driver.browser.launcher.subprocess.Popen") as mock_popen,
        ):
            mock_run.return_value = MagicMock(returncode=0)
            mock_popen.return_value = MagicMock(pid=1)
            await launcher.prepare_and_launch()

        command = mock_run.call_args[0][0]
        assert command[:3] == ["pkill", "-9", "-f"]
        assert re.search(command[3], "/opt/google/chrome/chrome --user-data-dir=/tmp/x")

    @pytest.mark.asyncio
    async def test_configured_pattern_overrides_derived_one(self, launcher):
        launcher.settings.process_pattern = "my-chrome-build"
        with (
            patch("webchat_driver.browser.launcher.terminate_running_browser") as mock_kill,
            patch("webchat_driver.browser.launcher.subprocess.Popen") as mock_popen,
        ):
            mock_popen.return_value = MagicMock(pid=1)
            await launcher.prepare_and_launch()

        mock_kill.assert_called_once_with("my-chrome-build")

    @pytest.mark.asyncio
    async def test_kill_and_seed_run_off_the_event_loop(self, launcher):
        loop_thread = threading.get_ident()
        threads = {}

        def record_kill(pattern):
            threads["kill"] = threading.get_ident()

        def record_seed(source, dest, seed_files):
            threads["seed"] = threading.get_ident()
            (dest / "Default").mkdir(parents=True, exist_ok=True)
            return []

        with (
            patch("webchat_driver.browser.launcher.terminate_running_browser", record_kill),
            patch("webchat_driver.browser.launcher.seed_profile", record_seed),
            patch("webchat_driver.browser.launcher.subprocess.Popen") as mock_popen,
        ):
            mock_popen.return_value = MagicMock(pid=1)
            await launcher.prepare_and_launch()

        assert threads["kill"] != loop_thread
        assert threads["seed"] != loop_thread

    @pytest.mark.asyncio
    async def test_second_run_never_reseeds(self, launcher):
        profile_dir = launcher.settings.profile_dir
        with (
            patch("webchat_driver.browser.launcher.terminate_running_browser"),
            patch("webchat_driver.browser.launcher.subprocess.Popen") as mock_popen,
        ):
            mock_popen.return_value = MagicMock(pid=1)
            await launcher.prepare_and_launch()

            # the browser refreshed its own cookies since the first run
            (profile_dir / "Default" / "Cookies").write_text("refreshed", encoding="utf-8")

            with patch("webchat_driver.browser.launcher.seed_profile") as mock_seed:
                await launcher.prepare_and_launch()

        mock_seed.assert_not_called()
        assert (profile_dir / "Default" / "Cookies").read_text(encoding="utf-8") == "refreshed"

    @pytest.mark.asyncio
    async def test_no_source_profile_still_creates_profile(self, launcher, tmp_path):
        launcher.settings.source_profile_candidates = [str(tmp_path / "nothing-here")]
        with (
            patch("webchat_driver.browser.launcher.terminate_running_browser"),
            patch("webchat_driver.browser.launcher.subprocess.Popen") as mock_popen,
        ):
            mock_popen.return_value = MagicMock(pid=1)
            await launcher.prepare_and_launch()

        profile_dir = launcher.settings.profile_dir
        assert (profile_dir / "Default").is_dir()
        assert list((profile_dir / "Default").iterdir()) == []

    @pytest.mark.asyncio
    async def test_missing_browser_stops_before_killing(self, launcher, tmp_path):
        launcher.settings.executable_candidates = [str(tmp_path / "no-chrome")]
        with patch("webchat_driver.browser.launcher.terminate_running_browser") as mock_kill:
            with pytest.raises(BrowserNotFoundError):
                await launcher.prepare_and_launch()
        mock_kill.assert_not_called()
