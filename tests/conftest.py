"""Shared fixtures: a fake clock and a ready-made driver configuration."""

import asyncio
import logging

import pytest

from webchat_driver.config.loader import load_config


class FakeClock:
    """
    Clock that advances instantly.

    sleep() moves time forward by the requested amount and yields to the
    event loop once, so concurrent tasks still interleave.
    """

    def __init__(self, start: float = 1000.0):
        self.current = start
        self.sleeps: list[float] = []

    def now(self) -> float:
        return self.current

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.current += seconds
        await asyncio.sleep(0)

    def advance(self, seconds: float) -> None:
        self.current += seconds


@pytest.fixture(autouse=True)
def restore_root_logging():
    """Commands call setup_logging(), which replaces the root handlers."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def driver_config(tmp_path, monkeypatch):
    """Package defaults, with the profile pointed into tmp_path."""
    monkeypatch.delenv("WEBCHAT_DRIVER_CONFIG", raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    config = load_config()
    config.browser.profile_dir = tmp_path / "profile"
    return config


@pytest.fixture
def reset_output_mode():
    """Reset the global output_mode after each test."""
    from webchat_driver.utils.console import output_mode

    original_format = output_mode.format
    original_quiet = output_mode.quiet
    output_mode._json_buffer.clear()

    yield output_mode

    output_mode.format = original_format
    output_mode.quiet = original_quiet
    output_mode._json_buffer.clear()
