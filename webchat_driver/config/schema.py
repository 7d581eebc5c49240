"""
Configuration schema models for webchat-driver.

This module defines Pydantic models for validating the driver configuration.
Package defaults live in defaults.yaml next to this file; a user YAML file
can override any subset of fields (see loader.py).

Models:
    BrowserSettings: Browser executable, profiles, debugging port, target URL
    TimingSettings: Every poll interval, wait budget, and heuristic threshold
    SelectorSettings: Text markers and DOM selectors for the target site
    DriverConfig: Root configuration model

The selector lists are a versioned contract with a third-party site that
changes without notice. They are data, kept out of the stage logic, so a
revised list can be dropped in without touching code.
"""

from pathlib import Path

from pydantic import BaseModel, Field, field_validator, model_validator


def _require_non_empty(values: list[str], field_name: str) -> list[str]:
    cleaned = [v for v in values if v and not v.isspace()]
    if not cleaned:
        raise ValueError(f"{field_name} must contain at least one non-empty entry")
    return cleaned


class BrowserSettings(BaseModel):
    """
    Browser process and profile settings.

    Attributes:
        executable_candidates: Ordered list of browser executable paths
        source_profile_candidates: Ordered list of real user profile dirs to seed from
        profile_dir: Dedicated persistent profile owned by the driver
        debug_host: Host the debugging endpoint listens on (loopback only)
        debug_port: Remote debugging port
        window_width: Browser window width in pixels
        window_height: Browser window height in pixels
        process_pattern: Kill pattern override (derived from the executable when unset)
        seed_files: Profile-relative files copied on first run
        target_url: Page the session navigates to
    """

    executable_candidates: list[str]
    source_profile_candidates: list[str] = []
    profile_dir: Path
    debug_host: str = "127.0.0.1"
    debug_port: int = 9222
    window_width: int = 1280
    window_height: int = 900
    process_pattern: str | None = None
    seed_files: list[str]
    target_url: str = "https://chatgpt.com"

    @field_validator("executable_candidates")
    @classmethod
    def validate_executable_candidates(cls, v: list[str]) -> list[str]:
        return _require_non_empty(v, "executable_candidates")

    @field_validator("seed_files")
    @classmethod
    def validate_seed_files(cls, v: list[str]) -> list[str]:
        for entry in v:
            if Path(entry).is_absolute() or ".." in Path(entry).parts:
                raise ValueError(f"seed_files entries must be profile-relative, got: {entry}")
        return v

    @field_validator("debug_port")
    @classmethod
    def validate_debug_port(cls, v: int) -> int:
        if not 1 <= v <= 65535:
            raise ValueError(f"debug_port must be between 1 and 65535, got: {v}")
        return v

    @field_validator("window_width", "window_height")
    @classmethod
    def validate_window_size(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"Window dimensions must be positive, got: {v}")
        return v

    @field_validator("target_url")
    @classmethod
    def validate_target_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"target_url must be an http(s) URL, got: {v}")
        return v


class TimingSettings(BaseModel):
    """
    Poll intervals, wait budgets and heuristic thresholds (seconds unless noted).

    stability_polls and min_response_chars are empirical heuristics, not
    invariants. Tune them against the live site.
    """

    kill_settle_seconds: float = 3.0
    endpoint_max_attempts: int = 30
    endpoint_interval_seconds: float = 1.0
    endpoint_request_timeout_seconds: float = 3.0
    navigation_timeout_seconds: float = 60.0
    post_navigation_settle_seconds: float = 3.0
    challenge_interval_seconds: float = 2.0
    challenge_timeout_seconds: float = 120.0
    challenge_settle_seconds: float = 3.0
    auth_probe_timeout_seconds: float = 10.0
    auth_interval_seconds: float = 3.0
    auth_timeout_seconds: float = 300.0
    input_wait_timeout_seconds: float = 30.0
    paste_settle_seconds: float = 0.5
    verify_settle_seconds: float = 1.0
    typing_delay_ms: int = 2
    min_input_chars: int = 10
    submit_pre_settle_seconds: float = 0.8
    submit_settle_seconds: float = 3.0
    response_initial_wait_seconds: float = 5.0
    response_interval_seconds: float = 2.0
    response_timeout_seconds: float = 300.0
    stability_polls: int = 5
    min_response_chars: int = 50

    @field_validator(
        "endpoint_max_attempts",
        "endpoint_interval_seconds",
        "endpoint_request_timeout_seconds",
        "navigation_timeout_seconds",
        "challenge_interval_seconds",
        "challenge_timeout_seconds",
        "auth_probe_timeout_seconds",
        "auth_interval_seconds",
        "auth_timeout_seconds",
        "input_wait_timeout_seconds",
        "response_interval_seconds",
        "response_timeout_seconds",
        "stability_polls",
    )
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"Value must be positive, got: {v}")
        return v

    @field_validator(
        "kill_settle_seconds",
        "post_navigation_settle_seconds",
        "challenge_settle_seconds",
        "paste_settle_seconds",
        "verify_settle_seconds",
        "typing_delay_ms",
        "min_input_chars",
        "submit_pre_settle_seconds",
        "submit_settle_seconds",
        "response_initial_wait_seconds",
        "min_response_chars",
    )
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError(f"Value cannot be negative, got: {v}")
        return v


class SelectorSettings(BaseModel):
    """
    Text markers and CSS selectors for the target site.

    Attributes:
        challenge_phrases: Body text fragments that mark a verification interstitial
        challenge_selectors: DOM nodes that mark a verification interstitial
        input_selectors: Prompt input surface, highest priority first
        submit_selectors: Send button, highest priority first (multi-locale)
        stop_generating_selectors: Visible while a response is still streaming
        response_selectors: Assistant message containers, highest priority first
    """

    challenge_phrases: list[str]
    challenge_selectors: list[str]
    input_selectors: list[str]
    submit_selectors: list[str]
    stop_generating_selectors: list[str]
    response_selectors: list[str]

    @field_validator(
        "challenge_phrases",
        "challenge_selectors",
        "input_selectors",
        "submit_selectors",
        "stop_generating_selectors",
        "response_selectors",
    )
    @classmethod
    def validate_lists(cls, v: list[str], info) -> list[str]:
        return _require_non_empty(v, info.field_name)


class DriverConfig(BaseModel):
    """
    Root configuration model.

    Example:
        >>> config = DriverConfig.model_validate(yaml.safe_load(text))
        >>> config.timing.stability_polls
        5
    """

    browser: BrowserSettings
    timing: TimingSettings = Field(default_factory=TimingSettings)
    selectors: SelectorSettings

    @model_validator(mode="after")
    def validate_debug_host_is_loopback(self) -> "DriverConfig":
        """The debugging port grants full browser control; keep it local."""
        if self.browser.debug_host not in {"127.0.0.1", "localhost", "::1"}:
            raise ValueError(
                f"browser.debug_host must be a loopback address, got: {self.browser.debug_host}"
            )
        return self
