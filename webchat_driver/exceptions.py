"""
Custom exceptions for webchat-driver.

This module provides a hierarchy of exceptions that enable type-safe error
handling throughout the driver. All exceptions inherit from the base
WebchatDriverError for consistent catching.

Exception Hierarchy:
    WebchatDriverError (base)
    ├── ConfigurationError
    │   ├── ConfigFileNotFoundError
    │   └── ConfigValidationError
    ├── SessionBusyError
    └── SessionError
        ├── BrowserNotFoundError
        ├── DebugPortConnectError
        ├── NavigationError
        ├── StageTimeoutError
        │   ├── ChallengeTimeoutError
        │   ├── AuthTimeoutError
        │   └── ResponseTimeoutError
        └── InputInjectionError

Every SessionError is fatal for the session that raised it. Teardown has
already run by the time one reaches the caller.

Usage:
    from webchat_driver.exceptions import SessionError

    try:
        text = await driver.run(prompt)
    except ChallengeTimeoutError as e:
        console.print(e.hint)
"""


class WebchatDriverError(Exception):
    """
    Base exception for all webchat-driver errors.

    All custom exceptions in this application should inherit from this class.
    This enables catching all application-specific errors with a single except clause.
    """

    pass


# ============================================================================
# Configuration Errors
# ============================================================================


class ConfigurationError(WebchatDriverError):
    """
    Base class for configuration-related errors.

    Raised when configuration loading, parsing, or validation fails.
    Should be caught and result in exit code 1 (configuration error).
    """

    pass


class ConfigFileNotFoundError(ConfigurationError):
    """
    Configuration file does not exist at the specified path.

    Example:
        raise ConfigFileNotFoundError("/path/to/config.yaml")
    """

    pass


class ConfigValidationError(ConfigurationError):
    """
    Configuration file is invalid (schema validation failed).

    Should include details about which field(s) failed validation.

    Example:
        raise ConfigValidationError("Field 'selectors.input' must be a non-empty list")
    """

    pass


# ============================================================================
# Session Errors
# ============================================================================


class SessionBusyError(WebchatDriverError):
    """
    Another session is already driving the browser in this process.

    The profile directory and the browser process are shared, so only one
    session may be in flight at a time.
    """

    pass


class SessionError(WebchatDriverError):
    """
    Base class for fatal session errors.

    Attributes:
        hint: What the user can do about it (human-readable, may be empty)
    """

    default_hint = ""

    def __init__(self, message: str, hint: str | None = None):
        super().__init__(message)
        self.hint = self.default_hint if hint is None else hint

    def __str__(self) -> str:
        message = super().__str__()
        if self.hint:
            return f"{message} {self.hint}"
        return message


class BrowserNotFoundError(SessionError):
    """
    No browser executable exists at any known install location.

    Not retryable by the driver; the user must install a browser or point
    browser.executable_candidates at one.
    """

    default_hint = (
        "Install Google Chrome or Chromium, or set "
        "browser.executable_candidates in the configuration."
    )


class DebugPortConnectError(SessionError):
    """
    The remote debugging endpoint never became reachable.

    Usually means another browser instance still holds the profile or port.
    """

    default_hint = (
        "Fully quit every running browser window (force quit if needed) and try again."
    )


class NavigationError(SessionError):
    """The target page failed to load within the navigation budget."""

    default_hint = "Check the network connection and try again."


class StageTimeoutError(SessionError):
    """
    A bounded wait was exhausted before its stage cleared.

    Attributes:
        timeout_seconds: The wait budget that elapsed
    """

    def __init__(
        self, message: str, timeout_seconds: float | None = None, hint: str | None = None
    ):
        super().__init__(message, hint=hint)
        self.timeout_seconds = timeout_seconds


class ChallengeTimeoutError(StageTimeoutError):
    """The anti-bot verification screen did not clear in time."""

    default_hint = (
        "Complete the verification check in the opened browser window, then try again."
    )


class AuthTimeoutError(StageTimeoutError):
    """No logged-in input surface appeared in time."""

    default_hint = "Log in inside the opened browser window, then try again."


class ResponseTimeoutError(StageTimeoutError):
    """No stable, plausible response was rendered within the response budget."""

    default_hint = (
        "The response did not finish in time. Check the browser window and try again."
    )


class InputInjectionError(SessionError):
    """The prompt could not be delivered into the input surface."""

    default_hint = (
        "Make sure the chat input is visible in the browser window and try again."
    )
