"""
JSON-lines logging on stderr for webchat-driver.

Every record becomes one JSON object carrying a UTC timestamp, the logger
name, the message, and optional "context" and "session_id" extras. DevTools
connection tokens are masked before a record is formatted.

The level is INFO by default, DEBUG with setup_logging(verbose=True), and
WARNING when the CLI is already rendering progress for a person.

Examples:
    >>> from webchat_driver.utils.logging import setup_logging, log_with_context
    >>> setup_logging(verbose=True)
    >>> logger = logging.getLogger("webchat_driver.browser.endpoint")
    >>> logger.info("Endpoint resolved", extra={"context": {"attempts": 5}})

Security:
    - The debugger websocket URL embeds a per-process token that grants
      full control of the browser; it is redacted before formatting
    - Only stderr is used (stdout reserved for the response text)
"""

import json
import logging
import re
import sys
from typing import Any

from webchat_driver.utils.time import utc_timestamp


class JSONFormatter(logging.Formatter):
    """
    Render a record as one JSON line.

    Keys: timestamp (UTC ISO 8601), level, component (logger name), message,
    plus context, session_id and exception when present.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": utc_timestamp(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }

        if hasattr(record, "context") and isinstance(record.context, dict):
            log_entry["context"] = record.context

        if hasattr(record, "session_id"):
            log_entry["session_id"] = record.session_id

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, ensure_ascii=False)


class DebuggerTokenFilter(logging.Filter):
    """
    Logging filter that redacts DevTools connection tokens from log messages.

    Chromium publishes its control socket as
    ws://127.0.0.1:9222/devtools/browser/<uuid>; anyone holding that URL
    can drive the browser. The token is replaced, keeping the last 4 chars:
    ".../devtools/browser/6a1f...-9c3e" -> ".../devtools/browser/***9c3e"
    """

    TOKEN_PATTERNS = [
        (
            re.compile(r"(/devtools/(?:browser|page)/)([A-Za-z0-9-]{8,})"),
            "{prefix}***{last4}",
        ),
    ]

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = self._redact(str(record.msg))

        if record.args:
            if isinstance(record.args, dict):
                record.args = {k: self._redact(str(v)) for k, v in record.args.items()}
            elif isinstance(record.args, tuple):
                record.args = tuple(self._redact(str(arg)) for arg in record.args)

        if hasattr(record, "context") and isinstance(record.context, dict):
            record.context = self._redact_dict(record.context)

        return True

    def _redact(self, text: str) -> str:
        for pattern, template in self.TOKEN_PATTERNS:

            def redact_match(match: re.Match) -> str:
                token = match.group(2)
                return template.format(prefix=match.group(1), last4=token[-4:])

            text = pattern.sub(redact_match, text)

        return text

    def _redact_dict(self, data: dict[str, Any]) -> dict[str, Any]:
        result = {}
        for key, value in data.items():
            if isinstance(value, str):
                result[key] = self._redact(value)
            elif isinstance(value, dict):
                result[key] = self._redact_dict(value)
            elif isinstance(value, list):
                result[key] = [self._redact(v) if isinstance(v, str) else v for v in value]
            else:
                result[key] = value
        return result


def redact_debugger_url(text: str) -> str:
    """Return ``text`` with any DevTools token masked (for console output)."""
    return DebuggerTokenFilter()._redact(text)


def setup_logging(verbose: bool = False, quiet_logs: bool = False) -> None:
    """
    Route every log record to stderr as JSON lines.

    Replaces any existing root handlers with one stderr handler that
    formats with JSONFormatter and masks DevTools tokens.

    Args:
        verbose: DEBUG level (wins over quiet_logs)
        quiet_logs: If True (and not verbose), only WARNING and above reach
            stderr. The CLI uses this in human mode, where progress is
            already rendered by Rich.
    """
    root_logger = logging.getLogger()

    if verbose:
        level = logging.DEBUG
    elif quiet_logs:
        level = logging.WARNING
    else:
        level = logging.INFO

    root_logger.setLevel(level)

    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter())
    handler.addFilter(DebuggerTokenFilter())

    root_logger.addHandler(handler)


def log_with_context(
    logger: logging.Logger,
    level: int,
    message: str,
    context: dict[str, Any] | None = None,
    session_id: str | None = None,
) -> None:
    """
    Log a message with structured context and optional session_id.

    Equivalent to logger.log(level, message, extra={'context': {...}, 'session_id': '...'})

    Example:
        >>> logger = logging.getLogger("webchat_driver.stages.collector")
        >>> log_with_context(
        ...     logger,
        ...     logging.INFO,
        ...     "Response stable",
        ...     context={"chars": 2048, "polls": 17},
        ...     session_id="2025-11-02T08-30-00Z"
        ... )
    """
    extra = {}

    if context is not None:
        extra["context"] = context

    if session_id is not None:
        extra["session_id"] = session_id

    logger.log(level, message, extra=extra if extra else None)
