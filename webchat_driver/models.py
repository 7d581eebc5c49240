"""
Core data model for webchat-driver.

Key components:
- Session: the unit of work, created per invocation and never reused
- SessionPhase: lifecycle phases in fixed stage order
- DebugEndpointCandidate: where a freshly launched browser should publish CDP
- ConnectionDescriptor: parsed /json/version document (valid for one process)
- StageVerdict and per-stage state enums for the polling state machines
- ResponseObservation: one poll of the response surface

Example:
    >>> session = Session(instruction="Write a haiku about bread")
    >>> session.enter(SessionPhase.LAUNCHING)
    >>> session.advance(5)
    >>> session.log("Launching browser")
    >>> session.progress
    5
"""

from dataclasses import dataclass, field
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from .events import ErrorEvent, LogEvent, ProgressChannel, ProgressEvent, ResultEvent
from .utils.time import session_id_from_timestamp, utc_timestamp


class SessionPhase(StrEnum):
    """Lifecycle phases, in the order the driver walks them."""

    CREATED = "created"
    LAUNCHING = "launching"
    RESOLVING_ENDPOINT = "resolving_endpoint"
    ATTACHING = "attaching"
    NAVIGATING = "navigating"
    CHALLENGE = "challenge"
    AUTH = "auth"
    INJECTING = "injecting"
    SUBMITTING = "submitting"
    COLLECTING = "collecting"
    COMPLETED = "completed"
    FAILED = "failed"


class StageVerdict(StrEnum):
    """Fresh classification of one poll. Never cached across polls."""

    BLOCKED = "blocked"
    CLEAR = "clear"


class ChallengeState(StrEnum):
    UNKNOWN = "unknown"
    BLOCKED = "blocked"
    CLEAR = "clear"
    TIMED_OUT = "timed_out"


class AuthState(StrEnum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    TIMED_OUT = "timed_out"


class CollectorState(StrEnum):
    AWAITING = "awaiting"
    GENERATING = "generating"
    STABLE = "stable"
    COMPLETE = "complete"
    EXHAUSTED = "exhausted"


@dataclass
class ResponseObservation:
    """
    One poll of the response surface.

    Attributes:
        generating: Whether a "stop generating" affordance was visible
        text: Text content of the most recent assistant message ("" if none)
    """

    generating: bool
    text: str


@dataclass
class DebugEndpointCandidate:
    """
    Address where a launched browser is expected to publish its CDP endpoint.

    Attributes:
        host: Loopback host the debugging port is bound to
        port: Remote debugging port passed on the command line
        pid: OS process id of the launched browser (None if unknown)
    """

    host: str
    port: int
    pid: int | None = None

    @property
    def version_url(self) -> str:
        return f"http://{self.host}:{self.port}/json/version"


class ConnectionDescriptor(BaseModel):
    """
    Connection descriptor published by the browser at /json/version.

    Only webSocketDebuggerUrl is required; the rest is informational.
    Valid only for the lifetime of one browser process, never persisted.

    Example JSON:
    {
        "Browser": "Chrome/131.0.6778.86",
        "Protocol-Version": "1.3",
        "User-Agent": "Mozilla/5.0 ...",
        "webSocketDebuggerUrl": "ws://127.0.0.1:9222/devtools/browser/6a1f..."
    }
    """

    model_config = ConfigDict(populate_by_name=True)

    websocket_url: str = Field(alias="webSocketDebuggerUrl", min_length=1)
    browser: str | None = Field(default=None, alias="Browser")
    protocol_version: str | None = Field(default=None, alias="Protocol-Version")
    user_agent: str | None = Field(default=None, alias="User-Agent")


@dataclass
class Session:
    """
    One driver invocation.

    Owns its ProgressChannel: every log line, progress change, and the final
    result or failure reason is mirrored into the channel for the caller.

    Attributes:
        instruction: Prompt text to deliver to the target
        phase: Current lifecycle phase
        log_lines: Every status line reported so far
        progress: Completion estimate, 0-100, never decreases
        result: Final response text (set on success)
        failure_reason: Human-readable failure message (set on failure)
        session_id: Timestamp slug identifying this session in logs
        started_at: ISO 8601 UTC start time
        channel: Progress/log channel read by the caller
    """

    instruction: str
    phase: SessionPhase = SessionPhase.CREATED
    log_lines: list[str] = field(default_factory=list)
    progress: int = 0
    result: str | None = None
    failure_reason: str | None = None
    session_id: str = field(default_factory=session_id_from_timestamp)
    started_at: str = field(default_factory=utc_timestamp)
    channel: ProgressChannel = field(default_factory=ProgressChannel, repr=False)

    @property
    def finished(self) -> bool:
        return self.phase in (SessionPhase.COMPLETED, SessionPhase.FAILED)

    def enter(self, phase: SessionPhase) -> None:
        self.phase = phase

    def log(self, message: str) -> None:
        self.log_lines.append(message)
        self.channel.emit(LogEvent(message))

    def advance(self, percent: int) -> None:
        """Raise progress to ``percent`` (lower values are ignored)."""
        percent = min(100, max(0, int(percent)))
        if percent <= self.progress:
            return
        self.progress = percent
        self.channel.emit(ProgressEvent(percent))

    def complete(self, text: str) -> None:
        if self.finished:
            return
        self.result = text
        self.phase = SessionPhase.COMPLETED
        self.channel.emit(ResultEvent(text))

    def fail(self, reason: str) -> None:
        """Record the failure; a session that already finished keeps its outcome."""
        if self.finished:
            return
        self.failure_reason = reason
        self.phase = SessionPhase.FAILED
        self.channel.emit(ErrorEvent(reason))
