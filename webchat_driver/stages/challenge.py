"""
Anti-bot challenge detector.

Recognizes the verification interstitial by its text phrases and by DOM
markers, and waits (bounded) for it to go away. The browser window is
visible, so the user can solve the check by hand while the detector polls.

Key components:
- PageSnapshot: body text plus which marker selectors matched, one evaluate()
- is_challenge_present(): pure predicate over a snapshot
- ChallengeDetector: the bounded wait

Example:
    >>> snapshot = PageSnapshot(body_text="Just a moment...", matched_selectors=[])
    >>> is_challenge_present(snapshot, ChallengeMarkers(phrases=["Just a moment"]))
    True
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

from ..config.schema import SelectorSettings, TimingSettings
from ..exceptions import ChallengeTimeoutError
from ..models import ChallengeState, StageVerdict
from ..utils.time import Clock, MonotonicClock
from .polling import poll_until_clear

logger = logging.getLogger(__name__)

# Returns the body text and the subset of the given selectors present in the DOM
SNAPSHOT_SCRIPT = """
(selectors) => ({
    text: document.body ? document.body.innerText : "",
    matched: selectors.filter((s) => document.querySelector(s) !== null),
})
"""


@dataclass
class PageSnapshot:
    body_text: str
    matched_selectors: list[str] = field(default_factory=list)


@dataclass
class ChallengeMarkers:
    phrases: list[str] = field(default_factory=list)
    selectors: list[str] = field(default_factory=list)

    @classmethod
    def from_settings(cls, selectors: SelectorSettings) -> "ChallengeMarkers":
        return cls(
            phrases=list(selectors.challenge_phrases),
            selectors=list(selectors.challenge_selectors),
        )


def is_challenge_present(snapshot: PageSnapshot, markers: ChallengeMarkers) -> bool:
    """True if any marker phrase is in the body text or any marker selector matched."""
    if any(phrase in snapshot.body_text for phrase in markers.phrases):
        return True
    return any(s in markers.selectors for s in snapshot.matched_selectors)


def page_snapshot_reader(page, selectors: list[str]) -> Callable[[], Awaitable[PageSnapshot]]:
    """Build a snapshot reader bound to a Playwright page."""

    async def read() -> PageSnapshot:
        raw = await page.evaluate(SNAPSHOT_SCRIPT, selectors)
        return PageSnapshot(
            body_text=raw.get("text") or "",
            matched_selectors=list(raw.get("matched") or []),
        )

    return read


class ChallengeDetector:
    """
    Bounded wait for the verification interstitial to clear.

    A snapshot that can't be read counts as clear: an unreadable page is
    not treated as a challenge.

    Attributes:
        state: ChallengeState after the last poll
        polls: Number of polls performed by resolve()
    """

    def __init__(
        self,
        read_snapshot: Callable[[], Awaitable[PageSnapshot]],
        markers: ChallengeMarkers,
        timing: TimingSettings,
        clock: Clock | None = None,
        notify: Callable[[str], None] | None = None,
    ):
        self.read_snapshot = read_snapshot
        self.markers = markers
        self.timing = timing
        self.clock = clock or MonotonicClock()
        self.notify = notify or (lambda message: None)
        self.state = ChallengeState.UNKNOWN
        self.polls = 0

    async def probe(self) -> StageVerdict:
        try:
            snapshot = await self.read_snapshot()
        except Exception as e:
            logger.debug(f"Challenge snapshot unreadable, treating as clear: {e}")
            return StageVerdict.CLEAR

        if is_challenge_present(snapshot, self.markers):
            return StageVerdict.BLOCKED
        return StageVerdict.CLEAR

    def _on_poll(self, verdict: StageVerdict, elapsed: float) -> None:
        self.polls += 1
        if verdict == StageVerdict.BLOCKED:
            if self.state != ChallengeState.BLOCKED:
                self.notify(
                    "Verification check detected. Complete it in the browser window if it "
                    "does not pass on its own."
                )
            self.state = ChallengeState.BLOCKED
            logger.debug(f"Challenge still present after {elapsed:.0f}s")

    async def resolve(self) -> ChallengeState:
        """
        Wait until no challenge is present.

        Returns:
            ChallengeState.CLEAR

        Raises:
            ChallengeTimeoutError: If the challenge is still up after the budget
        """
        cleared = await poll_until_clear(
            self.probe,
            interval=self.timing.challenge_interval_seconds,
            timeout=self.timing.challenge_timeout_seconds,
            clock=self.clock,
            on_poll=self._on_poll,
        )

        if not cleared:
            self.state = ChallengeState.TIMED_OUT
            raise ChallengeTimeoutError(
                f"Verification check did not clear within "
                f"{self.timing.challenge_timeout_seconds:.0f}s.",
                timeout_seconds=self.timing.challenge_timeout_seconds,
            )

        was_blocked = self.state == ChallengeState.BLOCKED
        self.state = ChallengeState.CLEAR
        if was_blocked:
            logger.info("Verification check cleared")
            await self.clock.sleep(self.timing.challenge_settle_seconds)
        return self.state
