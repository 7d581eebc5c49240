"""
Response collector.

The target streams its answer token by token and gives no explicit "done"
signal, so completion is inferred: the response counts as finished once no
stop-generating control is visible and the same sufficiently long text has
been read on several consecutive polls.

Key components:
- StabilityTracker: pure state machine over ResponseObservation values
- ResponseReader / PlaywrightResponseReader: one poll of the page
- ResponseCollector: the bounded polling loop with best-effort fallback

Example:
    >>> tracker = StabilityTracker(stability_polls=5, min_response_chars=50)
    >>> obs = ResponseObservation(generating=False, text="x" * 60)
    >>> [tracker.observe(obs) for _ in range(6)][-1]
    <CollectorState.COMPLETE: 'complete'>
"""

import logging
from collections.abc import Callable
from typing import Protocol

from ..config.schema import TimingSettings
from ..exceptions import ResponseTimeoutError
from ..models import CollectorState, ResponseObservation
from ..utils.time import Clock, MonotonicClock

logger = logging.getLogger(__name__)

GENERATING_SCRIPT = """
(selectors) => selectors.some((s) => document.querySelector(s) !== null)
"""

LATEST_TEXT_SCRIPT = """
(selectors) => {
    for (const s of selectors) {
        const nodes = document.querySelectorAll(s);
        if (nodes.length) return nodes[nodes.length - 1].textContent || "";
    }
    return "";
}
"""


def streaming_progress(text: str) -> int:
    """Progress estimate while the response is still streaming (50-85)."""
    return min(85, 50 + len(text) // 100)


class StabilityTracker:
    """
    Decide when a streamed response is complete.

    Rules, applied to every observation:
    - not generating and text longer than ``min_response_chars``:
      same text as last time increments the repeat counter, a different
      text resets it; the response is complete once the counter reaches
      ``stability_polls``
    - otherwise: the counter resets and non-empty text is remembered

    Completion therefore needs ``stability_polls + 1`` identical readings.

    Attributes:
        state: Current CollectorState
        stable_count: Consecutive repeats of last_text
        last_text: Most recent non-empty text seen
    """

    def __init__(self, stability_polls: int = 5, min_response_chars: int = 50):
        self.stability_polls = stability_polls
        self.min_response_chars = min_response_chars
        self.state = CollectorState.AWAITING
        self.stable_count = 0
        self.last_text = ""

    def observe(self, observation: ResponseObservation) -> CollectorState:
        if self.state in (CollectorState.COMPLETE, CollectorState.EXHAUSTED):
            return self.state

        text = observation.text
        if not observation.generating and len(text) > self.min_response_chars:
            if text == self.last_text:
                self.stable_count += 1
            else:
                self.stable_count = 0
                self.last_text = text

            if self.stable_count >= self.stability_polls:
                self.state = CollectorState.COMPLETE
            else:
                self.state = CollectorState.STABLE
            return self.state

        self.stable_count = 0
        if text:
            self.last_text = text

        if observation.generating or self.last_text:
            self.state = CollectorState.GENERATING
        else:
            self.state = CollectorState.AWAITING
        return self.state

    def exhaust(self) -> CollectorState:
        """Mark the time budget as spent."""
        if self.state != CollectorState.COMPLETE:
            self.state = CollectorState.EXHAUSTED
        return self.state

    @property
    def has_plausible_text(self) -> bool:
        return len(self.last_text) > self.min_response_chars


class ResponseReader(Protocol):
    async def is_generating(self) -> bool: ...

    async def latest_text(self) -> str: ...


class PlaywrightResponseReader:
    """ResponseReader over a Playwright page."""

    def __init__(self, page, stop_selectors: list[str], response_selectors: list[str]):
        self.page = page
        self.stop_selectors = stop_selectors
        self.response_selectors = response_selectors

    async def is_generating(self) -> bool:
        return bool(await self.page.evaluate(GENERATING_SCRIPT, self.stop_selectors))

    async def latest_text(self) -> str:
        return await self.page.evaluate(LATEST_TEXT_SCRIPT, self.response_selectors) or ""


class ResponseCollector:
    """
    Poll the response surface until the answer is complete.

    Attributes:
        reader: ResponseReader for the page
        tracker: StabilityTracker fed with every successful poll
        polls: Number of polls attempted
    """

    def __init__(
        self,
        reader: ResponseReader,
        timing: TimingSettings,
        clock: Clock | None = None,
        on_progress: Callable[[int], None] | None = None,
    ):
        self.reader = reader
        self.timing = timing
        self.clock = clock or MonotonicClock()
        self.on_progress = on_progress or (lambda percent: None)
        self.tracker = StabilityTracker(
            stability_polls=timing.stability_polls,
            min_response_chars=timing.min_response_chars,
        )
        self.polls = 0

    async def _observe(self) -> ResponseObservation | None:
        try:
            generating = await self.reader.is_generating()
            text = await self.reader.latest_text()
        except Exception as e:
            logger.debug(f"Response read failed, skipping poll: {e}")
            return None
        return ResponseObservation(generating=generating, text=text)

    async def collect(self) -> str:
        """
        Wait for a complete response and return its text.

        If the budget runs out, a response longer than min_response_chars
        is still returned (and logged as partial).

        Raises:
            ResponseTimeoutError: If nothing plausible was read within the budget
        """
        # the initial wait counts against the budget
        start = self.clock.now()
        await self.clock.sleep(self.timing.response_initial_wait_seconds)

        while self.clock.now() - start < self.timing.response_timeout_seconds:
            self.polls += 1
            observation = await self._observe()
            if observation is not None:
                state = self.tracker.observe(observation)
                if state == CollectorState.COMPLETE:
                    logger.info(
                        "Response complete",
                        extra={"context": {"chars": len(self.tracker.last_text), "polls": self.polls}},
                    )
                    return self.tracker.last_text
                if observation.generating:
                    self.on_progress(streaming_progress(observation.text))

            await self.clock.sleep(self.timing.response_interval_seconds)

        self.tracker.exhaust()
        if self.tracker.has_plausible_text:
            logger.warning(
                "Response budget exhausted, returning partial text",
                extra={"context": {"chars": len(self.tracker.last_text), "polls": self.polls}},
            )
            return self.tracker.last_text

        raise ResponseTimeoutError(
            f"No response within {self.timing.response_timeout_seconds:.0f}s.",
            timeout_seconds=self.timing.response_timeout_seconds,
        )
