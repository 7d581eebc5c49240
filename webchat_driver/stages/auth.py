"""
Login gate detector.

The session counts as authenticated once the prompt input surface is
present; a logged-out visitor sees a landing page without it. If the input
isn't there right away, the user is asked to log in inside the browser
window while the detector keeps polling.
"""

import logging
from collections.abc import Awaitable, Callable

from ..config.schema import TimingSettings
from ..exceptions import AuthTimeoutError
from ..models import AuthState, StageVerdict
from ..utils.time import Clock, MonotonicClock
from .polling import poll_until_clear

logger = logging.getLogger(__name__)

LOGIN_PROMPT = "Not logged in. Log in inside the opened browser window to continue."


def input_surface_probe(
    page, selectors: list[str], timeout: float
) -> Callable[[], Awaitable[bool]]:
    """Build a probe that waits up to ``timeout`` seconds for any input selector."""
    joined = ", ".join(selectors)

    async def probe() -> bool:
        handle = await page.wait_for_selector(joined, timeout=timeout * 1000)
        return handle is not None

    return probe


class AuthDetector:
    """
    Bounded wait for an authenticated input surface.

    Attributes:
        state: AuthState after resolve()
    """

    def __init__(
        self,
        surface_present: Callable[[], Awaitable[bool]],
        timing: TimingSettings,
        clock: Clock | None = None,
        notify: Callable[[str], None] | None = None,
    ):
        self.surface_present = surface_present
        self.timing = timing
        self.clock = clock or MonotonicClock()
        self.notify = notify or (lambda message: None)
        self.state = AuthState.UNAUTHENTICATED
        self._prompted = False

    async def probe(self) -> StageVerdict:
        if await self.surface_present():
            return StageVerdict.CLEAR
        return StageVerdict.BLOCKED

    def _on_poll(self, verdict: StageVerdict, elapsed: float) -> None:
        if verdict == StageVerdict.BLOCKED and not self._prompted:
            self._prompted = True
            self.notify(LOGIN_PROMPT)

    async def resolve(self) -> AuthState:
        """
        Wait until the input surface shows up.

        Raises:
            AuthTimeoutError: If no input surface appeared within the budget
        """
        authenticated = await poll_until_clear(
            self.probe,
            interval=self.timing.auth_interval_seconds,
            timeout=self.timing.auth_timeout_seconds,
            clock=self.clock,
            on_poll=self._on_poll,
        )

        if not authenticated:
            self.state = AuthState.TIMED_OUT
            raise AuthTimeoutError(
                f"Login wait timed out after {self.timing.auth_timeout_seconds:.0f}s.",
                timeout_seconds=self.timing.auth_timeout_seconds,
            )

        self.state = AuthState.AUTHENTICATED
        logger.info("Input surface present, session is authenticated")
        return self.state
