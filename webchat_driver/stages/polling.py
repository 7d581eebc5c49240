"""
Bounded polling primitive shared by the challenge and auth stages.

A probe classifies the page as BLOCKED or CLEAR on every call; verdicts are
never cached. The loop returns as soon as one poll is CLEAR and gives up
once the time budget is spent.
"""

import logging
from collections.abc import Awaitable, Callable

from ..models import StageVerdict
from ..utils.time import Clock

logger = logging.getLogger(__name__)

Probe = Callable[[], Awaitable[StageVerdict]]


async def poll_until_clear(
    probe: Probe,
    *,
    interval: float,
    timeout: float,
    clock: Clock,
    on_poll: Callable[[StageVerdict, float], None] | None = None,
) -> bool:
    """
    Call ``probe`` every ``interval`` seconds until it reports CLEAR.

    An exception raised by the probe counts as BLOCKED for that poll.

    Args:
        probe: Async callable returning a fresh StageVerdict
        interval: Seconds between polls
        timeout: Total budget in seconds
        clock: Time source for the budget and the sleeps
        on_poll: Optional callback(verdict, elapsed_seconds) after each poll

    Returns:
        True if a poll came back CLEAR, False if the budget ran out
    """
    start = clock.now()
    while True:
        try:
            verdict = await probe()
        except Exception as e:
            logger.debug(f"Probe failed, treating as blocked: {e}")
            verdict = StageVerdict.BLOCKED

        elapsed = clock.now() - start
        if on_poll is not None:
            on_poll(verdict, elapsed)

        if verdict == StageVerdict.CLEAR:
            return True

        if elapsed + interval > timeout:
            return False

        await clock.sleep(interval)
