"""
Submission trigger.

Clicks the first send button found from a prioritized, multi-locale selector
list. If none is found, presses Enter in the focused input instead.
"""

import logging

from ..config.schema import TimingSettings
from ..utils.time import Clock, MonotonicClock

logger = logging.getLogger(__name__)

KEYBOARD_FALLBACK = "keyboard:Enter"


class SubmissionTrigger:
    """
    Submit the injected prompt.

    Attributes:
        page: Playwright page
        selectors: Send-button selectors, highest priority first
    """

    def __init__(
        self,
        page,
        selectors: list[str],
        timing: TimingSettings,
        clock: Clock | None = None,
    ):
        self.page = page
        self.selectors = selectors
        self.timing = timing
        self.clock = clock or MonotonicClock()

    async def _click_first(self) -> str | None:
        for selector in self.selectors:
            try:
                button = await self.page.query_selector(selector)
                if button is None:
                    continue
                await button.click()
                return selector
            except Exception as e:
                logger.debug(f"Send button probe failed for {selector}: {e}")
                continue
        return None

    async def submit(self) -> str:
        """
        Submit the prompt and wait for the page to react.

        Returns:
            The selector that was clicked, or "keyboard:Enter"
        """
        await self.clock.sleep(self.timing.submit_pre_settle_seconds)

        used = await self._click_first()
        if used is None:
            logger.info("No send button found, pressing Enter")
            await self.page.keyboard.press("Enter")
            used = KEYBOARD_FALLBACK
        else:
            logger.info(f"Clicked send button: {used}")

        await self.clock.sleep(self.timing.submit_settle_seconds)
        return used
