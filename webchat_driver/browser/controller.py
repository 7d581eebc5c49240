"""
Session controller: the only owner of the Playwright page handle.

Attaches to an already running browser over CDP, opens one page, navigates
it to the target, and tears everything down again. Teardown disconnects
from the browser but leaves the browser process (and its window) running,
so the user can see and fix whatever stopped the session.

Example:
    >>> controller = SessionController(timing)
    >>> page = await controller.attach(descriptor)
    >>> await controller.navigate("https://chatgpt.com")
    >>> ...
    >>> await controller.teardown()
"""

import logging

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page, async_playwright

from ..config.schema import TimingSettings
from ..exceptions import DebugPortConnectError, NavigationError
from ..models import ConnectionDescriptor
from ..utils.time import Clock, MonotonicClock

logger = logging.getLogger(__name__)


class SessionController:
    """
    Attach/navigate/teardown around one page of a CDP-attached browser.

    Attributes:
        timing: Timing settings (navigation budget, post-navigation settle)
        clock: Clock used for the settle wait
        page: The page opened by attach() (None before attach / after teardown)
        teardown_count: Number of teardown() calls that did actual work
    """

    def __init__(self, timing: TimingSettings, clock: Clock | None = None):
        self.timing = timing
        self.clock = clock or MonotonicClock()
        self.page: Page | None = None
        self.teardown_count = 0
        self._playwright = None
        self._browser = None
        self._torn_down = False

    async def attach(self, descriptor: ConnectionDescriptor) -> Page:
        """
        Connect to the browser and open exactly one new page.

        Raises:
            DebugPortConnectError: If the CDP connection can't be established
        """
        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.connect_over_cdp(
                descriptor.websocket_url
            )
            contexts = self._browser.contexts
            context = contexts[0] if contexts else await self._browser.new_context()
            self.page = await context.new_page()
        except PlaywrightError as e:
            raise DebugPortConnectError(f"Could not attach to the browser: {e}") from e

        logger.info(f"Attached to browser {descriptor.browser or '(unknown version)'}")
        return self.page

    async def navigate(self, url: str, timeout: float | None = None) -> None:
        """
        Load ``url`` and wait for network idle, then settle.

        Raises:
            NavigationError: On navigation timeout or failure
        """
        if self.page is None:
            raise NavigationError("Cannot navigate before attaching to the browser.")

        timeout = self.timing.navigation_timeout_seconds if timeout is None else timeout
        try:
            await self.page.goto(url, wait_until="networkidle", timeout=timeout * 1000)
        except PlaywrightError as e:
            # playwright's TimeoutError subclasses Error
            raise NavigationError(f"Failed to load {url}: {e}") from e

        await self.clock.sleep(self.timing.post_navigation_settle_seconds)

    async def teardown(self) -> None:
        """
        Release the page and the CDP connection. Safe to call repeatedly.

        Every step swallows its own errors so the next step still runs.
        The browser process is left running.
        """
        if self._torn_down:
            return
        self._torn_down = True
        self.teardown_count += 1

        if self.page is not None:
            try:
                await self.page.close()
            except Exception as e:
                logger.debug(f"Ignoring error while closing page: {e}")

        if self._browser is not None:
            try:
                # On a CDP connection close() only disconnects
                await self._browser.close()
            except Exception as e:
                logger.debug(f"Ignoring error while disconnecting: {e}")

        if self._playwright is not None:
            try:
                await self._playwright.stop()
            except Exception as e:
                logger.debug(f"Ignoring error while stopping playwright: {e}")

        self.page = None
        self._browser = None
        self._playwright = None
        logger.debug("Session teardown complete")
