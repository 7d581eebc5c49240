"""
Prompt input injector.

Rich-text editors ignore a plain value assignment, and per-character typing
of a long prompt is slow, so delivery walks a ladder of techniques and
verifies the rendered text after each step:

1. rich surface (contenteditable): synthetic paste event with a DataTransfer
2. rich surface, paste not rendered: document.execCommand("insertText")
3. field surface (textarea/input): native value setter plus an input event
4. still not rendered after a settle: click to focus and type key by key

Key components:
- InputSurface: the operations the ladder needs, one implementation per page
- PlaywrightInputSurface: InputSurface over a Playwright page
- InputInjector: runs the ladder and records which layers it used

Example:
    >>> injector = InputInjector(PlaywrightInputSurface(page, selectors), timing)
    >>> await injector.inject(prompt)
    >>> injector.layers_used
    ['paste']
"""

import logging
from typing import Protocol

from playwright.async_api import Error as PlaywrightError

from ..config.schema import TimingSettings
from ..exceptions import InputInjectionError
from ..utils.time import Clock, MonotonicClock

logger = logging.getLogger(__name__)

RICH = "rich"
FIELD = "field"

PASTE_SCRIPT = """
(el, text) => {
    el.focus();
    const dt = new DataTransfer();
    dt.setData("text/plain", text);
    el.dispatchEvent(new ClipboardEvent("paste", { bubbles: true, cancelable: true, clipboardData: dt }));
}
"""

INSERT_TEXT_SCRIPT = """
(el, text) => {
    el.focus();
    document.execCommand("insertText", false, text);
    el.dispatchEvent(new Event("input", { bubbles: true }));
}
"""

SET_VALUE_SCRIPT = """
(el, text) => {
    const proto = el instanceof HTMLTextAreaElement
        ? window.HTMLTextAreaElement.prototype
        : window.HTMLInputElement.prototype;
    const setter = Object.getOwnPropertyDescriptor(proto, "value")?.set;
    if (setter) setter.call(el, text); else el.value = text;
    el.dispatchEvent(new Event("input", { bubbles: true }));
}
"""

TEXT_LENGTH_SCRIPT = """
(el) => ((el.isContentEditable ? el.textContent : el.value) || "").trim().length
"""


class InputSurface(Protocol):
    """The prompt input element, as far as the injection ladder is concerned."""

    async def kind(self) -> str:
        """Return "rich" for contenteditable, "field" for textarea/input."""
        ...

    async def paste(self, text: str) -> None: ...

    async def insert_text(self, text: str) -> None: ...

    async def set_value(self, text: str) -> None: ...

    async def type_text(self, text: str, delay_ms: int) -> None: ...

    async def text_length(self) -> int:
        """Length of the rendered, whitespace-trimmed content."""
        ...


class PlaywrightInputSurface:
    """
    InputSurface over a Playwright page.

    The element is located lazily, on first use, by waiting up to
    ``wait_timeout`` seconds for any of the selectors and then taking the
    first one present in priority order.
    """

    def __init__(self, page, selectors: list[str], wait_timeout: float = 30.0):
        self.page = page
        self.selectors = selectors
        self.wait_timeout = wait_timeout
        self._handle = None

    async def _element(self):
        if self._handle is not None:
            return self._handle

        try:
            await self.page.wait_for_selector(
                ", ".join(self.selectors), timeout=self.wait_timeout * 1000
            )
        except PlaywrightError as e:
            raise InputInjectionError(
                f"Prompt input not found within {self.wait_timeout:.0f}s."
            ) from e

        for selector in self.selectors:
            handle = await self.page.query_selector(selector)
            if handle is not None:
                logger.debug(f"Input surface located with selector: {selector}")
                self._handle = handle
                return handle

        raise InputInjectionError("Prompt input disappeared before it could be used.")

    async def kind(self) -> str:
        element = await self._element()
        editable = await element.evaluate("(el) => el.isContentEditable")
        return RICH if editable else FIELD

    async def paste(self, text: str) -> None:
        element = await self._element()
        await element.evaluate(PASTE_SCRIPT, text)

    async def insert_text(self, text: str) -> None:
        element = await self._element()
        await element.evaluate(INSERT_TEXT_SCRIPT, text)

    async def set_value(self, text: str) -> None:
        element = await self._element()
        await element.evaluate(SET_VALUE_SCRIPT, text)

    async def type_text(self, text: str, delay_ms: int) -> None:
        element = await self._element()
        await element.click()
        await self.page.keyboard.type(text, delay=delay_ms)

    async def text_length(self) -> int:
        element = await self._element()
        return int(await element.evaluate(TEXT_LENGTH_SCRIPT))


class InputInjector:
    """
    Deliver a prompt into an InputSurface.

    No clearing is performed, so inject() is meant to run once per session.

    Attributes:
        layers_used: Names of the ladder steps run by the last inject() call
    """

    def __init__(
        self,
        surface: InputSurface,
        timing: TimingSettings,
        clock: Clock | None = None,
    ):
        self.surface = surface
        self.timing = timing
        self.clock = clock or MonotonicClock()
        self.layers_used: list[str] = []

    def threshold(self, text: str) -> int:
        """Minimum rendered length that counts as delivered."""
        return min(self.timing.min_input_chars, len(text.strip()))

    async def _verified(self, text: str) -> bool:
        try:
            return await self.surface.text_length() >= self.threshold(text)
        except PlaywrightError as e:
            logger.debug(f"Could not read input length: {e}")
            return False

    async def inject(self, text: str) -> None:
        """
        Deliver ``text`` into the input surface.

        Raises:
            InputInjectionError: If the surface is missing or still empty after typing
        """
        self.layers_used = []

        if await self.surface.kind() == RICH:
            self.layers_used.append("paste")
            await self.surface.paste(text)
            await self.clock.sleep(self.timing.paste_settle_seconds)

            if not await self._verified(text):
                self.layers_used.append("insert_text")
                await self.surface.insert_text(text)
        else:
            self.layers_used.append("set_value")
            await self.surface.set_value(text)

        await self.clock.sleep(self.timing.verify_settle_seconds)
        if await self._verified(text):
            logger.info(f"Prompt delivered via {' -> '.join(self.layers_used)}")
            return

        logger.warning("Prompt not rendered after programmatic insertion, typing it")
        self.layers_used.append("type")
        await self.surface.type_text(text, self.timing.typing_delay_ms)

        rendered = await self.surface.text_length()
        if rendered == 0:
            raise InputInjectionError("Prompt input is still empty after typing.")
        if rendered < self.threshold(text):
            logger.warning(f"Prompt input shows only {rendered} characters after typing")

        logger.info(f"Prompt delivered via {' -> '.join(self.layers_used)}")
