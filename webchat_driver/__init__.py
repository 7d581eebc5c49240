"""
webchat-driver: send a prompt to the ChatGPT web app through your own browser.

The driver relaunches a local Chromium-family browser on a dedicated profile,
attaches over the DevTools protocol, waits out the verification check and
the login gate, delivers the prompt, and collects the streamed response.

Example:
    >>> from webchat_driver import load_config, run_session
    >>> text = await run_session("Explain CRDTs in two paragraphs", load_config())
"""

from webchat_driver.config.loader import load_config
from webchat_driver.driver import SessionDriver, run_session, stream_session

__version__ = "0.1.0"

__all__ = ["SessionDriver", "load_config", "run_session", "stream_session"]
