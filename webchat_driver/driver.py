"""
Session driver: runs one session through the fixed stage order.

    launch -> endpoint -> attach -> navigate -> challenge -> auth ->
    inject -> submit -> collect -> teardown

Every stage reports into the Session's progress channel. Teardown runs
exactly once per run on every exit path, before a failure reaches the
caller. Only one session may drive the browser at a time per process.

Key components:
- SessionDriver: the orchestrator, with injectable collaborators
- SessionStages / build_stages: the page-level stages bound to one page
- stream_session: async generator of channel events for one run
- run_session: run one session and return the response text

Example:
    >>> config = load_config()
    >>> async for event in stream_session("Summarize this ...", config):
    ...     print(event.to_dict())
    {'log': 'Launching browser'}
    {'progress': 5}
    ...
    {'result': '...'}
"""

import asyncio
import functools
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass

from .browser.controller import SessionController
from .browser.endpoint import resolve_endpoint
from .browser.launcher import ProcessLauncher
from .config.constants import MAX_PROMPT_LENGTH
from .config.schema import DriverConfig
from .events import Event
from .exceptions import SessionBusyError, WebchatDriverError
from .models import ConnectionDescriptor, DebugEndpointCandidate, Session, SessionPhase
from .stages.auth import AuthDetector, input_surface_probe
from .stages.challenge import ChallengeDetector, ChallengeMarkers, page_snapshot_reader
from .stages.collector import PlaywrightResponseReader, ResponseCollector
from .stages.injector import InputInjector, PlaywrightInputSurface
from .stages.submit import SubmissionTrigger
from .utils.logging import log_with_context
from .utils.time import Clock, MonotonicClock

logger = logging.getLogger(__name__)

Resolver = Callable[[DebugEndpointCandidate], Awaitable[ConnectionDescriptor]]

_session_lock = asyncio.Lock()


def validate_instruction(instruction: str) -> str:
    """
    Check that ``instruction`` is deliverable.

    Raises:
        ValueError: If it's empty/whitespace or longer than MAX_PROMPT_LENGTH
    """
    if not instruction or not instruction.strip():
        raise ValueError("Prompt is empty.")
    if len(instruction) > MAX_PROMPT_LENGTH:
        raise ValueError(
            f"Prompt is {len(instruction):,} characters; the maximum is {MAX_PROMPT_LENGTH:,}."
        )
    return instruction


def failure_message(error: BaseException) -> str:
    """Human-readable failure reason for the progress channel."""
    if isinstance(error, (WebchatDriverError, ValueError)):
        return str(error)
    return f"Unexpected error: {type(error).__name__}: {error}"


@dataclass
class SessionStages:
    """The page-level stages of one session, bound to one page."""

    challenge: ChallengeDetector
    auth: AuthDetector
    injector: InputInjector
    trigger: SubmissionTrigger
    collector: ResponseCollector


def build_stages(page, config: DriverConfig, session: Session, clock: Clock) -> SessionStages:
    """Wire the Playwright-backed stages for ``page``."""
    selectors = config.selectors
    timing = config.timing

    return SessionStages(
        challenge=ChallengeDetector(
            page_snapshot_reader(page, selectors.challenge_selectors),
            ChallengeMarkers.from_settings(selectors),
            timing,
            clock=clock,
            notify=session.log,
        ),
        auth=AuthDetector(
            input_surface_probe(page, selectors.input_selectors, timing.auth_probe_timeout_seconds),
            timing,
            clock=clock,
            notify=session.log,
        ),
        injector=InputInjector(
            PlaywrightInputSurface(page, selectors.input_selectors, timing.input_wait_timeout_seconds),
            timing,
            clock=clock,
        ),
        trigger=SubmissionTrigger(page, selectors.submit_selectors, timing, clock=clock),
        collector=ResponseCollector(
            PlaywrightResponseReader(
                page, selectors.stop_generating_selectors, selectors.response_selectors
            ),
            timing,
            clock=clock,
            on_progress=session.advance,
        ),
    )


class SessionDriver:
    """
    Orchestrates one session end to end.

    Collaborators default to the real implementations and can be replaced
    for tests: ``launcher`` needs prepare_and_launch(), ``resolver`` is an
    async callable candidate -> descriptor, ``controller_factory`` returns
    an object with attach/navigate/teardown, and ``stages_factory`` builds
    SessionStages for a page.

    Attributes:
        config: Driver configuration
        clock: Clock shared by every stage
        last_controller: Controller used by the most recent run()
    """

    def __init__(
        self,
        config: DriverConfig,
        *,
        launcher: ProcessLauncher | None = None,
        resolver: Resolver | None = None,
        controller_factory: Callable[[], SessionController] | None = None,
        stages_factory: Callable[[object, Session], SessionStages] | None = None,
        clock: Clock | None = None,
    ):
        self.config = config
        self.clock = clock or MonotonicClock()
        timing = config.timing

        self.launcher = launcher or ProcessLauncher(config.browser, timing, clock=self.clock)
        self.resolver = resolver or functools.partial(
            resolve_endpoint,
            max_attempts=timing.endpoint_max_attempts,
            interval=timing.endpoint_interval_seconds,
            request_timeout=timing.endpoint_request_timeout_seconds,
            clock=self.clock,
        )
        self.controller_factory = controller_factory or (
            lambda: SessionController(timing, clock=self.clock)
        )
        self.stages_factory = stages_factory or (
            lambda page, session: build_stages(page, config, session, self.clock)
        )
        self.last_controller = None

    async def run(self, instruction: str, session: Session | None = None) -> str:
        """
        Run one session.

        Args:
            instruction: Prompt text to deliver
            session: Optional Session whose channel the caller is reading

        Returns:
            Raw response text

        Raises:
            ValueError: If the instruction is empty or too long
            SessionError: On any fatal stage failure (teardown already done)
        """
        session = session or Session(instruction=instruction)

        try:
            validate_instruction(instruction)
        except ValueError as e:
            session.fail(str(e))
            raise

        controller = self.controller_factory()
        self.last_controller = controller
        failure = None

        try:
            text = await self._execute(session, controller)
        except Exception as e:
            failure = e
            log_with_context(
                logger,
                logging.ERROR,
                f"Session failed during {session.phase}: {e}",
                context={"phase": str(session.phase), "error_type": type(e).__name__},
                session_id=session.session_id,
            )
            raise
        finally:
            await controller.teardown()
            if failure is not None:
                session.fail(failure_message(failure))

        session.advance(95)
        session.log(f"Response received ({len(text):,} characters)")
        session.complete(text)
        return text

    async def _execute(self, session: Session, controller) -> str:
        config = self.config

        session.enter(SessionPhase.LAUNCHING)
        session.log("Launching browser")
        session.advance(5)
        candidate = await self.launcher.prepare_and_launch()
        session.advance(10)

        session.enter(SessionPhase.RESOLVING_ENDPOINT)
        session.log(f"Waiting for the debugging port {candidate.port}")
        descriptor = await self.resolver(candidate)
        session.advance(20)

        session.enter(SessionPhase.ATTACHING)
        page = await controller.attach(descriptor)
        session.log("Connected to browser")
        session.advance(25)

        session.enter(SessionPhase.NAVIGATING)
        session.log(f"Opening {config.browser.target_url}")
        await controller.navigate(config.browser.target_url)
        session.advance(30)

        stages = self.stages_factory(page, session)

        session.enter(SessionPhase.CHALLENGE)
        session.log("Checking for a verification screen")
        await stages.challenge.resolve()
        session.advance(35)

        session.enter(SessionPhase.AUTH)
        session.log("Checking login state")
        await stages.auth.resolve()
        session.advance(40)

        session.enter(SessionPhase.INJECTING)
        session.log("Entering prompt")
        await stages.injector.inject(session.instruction)
        session.advance(50)

        session.enter(SessionPhase.SUBMITTING)
        await stages.trigger.submit()
        session.log("Prompt submitted")
        session.advance(55)

        session.enter(SessionPhase.COLLECTING)
        session.log("Waiting for the response")
        text = await stages.collector.collect()
        session.advance(90)

        log_with_context(
            logger,
            logging.INFO,
            "Session stages complete",
            context={"chars": len(text)},
            session_id=session.session_id,
        )
        return text


@asynccontextmanager
async def session_slot():
    """
    Hold the process-wide single-session slot.

    Raises:
        SessionBusyError: If another session is already running
    """
    if _session_lock.locked():
        raise SessionBusyError(
            "Another session is already driving the browser. Wait for it to finish."
        )
    async with _session_lock:
        yield


async def stream_session(
    instruction: str, config: DriverConfig, **driver_kwargs
) -> AsyncIterator[Event]:
    """
    Run one session and yield its channel events as they happen.

    The last event yielded is always exactly one ResultEvent or ErrorEvent.
    Closing the generator early cancels the run (teardown still happens).

    Raises:
        SessionBusyError: If another session is already running
    """
    async with session_slot():
        session = Session(instruction=instruction)
        driver = SessionDriver(config, **driver_kwargs)
        task = asyncio.create_task(driver.run(instruction, session))
        try:
            async for event in session.channel:
                yield event
        finally:
            if not task.done():
                task.cancel()
            # failures already reached the caller as an ErrorEvent
            await asyncio.gather(task, return_exceptions=True)


async def run_session(instruction: str, config: DriverConfig, **driver_kwargs) -> str:
    """
    Run one session in a fresh Session and return the response text.

    Raises:
        SessionBusyError: If another session is already running
        ValueError: If the instruction is empty or too long
        SessionError: On any fatal stage failure
    """
    async with session_slot():
        return await SessionDriver(config, **driver_kwargs).run(instruction)
