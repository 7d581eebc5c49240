"""
Debug endpoint resolver.

A freshly launched browser needs a moment before its remote debugging port
answers. This module polls the introspection endpoint (/json/version) until
it returns a connection descriptor carrying webSocketDebuggerUrl, using
tenacity for the bounded fixed-interval retry loop.

An attempt fails on:
- any transport error (connection refused, timeout)
- a non-2xx status
- a body that isn't JSON
- a JSON document without webSocketDebuggerUrl

Example:
    >>> candidate = DebugEndpointCandidate(host="127.0.0.1", port=9222)
    >>> descriptor = await resolve_endpoint(candidate)
    >>> descriptor.websocket_url
    'ws://127.0.0.1:9222/devtools/browser/...'
"""

import logging

import httpx
from pydantic import ValidationError
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from ..exceptions import DebugPortConnectError
from ..models import ConnectionDescriptor, DebugEndpointCandidate
from ..utils.time import Clock, MonotonicClock

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 30
INTERVAL_SECONDS = 1.0
REQUEST_TIMEOUT = 3.0


class EndpointNotReady(Exception):
    """One resolution attempt failed; the loop will try again."""


async def fetch_descriptor(
    client: httpx.AsyncClient, url: str, request_timeout: float = REQUEST_TIMEOUT
) -> ConnectionDescriptor:
    """
    Make a single request to the introspection endpoint.

    Raises:
        EndpointNotReady: On any kind of failure
    """
    try:
        response = await client.get(url, timeout=request_timeout)
        response.raise_for_status()
        payload = response.json()
    except (httpx.HTTPError, ValueError) as e:
        raise EndpointNotReady(f"{type(e).__name__}: {e}") from e

    if not isinstance(payload, dict):
        raise EndpointNotReady("Introspection response is not a JSON object")

    try:
        return ConnectionDescriptor.model_validate(payload)
    except ValidationError as e:
        raise EndpointNotReady("Response has no usable webSocketDebuggerUrl") from e


async def resolve_endpoint(
    candidate: DebugEndpointCandidate,
    *,
    max_attempts: int = MAX_ATTEMPTS,
    interval: float = INTERVAL_SECONDS,
    request_timeout: float = REQUEST_TIMEOUT,
    clock: Clock | None = None,
    client: httpx.AsyncClient | None = None,
) -> ConnectionDescriptor:
    """
    Poll the candidate's /json/version until a descriptor is published.

    Args:
        candidate: Where the launched browser should be listening
        max_attempts: Total number of requests before giving up
        interval: Seconds between attempts
        request_timeout: Per-request timeout in seconds
        clock: Clock whose sleep() paces the attempts
        client: Optional shared httpx client (created and closed if None)

    Returns:
        The first successfully parsed ConnectionDescriptor

    Raises:
        DebugPortConnectError: If every attempt failed
    """
    clock = clock or MonotonicClock()
    url = candidate.version_url

    owns_client = client is None
    if owns_client:
        client = httpx.AsyncClient(timeout=request_timeout)

    def log_attempt(retry_state) -> None:
        logger.debug(
            f"Debug endpoint not ready (attempt {retry_state.attempt_number}/{max_attempts}): "
            f"{retry_state.outcome.exception()}"
        )

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_fixed(interval),
        retry=retry_if_exception_type(EndpointNotReady),
        sleep=clock.sleep,
        after=log_attempt,
    )

    try:
        async for attempt in retrying:
            with attempt:
                descriptor = await fetch_descriptor(client, url, request_timeout)
    except RetryError as e:
        raise DebugPortConnectError(
            f"Debug port unreachable at {candidate.host}:{candidate.port} "
            f"after {max_attempts} attempts."
        ) from e
    finally:
        if owns_client:
            await client.aclose()

    logger.info(
        "Debug endpoint resolved",
        extra={
            "context": {
                "browser": descriptor.browser,
                "websocket_url": descriptor.websocket_url,
                "attempts": attempt.retry_state.attempt_number,
            }
        },
    )
    return descriptor
