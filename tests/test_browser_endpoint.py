"""
Tests for browser.endpoint module - polling /json/version with tenacity.

HTTP is mocked with pytest-httpx; pacing runs on the fake clock.
"""

import httpx
import pytest

from webchat_driver.browser.endpoint import EndpointNotReady, fetch_descriptor, resolve_endpoint
from webchat_driver.exceptions import DebugPortConnectError
from webchat_driver.models import DebugEndpointCandidate

VERSION_URL = "http://127.0.0.1:9222/json/version"
WS_URL = "ws://127.0.0.1:9222/devtools/browser/3f1c2a9e-71b0-4d5e-9a55-1d2c0b6f9e10"

DESCRIPTOR = {
    "Browser": "Chrome/126.0.6478.127",
    "Protocol-Version": "1.3",
    "User-Agent": "Mozilla/5.0",
    "webSocketDebuggerUrl": WS_URL,
}


@pytest.fixture
def candidate():
    return DebugEndpointCandidate(host="127.0.0.1", port=9222, pid=4321)


class TestFetchDescriptor:
    @pytest.mark.asyncio
    async def test_parses_descriptor(self, httpx_mock):
        httpx_mock.add_response(url=VERSION_URL, json=DESCRIPTOR)

        async with httpx.AsyncClient() as client:
            descriptor = await fetch_descriptor(client, VERSION_URL)

        assert descriptor.websocket_url == WS_URL
        assert descriptor.browser == "Chrome/126.0.6478.127"
        assert descriptor.protocol_version == "1.3"

    @pytest.mark.asyncio
    async def test_connection_refused(self, httpx_mock):
        httpx_mock.add_exception(httpx.ConnectError("Connection refused"))

        async with httpx.AsyncClient() as client:
            with pytest.raises(EndpointNotReady, match="ConnectError"):
                await fetch_descriptor(client, VERSION_URL)

    @pytest.mark.asyncio
    async def test_server_error_status(self, httpx_mock):
        httpx_mock.add_response(url=VERSION_URL, status_code=500)

        async with httpx.AsyncClient() as client:
            with pytest.raises(EndpointNotReady):
                await fetch_descriptor(client, VERSION_URL)

    @pytest.mark.asyncio
    async def test_body_is_not_json(self, httpx_mock):
        httpx_mock.add_response(url=VERSION_URL, text="<html>starting up</html>")

        async with httpx.AsyncClient() as client:
            with pytest.raises(EndpointNotReady):
                await fetch_descriptor(client, VERSION_URL)

    @pytest.mark.asyncio
    async def test_json_array_is_rejected(self, httpx_mock):
        httpx_mock.add_response(url=VERSION_URL, json=[DESCRIPTOR])

        async with httpx.AsyncClient() as client:
            with pytest.raises(EndpointNotReady, match="not a JSON object"):
                await fetch_descriptor(client, VERSION_URL)

    @pytest.mark.asyncio
    async def test_missing_websocket_url(self, httpx_mock):
        httpx_mock.add_response(url=VERSION_URL, json={"Browser": "Chrome/126"})

        async with httpx.AsyncClient() as client:
            with pytest.raises(EndpointNotReady, match="webSocketDebuggerUrl"):
                await fetch_descriptor(client, VERSION_URL)

    @pytest.mark.asyncio
    async def test_empty_websocket_url(self, httpx_mock):
        httpx_mock.add_response(url=VERSION_URL, json={"webSocketDebuggerUrl": ""})

        async with httpx.AsyncClient() as client:
            with pytest.raises(EndpointNotReady):
                await fetch_descriptor(client, VERSION_URL)


class TestResolveEndpoint:
    @pytest.mark.asyncio
    async def test_first_attempt_succeeds(self, httpx_mock, candidate, fake_clock):
        httpx_mock.add_response(url=VERSION_URL, json=DESCRIPTOR)

        descriptor = await resolve_endpoint(candidate, clock=fake_clock)

        assert descriptor.websocket_url == WS_URL
        assert fake_clock.sleeps == []

    @pytest.mark.asyncio
    async def test_succeeds_on_fifth_attempt(self, httpx_mock, candidate, fake_clock):
        for _ in range(4):
            httpx_mock.add_exception(httpx.ConnectError("Connection refused"))
        httpx_mock.add_response(url=VERSION_URL, json=DESCRIPTOR)

        descriptor = await resolve_endpoint(candidate, clock=fake_clock)

        assert descriptor.websocket_url == WS_URL
        assert len(httpx_mock.get_requests()) == 5
        assert fake_clock.sleeps == [1.0, 1.0, 1.0, 1.0]

    @pytest.mark.asyncio
    async def test_mixed_failures_before_success(self, httpx_mock, candidate, fake_clock):
        httpx_mock.add_exception(httpx.ConnectError("Connection refused"))
        httpx_mock.add_response(url=VERSION_URL, text="not json")
        httpx_mock.add_response(url=VERSION_URL, json={"Browser": "Chrome/126"})
        httpx_mock.add_response(url=VERSION_URL, json=DESCRIPTOR)

        descriptor = await resolve_endpoint(candidate, clock=fake_clock)

        assert descriptor.browser == "Chrome/126.0.6478.127"
        assert len(httpx_mock.get_requests()) == 4

    @pytest.mark.asyncio
    async def test_fails_after_exactly_thirty_attempts(self, httpx_mock, candidate, fake_clock):
        for _ in range(30):
            httpx_mock.add_exception(httpx.ConnectError("Connection refused"))

        with pytest.raises(DebugPortConnectError) as exc_info:
            await resolve_endpoint(candidate, clock=fake_clock)

        assert len(httpx_mock.get_requests()) == 30
        assert len(fake_clock.sleeps) == 29
        assert "127.0.0.1:9222" in str(exc_info.value)
        assert "after 30 attempts" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_custom_budget(self, httpx_mock, candidate, fake_clock):
        for _ in range(3):
            httpx_mock.add_exception(httpx.ReadTimeout("timed out"))

        with pytest.raises(DebugPortConnectError, match="after 3 attempts"):
            await resolve_endpoint(candidate, max_attempts=3, interval=0.5, clock=fake_clock)

        assert fake_clock.sleeps == [0.5, 0.5]

    @pytest.mark.asyncio
    async def test_shared_client_is_left_open(self, httpx_mock, candidate, fake_clock):
        httpx_mock.add_response(url=VERSION_URL, json=DESCRIPTOR)

        async with httpx.AsyncClient() as client:
            await resolve_endpoint(candidate, clock=fake_clock, client=client)
            assert not client.is_closed
