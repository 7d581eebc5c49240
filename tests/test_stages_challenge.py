"""
Tests for stages.challenge module - interstitial detection and bounded wait.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from webchat_driver.config.schema import SelectorSettings, TimingSettings
from webchat_driver.exceptions import ChallengeTimeoutError
from webchat_driver.models import ChallengeState
from webchat_driver.stages.challenge import (
    SNAPSHOT_SCRIPT,
    ChallengeDetector,
    ChallengeMarkers,
    PageSnapshot,
    is_challenge_present,
    page_snapshot_reader,
)

MARKERS = ChallengeMarkers(
    phrases=["Verify you are human", "Just a moment", "사람인지 확인"],
    selectors=["#challenge-running", ".cf-turnstile-wrapper"],
)

CHALLENGE_PAGE = PageSnapshot(body_text="Just a moment...\nchatgpt.com needs to review")
CHAT_PAGE = PageSnapshot(body_text="What can I help with?")


def snapshots(*pages):
    """Snapshot reader that returns ``pages`` in order, then repeats the last."""
    remaining = list(pages)

    async def read():
        page = remaining.pop(0) if len(remaining) > 1 else remaining[0]
        if isinstance(page, Exception):
            raise page
        return page

    return read


class TestIsChallengePresent:
    def test_phrase_match(self):
        assert is_challenge_present(CHALLENGE_PAGE, MARKERS)

    def test_localized_phrase(self):
        assert is_challenge_present(PageSnapshot(body_text="사람인지 확인하십시오"), MARKERS)

    def test_selector_match_without_phrase(self):
        snapshot = PageSnapshot(body_text="", matched_selectors=[".cf-turnstile-wrapper"])
        assert is_challenge_present(snapshot, MARKERS)

    def test_ordinary_page(self):
        assert not is_challenge_present(CHAT_PAGE, MARKERS)

    def test_unknown_matched_selector_is_ignored(self):
        snapshot = PageSnapshot(body_text="", matched_selectors=["#something-else"])
        assert not is_challenge_present(snapshot, MARKERS)

    def test_markers_from_settings(self):
        settings = SelectorSettings(
            challenge_phrases=["Checking your browser"],
            challenge_selectors=["#challenge-running"],
            input_selectors=["#prompt-textarea"],
            submit_selectors=["button"],
            stop_generating_selectors=["button.stop"],
            response_selectors=[".markdown"],
        )
        markers = ChallengeMarkers.from_settings(settings)
        assert markers.phrases == ["Checking your browser"]
        assert markers.selectors == ["#challenge-running"]


class TestPageSnapshotReader:
    @pytest.mark.asyncio
    async def test_reads_text_and_matches_in_one_evaluate(self):
        page = MagicMock()
        page.evaluate = AsyncMock(
            return_value={"text": "Just a moment", "matched": ["#challenge-running"]}
        )

        snapshot = await page_snapshot_reader(page, MARKERS.selectors)()

        page.evaluate.assert_awaited_once_with(SNAPSHOT_SCRIPT, MARKERS.selectors)
        assert snapshot == PageSnapshot(
            body_text="Just a moment", matched_selectors=["#challenge-running"]
        )

    @pytest.mark.asyncio
    async def test_missing_body(self):
        page = MagicMock()
        page.evaluate = AsyncMock(return_value={"text": None, "matched": []})

        snapshot = await page_snapshot_reader(page, [])()
        assert snapshot.body_text == ""


class TestChallengeDetector:
    @pytest.fixture
    def timing(self):
        return TimingSettings()

    @pytest.mark.asyncio
    async def test_no_challenge(self, timing, fake_clock):
        notices = []
        detector = ChallengeDetector(
            snapshots(CHAT_PAGE), MARKERS, timing, clock=fake_clock, notify=notices.append
        )

        assert await detector.resolve() == ChallengeState.CLEAR
        assert detector.polls == 1
        assert notices == []
        # no settle wait when nothing was blocking
        assert fake_clock.sleeps == []

    @pytest.mark.asyncio
    async def test_challenge_clears_after_a_few_polls(self, timing, fake_clock):
        notices = []
        detector = ChallengeDetector(
            snapshots(CHALLENGE_PAGE, CHALLENGE_PAGE, CHALLENGE_PAGE, CHAT_PAGE),
            MARKERS,
            timing,
            clock=fake_clock,
            notify=notices.append,
        )

        assert await detector.resolve() == ChallengeState.CLEAR
        assert detector.polls == 4
        assert len(notices) == 1
        assert "Verification check detected" in notices[0]
        assert fake_clock.sleeps == [2.0, 2.0, 2.0, 3.0]

    @pytest.mark.asyncio
    async def test_challenge_never_clears(self, timing, fake_clock):
        notices = []
        detector = ChallengeDetector(
            snapshots(CHALLENGE_PAGE), MARKERS, timing, clock=fake_clock, notify=notices.append
        )

        with pytest.raises(ChallengeTimeoutError) as exc_info:
            await detector.resolve()

        assert detector.state == ChallengeState.TIMED_OUT
        assert detector.polls == 61
        assert len(notices) == 1
        assert exc_info.value.timeout_seconds == 120.0
        assert "120s" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_unreadable_snapshot_counts_as_clear(self, timing, fake_clock):
        detector = ChallengeDetector(
            snapshots(RuntimeError("Execution context was destroyed")),
            MARKERS,
            timing,
            clock=fake_clock,
        )

        assert await detector.resolve() == ChallengeState.CLEAR
        assert detector.polls == 1

    @pytest.mark.asyncio
    async def test_every_poll_is_a_fresh_read(self, timing, fake_clock):
        detector = ChallengeDetector(
            snapshots(CHALLENGE_PAGE, CHAT_PAGE, CHALLENGE_PAGE),
            MARKERS,
            timing,
            clock=fake_clock,
        )

        await detector.resolve()
        # the second read was clear, so the third (blocked) one never happens
        assert detector.polls == 2
