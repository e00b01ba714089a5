"""
Unit tests for black-frame probing.

Covers blackdetect output parsing and the bounded retry loop.
"""

import pytest

from camcontrol.errors import ProbeInconclusive, StartError
from camcontrol.models.settings import ProbeSettings
from camcontrol.services.blackframe import BlackFrameProbe
from camcontrol.services.process_runner import RunResult
from camcontrol.utils.ffmpeg import parse_start_offset

STREAM = "rtsp://camera-mediamtx:8554/webcam"


class TestParseStartOffset:
    """Tests for parse_start_offset()."""

    def test_no_black_segment_means_zero(self):
        assert parse_start_offset("frame=    1 fps=0.0 q=-0.0 size=N/A") == 0.0

    def test_empty_output_means_zero(self):
        assert parse_start_offset("") == 0.0

    def test_single_black_end(self):
        output = "[blackdetect @ 0x55d] black_start:0 black_end:0.866667 black_duration:0.866667"
        assert parse_start_offset(output) == pytest.approx(0.866667)

    def test_last_black_end_wins(self):
        output = (
            "[blackdetect @ 0x1] black_start:0 black_end:1.2 black_duration:1.2\n"
            "[blackdetect @ 0x1] black_start:2 black_end:3.4 black_duration:1.4\n"
        )
        assert parse_start_offset(output) == 3.4

    def test_black_start_without_end_is_retry(self):
        assert parse_start_offset("[blackdetect @ 0x1] black_start:0") is None

    def test_unparsable_end_is_ignored(self):
        output = "black_start:0 black_end:1.5\nblack_start:2 black_end:garbage"
        assert parse_start_offset(output) == 1.5

    def test_only_unparsable_end_is_retry(self):
        assert parse_start_offset("black_start:0 black_end:N/A") is None


class TestBlackFrameProbe:
    """Tests for BlackFrameProbe.detect()."""

    @pytest.fixture
    def probe_settings(self):
        return ProbeSettings(interval=0.0, max_attempts=4, deadline=5.0)

    @pytest.fixture
    def probe(self, runner, probe_settings):
        return BlackFrameProbe(runner, STREAM, probe_settings)

    @pytest.mark.asyncio
    async def test_clean_stream_returns_zero_first_try(self, probe, runner):
        assert await probe.detect() == 0.0
        assert len(runner.calls) == 1

    @pytest.mark.asyncio
    async def test_probe_targets_relay_stream(self, probe, runner):
        await probe.detect()

        _, args = runner.calls[0]
        assert args[args.index("-i") + 1] == STREAM
        assert "blackdetect=d=0.1:pix_th=0.01" in args

    @pytest.mark.asyncio
    async def test_returns_last_black_end(self, probe, runner):
        runner.probe_results = [RunResult(0, "black_start:0 black_end:1.2\nblack_start:2 black_end:3.4")]
        assert await probe.detect() == 3.4

    @pytest.mark.asyncio
    async def test_retries_until_end_marker(self, probe, runner):
        runner.probe_results = [
            RunResult(0, "black_start:0"),
            RunResult(0, "black_start:0"),
            RunResult(0, "black_start:0 black_end:0.8"),
        ]
        assert await probe.detect() == 0.8
        assert len(runner.calls) == 3

    @pytest.mark.asyncio
    async def test_timeouts_and_launch_failures_are_retried(self, probe, runner):
        runner.probe_results = [
            RunResult(None, "", timed_out=True),
            StartError("Failed to start ffmpeg: not found"),
            RunResult(0, "black_start:0 black_end:1.5"),
        ]
        assert await probe.detect() == 1.5
        assert len(runner.calls) == 3

    @pytest.mark.asyncio
    async def test_nonzero_exit_without_black_marker_means_zero(self, probe, runner):
        """A failed run that reports no blank segment returns 0.0 at once."""
        runner.probe_results = [RunResult(1, "rtsp://camera-mediamtx:8554/webcam: Connection refused")] * 4

        assert await probe.detect() == 0.0
        assert len(runner.calls) == 1

    @pytest.mark.asyncio
    async def test_nonzero_exit_with_black_end_is_used(self, probe, runner):
        runner.probe_results = [RunResult(255, "black_start:0 black_end:0.4\nExiting normally")]

        assert await probe.detect() == 0.4

    @pytest.mark.asyncio
    async def test_attempt_bound_raises_inconclusive(self, probe, runner):
        runner.probe_results = [RunResult(0, "black_start:0")] * 10

        with pytest.raises(ProbeInconclusive) as exc_info:
            await probe.detect()

        assert exc_info.value.attempts == 4
        assert len(runner.calls) == 4

    @pytest.mark.asyncio
    async def test_deadline_bound_raises_inconclusive(self, runner):
        probe = BlackFrameProbe(runner, STREAM, ProbeSettings(interval=0.05, max_attempts=25, deadline=0.12))
        runner.probe_results = [RunResult(0, "black_start:0")] * 25

        with pytest.raises(ProbeInconclusive):
            await probe.detect()

        assert 1 <= len(runner.calls) < 25

    @pytest.mark.asyncio
    async def test_attempt_timeout_capped_by_deadline(self, runner):
        seen = []
        original = runner.run_sync

        async def recording_run_sync(program, args, timeout):
            seen.append(timeout)
            return await original(program, args, timeout)

        runner.run_sync = recording_run_sync
        probe = BlackFrameProbe(runner, STREAM, ProbeSettings(deadline=2.0, attempt_timeout=10.0))

        await probe.detect()
        assert seen[0] <= 2.0
