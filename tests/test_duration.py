"""Unit tests for DurationResolver."""

import logging
from unittest.mock import MagicMock, patch

import pytest

from fadecut.duration import UNRESOLVED, DurationResolver, ResolvedDuration
from fadecut.ffutil import FFmpegNotFoundError, ProbeError
from fadecut.models import ClipModel, ProbeResult


@pytest.fixture
def open_clip():
    """Whole-file clip whose length is not known yet."""
    return ClipModel(source_path="video.mp4", audio_fade_out=4.0)


class TestNeedsProbe:
    def test_trimmed_clip(self, clip):
        assert not DurationResolver.needs_probe(clip.replace(audio_fade_out=2.0))

    def test_open_clip_with_fade_out(self, open_clip):
        assert DurationResolver.needs_probe(open_clip)

    def test_open_clip_without_fade_out(self):
        assert not DurationResolver.needs_probe(ClipModel(source_path="video.mp4"))


class TestResolve:
    @pytest.mark.asyncio
    async def test_trim_wins_without_probing(self, clip):
        prober = MagicMock()
        result = await DurationResolver(prober=prober).resolve(clip.replace(video_fade_out=1.0))
        assert result == ResolvedDuration(30.0, "trim")
        prober.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_fade_out_skips_probe(self):
        prober = MagicMock()
        result = await DurationResolver(prober=prober).resolve(ClipModel(source_path="video.mp4"))
        assert result is UNRESOLVED
        assert not result.is_resolved
        prober.assert_not_called()

    @pytest.mark.asyncio
    async def test_probe_fallback(self, open_clip):
        prober = MagicMock(return_value=ProbeResult(duration=95.5))
        result = await DurationResolver(prober=prober).resolve(open_clip)
        assert result == ResolvedDuration(95.5, "probe")
        assert result.is_resolved
        prober.assert_called_once_with("video.mp4")

    @pytest.mark.asyncio
    async def test_probe_measured_from_in_point(self, open_clip):
        prober = MagicMock(return_value=ProbeResult(duration=95.5))
        result = await DurationResolver(prober=prober).resolve(open_clip.replace(in_point=20.0, out_point=0.0))
        assert result.seconds == pytest.approx(75.5)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [ProbeError("ffprobe failed"), FileNotFoundError("gone"), FFmpegNotFoundError("ffprobe not found")],
    )
    async def test_probe_failure_degrades(self, open_clip, error, caplog):
        prober = MagicMock(side_effect=error)
        with caplog.at_level(logging.WARNING, logger="fadecut.duration"):
            result = await DurationResolver(prober=prober).resolve(open_clip)
        assert result is UNRESOLVED
        assert "fade-out disabled" in caplog.text

    @pytest.mark.asyncio
    async def test_zero_probe_duration(self, open_clip):
        prober = MagicMock(return_value=ProbeResult(duration=0.0))
        assert await DurationResolver(prober=prober).resolve(open_clip) is UNRESOLVED

    @pytest.mark.asyncio
    async def test_default_prober_uses_ffprobe_path(self, open_clip):
        with patch("fadecut.duration.ffutil.probe", return_value=ProbeResult(duration=12.0)) as mock_probe:
            result = await DurationResolver(ffprobe_path="/opt/ffprobe").resolve(open_clip)
        assert result.seconds == 12.0
        mock_probe.assert_called_once_with("video.mp4", ffprobe_path="/opt/ffprobe")

    @pytest.mark.asyncio
    async def test_unrunnable_ffprobe_degrades(self, tmp_path):
        media = tmp_path / "video.mp4"
        media.write_bytes(b"media")
        ffprobe = tmp_path / "ffprobe"
        ffprobe.write_text("#!/bin/sh\n")
        ffprobe.chmod(0o644)

        clip = ClipModel(source_path=str(media), audio_fade_out=4.0)
        result = await DurationResolver(ffprobe_path=str(ffprobe)).resolve(clip)

        assert result is UNRESOLVED
