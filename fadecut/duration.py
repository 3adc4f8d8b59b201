"""Clip duration resolution for fade-out timing."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable

from fadecut import ffutil
from fadecut.models import ClipModel, ProbeResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedDuration:
    """Duration used as the fade-out reference clock.

    ``source`` is ``"trim"`` (out - in), ``"probe"`` (ffprobe fallback) or
    ``"unresolved"``; an unresolved duration disables fade-outs.
    """

    seconds: float | None
    source: str

    @property
    def is_resolved(self) -> bool:
        return self.seconds is not None and self.seconds > 0


UNRESOLVED = ResolvedDuration(seconds=None, source="unresolved")


class DurationResolver:
    """Resolve a clip's duration, probing the source only when a fade-out needs it."""

    def __init__(
        self,
        ffprobe_path: str = "ffprobe",
        prober: Callable[[str], ProbeResult] | None = None,
    ):
        self.ffprobe_path = ffprobe_path
        self._prober = prober or self._run_ffprobe

    def _run_ffprobe(self, path: str) -> ProbeResult:
        return ffutil.probe(path, ffprobe_path=self.ffprobe_path)

    @staticmethod
    def needs_probe(clip: ClipModel) -> bool:
        return clip.clip_duration <= 0 and clip.has_fade_out

    async def resolve(self, clip: ClipModel) -> ResolvedDuration:
        if clip.clip_duration > 0:
            return ResolvedDuration(seconds=clip.clip_duration, source="trim")
        if not clip.has_fade_out:
            return UNRESOLVED

        try:
            result = await asyncio.to_thread(self._prober, clip.source_path)
        except (FileNotFoundError, ffutil.ProbeError, ffutil.FFmpegNotFoundError) as e:
            logger.warning("Probe of %s failed, fade-out disabled: %s", clip.source_path, e)
            return UNRESOLVED

        # The export runs from the seek point to the end of the file.
        remaining = result.duration - max(clip.in_point, 0.0)
        if remaining <= 0:
            logger.warning(
                "Probe of %s gave no usable duration (%.3fs), fade-out disabled",
                clip.source_path,
                result.duration,
            )
            return UNRESOLVED

        logger.info("Resolved duration of %s by probe: %.3fs", clip.source_path, remaining)
        return ResolvedDuration(seconds=remaining, source="probe")
