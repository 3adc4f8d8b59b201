"""In/out point editing with the clip invariants enforced on every commit."""

import logging
import re
from dataclasses import dataclass
from typing import Callable

from fadecut.models import (
    EXPORT_SIZES,
    FADE_FIELDS,
    MIN_CLIP_SEPARATION,
    ClipModel,
    ExportQuality,
    ExportType,
)

logger = logging.getLogger(__name__)

_TIMECODE_RE = re.compile(r"^(?:(?:(\d+):)?(\d+):)?(\d+(?:\.\d*)?)$")


def format_timecode(seconds: float) -> str:
    """Format seconds as ``HH:MM:SS.ss``."""
    seconds = max(seconds, 0.0)
    h = int(seconds // 3600)
    m = int((seconds % 3600) // 60)
    s = seconds % 60
    return f"{h:02d}:{m:02d}:{s:05.2f}"


def parse_timecode(text: str) -> float:
    """Parse ``HH:MM:SS.ss``, ``MM:SS.ss`` or plain seconds."""
    match = _TIMECODE_RE.match(text.strip())
    if match is None:
        raise ValueError(f"Invalid time code: {text!r}")
    hours, minutes, secs = match.groups()
    return int(hours or 0) * 3600 + int(minutes or 0) * 60 + float(secs)


@dataclass
class TrackGeometry:
    """Horizontal extent of a timeline track in pointer coordinates."""

    left: float
    width: float
    margin: float = 0.0


def pointer_to_time(x: float, track: TrackGeometry, duration: float | None) -> float:
    """Map a pointer x-coordinate to a time by linear interpolation over the track."""
    usable = track.width - 2 * track.margin
    if not duration or usable <= 0:
        return 0.0
    fraction = (x - track.left - track.margin) / usable
    return min(max(fraction, 0.0), 1.0) * duration


class TimelineGuard:
    """Clamp proposed edits so the committed ClipModel stays valid.

    Every mutation goes through :meth:`_commit`, which calls ``on_commit``
    with the new model (the session store hooks in here). While the source
    duration is unknown, in/out values pass through with only a 0 floor and
    are re-validated by :meth:`set_duration`.
    """

    def __init__(
        self,
        clip: ClipModel,
        on_commit: Callable[[ClipModel], None] | None = None,
    ):
        self._clip = clip
        self._on_commit = on_commit

    @property
    def clip(self) -> ClipModel:
        return self._clip

    @property
    def duration(self) -> float | None:
        """Known source duration, or None while it is unknown."""
        hint = self._clip.source_duration_hint
        return hint if hint is not None and hint > 0 else None

    # --- in/out points ---

    def set_in_point(self, t: float) -> ClipModel:
        if self.duration is not None:
            t = min(t, self._clip.out_point - MIN_CLIP_SEPARATION)
        return self._commit(in_point=max(t, 0.0))

    def set_out_point(self, t: float) -> ClipModel:
        t = max(t, 0.0)
        if self.duration is not None:
            t = min(max(t, self._clip.in_point + MIN_CLIP_SEPARATION), self.duration)
        return self._commit(out_point=t)

    def nudge_in(self, delta: float) -> ClipModel:
        return self.set_in_point(self._clip.in_point + delta)

    def nudge_out(self, delta: float) -> ClipModel:
        return self.set_out_point(self._clip.out_point + delta)

    def drag_in(self, x: float, track: TrackGeometry) -> ClipModel:
        return self.set_in_point(pointer_to_time(x, track, self.duration))

    def drag_out(self, x: float, track: TrackGeometry) -> ClipModel:
        return self.set_out_point(pointer_to_time(x, track, self.duration))

    def set_in_point_text(self, text: str) -> ClipModel:
        return self.set_in_point(parse_timecode(text))

    def set_out_point_text(self, text: str) -> ClipModel:
        return self.set_out_point(parse_timecode(text))

    def reset_points(self) -> ClipModel:
        """Clear the trim back to the full source."""
        return self._commit(in_point=0.0, out_point=self.duration or 0.0)

    def set_duration(self, duration: float) -> ClipModel:
        """Record the probed source duration and re-clamp the points to it."""
        if duration <= 0:
            raise ValueError(f"duration must be positive, got {duration}")

        out_point = self._clip.out_point
        if out_point <= 0 or out_point > duration:
            out_point = duration
        in_point = max(min(self._clip.in_point, out_point - MIN_CLIP_SEPARATION), 0.0)
        if out_point < in_point + MIN_CLIP_SEPARATION:
            out_point = min(in_point + MIN_CLIP_SEPARATION, duration)

        return self._commit(
            source_duration_hint=duration, in_point=in_point, out_point=out_point
        )

    # --- effects ---

    def set_fade(self, name: str, value: float) -> ClipModel:
        if name not in FADE_FIELDS:
            raise ValueError(f"Unknown fade {name!r}; expected one of {FADE_FIELDS}")
        return self._commit(**{name: self._clamp_fade(value, self._clip)})

    def set_silence_at_start(self, seconds: float) -> ClipModel:
        return self._commit(silence_at_start=max(seconds, 0.0))

    def set_black_screen_at_start(self, seconds: float) -> ClipModel:
        return self._commit(black_screen_at_start=max(seconds, 0.0))

    def set_export_quality(self, quality: str | ExportQuality) -> ClipModel:
        return self._commit(export_quality=ExportQuality(quality))

    def set_export_size(self, size: int) -> ClipModel:
        size = int(size)
        if size not in EXPORT_SIZES:
            raise ValueError(f"export_size must be one of {EXPORT_SIZES}, got {size}")
        return self._commit(export_size=size)

    def set_export_type(self, export_type: str | ExportType) -> ClipModel:
        return self._commit(export_type=ExportType(export_type))

    # --- internals ---

    @staticmethod
    def _clamp_fade(value: float, clip: ClipModel) -> float:
        value = max(value, 0.0)
        if clip.clip_duration > 0:
            value = min(value, clip.max_fade)
        return value

    def _commit(self, **changes) -> ClipModel:
        clip = self._clip.replace(**changes)

        # Shrinking the trim can leave fades longer than half the new clip.
        if "in_point" in changes or "out_point" in changes:
            clip = clip.replace(
                **{name: self._clamp_fade(getattr(clip, name), clip) for name in FADE_FIELDS}
            )

        self._clip = clip
        logger.debug("Committed clip %s", clip)
        if self._on_commit is not None:
            self._on_commit(clip)
        return clip
