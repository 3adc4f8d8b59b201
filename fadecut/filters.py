"""Filter graph compiler: ClipModel + duration -> ordered ffmpeg filter chains.

The compiler is pure. Filters are typed descriptors; they only become ffmpeg
filter strings through :func:`render_chain` when the engine builds its
command line.

Ordering matters. For a video export the chain is::

    tpad (black lead-in) -> fade in -> fade out -> scale

and the audio chain is::

    adelay (silence) -> afade in -> afade out -> adelay (black lead-in)

The trailing audio delay keeps the audio aligned with the padded video.
"""

import logging
from dataclasses import dataclass
from typing import Union

from fadecut.models import FADE_FIELDS, ClipModel, ExportQuality, ExportType

logger = logging.getLogger(__name__)

QUALITY_BITRATES = {
    ExportQuality.LOW: "800k",
    ExportQuality.MEDIUM: "2000k",
    ExportQuality.HIGH: "4000k",
}

VIDEO_CODEC = "libx264"
WAV_CODEC = "pcm_s16le"


class GraphConfigError(ValueError):
    """Raised when effect values cannot produce a valid filter graph."""


def _num(value: float) -> str:
    """Render a number the way ffmpeg users write it: 2, 0.5, 31.25."""
    text = f"{value:.3f}".rstrip("0").rstrip(".")
    return "0" if text in ("", "-0") else text


@dataclass(frozen=True)
class HoldBlack:
    """Prepend ``duration`` seconds of black frames."""

    duration: float

    def render(self) -> str:
        return f"tpad=start_duration={_num(self.duration)}:start_mode=add:color=black"


@dataclass(frozen=True)
class Fade:
    """Linear fade of picture or volume."""

    direction: str  # "in" or "out"
    start: float
    duration: float
    audio: bool = False

    def render(self) -> str:
        name = "afade" if self.audio else "fade"
        return f"{name}=t={self.direction}:st={_num(self.start)}:d={_num(self.duration)}"


@dataclass(frozen=True)
class Scale:
    """Scale both dimensions by ``factor``."""

    factor: float

    def render(self) -> str:
        f = _num(self.factor)
        return f"scale=iw*{f}:ih*{f}"


@dataclass(frozen=True)
class Delay:
    """Delay all audio channels by ``seconds``."""

    seconds: float

    def render(self) -> str:
        ms = int(self.seconds * 1000 + 0.5)
        return f"adelay={ms}|{ms}"


Effect = Union[HoldBlack, Fade, Scale, Delay]


@dataclass(frozen=True)
class OutputProfile:
    """Codec and container settings for the output file."""

    container: str
    audio_codec: str | None = None
    video_codec: str | None = None
    video_bitrate: str | None = None
    no_video: bool = False

    @property
    def extension(self) -> str:
        return f".{self.container}"


WAV_PROFILE = OutputProfile(container="wav", audio_codec=WAV_CODEC, no_video=True)


@dataclass(frozen=True)
class CompiledGraph:
    video_filters: tuple[Effect, ...]
    audio_filters: tuple[Effect, ...]
    profile: OutputProfile

    @property
    def lead_in(self) -> float:
        """Seconds added in front of the clip content by lead-in effects."""
        video = sum(f.duration for f in self.video_filters if isinstance(f, HoldBlack))
        audio = sum(f.seconds for f in self.audio_filters if isinstance(f, Delay))
        return max(video, audio)

    def has_fade_out(self) -> bool:
        return any(
            isinstance(f, Fade) and f.direction == "out"
            for f in (*self.video_filters, *self.audio_filters)
        )


def render_chain(effects: tuple[Effect, ...] | list[Effect]) -> str:
    """Join effects into an ffmpeg ``-vf``/``-af`` argument."""
    return ",".join(effect.render() for effect in effects)


def video_profile(quality: ExportQuality) -> OutputProfile:
    return OutputProfile(
        container="mp4",
        video_codec=VIDEO_CODEC,
        video_bitrate=QUALITY_BITRATES[ExportQuality(quality)],
    )


def _check_values(clip: ClipModel) -> None:
    for name in FADE_FIELDS + ("silence_at_start", "black_screen_at_start"):
        if getattr(clip, name) < 0:
            raise GraphConfigError(f"{name} must be >= 0, got {getattr(clip, name)}")


def _fade_out(length: float, end: float | None, audio: bool = False) -> list[Fade]:
    """Fade-out ending at ``end``; dropped when the end time is unknown."""
    if length <= 0:
        return []
    if end is None:
        logger.warning("Dropping %s fade-out: clip duration unresolved", "audio" if audio else "video")
        return []
    start = end - length
    if start < 0:
        raise GraphConfigError(f"Fade-out of {length}s is longer than the clip ({end}s)")
    return [Fade("out", start, length, audio=audio)]


def compile_graph(clip: ClipModel, duration: float | None) -> CompiledGraph:
    """Compile the clip's effects into ordered video and audio filter chains.

    Args:
        clip: The clip to export.
        duration: Resolved clip duration in seconds, or None when unknown.
            Fade-outs need it and are dropped without it.

    Raises:
        GraphConfigError: On negative effect values or a fade-out longer
            than the resolved duration.
    """
    _check_values(clip)
    if duration is not None and duration <= 0:
        duration = None

    video: list[Effect] = []
    if clip.export_type == ExportType.AUDIO:
        profile = WAV_PROFILE
    else:
        profile = video_profile(clip.export_quality)

        black = clip.black_screen_at_start
        if black > 0:
            video.append(HoldBlack(black))
        if clip.video_fade_in > 0:
            video.append(Fade("in", black, clip.video_fade_in))
        video.extend(
            _fade_out(clip.video_fade_out, None if duration is None else black + duration)
        )
        if clip.export_size != 100:
            video.append(Scale(clip.export_size / 100))

    audio: list[Effect] = []
    silence = clip.silence_at_start
    if silence > 0:
        audio.append(Delay(silence))
    if clip.audio_fade_in > 0:
        audio.append(Fade("in", silence, clip.audio_fade_in, audio=True))
    audio.extend(_fade_out(clip.audio_fade_out, duration, audio=True))
    if clip.export_type == ExportType.VIDEO and clip.black_screen_at_start > 0:
        audio.append(Delay(clip.black_screen_at_start))

    return CompiledGraph(video_filters=tuple(video), audio_filters=tuple(audio), profile=profile)
