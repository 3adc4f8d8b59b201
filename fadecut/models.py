"""Shared data types used across FadeCut."""

from dataclasses import asdict, dataclass, fields, replace
from enum import Enum

# Minimum distance between the in and out points, in seconds.
MIN_CLIP_SEPARATION = 0.1

EXPORT_SIZES = (25, 50, 75, 100)


class ExportQuality(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ExportType(str, Enum):
    VIDEO = "video"
    AUDIO = "audio"


@dataclass
class ProbeResult:
    """Metadata extracted from a media file via ffprobe."""

    duration: float
    width: int = 0
    height: int = 0
    fps: float = 0.0
    audio_sample_rate: int = 0
    codec_video: str | None = None
    codec_audio: str | None = None

    @property
    def has_video(self) -> bool:
        return self.codec_video is not None

    @property
    def has_audio(self) -> bool:
        return self.codec_audio is not None


FADE_FIELDS = ("video_fade_in", "video_fade_out", "audio_fade_in", "audio_fade_out")


@dataclass(frozen=True)
class ClipModel:
    """Trim range and export effects for one source file.

    Instances are immutable; every edit produces a new model via
    :meth:`replace`. ``out_point <= in_point`` means the trim length is not
    known yet (whole-file presets); such a model fails :meth:`validate` but
    the export pipeline accepts it and probes for the duration.
    """

    source_path: str
    source_duration_hint: float | None = None
    in_point: float = 0.0
    out_point: float = 0.0
    video_fade_in: float = 0.0
    video_fade_out: float = 0.0
    audio_fade_in: float = 0.0
    audio_fade_out: float = 0.0
    silence_at_start: float = 0.0
    black_screen_at_start: float = 0.0
    export_quality: ExportQuality = ExportQuality.HIGH
    export_size: int = 100
    export_type: ExportType = ExportType.VIDEO

    @classmethod
    def from_probe(cls, source_path: str, probe: ProbeResult) -> "ClipModel":
        # ffprobe reports 0 when it cannot read a duration; keep it unknown.
        duration = probe.duration if probe.duration > 0 else None
        return cls(
            source_path=source_path,
            source_duration_hint=duration,
            in_point=0.0,
            out_point=duration or 0.0,
        )

    @property
    def clip_duration(self) -> float:
        return self.out_point - self.in_point

    @property
    def max_fade(self) -> float:
        """Longest fade allowed by the current trim (half the clip)."""
        return max(self.clip_duration, 0.0) / 2

    @property
    def has_fade_out(self) -> bool:
        return self.video_fade_out > 0 or self.audio_fade_out > 0

    def replace(self, **changes) -> "ClipModel":
        return replace(self, **changes)

    def validate(self) -> list[str]:
        """Return a list of violated invariants; empty means the model is valid."""
        errors: list[str] = []

        if self.in_point < 0:
            errors.append(f"in_point must be >= 0, got {self.in_point}")
        if self.in_point >= self.out_point:
            errors.append(
                f"in_point ({self.in_point}) must be before out_point ({self.out_point})"
            )
        hint = self.source_duration_hint
        if hint is not None and hint > 0 and self.out_point > hint:
            errors.append(f"out_point ({self.out_point}) exceeds source duration ({hint})")

        for name in FADE_FIELDS:
            value = getattr(self, name)
            if value < 0:
                errors.append(f"{name} must be >= 0, got {value}")
            elif value > self.max_fade:
                errors.append(
                    f"{name} ({value}) exceeds half the clip duration ({self.max_fade})"
                )

        for name in ("silence_at_start", "black_screen_at_start"):
            value = getattr(self, name)
            if value < 0:
                errors.append(f"{name} must be >= 0, got {value}")

        if not isinstance(self.export_quality, ExportQuality):
            errors.append(f"unknown export_quality {self.export_quality!r}")
        if self.export_size not in EXPORT_SIZES:
            errors.append(f"export_size must be one of {EXPORT_SIZES}, got {self.export_size}")
        if not isinstance(self.export_type, ExportType):
            errors.append(f"unknown export_type {self.export_type!r}")

        return errors

    @property
    def is_valid(self) -> bool:
        return not self.validate()

    def to_snapshot(self) -> dict:
        """Session snapshot as plain JSON-serializable values."""
        data = asdict(self)
        data["export_quality"] = self.export_quality.value
        data["export_type"] = self.export_type.value
        return data

    @classmethod
    def from_snapshot(cls, data: dict) -> "ClipModel":
        """Rebuild a model from a snapshot, ignoring unknown keys."""
        if not data.get("source_path"):
            raise ValueError("Session snapshot has no source_path")

        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}

        for name in ("in_point", "out_point", "silence_at_start", "black_screen_at_start") + FADE_FIELDS:
            if name in values:
                values[name] = float(values[name])
        if values.get("source_duration_hint") is not None:
            values["source_duration_hint"] = float(values["source_duration_hint"])
        if "export_quality" in values:
            values["export_quality"] = ExportQuality(values["export_quality"])
        if "export_type" in values:
            values["export_type"] = ExportType(values["export_type"])
        if "export_size" in values:
            values["export_size"] = int(values["export_size"])

        return cls(**values)
