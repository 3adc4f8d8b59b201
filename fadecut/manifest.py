"""JSON export manifest — the contract between CLI/API and the export pipeline."""

import json
from dataclasses import dataclass, field
from pathlib import Path

from fadecut.models import EXPORT_SIZES, ClipModel, ExportQuality, ExportType


@dataclass
class VideoEffects:
    """Video fades and black lead-in, in seconds."""

    fade_in: float = 0.0
    fade_out: float = 0.0
    black_screen: float = 0.0


@dataclass
class AudioEffects:
    """Audio fades and silent lead-in, in seconds."""

    fade_in: float = 0.0
    fade_out: float = 0.0
    silence: float = 0.0


@dataclass
class Manifest:
    """Top-level export manifest."""

    input: Path
    output: Path
    version: str = "1"
    in_point: float = 0.0
    out_point: float = 0.0
    video: VideoEffects = field(default_factory=VideoEffects)
    audio: AudioEffects = field(default_factory=AudioEffects)
    quality: str = "high"
    size: int = 100
    type: str = "video"

    def to_clip(self, duration_hint: float | None = None) -> ClipModel:
        return ClipModel(
            source_path=str(self.input),
            source_duration_hint=duration_hint,
            in_point=self.in_point,
            out_point=self.out_point,
            video_fade_in=self.video.fade_in,
            video_fade_out=self.video.fade_out,
            audio_fade_in=self.audio.fade_in,
            audio_fade_out=self.audio.fade_out,
            silence_at_start=self.audio.silence,
            black_screen_at_start=self.video.black_screen,
            export_quality=ExportQuality(self.quality),
            export_size=self.size,
            export_type=ExportType(self.type),
        )


def load_manifest(path: str | Path) -> Manifest:
    """Load and validate a manifest from a JSON file."""
    path = Path(path)
    data = json.loads(path.read_text())

    if "input" not in data or "output" not in data:
        raise ValueError("Manifest must contain 'input' and 'output' fields")

    video = VideoEffects(**data["video"]) if "video" in data else VideoEffects()
    audio = AudioEffects(**data["audio"]) if "audio" in data else AudioEffects()

    quality = data.get("quality", "high")
    export_type = data.get("type", "video")
    if quality not in {q.value for q in ExportQuality}:
        raise ValueError(f"Unknown quality {quality!r}")
    if export_type not in {t.value for t in ExportType}:
        raise ValueError(f"Unknown export type {export_type!r}")
    size = int(data.get("size", 100))
    if size not in EXPORT_SIZES:
        raise ValueError(f"Unknown export size {size!r}; expected one of {EXPORT_SIZES}")

    return Manifest(
        version=data.get("version", "1"),
        input=Path(data["input"]),
        output=Path(data["output"]),
        in_point=float(data.get("in_point", 0.0)),
        out_point=float(data.get("out_point", 0.0)),
        video=video,
        audio=audio,
        quality=quality,
        size=size,
        type=export_type,
    )
