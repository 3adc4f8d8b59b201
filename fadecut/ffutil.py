"""FFmpeg/ffprobe subprocess helpers."""

import json
import logging
import os
import re
import shutil
import subprocess
import sys
from pathlib import Path

from fadecut.models import ProbeResult

logger = logging.getLogger(__name__)

# Install locations checked before falling back to PATH.
COMMON_LOCATIONS = {
    "win32": [
        "C:\\ffmpeg\\bin",
        "C:\\Program Files\\ffmpeg\\bin",
        "C:\\Program Files (x86)\\ffmpeg\\bin",
        os.path.join(os.environ.get("USERPROFILE", ""), "ffmpeg", "bin"),
    ],
    "darwin": ["/usr/local/bin", "/opt/homebrew/bin", "/usr/bin"],
    "linux": ["/usr/bin", "/usr/local/bin", "/snap/bin"],
}

_ERROR_PATTERNS = [
    r"Error.*",
    r"Invalid.*",
    r"No such file.*",
    r".*not found.*",
    r"Permission denied.*",
    r".*signal \d+.*",
]


class FFmpegNotFoundError(RuntimeError):
    pass


class ProbeError(RuntimeError):
    """Raised when ffprobe fails or returns unusable output."""


def check_ffmpeg(ffmpeg_path: str = "ffmpeg", ffprobe_path: str = "ffprobe") -> None:
    """Raise FFmpegNotFoundError if ffmpeg/ffprobe cannot be executed."""
    for cmd in (ffmpeg_path, ffprobe_path):
        if shutil.which(cmd) is None:
            raise FFmpegNotFoundError(f"{cmd} not found on PATH")


def is_executable_file(path: str) -> bool:
    if not path:
        return False
    p = Path(path)
    return p.is_file() and os.access(p, os.X_OK)


def find_binary(name: str, platform: str | None = None) -> str | None:
    """Locate an ffmpeg-family executable in common locations, then on PATH."""
    platform = platform or sys.platform
    key = "linux" if platform.startswith("linux") else platform
    exe = f"{name}.exe" if key == "win32" else name

    for directory in COMMON_LOCATIONS.get(key, []):
        candidate = os.path.join(directory, exe)
        if is_executable_file(candidate):
            return candidate
    return shutil.which(name)


def detect_binaries(platform: str | None = None) -> tuple[str | None, str | None]:
    """Return auto-detected (ffmpeg, ffprobe) paths; None where not found."""
    return find_binary("ffmpeg", platform), find_binary("ffprobe", platform)


def _parse_fps(rate: str | None) -> float:
    try:
        num, den = (rate or "0/1").split("/")
        if int(den) != 0:
            return int(num) / int(den)
    except (ValueError, ZeroDivisionError):
        pass
    return 0.0


def _parse_tag_duration(tag: str) -> float:
    # MKV/MTS style "HH:MM:SS.microseconds"
    parts = tag.split(":")
    return float(parts[0]) * 3600 + float(parts[1]) * 60 + float(parts[2])


def parse_duration(data: dict) -> float:
    """Best-effort duration from ffprobe JSON; 0.0 when nothing usable is present."""
    fmt = data.get("format", {})
    streams = data.get("streams", [])

    for source in [fmt, *streams]:
        raw = source.get("duration")
        if raw is None:
            continue
        try:
            duration = float(raw)
        except (ValueError, TypeError):
            continue
        if duration > 0:
            return duration

    for source in [*streams, fmt]:
        tag = source.get("tags", {}).get("DURATION")
        if not tag:
            continue
        try:
            duration = _parse_tag_duration(tag)
        except (ValueError, IndexError):
            continue
        if duration > 0:
            return duration

    return 0.0


def parse_probe_output(data: dict) -> ProbeResult:
    """Build a ProbeResult from parsed ffprobe JSON."""
    streams = data.get("streams", [])
    video_stream = next((s for s in streams if s.get("codec_type") == "video"), None)
    audio_stream = next((s for s in streams if s.get("codec_type") == "audio"), None)

    if video_stream is None and audio_stream is None:
        raise ProbeError("No audio or video stream found")

    result = ProbeResult(duration=parse_duration(data))
    try:
        if video_stream is not None:
            result.width = int(video_stream.get("width", 0))
            result.height = int(video_stream.get("height", 0))
            result.fps = round(_parse_fps(video_stream.get("r_frame_rate")), 3)
            result.codec_video = video_stream.get("codec_name", "")
        if audio_stream is not None:
            result.audio_sample_rate = int(audio_stream.get("sample_rate", 0))
            result.codec_audio = audio_stream.get("codec_name", "")
    except (ValueError, TypeError) as e:
        raise ProbeError(f"Malformed stream metadata: {e}")
    return result


def probe(input_path: str | Path, ffprobe_path: str = "ffprobe", timeout: float = 30) -> ProbeResult:
    """Extract media metadata via ffprobe.

    Raises:
        FileNotFoundError: If input_path does not exist.
        FFmpegNotFoundError: If ffprobe cannot be executed.
        ProbeError: If ffprobe fails or its output cannot be parsed.
    """
    path = Path(input_path)
    if not path.exists():
        raise FileNotFoundError(f"Media file not found: {input_path}")

    cmd = [
        ffprobe_path,
        "-v", "quiet",
        "-print_format", "json",
        "-show_format",
        "-show_streams",
        str(path),
    ]
    logger.debug("Probing %s", path)
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except FileNotFoundError:
        raise FFmpegNotFoundError(f"{ffprobe_path} not found")
    except subprocess.TimeoutExpired:
        raise ProbeError(f"ffprobe timed out after {timeout}s on {path}")
    except OSError as e:
        # Present but not runnable: permissions, wrong architecture, ...
        raise FFmpegNotFoundError(f"{ffprobe_path} could not be run: {e}")

    if result.returncode != 0:
        raise ProbeError(f"ffprobe failed (rc={result.returncode}): {result.stderr.strip()}")

    try:
        data = json.loads(result.stdout)
    except json.JSONDecodeError as e:
        raise ProbeError(f"ffprobe returned invalid JSON: {e}")

    return parse_probe_output(data)


def parse_error(stderr: str) -> str:
    """Extract the most meaningful error line from ffmpeg stderr."""
    lines = [line.strip() for line in stderr.strip().splitlines() if line.strip()]

    for line in reversed(lines):
        for pattern in _ERROR_PATTERNS:
            if re.search(pattern, line, re.IGNORECASE):
                return line

    if lines:
        return lines[-1]
    return "Unknown error"
