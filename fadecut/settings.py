"""Settings and session snapshot persistence (JSON files under ~/.fadecut)."""

import json
import logging
from dataclasses import asdict, dataclass
from pathlib import Path

from fadecut import ffutil
from fadecut.models import ClipModel

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path.home() / ".fadecut"
DEFAULT_SETTINGS_PATH = DEFAULT_CONFIG_DIR / "settings.json"
DEFAULT_SESSION_PATH = DEFAULT_CONFIG_DIR / "session.json"


@dataclass
class Settings:
    # Empty means "auto-detect"
    ffmpeg_path: str = ""
    ffprobe_path: str = ""
    auto_detect_paths: bool = True
    last_used_directory: str = ""

    def save(self, path: Path | None = None) -> None:
        path = path or DEFAULT_SETTINGS_PATH
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(asdict(self), indent=2))

    @classmethod
    def load(cls, path: Path | None = None) -> "Settings":
        path = path or DEFAULT_SETTINGS_PATH
        if not path.exists():
            return cls()
        try:
            data = json.loads(path.read_text())
            return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})
        except (json.JSONDecodeError, TypeError, AttributeError):
            logger.warning("Ignoring unreadable settings file %s", path)
            return cls()

    def resolved_binaries(self) -> tuple[str, str]:
        """Return (ffmpeg, ffprobe): configured paths, then detected, then bare names."""
        ffmpeg, ffprobe = self.ffmpeg_path, self.ffprobe_path
        if self.auto_detect_paths and not (ffmpeg and ffprobe):
            detected_ffmpeg, detected_ffprobe = ffutil.detect_binaries()
            ffmpeg = ffmpeg or detected_ffmpeg or ""
            ffprobe = ffprobe or detected_ffprobe or ""
        return ffmpeg or "ffmpeg", ffprobe or "ffprobe"


class SessionStore:
    """Persists the current ClipModel so an interrupted session can be restored."""

    def __init__(self, path: Path | None = None):
        self.path = path or DEFAULT_SESSION_PATH

    def save(self, clip: ClipModel) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(clip.to_snapshot(), indent=2))

    def load(self) -> ClipModel | None:
        """Return the saved clip, or None when there is nothing usable to restore."""
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text())
            return ClipModel.from_snapshot(data)
        except (json.JSONDecodeError, TypeError, ValueError, AttributeError) as e:
            logger.warning("Discarding unreadable session %s: %s", self.path, e)
            return None

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)
