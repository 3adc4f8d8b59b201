"""One-click export presets that work on a whole file."""

from fadecut.models import ClipModel, ExportType

QUICK_FADE_VIDEO_IN = 6.0
QUICK_FADE_VIDEO_OUT = 3.0
QUICK_FADE_AUDIO_IN = 3.0
QUICK_FADE_AUDIO_OUT = 3.0


def quick_fade(input_path: str) -> ClipModel:
    """Fade the whole file in and out.

    The trim is left open, so the export probes the file for the duration
    the fade-outs are anchored to.
    """
    return ClipModel(
        source_path=str(input_path),
        video_fade_in=QUICK_FADE_VIDEO_IN,
        video_fade_out=QUICK_FADE_VIDEO_OUT,
        audio_fade_in=QUICK_FADE_AUDIO_IN,
        audio_fade_out=QUICK_FADE_AUDIO_OUT,
    )


def audio_rip(input_path: str) -> ClipModel:
    """Extract the whole soundtrack to WAV."""
    return ClipModel(source_path=str(input_path), export_type=ExportType.AUDIO)
