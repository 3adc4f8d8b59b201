"""FadeCut — trim a media file and re-encode it with fades via ffmpeg."""

__version__ = "0.1.0"
