"""Unit tests for ffutil — probing, binary detection and error parsing."""

import json
import subprocess
from unittest.mock import MagicMock, patch

import pytest

from fadecut.ffutil import (
    FFmpegNotFoundError,
    ProbeError,
    check_ffmpeg,
    detect_binaries,
    find_binary,
    parse_duration,
    parse_error,
    probe,
)

PROBE_JSON = {
    "format": {"duration": "60.0"},
    "streams": [
        {
            "codec_type": "video",
            "codec_name": "h264",
            "width": 1920,
            "height": 1080,
            "r_frame_rate": "30000/1001",
        },
        {
            "codec_type": "audio",
            "codec_name": "aac",
            "sample_rate": "48000",
        },
    ],
}


@pytest.fixture
def media_file(tmp_path):
    path = tmp_path / "video.mp4"
    path.write_bytes(b"not really a video")
    return path


# ---------------------------------------------------------------------------
# probe (subprocess mocked)
# ---------------------------------------------------------------------------


class TestProbe:
    @patch("fadecut.ffutil.subprocess.run")
    def test_basic(self, mock_run, media_file):
        mock_run.return_value = MagicMock(returncode=0, stdout=json.dumps(PROBE_JSON))
        result = probe(media_file)
        assert result.duration == 60.0
        assert result.width == 1920
        assert result.fps == pytest.approx(29.97)
        assert result.codec_audio == "aac"
        assert result.audio_sample_rate == 48000

    @patch("fadecut.ffutil.subprocess.run")
    def test_uses_configured_binary(self, mock_run, media_file):
        mock_run.return_value = MagicMock(returncode=0, stdout=json.dumps(PROBE_JSON))
        probe(media_file, ffprobe_path="/opt/bin/ffprobe")
        cmd = mock_run.call_args.args[0]
        assert cmd[0] == "/opt/bin/ffprobe"
        assert cmd[-1] == str(media_file)

    @patch("fadecut.ffutil.subprocess.run")
    def test_audio_only_file(self, mock_run, media_file):
        data = {
            "format": {"duration": "12.5"},
            "streams": [{"codec_type": "audio", "codec_name": "mp3", "sample_rate": "44100"}],
        }
        mock_run.return_value = MagicMock(returncode=0, stdout=json.dumps(data))
        result = probe(media_file)
        assert result.has_audio
        assert not result.has_video
        assert result.width == 0

    @patch("fadecut.ffutil.subprocess.run")
    def test_no_streams(self, mock_run, media_file):
        mock_run.return_value = MagicMock(returncode=0, stdout=json.dumps({"format": {}, "streams": []}))
        with pytest.raises(ProbeError, match="No audio or video"):
            probe(media_file)

    @patch("fadecut.ffutil.subprocess.run")
    def test_nonzero_exit(self, mock_run, media_file):
        mock_run.return_value = MagicMock(returncode=1, stdout="", stderr="Invalid data found\n")
        with pytest.raises(ProbeError, match="Invalid data found"):
            probe(media_file)

    @patch("fadecut.ffutil.subprocess.run")
    def test_invalid_json(self, mock_run, media_file):
        mock_run.return_value = MagicMock(returncode=0, stdout="not json")
        with pytest.raises(ProbeError, match="invalid JSON"):
            probe(media_file)

    @patch("fadecut.ffutil.subprocess.run")
    def test_timeout(self, mock_run, media_file):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="ffprobe", timeout=30)
        with pytest.raises(ProbeError, match="timed out"):
            probe(media_file)

    @patch("fadecut.ffutil.subprocess.run")
    def test_missing_ffprobe(self, mock_run, media_file):
        mock_run.side_effect = FileNotFoundError
        with pytest.raises(FFmpegNotFoundError):
            probe(media_file)

    @patch("fadecut.ffutil.subprocess.run")
    def test_ffprobe_not_runnable(self, mock_run, media_file):
        mock_run.side_effect = PermissionError(13, "Permission denied")
        with pytest.raises(FFmpegNotFoundError, match="could not be run"):
            probe(media_file, ffprobe_path="/opt/ffprobe")

    @patch("fadecut.ffutil.subprocess.run")
    def test_malformed_stream_metadata(self, mock_run, media_file):
        data = {"format": {"duration": "5"}, "streams": [{"codec_type": "audio", "sample_rate": "N/A"}]}
        mock_run.return_value = MagicMock(returncode=0, stdout=json.dumps(data))
        with pytest.raises(ProbeError, match="Malformed"):
            probe(media_file)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            probe(tmp_path / "nope.mp4")


class TestParseDuration:
    def test_format_duration(self):
        assert parse_duration(PROBE_JSON) == 60.0

    def test_stream_duration_fallback(self):
        data = {"format": {}, "streams": [{"codec_type": "audio", "duration": "8.25"}]}
        assert parse_duration(data) == 8.25

    def test_matroska_tag(self):
        data = {
            "format": {"duration": "N/A"},
            "streams": [{"codec_type": "video", "tags": {"DURATION": "00:01:30.500000000"}}],
        }
        assert parse_duration(data) == pytest.approx(90.5)

    def test_nothing_usable(self):
        assert parse_duration({"format": {"duration": "0"}, "streams": []}) == 0.0


# ---------------------------------------------------------------------------
# binary detection
# ---------------------------------------------------------------------------


class TestFindBinary:
    @patch("fadecut.ffutil.is_executable_file")
    def test_common_location_first(self, mock_exec):
        mock_exec.side_effect = lambda path: path == "/usr/local/bin/ffmpeg"
        assert find_binary("ffmpeg", platform="linux") == "/usr/local/bin/ffmpeg"

    @patch("fadecut.ffutil.shutil.which", return_value="/home/me/bin/ffprobe")
    @patch("fadecut.ffutil.is_executable_file", return_value=False)
    def test_path_fallback(self, mock_exec, mock_which):
        assert find_binary("ffprobe", platform="darwin") == "/home/me/bin/ffprobe"
        mock_which.assert_called_once_with("ffprobe")

    @patch("fadecut.ffutil.is_executable_file")
    def test_windows_exe_suffix(self, mock_exec):
        mock_exec.side_effect = lambda path: path.endswith("ffmpeg.exe")
        assert find_binary("ffmpeg", platform="win32").endswith("ffmpeg.exe")

    @patch("fadecut.ffutil.shutil.which", return_value=None)
    @patch("fadecut.ffutil.is_executable_file", return_value=False)
    def test_not_found(self, mock_exec, mock_which):
        assert detect_binaries("linux") == (None, None)

    @patch("fadecut.ffutil.shutil.which", return_value=None)
    def test_check_ffmpeg(self, mock_which):
        with pytest.raises(FFmpegNotFoundError):
            check_ffmpeg()


# ---------------------------------------------------------------------------
# parse_error
# ---------------------------------------------------------------------------


class TestParseError:
    def test_last_matching_line(self):
        stderr = "Input #0, mov\nError while decoding stream\nframe=  100 fps=25\n"
        assert parse_error(stderr) == "Error while decoding stream"

    def test_signal_line(self):
        assert parse_error("frame=1\nExiting normally, received signal 15.\n") == (
            "Exiting normally, received signal 15."
        )

    def test_falls_back_to_last_line(self):
        assert parse_error("something odd\nconversion failed!\n") == "conversion failed!"

    def test_empty(self):
        assert parse_error("") == "Unknown error"
