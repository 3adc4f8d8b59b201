"""FFmpeg transcode engine: command construction and process supervision."""

import asyncio
import logging
import math
import shlex
from collections import deque
from dataclasses import dataclass
from typing import AsyncIterator

from fadecut.ffutil import FFmpegNotFoundError
from fadecut.filters import CompiledGraph, render_chain

logger = logging.getLogger(__name__)

STDERR_TAIL_LINES = 200


@dataclass(frozen=True)
class EngineInvocation:
    """Everything ffmpeg needs to produce one export."""

    input_path: str
    output_path: str
    graph: CompiledGraph
    seek: float = 0.0
    duration: float | None = None
    # Length of the produced file, used to turn ffmpeg's out_time into a percentage.
    expected_duration: float | None = None

    def to_args(self, ffmpeg_path: str = "ffmpeg") -> list[str]:
        args = [ffmpeg_path, "-y", "-progress", "pipe:1", "-nostats"]

        if self.seek > 0:
            args.extend(["-ss", f"{self.seek:.3f}"])
        args.extend(["-i", self.input_path])
        if self.duration is not None and self.duration > 0:
            args.extend(["-t", f"{self.duration:.3f}"])

        profile = self.graph.profile
        if profile.no_video:
            args.append("-vn")
        else:
            vf = render_chain(self.graph.video_filters)
            if vf:
                args.extend(["-vf", vf])
            if profile.video_codec:
                args.extend(["-c:v", profile.video_codec])
            if profile.video_bitrate:
                args.extend(["-b:v", profile.video_bitrate])

        af = render_chain(self.graph.audio_filters)
        if af:
            args.extend(["-af", af])
        if profile.audio_codec:
            args.extend(["-c:a", profile.audio_codec])

        args.append(self.output_path)
        return args


@dataclass(frozen=True)
class EngineExit:
    returncode: int
    stderr: str

    @property
    def success(self) -> bool:
        return self.returncode == 0


def parse_out_time(key: str, value: str) -> float | None:
    """Seconds from an ffmpeg ``-progress`` time key, or None if not a time key."""
    if key in ("out_time_us", "out_time_ms"):
        # ffmpeg reports both keys in microseconds.
        try:
            return int(value) / 1_000_000
        except ValueError:
            return None
    if key == "out_time":
        try:
            h, m, s = value.split(":")
            return int(h) * 3600 + int(m) * 60 + float(s)
        except ValueError:
            return None
    return None


class EngineProcess:
    """Handle to a running ffmpeg process.

    Must be created inside a running event loop: stderr is drained in a
    background task so the pipe never fills up.
    """

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        expected_duration: float | None = None,
    ):
        self._process = process
        self._expected = expected_duration
        self._stderr: deque[str] = deque(maxlen=STDERR_TAIL_LINES)
        self._stderr_task = asyncio.create_task(self._drain_stderr())

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def returncode(self) -> int | None:
        return self._process.returncode

    async def _drain_stderr(self) -> None:
        while True:
            line = await self._process.stderr.readline()
            if not line:
                break
            self._stderr.append(line.decode(errors="replace"))

    def _percent(self, seconds: float | None) -> float:
        if seconds is None or not self._expected or self._expected <= 0:
            return math.nan
        return min(100.0, seconds / self._expected * 100)

    async def progress(self) -> AsyncIterator[float]:
        """Yield a percentage for every ffmpeg progress block.

        Samples are NaN when the output length is unknown; consumers are
        expected to filter them.
        """
        seconds: float | None = None
        while True:
            line = await self._process.stdout.readline()
            if not line:
                break
            text = line.decode(errors="replace").strip()
            if "=" not in text:
                continue
            key, value = text.split("=", 1)
            parsed = parse_out_time(key, value)
            if parsed is not None:
                seconds = parsed
            elif key == "progress":
                yield 100.0 if value == "end" else self._percent(seconds)

    async def wait(self) -> EngineExit:
        returncode = await self._process.wait()
        await self._stderr_task
        return EngineExit(returncode=returncode, stderr="".join(self._stderr))

    def terminate(self) -> None:
        """Ask ffmpeg to stop. Returns immediately; use :meth:`wait` to reap."""
        if self._process.returncode is not None:
            return
        try:
            self._process.terminate()
        except ProcessLookupError:
            pass


class FFmpegEngine:
    """Launches ffmpeg for an :class:`EngineInvocation`."""

    def __init__(self, ffmpeg_path: str = "ffmpeg"):
        self.ffmpeg_path = ffmpeg_path

    async def launch(self, invocation: EngineInvocation) -> EngineProcess:
        args = invocation.to_args(self.ffmpeg_path)
        logger.debug("Spawning ffmpeg: %s", shlex.join(args))
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            raise FFmpegNotFoundError(f"{self.ffmpeg_path} not found")
        except OSError as e:
            raise FFmpegNotFoundError(f"{self.ffmpeg_path} could not be run: {e}")
        return EngineProcess(process, expected_duration=invocation.expected_duration)
