"""Shared test fixtures."""

import asyncio
from pathlib import Path

import pytest

from fadecut.engine import EngineExit
from fadecut.models import ClipModel, ProbeResult

FIXTURES_DIR = Path(__file__).parent / "fixtures"


class FakeProcess:
    """Stands in for EngineProcess.

    Yields ``samples`` as progress, then (when ``hold`` is set) blocks until
    released or terminated before exiting with ``returncode``.
    """

    def __init__(self, samples=(), returncode=0, stderr="", hold=False, output_path=None):
        self.samples = list(samples)
        self.pid = 4242
        self.returncode = None
        self.terminated = False
        self._final_returncode = returncode
        self._stderr = stderr
        self._output_path = output_path
        self._released = asyncio.Event()
        if not hold:
            self._released.set()

    async def progress(self):
        for sample in self.samples:
            await asyncio.sleep(0)
            yield sample
        await self._released.wait()

    async def wait(self) -> EngineExit:
        await self._released.wait()
        if self.returncode is None:
            self.returncode = self._final_returncode
            if self.returncode == 0 and self._output_path:
                Path(self._output_path).write_bytes(b"encoded")
        return EngineExit(returncode=self.returncode, stderr=self._stderr)

    def terminate(self) -> None:
        self.terminated = True
        if self.returncode is None:
            self.returncode = -15
            self._stderr += "Exiting normally, received signal 15.\n"
        self._released.set()

    def release(self) -> None:
        self._released.set()


class FakeEngine:
    """Records invocations and hands out FakeProcess instances."""

    def __init__(self, write_output=False, **process_kwargs):
        self.write_output = write_output
        self.process_kwargs = process_kwargs
        self.invocations = []
        self.processes = []

    async def launch(self, invocation):
        self.invocations.append(invocation)
        output_path = invocation.output_path if self.write_output else None
        process = FakeProcess(output_path=output_path, **self.process_kwargs)
        self.processes.append(process)
        return process


async def settle(rounds: int = 50) -> None:
    """Let pending tasks on the running loop make progress."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def sample_manifest_path() -> Path:
    return FIXTURES_DIR / "sample_manifest.json"


@pytest.fixture
def probe_result() -> ProbeResult:
    return ProbeResult(
        duration=60.0,
        width=1920,
        height=1080,
        fps=30.0,
        audio_sample_rate=48000,
        codec_video="h264",
        codec_audio="aac",
    )


@pytest.fixture
def clip() -> ClipModel:
    """A 30 second trim of a one minute source."""
    return ClipModel(source_path="video.mp4", source_duration_hint=60.0, in_point=10.0, out_point=40.0)


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()
