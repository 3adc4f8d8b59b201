"""Single-flight export job management.

One :class:`ExportJobManager` owns at most one active export. A job moves
through::

    IDLE -> PROBING (only when a fade-out needs the probed duration)
         -> RUNNING -> SUCCEEDED | FAILED | CANCELLED

and ``cancel()`` takes PROBING/RUNNING through CANCELLING to CANCELLED
without waiting for ffmpeg to exit. Observers receive :class:`JobEvent`
objects synchronously, in emission order; invalid or stale progress samples
are dropped rather than delivered.
"""

import asyncio
import itertools
import logging
import math
import signal
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Protocol

from fadecut.duration import DurationResolver, ResolvedDuration
from fadecut.engine import EngineExit, EngineInvocation, EngineProcess, FFmpegEngine
from fadecut.ffutil import parse_error
from fadecut.filters import CompiledGraph, compile_graph
from fadecut.models import ClipModel

logger = logging.getLogger(__name__)

CANCEL_MARKERS = ("sigterm", "signal 15", "cancelled", "canceled")
CANCELLED_REASON = "Export was cancelled by user"


class JobState(str, Enum):
    IDLE = "idle"
    PROBING = "probing"
    RUNNING = "running"
    CANCELLING = "cancelling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_active(self) -> bool:
        return self in (JobState.PROBING, JobState.RUNNING, JobState.CANCELLING)

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.SUCCEEDED, JobState.FAILED, JobState.CANCELLED)


class MissingParameterError(ValueError):
    """Raised when an export is requested without an input or output path."""


class JobAlreadyActiveError(RuntimeError):
    """Raised when start() is called while another export is in flight."""


class Engine(Protocol):
    async def launch(self, invocation: EngineInvocation) -> EngineProcess: ...


@dataclass(frozen=True)
class JobResult:
    state: JobState
    output_path: str
    reason: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.state == JobState.SUCCEEDED


@dataclass(frozen=True)
class CancelResult:
    cancelled: bool
    message: str


@dataclass(frozen=True)
class JobEvent:
    kind: str  # probing, started, progress, cancelled, succeeded, failed
    job_id: int
    percent: float | None = None
    output_path: str | None = None
    reason: str | None = None


@dataclass
class ExportJob:
    job_id: int
    clip: ClipModel
    output_path: str
    state: JobState = JobState.IDLE
    graph: CompiledGraph | None = None
    duration: ResolvedDuration | None = None
    progress_percent: float = 0.0
    process: EngineProcess | None = None
    result: JobResult | None = None
    done: asyncio.Future | None = field(default=None, repr=False)


class JobHandle:
    """Caller's view of a started job."""

    def __init__(self, job: ExportJob, task: asyncio.Task):
        self._job = job
        self._task = task

    @property
    def job_id(self) -> int:
        return self._job.job_id

    @property
    def state(self) -> JobState:
        return self._job.state

    @property
    def progress_percent(self) -> float:
        return self._job.progress_percent

    @property
    def graph(self) -> CompiledGraph | None:
        return self._job.graph

    @property
    def result(self) -> JobResult | None:
        return self._job.result

    async def wait(self) -> JobResult:
        return await asyncio.shield(self._job.done)


def classify_exit(engine_exit: EngineExit, output_path: str) -> JobResult:
    """Map an ffmpeg exit to SUCCEEDED, CANCELLED or FAILED.

    A termination signal or a cancellation marker in stderr means the
    process was stopped from outside, which is reported as CANCELLED.
    """
    if engine_exit.success:
        return JobResult(JobState.SUCCEEDED, output_path)

    reason = parse_error(engine_exit.stderr)
    killed = engine_exit.returncode == -signal.SIGTERM
    marked = any(marker in reason.lower() for marker in CANCEL_MARKERS)
    if killed or marked:
        return JobResult(JobState.CANCELLED, output_path, reason=CANCELLED_REASON)
    return JobResult(
        JobState.FAILED,
        output_path,
        reason=f"ffmpeg failed (rc={engine_exit.returncode}): {reason}",
    )


def is_valid_percent(value) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
        and 0 <= value <= 100
    )


class ExportJobManager:
    """Owns the one in-flight export and relays its progress.

    All methods must be called from the thread running the event loop.
    """

    def __init__(
        self,
        resolver: DurationResolver | None = None,
        engine: Engine | None = None,
    ):
        self._resolver = resolver or DurationResolver()
        self._engine = engine or FFmpegEngine()
        self._active: ExportJob | None = None
        self._last: ExportJob | None = None
        self._observers: list[Callable[[JobEvent], None]] = []
        self._ids = itertools.count(1)

    # --- observers ---

    def subscribe(self, callback: Callable[[JobEvent], None]) -> Callable[[], None]:
        """Register an observer; returns a function that unsubscribes it."""
        self._observers.append(callback)

        def unsubscribe() -> None:
            if callback in self._observers:
                self._observers.remove(callback)

        return unsubscribe

    def _emit(self, event: JobEvent) -> None:
        for callback in list(self._observers):
            try:
                callback(event)
            except Exception:
                logger.exception("Export observer %r failed on %s", callback, event.kind)

    # --- state ---

    @property
    def state(self) -> JobState:
        return self._active.state if self._active else JobState.IDLE

    @property
    def active_job(self) -> ExportJob | None:
        return self._active

    @property
    def last_job(self) -> ExportJob | None:
        return self._last

    def _is_current(self, job: ExportJob) -> bool:
        return self._active is job and not job.state.is_terminal

    # --- operations ---

    def start(self, clip: ClipModel, output_path: str) -> JobHandle:
        """Begin an export; rejects synchronously without touching state.

        Raises:
            MissingParameterError: No source or output path.
            JobAlreadyActiveError: Another export is still active.
        """
        if not clip.source_path:
            raise MissingParameterError("Input path is required")
        if not output_path:
            raise MissingParameterError("Output path is required")
        if self._active is not None and self._active.state.is_active:
            raise JobAlreadyActiveError(
                f"Export {self._active.job_id} is already {self._active.state.value}"
            )

        loop = asyncio.get_running_loop()
        job = ExportJob(job_id=next(self._ids), clip=clip, output_path=str(output_path))
        job.done = loop.create_future()
        job.state = JobState.PROBING if self._resolver.needs_probe(clip) else JobState.RUNNING
        self._active = job
        self._last = job

        logger.info("Export %d: %s -> %s", job.job_id, clip.source_path, job.output_path)
        task = loop.create_task(self._run(job))
        return JobHandle(job, task)

    def cancel(self) -> CancelResult:
        job = self._active
        if job is None or not job.state.is_active:
            return CancelResult(False, "No active export to cancel")

        job.state = JobState.CANCELLING
        logger.info("Export %d: cancelling", job.job_id)
        if job.process is not None:
            job.process.terminate()
        self._finish(job, JobResult(JobState.CANCELLED, job.output_path, CANCELLED_REASON))
        return CancelResult(True, "Export cancelled")

    # --- job body ---

    async def _run(self, job: ExportJob) -> None:
        try:
            await self._execute(job)
        except asyncio.CancelledError:
            if self._is_current(job):
                self._finish(job, JobResult(JobState.CANCELLED, job.output_path, CANCELLED_REASON))
            raise
        except Exception as e:
            logger.exception("Export %d failed", job.job_id)
            if self._is_current(job):
                self._finish(job, JobResult(JobState.FAILED, job.output_path, str(e)))
        finally:
            if job.process is not None and job.process.returncode is None:
                job.process.terminate()
            job.process = None

    async def _execute(self, job: ExportJob) -> None:
        if job.state == JobState.PROBING:
            self._emit(JobEvent("probing", job.job_id))
        job.duration = await self._resolver.resolve(job.clip)
        if not self._is_current(job):
            return

        seconds = job.duration.seconds if job.duration.is_resolved else None
        job.graph = compile_graph(job.clip, seconds)
        clip_duration = job.clip.clip_duration
        invocation = EngineInvocation(
            input_path=job.clip.source_path,
            output_path=job.output_path,
            graph=job.graph,
            seek=max(job.clip.in_point, 0.0),
            duration=clip_duration if clip_duration > 0 else None,
            expected_duration=seconds + job.graph.lead_in if seconds else None,
        )

        job.state = JobState.RUNNING
        process = await self._engine.launch(invocation)
        job.process = process
        if not self._is_current(job):
            # Cancelled while ffmpeg was starting up.
            process.terminate()
            await process.wait()
            return

        logger.info("Export %d: ffmpeg started (pid %s)", job.job_id, process.pid)
        self._emit(JobEvent("started", job.job_id, output_path=job.output_path))

        async for percent in process.progress():
            self._record_progress(job, percent)

        engine_exit = await process.wait()
        if not self._is_current(job):
            return
        self._finish(job, classify_exit(engine_exit, job.output_path))

    def _record_progress(self, job: ExportJob, percent: float) -> None:
        if not self._is_current(job) or job.state != JobState.RUNNING:
            return
        if not is_valid_percent(percent):
            logger.debug("Export %d: dropping progress sample %r", job.job_id, percent)
            return
        if percent < job.progress_percent:
            return
        job.progress_percent = float(percent)
        self._emit(JobEvent("progress", job.job_id, percent=job.progress_percent))

    def _finish(self, job: ExportJob, result: JobResult) -> None:
        job.state = result.state
        job.result = result
        if self._active is job:
            self._active = None
        if not job.done.done():
            job.done.set_result(result)

        logger.info("Export %d: %s%s", job.job_id, result.state.value,
                    f" ({result.reason})" if result.reason else "")
        self._emit(JobEvent(
            result.state.value,
            job.job_id,
            percent=job.progress_percent,
            output_path=result.output_path,
            reason=result.reason,
        ))
