"""Web UI routes for FadeCut."""

import functools
import itertools
import json
import logging
import queue
import threading
import uuid
from pathlib import Path

from flask import (
    Blueprint,
    Response,
    current_app,
    jsonify,
    render_template,
    request,
    send_file,
)

from fadecut import ffutil
from fadecut.duration import DurationResolver
from fadecut.engine import FFmpegEngine
from fadecut.jobs import (
    ExportJobManager,
    JobAlreadyActiveError,
    JobEvent,
    JobState,
    MissingParameterError,
)
from fadecut.models import FADE_FIELDS, ClipModel, ExportType
from fadecut.settings import SessionStore
from fadecut.timeline import TimelineGuard

logger = logging.getLogger(__name__)

bp = Blueprint("web", __name__, template_folder="templates")

# In-memory session store: session_id -> session dict
_sessions: dict[str, dict] = {}

TERMINAL_EVENTS = {state.value for state in (JobState.SUCCEEDED, JobState.FAILED, JobState.CANCELLED)}
EFFECT_SETTERS = {
    "silence_at_start": "set_silence_at_start",
    "black_screen_at_start": "set_black_screen_at_start",
    "export_quality": "set_export_quality",
    "export_size": "set_export_size",
    "export_type": "set_export_type",
}


def _loop():
    return current_app.extensions["fadecut_loop"]


def _prober():
    prober = current_app.config["PROBER"]
    if prober is not None:
        return prober
    _, ffprobe_path = current_app.config["SETTINGS"].resolved_binaries()
    return functools.partial(ffutil.probe, ffprobe_path=ffprobe_path)


def _new_manager(session: dict) -> ExportJobManager:
    ffmpeg_path, ffprobe_path = current_app.config["SETTINGS"].resolved_binaries()
    engine = current_app.config["ENGINE"] or FFmpegEngine(ffmpeg_path=ffmpeg_path)
    manager = ExportJobManager(
        resolver=DurationResolver(ffprobe_path=ffprobe_path, prober=current_app.config["PROBER"]),
        engine=engine,
    )
    # Look the queue up per event: each export gets a fresh one.
    manager.subscribe(lambda event: session["events"].put(event))
    return manager


def _get_session(session_id: str) -> dict | None:
    return _sessions.get(session_id)


def _status(session: dict) -> dict:
    """Collected on the loop thread so the manager is never read concurrently."""
    manager: ExportJobManager = session["manager"]
    job = manager.active_job or manager.last_job
    resp = {
        "filename": session["filename"],
        "state": manager.state.value,
        "clip": session["guard"].clip.to_snapshot(),
    }
    if job is not None:
        resp["job"] = {
            "job_id": job.job_id,
            "state": job.state.value,
            "progress": job.progress_percent,
        }
        if job.result is not None:
            resp["job"]["reason"] = job.result.reason
    return resp


def _event_payload(event: JobEvent) -> dict:
    data = {"event": event.kind, "job_id": event.job_id}
    if event.percent is not None:
        data["progress"] = round(event.percent, 2)
    if event.reason:
        data["reason"] = event.reason
    return data


@bp.route("/")
def index():
    return render_template("index.html")


@bp.route("/api/upload", methods=["POST"])
def upload():
    if "file" not in request.files:
        return jsonify({"error": "No file provided"}), 400

    f = request.files["file"]
    if not f.filename:
        return jsonify({"error": "Empty filename"}), 400

    session_id = uuid.uuid4().hex[:12]
    session_dir = Path(current_app.config["WORK_DIR"]) / session_id
    session_dir.mkdir(parents=True, exist_ok=True)

    ext = Path(f.filename).suffix or ".mp4"
    input_path = session_dir / f"input{ext}"
    f.save(input_path)

    try:
        probe_result = _prober()(str(input_path))
    except (FileNotFoundError, ffutil.ProbeError, ffutil.FFmpegNotFoundError) as e:
        return jsonify({"error": f"Could not read media file: {e}"}), 422

    store = SessionStore(session_dir / "session.json")
    guard = TimelineGuard(ClipModel.from_probe(str(input_path), probe_result), on_commit=store.save)
    store.save(guard.clip)

    session = {
        "dir": session_dir,
        "filename": f.filename,
        "guard": guard,
        "lock": threading.Lock(),
        "events": queue.Queue(),
        "exports": itertools.count(1),
    }
    session["manager"] = _new_manager(session)
    _sessions[session_id] = session
    logger.info("Session %s: loaded %s (%.2fs)", session_id, f.filename, probe_result.duration)

    return jsonify({"session_id": session_id, "filename": f.filename, "clip": guard.clip.to_snapshot()})


@bp.route("/api/sessions/<session_id>/points", methods=["POST"])
def update_points(session_id: str):
    session = _get_session(session_id)
    if session is None:
        return jsonify({"error": "Session not found"}), 404

    body = request.get_json() or {}
    guard = session["guard"]
    try:
        with session["lock"]:
            if body.get("reset"):
                guard.reset_points()
            if "in_point" in body:
                guard.set_in_point(float(body["in_point"]))
            if "out_point" in body:
                guard.set_out_point(float(body["out_point"]))
            if "in_timecode" in body:
                guard.set_in_point_text(str(body["in_timecode"]))
            if "out_timecode" in body:
                guard.set_out_point_text(str(body["out_timecode"]))
            if "nudge_in" in body:
                guard.nudge_in(float(body["nudge_in"]))
            if "nudge_out" in body:
                guard.nudge_out(float(body["nudge_out"]))
            clip = guard.clip
    except (TypeError, ValueError) as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({"clip": clip.to_snapshot()})


@bp.route("/api/sessions/<session_id>/effects", methods=["POST"])
def update_effects(session_id: str):
    session = _get_session(session_id)
    if session is None:
        return jsonify({"error": "Session not found"}), 404

    body = request.get_json() or {}
    guard = session["guard"]
    try:
        with session["lock"]:
            for name, value in body.items():
                if name in FADE_FIELDS:
                    guard.set_fade(name, float(value))
                elif name in EFFECT_SETTERS:
                    getattr(guard, EFFECT_SETTERS[name])(value)
                else:
                    return jsonify({"error": f"Unknown effect '{name}'"}), 400
            clip = guard.clip
    except (TypeError, ValueError) as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({"clip": clip.to_snapshot()})


@bp.route("/api/sessions/<session_id>/export", methods=["POST"])
def start_export(session_id: str):
    session = _get_session(session_id)
    if session is None:
        return jsonify({"error": "Session not found"}), 404

    manager: ExportJobManager = session["manager"]
    clip = session["guard"].clip
    suffix = ".wav" if clip.export_type == ExportType.AUDIO else ".mp4"

    def start():
        # Runs on the loop thread; the queue swap and start() happen together.
        if manager.state.is_active:
            raise JobAlreadyActiveError(f"Export is already {manager.state.value}")
        # A cancelled ffmpeg may still be writing its file; never reuse the name.
        output_path = session["dir"] / f"output_{next(session['exports'])}{suffix}"
        session["events"] = queue.Queue()
        return manager.start(clip, str(output_path))

    try:
        handle = _loop().call(start)
    except JobAlreadyActiveError as e:
        return jsonify({"error": str(e)}), 409
    except MissingParameterError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({"status": "started", "job_id": handle.job_id})


@bp.route("/api/sessions/<session_id>/cancel", methods=["POST"])
def cancel_export(session_id: str):
    session = _get_session(session_id)
    if session is None:
        return jsonify({"error": "Session not found"}), 404

    result = _loop().call(session["manager"].cancel)
    return jsonify({"cancelled": result.cancelled, "message": result.message})


@bp.route("/api/sessions/<session_id>/progress")
def progress_stream(session_id: str):
    session = _get_session(session_id)
    if session is None:
        return jsonify({"error": "Session not found"}), 404

    q = session["events"]

    def generate():
        while True:
            try:
                event = q.get(timeout=120)
            except queue.Empty:
                yield "data: {\"error\": \"timeout\"}\n\n"
                break
            yield f"data: {json.dumps(_event_payload(event))}\n\n"
            if event.kind in TERMINAL_EVENTS:
                break

    return Response(generate(), mimetype="text/event-stream")


@bp.route("/api/sessions/<session_id>/status")
def session_status(session_id: str):
    session = _get_session(session_id)
    if session is None:
        return jsonify({"error": "Session not found"}), 404
    return jsonify(_loop().call(_status, session))


@bp.route("/api/sessions/<session_id>/result")
def download_result(session_id: str):
    session = _get_session(session_id)
    if session is None:
        return jsonify({"error": "Session not found"}), 404

    manager: ExportJobManager = session["manager"]
    job = _loop().call(lambda: manager.last_job)
    if job is None or job.state != JobState.SUCCEEDED:
        return jsonify({"error": "Export not complete"}), 409

    return send_file(Path(job.output_path), as_attachment=True)
