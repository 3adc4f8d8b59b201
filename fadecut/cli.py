"""Thin CLI entry point — builds a ClipModel and runs the export pipeline."""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

from fadecut import __version__, ffutil, presets
from fadecut.duration import DurationResolver
from fadecut.engine import FFmpegEngine
from fadecut.filters import WAV_PROFILE
from fadecut.jobs import ExportJobManager, JobEvent, JobState
from fadecut.manifest import load_manifest
from fadecut.models import EXPORT_SIZES, ClipModel, ExportQuality, ExportType
from fadecut.settings import SessionStore, Settings
from fadecut.timeline import TimelineGuard, format_timecode, parse_timecode

EXIT_CANCELLED = 130


def _add_effect_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--in", dest="in_point", type=str, help="In point (seconds or HH:MM:SS.ss)")
    p.add_argument("--out", dest="out_point", type=str, help="Out point (seconds or HH:MM:SS.ss)")
    p.add_argument("--fade-in", type=float, default=0.0, help="Video fade-in (seconds)")
    p.add_argument("--fade-out", type=float, default=0.0, help="Video fade-out (seconds)")
    p.add_argument("--audio-fade-in", type=float, default=0.0, help="Audio fade-in (seconds)")
    p.add_argument("--audio-fade-out", type=float, default=0.0, help="Audio fade-out (seconds)")
    p.add_argument("--silence", type=float, default=0.0, help="Silence before the audio starts (seconds)")
    p.add_argument("--black-screen", type=float, default=0.0, help="Black screen before the video starts (seconds)")
    p.add_argument("--quality", choices=[q.value for q in ExportQuality], default="high", help="Video quality")
    p.add_argument("--size", type=int, choices=EXPORT_SIZES, default=100, help="Output size in percent")
    p.add_argument("--audio-only", action="store_true", help="Export audio only (WAV)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fadecut",
        description="FadeCut — trim a media file and export it with fades.",
    )
    parser.add_argument("--verbose", "-v", action="count", default=0, help="More logging (-vv for debug)")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = parser.add_subparsers(dest="command")

    exp = sub.add_parser("export", help="Trim and export a media file")
    exp.add_argument("video", nargs="?", type=Path, help="Input media file")
    exp.add_argument("--manifest", "-m", type=Path, help="Path to a JSON export manifest")
    exp.add_argument("--restore", action="store_true", help="Export the last saved session")
    exp.add_argument("--output", "-o", type=Path, help="Output file path")
    _add_effect_args(exp)

    qf = sub.add_parser("quick-fade", help="Fade a whole video in and out")
    qf.add_argument("video", type=Path, help="Input video file")
    qf.add_argument("--output", "-o", type=Path, help="Output file path")

    rip = sub.add_parser("audio-rip", help="Extract the whole soundtrack to WAV")
    rip.add_argument("video", type=Path, help="Input media file")
    rip.add_argument("--output", "-o", type=Path, help="Output file path")

    pr = sub.add_parser("probe", help="Show media metadata")
    pr.add_argument("video", type=Path, help="Input media file")

    serve = sub.add_parser("serve", help="Launch the web UI")
    serve.add_argument("--port", type=int, default=8321, help="Port to listen on")
    serve.add_argument("--host", type=str, default="127.0.0.1", help="Host to bind to")

    return parser


def configure_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def default_output(input_path: Path, clip: ClipModel) -> Path:
    suffix = WAV_PROFILE.extension if clip.export_type == ExportType.AUDIO else ".mp4"
    return input_path.with_name(input_path.stem + "_edited" + suffix)


def clip_from_args(args: argparse.Namespace, ffprobe_path: str, store: SessionStore) -> ClipModel:
    """Probe the input and apply the command-line edits through the timeline guard."""
    probe_result = ffutil.probe(args.video, ffprobe_path=ffprobe_path)
    guard = TimelineGuard(ClipModel.from_probe(str(args.video), probe_result), on_commit=store.save)

    if args.in_point is not None:
        guard.set_in_point(parse_timecode(args.in_point))
    if args.out_point is not None:
        guard.set_out_point(parse_timecode(args.out_point))

    guard.set_fade("video_fade_in", args.fade_in)
    guard.set_fade("video_fade_out", args.fade_out)
    guard.set_fade("audio_fade_in", args.audio_fade_in)
    guard.set_fade("audio_fade_out", args.audio_fade_out)
    guard.set_silence_at_start(args.silence)
    guard.set_black_screen_at_start(args.black_screen)
    guard.set_export_quality(args.quality)
    guard.set_export_size(args.size)
    guard.set_export_type(ExportType.AUDIO if args.audio_only else ExportType.VIDEO)
    return guard.clip


def _print_event(event: JobEvent) -> None:
    if event.kind == "probing":
        print("  Probing duration for fade-out...")
    elif event.kind == "started":
        print(f"  Exporting to {event.output_path}")
    elif event.kind == "progress":
        print(f"  [{event.percent:5.1f}%] Encoding", end="\r", flush=True)


async def run_export(clip: ClipModel, output: Path, settings: Settings) -> int:
    """Run one export to completion; returns a process exit code."""
    ffmpeg_path, ffprobe_path = settings.resolved_binaries()
    manager = ExportJobManager(
        resolver=DurationResolver(ffprobe_path=ffprobe_path),
        engine=FFmpegEngine(ffmpeg_path=ffmpeg_path),
    )
    manager.subscribe(_print_event)

    handle = manager.start(clip, str(output))

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, manager.cancel)
    except NotImplementedError:
        # Windows event loops have no signal handlers; Ctrl-C aborts instead.
        pass

    try:
        result = await handle.wait()
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except NotImplementedError:
            pass

    print()
    if result.state == JobState.SUCCEEDED:
        print(f"Done! Output: {result.output_path}")
        return 0
    if result.state == JobState.CANCELLED:
        print("Export cancelled.")
        return EXIT_CANCELLED
    print(f"Error: {result.reason}", file=sys.stderr)
    return 1


def _cmd_probe(args: argparse.Namespace, settings: Settings) -> int:
    _, ffprobe_path = settings.resolved_binaries()
    result = ffutil.probe(args.video, ffprobe_path=ffprobe_path)
    print(f"{args.video}")
    print(f"  Duration: {format_timecode(result.duration)} ({result.duration:.3f}s)")
    if result.has_video:
        print(f"  Video: {result.codec_video} {result.width}x{result.height} @ {result.fps} fps")
    if result.has_audio:
        print(f"  Audio: {result.codec_audio} {result.audio_sample_rate} Hz")
    return 0


def _cmd_export(args: argparse.Namespace, settings: Settings) -> int:
    store = SessionStore()
    _, ffprobe_path = settings.resolved_binaries()

    if args.manifest:
        m = load_manifest(args.manifest)
        clip = m.to_clip()
        output = args.output or m.output
    elif args.restore:
        clip = store.load()
        if clip is None:
            print("Error: no saved session to restore.", file=sys.stderr)
            return 1
        output = args.output or default_output(Path(clip.source_path), clip)
    elif args.video:
        clip = clip_from_args(args, ffprobe_path, store)
        output = args.output or default_output(args.video, clip)
    else:
        print("Error: provide a VIDEO argument, --manifest or --restore.", file=sys.stderr)
        return 1

    return asyncio.run(run_export(clip, output, settings))


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    if args.command is None:
        parser.print_help()
        return 0

    settings = Settings.load()

    if args.command == "serve":
        from fadecut.web import create_app

        app = create_app(settings=settings)
        print(f"FadeCut web UI: http://{args.host}:{args.port}")
        app.run(host=args.host, port=args.port, debug=False, threaded=True)
        return 0

    try:
        if args.command == "probe":
            return _cmd_probe(args, settings)
        if args.command == "export":
            return _cmd_export(args, settings)

        preset = presets.quick_fade if args.command == "quick-fade" else presets.audio_rip
        clip = preset(str(args.video))
        output = args.output or default_output(args.video, clip)
        return asyncio.run(run_export(clip, output, settings))
    except (FileNotFoundError, ValueError, ffutil.ProbeError, ffutil.FFmpegNotFoundError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
