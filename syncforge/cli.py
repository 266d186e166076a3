"""Thin CLI entry point: project setup, calibration and the state server."""

import argparse
import sys
from pathlib import Path

from syncforge import ffutil
from syncforge.calibration import align_marks, calibration_summary
from syncforge.engine import open_session
from syncforge.marks import MarkManager, marks
from syncforge.models import MarkId
from syncforge.project import Project, ProxyConfig, load_project, save_project
from syncforge.statesync import JsonFileTransport, StateSync, TransportError

DEFAULT_PROJECT_FILE = "syncforge.json"


def _load_sync(project_path: Path) -> StateSync:
    """StateSync on the project's state file, already pulled."""
    project = load_project(project_path)
    return StateSync.from_transport(JsonFileTransport(project.state_path))


def _print_state(sync: StateSync) -> None:
    state = sync.session.state
    summary = calibration_summary(state)
    print(f"Version:      {sync.version}")
    print(f"Video:        {state.video_path}")
    print(f"Audio:        {state.audio_path}")
    print(f"Cursor:       {state.cursor:.3f}s (frame {state.cursor_frame()} @ {state.fps} fps)")
    print(f"Video offset: {summary.offset:+.3f}s ({summary.offset_frames:+.1f} frames)")
    print(f"Video rate:   {state.video_rate}")
    current = marks(state)
    for mark_id in MarkId:
        value = current.get(mark_id)
        shown = f"{value:.3f}s" if value is not None else "unset"
        print(f"  mark {mark_id.value:<6} {shown}")
    if summary.calibrated_from_marks:
        print("  (offset matches the audio/video marks)")


def _cmd_init(args: argparse.Namespace) -> None:
    project = Project(
        root=args.root.resolve(),
        video=args.video.resolve(),
        audio=args.audio.resolve(),
        fps=args.fps,
        proxy=ProxyConfig(enabled=not args.no_proxy, encoder=args.encoder),
    )
    project_path = args.output or project.root / DEFAULT_PROJECT_FILE
    save_project(project, project_path)

    def on_progress(stage: str, frac: float) -> None:
        print(f"  [{frac:3.0%}] {stage}")

    result = open_session(project, on_progress=on_progress)
    print()
    print(f"Project: {project_path}")
    print(f"  Playback video: {result.video_path}")
    print(f"  State file: {project.state_path} ({'created' if result.created else 'existing'})")
    if result.video_probe is not None and result.audio_probe is not None:
        print(f"  Video: {result.video_probe.duration:.2f}s, {result.video_probe.fps or '?'} fps")
        print(f"  Audio: {result.audio_probe.duration:.2f}s")


def _cmd_proxy(args: argparse.Namespace) -> None:
    ffutil.check_ffmpeg()
    output = ffutil.ensure_playable(args.video, cache_dir=args.cache_dir, encoder=args.encoder)
    print(output)


def _cmd_state(args: argparse.Namespace) -> None:
    _print_state(_load_sync(args.project))


def _cmd_mark(args: argparse.Namespace) -> None:
    sync = _load_sync(args.project)
    manager = MarkManager(sync.session)
    if args.clear:
        manager.clear_all_marks()
    else:
        manager.set_mark(args.mark, args.value)
    sync.push()
    _print_state(sync)


def _cmd_align(args: argparse.Namespace) -> None:
    sync = _load_sync(args.project)
    before = sync.session.state
    after = sync.session.replace(align_marks(before))
    if after is before:
        print("Both the audio and the video mark must be set to align.", file=sys.stderr)
        sys.exit(1)
    sync.push()
    print(f"Video offset: {before.video_offset:+.6f}s -> {after.video_offset:+.6f}s")


def _cmd_serve(args: argparse.Namespace) -> None:
    from syncforge.web import create_app

    transport = None
    if args.project:
        transport = JsonFileTransport(load_project(args.project).state_path)
    app = create_app(transport=transport)
    print(f"SyncForge state server: http://{args.host}:{args.port}")
    app.run(host=args.host, port=args.port, debug=False)


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="syncforge",
        description="SyncForge: align a video and a separately recorded audio track.",
    )
    sub = parser.add_subparsers(dest="command")

    init = sub.add_parser("init", help="Create a project and its initial state")
    init.add_argument("--root", type=Path, required=True, help="Project directory")
    init.add_argument("--video", type=Path, required=True, help="Video recording")
    init.add_argument("--audio", type=Path, required=True, help="Audio recording")
    init.add_argument("--fps", type=int, default=30, help="Frame rate used for frame display and nudges")
    init.add_argument("--no-proxy", action="store_true", help="Play the video file as is")
    init.add_argument("--encoder", choices=sorted(ffutil.ENCODER_ARGS), default="libx264", help="Proxy video encoder")
    init.add_argument("--output", "-o", type=Path, help="Project file path")
    init.set_defaults(func=_cmd_init)

    proxy = sub.add_parser("proxy", help="Prepare a browser-playable proxy of a video")
    proxy.add_argument("video", type=Path, help="Source video file")
    proxy.add_argument("--cache-dir", type=Path, help="Proxy cache directory")
    proxy.add_argument("--encoder", choices=sorted(ffutil.ENCODER_ARGS), default="libx264", help="Proxy video encoder")
    proxy.set_defaults(func=_cmd_proxy)

    state = sub.add_parser("state", help="Show the stored alignment state")
    state.add_argument("project", type=Path, help="Project file")
    state.set_defaults(func=_cmd_state)

    mark = sub.add_parser("mark", help="Set or clear marks")
    mark.add_argument("project", type=Path, help="Project file")
    mark.add_argument("mark", nargs="?", choices=[m.value for m in MarkId], help="Mark to set")
    mark.add_argument("value", nargs="?", type=float, help="Position in seconds (default: cursor)")
    mark.add_argument("--clear", action="store_true", help="Clear all marks")
    mark.set_defaults(func=_cmd_mark)

    align = sub.add_parser("align", help="Derive the video offset from the audio/video marks")
    align.add_argument("project", type=Path, help="Project file")
    align.set_defaults(func=_cmd_align)

    serve = sub.add_parser("serve", help="Run the state server")
    serve.add_argument("--project", type=Path, help="Serve this project's state file")
    serve.add_argument("--port", type=int, default=8321, help="Port to listen on")
    serve.add_argument("--host", type=str, default="127.0.0.1", help="Host to bind to")
    serve.set_defaults(func=_cmd_serve)

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    if args.command == "mark" and not args.clear and args.mark is None:
        parser.error("mark: give a MARK to set, or --clear")

    try:
        args.func(args)
    except (ffutil.FFmpegNotFoundError, ffutil.MediaLoadError, TransportError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
