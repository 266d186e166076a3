"""Orchestrator: opens a project session and dispatches editing commands."""

from dataclasses import dataclass
from pathlib import Path
from typing import Callable

import structlog

from syncforge import ffutil
from syncforge.calibration import align_marks
from syncforge.commands import (
    AlignCommand,
    ClearMarksCommand,
    Command,
    JumpMarkCommand,
    ScrubCommand,
    SetMarkCommand,
    ToggleCommand,
)
from syncforge.marks import MarkManager
from syncforge.models import ProbeResult, TimelineState
from syncforge.playback import EventLoop, MediaPlayer, PlaybackScheduler
from syncforge.project import Project
from syncforge.scrub import ScrubController
from syncforge.session import Session
from syncforge.statesync import JsonFileTransport, StateSync

logger = structlog.get_logger(__name__)


@dataclass
class OpenResult:
    session: Session
    sync: StateSync
    video_path: Path
    created: bool = False
    video_probe: ProbeResult | None = None
    audio_probe: ProbeResult | None = None


def initial_state(project: Project, video_path: Path) -> TimelineState:
    """A fresh state for ``project`` with playback on ``video_path``."""
    return TimelineState(
        root=str(project.root),
        video_path=str(video_path),
        audio_path=str(project.audio_path),
        original_video_path=str(project.video_path),
        fps=project.fps,
    )


def probe_tracks(project: Project) -> tuple[ProbeResult, ProbeResult]:
    """Probe both recordings, requiring a video stream and an audio stream."""
    video = ffutil.probe(project.video_path)
    if not video.has_video:
        raise ffutil.MediaLoadError(f"No video stream found in {project.video_path}")
    audio = ffutil.probe(project.audio_path)
    if not audio.has_audio:
        raise ffutil.MediaLoadError(f"No audio stream found in {project.audio_path}")
    logger.info(
        "Media probed",
        video_duration=video.duration,
        video_fps=video.fps,
        audio_duration=audio.duration,
    )
    return video, audio


def open_session(
    project: Project,
    on_progress: Callable[[str, float], None] | None = None,
) -> OpenResult:
    """Prepare media and load (or create) the project's persisted state.

    Args:
        project: Validated project.
        on_progress: Optional callback(stage_name, fraction_complete).
    """

    def _progress(stage: str, frac: float) -> None:
        if on_progress:
            on_progress(stage, frac)

    video_path = project.video_path
    video_probe = audio_probe = None
    if project.proxy.enabled:
        ffutil.check_ffmpeg()
        _progress("Probing media", 0.05)
        video_probe, audio_probe = probe_tracks(project)
        _progress("Preparing playable video", 0.1)
        video_path = ffutil.ensure_playable(
            project.video_path,
            cache_dir=project.proxy.cache_dir,
            encoder=project.proxy.encoder,
        )

    _progress("Loading state", 0.8)
    transport = JsonFileTransport(project.state_path)
    created = not project.state_path.exists()
    session = Session(initial_state(project, video_path))
    sync = StateSync(session, transport)
    if not created:
        sync.pull()
        # a re-encoded proxy lands under a new cache key
        if session.state.video_path != str(video_path):
            session.update(video_path=str(video_path))

    sync.push()
    logger.info(
        "Session opened",
        root=str(project.root),
        video=str(video_path),
        created=created,
        version=sync.version,
    )
    _progress("Done", 1.0)
    return OpenResult(
        session=session,
        sync=sync,
        video_path=video_path,
        created=created,
        video_probe=video_probe,
        audio_probe=audio_probe,
    )


class Editor:
    """Wires marks, calibration, scrubbing and playback around one session."""

    def __init__(
        self,
        session: Session,
        video: MediaPlayer,
        audio: MediaPlayer,
        loop: EventLoop,
        sync: StateSync | None = None,
    ):
        self.session = session
        self.sync = sync
        self.scheduler = PlaybackScheduler(session, video, audio, loop, sync)
        self.marks = MarkManager(session)
        self.scrubber = ScrubController(session, self.scheduler)

        video.on_loaded(self._on_media_loaded)
        audio.on_loaded(self._on_media_loaded)

    def _on_media_loaded(self) -> None:
        if self.scheduler.playing:
            self.scheduler.join_video()
        else:
            self.scheduler.sync_players()

    def reload(self) -> TimelineState:
        """Pause, then take the externally stored state as the live one."""
        if self.sync is None:
            return self.session.state
        self.scheduler.pause(push=False)
        state = self.sync.pull()
        self.scheduler.sync_players()
        return state

    def dispatch(self, command: Command) -> TimelineState:
        """Apply one input command and return the resulting state."""
        logger.debug("Dispatching command", command=type(command).__name__)

        if isinstance(command, ToggleCommand) and command.target == "play":
            self.scheduler.toggle()
            return self.session.state

        # the edit lands before the single push below, even if that push fails
        self.scheduler.pause(push=False)
        if isinstance(command, ScrubCommand):
            self.scrubber.scrub(command.delta_raw, command.modifiers)
        elif isinstance(command, SetMarkCommand):
            self.marks.set_mark(command.mark_id)
        elif isinstance(command, JumpMarkCommand):
            self.marks.jump_mark(command.mark_id)
        elif isinstance(command, AlignCommand):
            self.session.replace(align_marks(self.session.state))
        elif isinstance(command, ClearMarksCommand):
            self.marks.clear_all_marks()
        elif isinstance(command, ToggleCommand):
            state = self.session.state
            self.session.update(**{command.target: not getattr(state, command.target)})
        else:
            raise TypeError(f"Unsupported command: {command!r}")

        self.scheduler.sync_players()
        if self.sync is not None:
            self.sync.push()
        return self.session.state
