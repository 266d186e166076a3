"""Playback clock: keeps two independently clocked players on one cursor.

The virtual cursor is the only clock. While playing it is re-derived from the
wall clock on every animation frame (never accumulated), and each native
player is started once, from a position computed from the same cursor value.
There is no handshake between the two players after that.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Protocol

import structlog

from syncforge.session import Session
from syncforge.statesync import StateSync

logger = structlog.get_logger(__name__)

FRAME_INTERVAL = 1 / 60


class VoiceReusedError(RuntimeError):
    """Raised when a stopped or already started TrackVoice is started again."""
    pass


class PlaybackStatus(str, Enum):
    STOPPED = "stopped"
    PLAYING = "playing"


class MediaPlayer(Protocol):
    """Capabilities the engine needs from a native audio or video player."""

    def set_position(self, seconds: float) -> None: ...

    def get_position(self) -> float: ...

    def get_duration(self) -> float | None:
        """Track length in seconds, or None until the media has loaded."""
        ...

    def set_rate(self, rate: float) -> None: ...

    def set_volume(self, volume: float) -> None: ...

    def play(self) -> None: ...

    def pause(self) -> None: ...

    def on_loaded(self, callback: Callable[[], None]) -> None: ...


class Handle(Protocol):
    def cancel(self) -> None: ...


class EventLoop(Protocol):
    """Single-threaded timer source the scheduler runs on."""

    def now(self) -> float:
        """Monotonic wall clock in seconds."""
        ...

    def call_later(self, delay: float, callback: Callable[[], None]) -> Handle: ...

    def request_frame(self, callback: Callable[[], None]) -> Handle: ...


class AsyncioEventLoop:
    """EventLoop backed by an asyncio loop, with frames at a fixed interval."""

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop | None = None,
        frame_interval: float = FRAME_INTERVAL,
    ):
        self._loop = loop if loop is not None else asyncio.get_running_loop()
        self.frame_interval = frame_interval

    def now(self) -> float:
        return self._loop.time()

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return self._loop.call_later(max(delay, 0.0), callback)

    def request_frame(self, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return self._loop.call_later(self.frame_interval, callback)


# ---------------------------------------------------------------------------
# Pure clock math
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TrackStart:
    """Where a native player starts and after how much real time."""

    offset: float
    delay: float = 0.0


def cursor_at(play_start: float, cursor_at_start: float, now: float) -> float:
    """Cursor position ``now``, derived from the wall clock since play started."""
    return cursor_at_start + (now - play_start)


def plan_audio_start(cursor: float, audio_duration: float) -> TrackStart | None:
    """Start parameters for the audio track, or None if it has already ended.

    The audio track shares the cursor clock 1:1, so a negative cursor means
    audio begins ``-cursor`` seconds from now.
    """
    if cursor >= audio_duration:
        return None
    if cursor < 0:
        return TrackStart(offset=0.0, delay=-cursor)
    return TrackStart(offset=cursor)


def plan_video_start(
    video_time: float, video_duration: float, video_rate: float
) -> TrackStart | None:
    """Start parameters for the video track, or None if it has already ended.

    Video-local time advances ``video_rate`` seconds per cursor second, so a
    negative video time is reached after ``-video_time / video_rate`` seconds.
    """
    if video_time >= video_duration:
        return None
    if video_time < 0:
        return TrackStart(offset=0.0, delay=-video_time / video_rate)
    return TrackStart(offset=video_time)


# ---------------------------------------------------------------------------
# Voices
# ---------------------------------------------------------------------------

class TrackVoice:
    """A single-use playback start on a native player.

    Created on play, stopped on pause, then discarded. A stopped voice is
    never restarted; the scheduler builds a fresh one for the next play.
    """

    def __init__(self, name: str, player: MediaPlayer, loop: EventLoop):
        self.name = name
        self._player = player
        self._loop = loop
        self._pending: Handle | None = None
        self._started = False
        self._stopped = False
        self.sounding = False

    @property
    def pending(self) -> bool:
        return self._pending is not None

    def start(self, plan: TrackStart) -> None:
        if self._started or self._stopped:
            raise VoiceReusedError(f"{self.name} voice cannot be started twice")
        self._started = True

        self._player.set_position(plan.offset)
        if plan.delay > 0:
            self._pending = self._loop.call_later(plan.delay, self._begin)
        else:
            self._begin()

    def _begin(self) -> None:
        self._pending = None
        if self._stopped:
            return
        self._player.play()
        self.sounding = True

    def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None
        self._player.pause()
        self.sounding = False


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------

class PlaybackScheduler:
    """Stopped/Playing state machine driving the cursor and both players."""

    def __init__(
        self,
        session: Session,
        video: MediaPlayer,
        audio: MediaPlayer,
        loop: EventLoop,
        sync: StateSync | None = None,
    ):
        self.session = session
        self.video = video
        self.audio = audio
        self.loop = loop
        self.sync = sync

        self.status = PlaybackStatus.STOPPED
        self.voices: dict[str, TrackVoice] = {}
        self._frame: Handle | None = None
        self._play_start = 0.0
        self._cursor_at_start = 0.0

    @property
    def playing(self) -> bool:
        return self.status is PlaybackStatus.PLAYING

    def audio_loaded(self) -> bool:
        return self.audio.get_duration() is not None

    def play(self) -> bool:
        """Start both tracks from the current cursor. Returns False on no-op."""
        if self.playing:
            return False
        if not self.audio_loaded():
            logger.warning("Play ignored, audio not loaded yet")
            return False

        state = self.session.state
        self.status = PlaybackStatus.PLAYING
        self._play_start = self.loop.now()
        self._cursor_at_start = state.cursor
        self.sync_players()

        audio_plan = plan_audio_start(state.cursor, self.audio.get_duration())
        if audio_plan is not None:
            self._start_voice("audio", self.audio, audio_plan)

        video_duration = self.video.get_duration()
        video_plan = None
        if video_duration is None:
            logger.warning("Video not loaded, starting audio only")
        else:
            video_plan = plan_video_start(
                state.video_time(), video_duration, state.video_rate
            )
        if video_plan is not None:
            self._start_voice("video", self.video, video_plan)

        logger.info(
            "Playback started",
            cursor=state.cursor,
            video_time=state.video_time(),
            audio_plan=audio_plan,
            video_plan=video_plan,
        )
        self._frame = self.loop.request_frame(self._tick)
        return True

    def pause(self, push: bool = True) -> bool:
        """Stop both tracks and re-seat them on the cursor. Returns False on no-op.

        With ``push=False`` the caller takes over sending the state.
        """
        if not self.playing:
            return False

        self._advance()
        self.status = PlaybackStatus.STOPPED
        if self._frame is not None:
            self._frame.cancel()
            self._frame = None

        for voice in self.voices.values():
            voice.stop()
        self.voices.clear()

        self.sync_players()
        state = self.session.state
        logger.info("Playback paused", cursor=state.cursor, video_time=state.video_time())

        if push and self.sync is not None:
            self.sync.push()
        return True

    def join_video(self) -> bool:
        """Start the video mid-playback once its duration becomes known.

        Returns False when not playing, when the video is already running or
        still unloaded, or when the cursor is past the end of the video.
        """
        if not self.playing or "video" in self.voices:
            return False
        video_duration = self.video.get_duration()
        if video_duration is None:
            return False

        self._advance()
        state = self.session.state
        plan = plan_video_start(state.video_time(), video_duration, state.video_rate)
        if plan is None:
            return False
        self.video.set_rate(state.video_playback_rate())
        self.video.set_volume(state.effective_video_volume())
        self._start_voice("video", self.video, plan)
        logger.info("Video joined playback", cursor=state.cursor, video_plan=plan)
        return True

    def toggle(self) -> bool:
        if self.playing:
            return self.pause()
        return self.play()

    def sync_players(self) -> None:
        """Seat both native players on the current state."""
        state = self.session.state
        self.video.set_rate(state.video_playback_rate())
        self.video.set_position(max(state.video_time(), 0.0))
        self.video.set_volume(state.effective_video_volume())
        self.audio.set_position(max(state.cursor, 0.0))
        self.audio.set_volume(state.effective_audio_volume())

    def _start_voice(self, name: str, player: MediaPlayer, plan: TrackStart) -> None:
        voice = TrackVoice(name, player, self.loop)
        self.voices[name] = voice
        voice.start(plan)

    def _advance(self) -> None:
        cursor = cursor_at(self._play_start, self._cursor_at_start, self.loop.now())
        self.session.update(cursor=cursor)

    def _tick(self) -> None:
        self._frame = None
        if not self.playing:
            return
        self._advance()
        # a listener may have paused during the update
        if self.playing:
            self._frame = self.loop.request_frame(self._tick)
