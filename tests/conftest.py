"""Shared test fixtures."""

from pathlib import Path

import pytest

from syncforge.models import TimelineState
from syncforge.session import Session

FIXTURES_DIR = Path(__file__).parent / "fixtures"

FRAME = 1 / 60


class FakeHandle:
    def __init__(self, due: float, callback):
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualLoop:
    """EventLoop whose clock only moves when a test calls advance()."""

    def __init__(self, now: float = 100.0):
        self.time = now
        self.timers: list[FakeHandle] = []

    def now(self) -> float:
        return self.time

    def call_later(self, delay: float, callback) -> FakeHandle:
        handle = FakeHandle(self.time + delay, callback)
        self.timers.append(handle)
        return handle

    def request_frame(self, callback) -> FakeHandle:
        return self.call_later(FRAME, callback)

    def pending(self) -> list[FakeHandle]:
        return [h for h in self.timers if not h.cancelled]

    def advance(self, seconds: float) -> None:
        target = self.time + seconds
        while True:
            due = [h for h in self.pending() if h.due <= target]
            if not due:
                break
            handle = min(due, key=lambda h: h.due)
            self.timers.remove(handle)
            self.time = max(self.time, handle.due)
            handle.callback()
        self.timers = self.pending()
        self.time = target


class FakePlayer:
    """Records what the engine asks of a native player."""

    def __init__(self, duration: float | None = None):
        self.duration = duration
        self.position = 0.0
        self.rate = 1.0
        self.volume = 1.0
        self.playing = False
        self.play_calls = 0
        self.positions: list[float] = []
        self._loaded_callbacks = []

    def set_position(self, seconds: float) -> None:
        self.position = seconds
        self.positions.append(seconds)

    def get_position(self) -> float:
        return self.position

    def get_duration(self) -> float | None:
        return self.duration

    def set_rate(self, rate: float) -> None:
        self.rate = rate

    def set_volume(self, volume: float) -> None:
        self.volume = volume

    def play(self) -> None:
        self.playing = True
        self.play_calls += 1

    def pause(self) -> None:
        self.playing = False

    def on_loaded(self, callback) -> None:
        self._loaded_callbacks.append(callback)

    def load(self, duration: float) -> None:
        self.duration = duration
        for callback in self._loaded_callbacks:
            callback()


def make_state(**overrides) -> TimelineState:
    fields = {
        "root": "/media/session",
        "video_path": "/media/session/clip.mp4",
        "audio_path": "/media/session/take.wav",
    }
    fields.update(overrides)
    return TimelineState(**fields)


@pytest.fixture
def state() -> TimelineState:
    return make_state()


@pytest.fixture
def session(state: TimelineState) -> Session:
    return Session(state)


@pytest.fixture
def loop() -> ManualLoop:
    return ManualLoop()


@pytest.fixture
def video() -> FakePlayer:
    return FakePlayer(duration=60.0)


@pytest.fixture
def audio() -> FakePlayer:
    return FakePlayer(duration=90.0)


@pytest.fixture
def sample_project_path() -> Path:
    return FIXTURES_DIR / "sample_project.json"
