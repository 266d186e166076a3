"""Shared data types used across SyncForge."""

import math
from dataclasses import dataclass, fields, replace
from enum import Enum

# Record form of an unset mark. Never a valid timeline position for a mark.
UNSET_MARK = -1.0


class MissingFieldError(ValueError):
    """Raised when a TimelineState is built with an absent or null field."""

    def __init__(self, field_name: str):
        super().__init__(f"TimelineState is missing required field '{field_name}'")
        self.field_name = field_name


class MarkId(str, Enum):
    """The four named mark slots on the timeline."""

    IN = "in"
    OUT = "out"
    AUDIO = "audio"
    VIDEO = "video"

    @property
    def field_name(self) -> str:
        return f"mark_{self.value}"


MARK_FIELDS = tuple(m.field_name for m in MarkId)

PATH_FIELDS = ("root", "video_path", "audio_path", "original_video_path")
NUMBER_FIELDS = ("cursor", "video_offset", "video_rate", "audio_volume", "video_volume")
FLAG_FIELDS = ("mute_audio", "mute_video")


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _check_number(name: str, value) -> None:
    if not _is_number(value):
        raise ValueError(f"{name} must be a number, got {type(value).__name__} {value!r}")
    if not math.isfinite(value):
        raise ValueError(f"{name} must be finite, got {value}")


def normalize_mark(value: float | None, name: str = "mark") -> float | None:
    """Map negative or missing mark values to unset (None)."""
    if value is None:
        return None
    _check_number(name, value)
    if value < 0:
        return None
    return float(value)


@dataclass(frozen=True)
class TimelineState:
    """The alignment state of one editing session.

    Immutable: every edit builds a new instance via :meth:`with_changes`, so the
    whole state can be serialized or replaced as a single unit.
    """

    root: str
    video_path: str
    audio_path: str
    original_video_path: str | None = None

    cursor: float = 0.0
    video_offset: float = 0.0
    video_rate: float = 1.0
    fps: int = 30

    mark_in: float | None = None
    mark_out: float | None = None
    mark_audio: float | None = None
    mark_video: float | None = None

    mute_audio: bool = False
    mute_video: bool = False
    audio_volume: float = 1.0
    video_volume: float = 1.0

    def __post_init__(self) -> None:
        if self.original_video_path is None and self.video_path is not None:
            object.__setattr__(self, "original_video_path", self.video_path)
        self.ensure_no_nulls()
        self.check_types()
        for name in MARK_FIELDS:
            object.__setattr__(self, name, normalize_mark(getattr(self, name), name))

        if not self.video_rate > 0:
            raise ValueError(f"video_rate must be > 0, got {self.video_rate}")
        if self.fps <= 0:
            raise ValueError(f"fps must be > 0, got {self.fps}")
        for name in ("audio_volume", "video_volume"):
            volume = getattr(self, name)
            if not 0.0 <= volume <= 1.0:
                raise ValueError(f"{name} must be within [0, 1], got {volume}")

    def ensure_no_nulls(self) -> None:
        """Raise MissingFieldError naming the first required field that is None."""
        for f in fields(self):
            if f.name in MARK_FIELDS:
                continue
            if getattr(self, f.name) is None:
                raise MissingFieldError(f.name)

    def check_types(self) -> None:
        """Raise ValueError for any field holding a value of the wrong type."""
        for name in PATH_FIELDS:
            value = getattr(self, name)
            if not isinstance(value, str):
                raise ValueError(f"{name} must be a string, got {type(value).__name__}")
        for name in NUMBER_FIELDS:
            _check_number(name, getattr(self, name))
        for name in FLAG_FIELDS:
            value = getattr(self, name)
            if not isinstance(value, bool):
                raise ValueError(f"{name} must be a boolean, got {type(value).__name__} {value!r}")
        if not isinstance(self.fps, int) or isinstance(self.fps, bool):
            raise ValueError(f"fps must be an integer, got {type(self.fps).__name__} {self.fps!r}")

    # -- derived values ---------------------------------------------------

    def video_time(self) -> float:
        """Video-track position for the current cursor."""
        return self.cursor * self.video_rate - self.video_offset

    def video_playback_rate(self) -> float:
        return self.video_rate

    def cursor_frame(self) -> int:
        return math.floor(self.cursor * self.fps)

    def effective_audio_volume(self) -> float:
        return 0.0 if self.mute_audio else self.audio_volume

    def effective_video_volume(self) -> float:
        return 0.0 if self.mute_video else self.video_volume

    # -- edits -------------------------------------------------------------

    def with_changes(self, **changes) -> "TimelineState":
        return replace(self, **changes)

    def mark(self, mark_id: MarkId) -> float | None:
        return getattr(self, mark_id.field_name)

    def with_mark(self, mark_id: MarkId, value: float | None) -> "TimelineState":
        return replace(self, **{mark_id.field_name: normalize_mark(value, mark_id.field_name)})

    # -- record form -------------------------------------------------------

    def to_record(self) -> dict:
        """Flat key/value form. Unset marks are written as ``UNSET_MARK``."""
        record = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name in MARK_FIELDS and value is None:
                value = UNSET_MARK
            record[f.name] = value
        return record

    @classmethod
    def from_record(cls, record: dict) -> "TimelineState":
        """Build a state from its record form.

        Every field must be present and non-null; marks use ``UNSET_MARK``
        (any negative value) for unset.
        """
        known = {f.name: f for f in fields(cls)}
        unknown = sorted(set(record) - set(known))
        if unknown:
            raise ValueError(f"Unknown TimelineState fields: {', '.join(unknown)}")

        for name in known:
            if record.get(name) is None:
                raise MissingFieldError(name)

        return cls(**record)


@dataclass
class ProbeResult:
    """Metadata extracted from a media file via ffprobe."""

    duration: float
    has_video: bool
    has_audio: bool
    fps: float | None = None
    width: int | None = None
    height: int | None = None
    codec_video: str | None = None
    codec_audio: str | None = None
