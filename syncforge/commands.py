"""Commands produced by the input layer and consumed by the Editor."""

from dataclasses import dataclass, field

from syncforge.marks import parse_mark_id
from syncforge.models import MarkId

TOGGLE_TARGETS = ("play", "mute_audio", "mute_video")


@dataclass
class ScrubModifiers:
    """Modifier keys held during a scrub."""

    offset_mode: bool = False
    fine_mode: bool = False


@dataclass
class ScrubCommand:
    """A relative timeline motion; sign already resolved by the input layer."""

    delta_raw: float
    axis: str = "x"
    modifiers: ScrubModifiers = field(default_factory=ScrubModifiers)


@dataclass
class ToggleCommand:
    target: str

    def __post_init__(self) -> None:
        if self.target not in TOGGLE_TARGETS:
            raise ValueError(
                f"Unknown toggle '{self.target}', expected one of {TOGGLE_TARGETS}"
            )


@dataclass
class SetMarkCommand:
    mark_id: MarkId


@dataclass
class JumpMarkCommand:
    mark_id: MarkId


@dataclass
class AlignCommand:
    pass


@dataclass
class ClearMarksCommand:
    pass


Command = (
    ScrubCommand
    | ToggleCommand
    | SetMarkCommand
    | JumpMarkCommand
    | AlignCommand
    | ClearMarksCommand
)


def command_from_dict(data: dict) -> Command:
    """Parse the JSON form of a command, e.g. ``{"type": "set_mark", "mark": "in"}``."""
    kind = data.get("type")
    if kind == "scrub":
        mods = data.get("modifiers", {})
        return ScrubCommand(
            delta_raw=float(data["delta_raw"]),
            axis=data.get("axis", "x"),
            modifiers=ScrubModifiers(
                offset_mode=bool(mods.get("offset_mode", False)),
                fine_mode=bool(mods.get("fine_mode", False)),
            ),
        )
    if kind == "toggle":
        return ToggleCommand(target=data["target"])
    if kind == "set_mark":
        return SetMarkCommand(mark_id=parse_mark_id(data["mark"]))
    if kind == "jump_mark":
        return JumpMarkCommand(mark_id=parse_mark_id(data["mark"]))
    if kind == "align":
        return AlignCommand()
    if kind == "clear_marks":
        return ClearMarksCommand()
    raise ValueError(f"Unknown command type: {kind!r}")
