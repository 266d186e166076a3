"""Reference marks on the virtual timeline."""

import structlog

from syncforge.models import MarkId, TimelineState
from syncforge.session import Session

logger = structlog.get_logger(__name__)


class InvalidMarkError(ValueError):
    """Raised for a mark identifier outside {in, out, audio, video}."""
    pass


def parse_mark_id(mark_id: "MarkId | str") -> MarkId:
    try:
        return MarkId(mark_id)
    except ValueError:
        raise InvalidMarkError(f"Unknown mark '{mark_id}'") from None


def marks(state: TimelineState) -> dict[MarkId, float]:
    """Return the marks that are currently set."""
    return {
        m: state.mark(m)
        for m in MarkId
        if state.mark(m) is not None
    }


def jump_target(state: TimelineState, mark_id: MarkId) -> float:
    """Cursor position that jumping to ``mark_id`` lands on.

    An unset mark jumps to the start (0). The video mark is stored in
    video-local time, so the offset is added back to reach the same frame
    on the shared cursor.
    """
    value = state.mark(mark_id)
    if value is None:
        return 0.0
    if mark_id is MarkId.VIDEO:
        return value + state.video_offset
    return value


class MarkManager:
    """Sets, clears and jumps to the named marks of a session."""

    def __init__(self, session: Session):
        self.session = session

    def set_mark(self, mark_id: "MarkId | str", value: float | None = None) -> TimelineState:
        """Place a mark at ``value`` (default: the cursor). Negative values unset it."""
        mark_id = parse_mark_id(mark_id)
        state = self.session.state
        if value is None:
            value = state.cursor

        new_state = state.with_mark(mark_id, value)
        logger.info("Mark set", mark=mark_id.value, value=new_state.mark(mark_id))
        return self.session.replace(new_state)

    def jump_mark(self, mark_id: "MarkId | str") -> TimelineState:
        """Move the cursor to a mark."""
        mark_id = parse_mark_id(mark_id)
        state = self.session.state
        target = jump_target(state, mark_id)
        logger.info("Jumping to mark", mark=mark_id.value, cursor=target)
        return self.session.replace(state.with_changes(cursor=target))

    def clear_all_marks(self) -> TimelineState:
        """Unset all four marks in one replacement."""
        state = self.session.state
        cleared = state.with_changes(**{m.field_name: None for m in MarkId})
        logger.info("Marks cleared")
        return self.session.replace(cleared)
