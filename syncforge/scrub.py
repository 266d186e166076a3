"""Scrubbing: relative motion into cursor or offset edits."""

import structlog

from syncforge.commands import ScrubModifiers
from syncforge.models import TimelineState
from syncforge.playback import PlaybackScheduler
from syncforge.session import Session

logger = structlog.get_logger(__name__)

# Raw motion units per second of timeline (one wheel notch).
SCRUB_UNIT = 120


def scrub_delta(delta_raw: float, fps: int, fine: bool = False) -> float:
    """Seconds of timeline motion for a raw delta. Fine mode moves by frames."""
    delta = delta_raw / SCRUB_UNIT
    if fine:
        delta /= fps
    return delta


def apply_scrub(
    state: TimelineState, delta_raw: float, modifiers: ScrubModifiers
) -> TimelineState:
    delta = scrub_delta(delta_raw, state.fps, modifiers.fine_mode)
    if modifiers.offset_mode:
        return state.with_changes(video_offset=state.video_offset + delta)
    return state.with_changes(cursor=state.cursor + delta)


class ScrubController:
    """Applies scrubs to a session, pausing playback first."""

    def __init__(self, session: Session, scheduler: PlaybackScheduler):
        self.session = session
        self.scheduler = scheduler

    def scrub(
        self, delta_raw: float, modifiers: ScrubModifiers | None = None
    ) -> TimelineState:
        modifiers = modifiers or ScrubModifiers()
        # the cursor can't be wall-clock driven and user driven at once
        self.scheduler.pause()

        new_state = self.session.replace(
            apply_scrub(self.session.state, delta_raw, modifiers)
        )
        self.scheduler.sync_players()
        logger.debug(
            "Scrubbed",
            delta_raw=delta_raw,
            offset_mode=modifiers.offset_mode,
            fine_mode=modifiers.fine_mode,
            cursor=new_state.cursor,
            video_offset=new_state.video_offset,
        )
        return new_state

    def nudge_frames(self, frames: int, offset_mode: bool = False) -> TimelineState:
        """Move the cursor (or the offset) by whole frames."""
        return self.scrub(
            frames * SCRUB_UNIT,
            ScrubModifiers(offset_mode=offset_mode, fine_mode=True),
        )
