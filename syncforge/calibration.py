"""Offset calibration from a pair of audio/video marks."""

from dataclasses import dataclass

import structlog

from syncforge.models import TimelineState

logger = structlog.get_logger(__name__)


@dataclass
class CalibrationSummary:
    """The current offset expressed for display."""

    offset: float
    offset_frames: float
    calibrated_from_marks: bool


def align_marks(state: TimelineState) -> TimelineState:
    """Derive ``video_offset`` from the audio and video marks.

    ``mark_audio`` is a cursor timestamp and ``mark_video`` a video-local one,
    so their difference is the offset that puts both at the same instant.
    Returns ``state`` itself when either mark is unset.
    """
    if state.mark_audio is None or state.mark_video is None:
        logger.debug(
            "Calibration skipped, marks missing",
            mark_audio=state.mark_audio,
            mark_video=state.mark_video,
        )
        return state

    offset = state.mark_audio - state.mark_video
    logger.info(
        "Calibrated video offset",
        mark_audio=state.mark_audio,
        mark_video=state.mark_video,
        previous_offset=state.video_offset,
        video_offset=offset,
    )
    return state.with_changes(video_offset=offset)


def calibration_summary(state: TimelineState) -> CalibrationSummary:
    return CalibrationSummary(
        offset=state.video_offset,
        offset_frames=state.video_offset * state.fps,
        calibrated_from_marks=(
            state.mark_audio is not None
            and state.mark_video is not None
            and state.video_offset == state.mark_audio - state.mark_video
        ),
    )
