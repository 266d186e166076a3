"""Tests for the engine module: session opening and command dispatch."""

from pathlib import Path
from unittest.mock import patch

import pytest

from conftest import FakePlayer, ManualLoop, make_state
from syncforge.commands import (
    AlignCommand,
    ClearMarksCommand,
    JumpMarkCommand,
    ScrubCommand,
    ScrubModifiers,
    SetMarkCommand,
    ToggleCommand,
)
from syncforge.engine import Editor, initial_state, open_session, probe_tracks
from syncforge.ffutil import MediaLoadError
from syncforge.models import MarkId, ProbeResult
from syncforge.project import Project, ProxyConfig
from syncforge.session import Session
from syncforge.statesync import MemoryTransport, StaleStateError, StateSync

VIDEO_PROBE = ProbeResult(duration=60.0, has_video=True, has_audio=True, fps=29.97)
AUDIO_PROBE = ProbeResult(duration=95.5, has_video=False, has_audio=True)


@pytest.fixture
def editor(loop: ManualLoop) -> Editor:
    session = Session(make_state(cursor=4.0))
    sync = StateSync(session, MemoryTransport())
    return Editor(session, FakePlayer(60.0), FakePlayer(90.0), loop, sync=sync)


def _project(tmp_path: Path, proxy: bool = False) -> Project:
    (tmp_path / "clip.mov").write_bytes(b"mov")
    (tmp_path / "take.wav").write_bytes(b"wav")
    return Project(
        root=tmp_path,
        video=Path("clip.mov"),
        audio=Path("take.wav"),
        fps=25,
        proxy=ProxyConfig(enabled=proxy, cache_dir=tmp_path / "cache"),
    )


class TestInitialState:
    def test_fields(self, tmp_path: Path):
        project = _project(tmp_path)
        s = initial_state(project, Path("/cache/proxy.mp4"))
        assert s.video_path == "/cache/proxy.mp4"
        assert s.original_video_path == str(tmp_path / "clip.mov")
        assert s.audio_path == str(tmp_path / "take.wav")
        assert s.fps == 25
        assert s.cursor == 0.0


class TestOpenSession:
    def test_creates_state_file(self, tmp_path: Path):
        project = _project(tmp_path)
        result = open_session(project)
        assert result.created is True
        assert project.state_path.exists()
        assert result.sync.version == 1
        assert result.video_path == tmp_path / "clip.mov"

    def test_reopens_existing_state(self, tmp_path: Path):
        project = _project(tmp_path)
        first = open_session(project)
        first.session.update(cursor=12.5, video_offset=0.75)
        first.sync.push()

        second = open_session(project)
        assert second.created is False
        assert second.session.state.cursor == 12.5
        assert second.session.state.video_offset == 0.75
        assert second.sync.version == 3

    @patch("syncforge.engine.ffutil.check_ffmpeg")
    @patch("syncforge.engine.ffutil.probe")
    @patch("syncforge.engine.ffutil.ensure_playable")
    def test_uses_proxy(self, mock_proxy, mock_probe, mock_check, tmp_path: Path):
        mock_probe.side_effect = [VIDEO_PROBE, AUDIO_PROBE]
        mock_proxy.return_value = tmp_path / "cache" / "abc.mp4"
        project = _project(tmp_path, proxy=True)
        stages = []

        result = open_session(project, on_progress=lambda stage, frac: stages.append(frac))

        assert result.session.state.video_path == str(tmp_path / "cache" / "abc.mp4")
        assert result.session.state.original_video_path == str(tmp_path / "clip.mov")
        mock_proxy.assert_called_once()
        assert stages[-1] == 1.0
        assert result.video_probe is VIDEO_PROBE
        assert result.audio_probe is AUDIO_PROBE

    @patch("syncforge.engine.ffutil.check_ffmpeg")
    @patch("syncforge.engine.ffutil.probe")
    @patch("syncforge.engine.ffutil.ensure_playable")
    def test_proxy_failure_propagates(self, mock_proxy, mock_probe, mock_check, tmp_path: Path):
        mock_probe.side_effect = [VIDEO_PROBE, AUDIO_PROBE]
        mock_proxy.side_effect = MediaLoadError("FFmpeg did not create file")
        project = _project(tmp_path, proxy=True)
        with pytest.raises(MediaLoadError):
            open_session(project)
        assert not project.state_path.exists()


class TestProbeTracks:
    @patch("syncforge.engine.ffutil.probe")
    def test_returns_both(self, mock_probe, tmp_path: Path):
        mock_probe.side_effect = [VIDEO_PROBE, AUDIO_PROBE]
        assert probe_tracks(_project(tmp_path)) == (VIDEO_PROBE, AUDIO_PROBE)
        assert [c.args[0] for c in mock_probe.call_args_list] == [
            tmp_path / "clip.mov",
            tmp_path / "take.wav",
        ]

    @patch("syncforge.engine.ffutil.probe")
    def test_video_without_picture(self, mock_probe, tmp_path: Path):
        mock_probe.return_value = AUDIO_PROBE
        with pytest.raises(MediaLoadError, match="No video stream"):
            probe_tracks(_project(tmp_path))

    @patch("syncforge.engine.ffutil.probe")
    def test_audio_without_sound(self, mock_probe, tmp_path: Path):
        silent = ProbeResult(duration=10.0, has_video=True, has_audio=False)
        mock_probe.side_effect = [VIDEO_PROBE, silent]
        with pytest.raises(MediaLoadError, match="No audio stream"):
            probe_tracks(_project(tmp_path))

    @patch("syncforge.engine.ffutil.check_ffmpeg")
    @patch("syncforge.engine.ffutil.probe")
    @patch("syncforge.engine.ffutil.ensure_playable")
    def test_open_session_stops_before_encoding(self, mock_proxy, mock_probe, mock_check, tmp_path: Path):
        mock_probe.return_value = AUDIO_PROBE
        project = _project(tmp_path, proxy=True)
        with pytest.raises(MediaLoadError):
            open_session(project)
        mock_proxy.assert_not_called()
        assert not project.state_path.exists()


class TestEditorDispatch:
    def test_set_and_jump_marks(self, editor: Editor):
        editor.dispatch(SetMarkCommand(MarkId.IN))
        editor.session.update(cursor=20.0)
        state = editor.dispatch(JumpMarkCommand(MarkId.IN))
        assert state.cursor == 4.0
        assert editor.scheduler.audio.position == 4.0

    def test_calibration_flow(self, editor: Editor):
        editor.marks.set_mark("audio", 10.5)
        editor.marks.set_mark("video", 3.2)
        editor.dispatch(AlignCommand())
        state = editor.dispatch(JumpMarkCommand(MarkId.VIDEO))
        assert state.video_offset == 10.5 - 3.2
        assert state.cursor == pytest.approx(10.5)

    def test_clear_marks(self, editor: Editor):
        editor.marks.set_mark("out", 8.0)
        state = editor.dispatch(ClearMarksCommand())
        assert state.mark_out is None

    def test_scrub(self, editor: Editor):
        state = editor.dispatch(ScrubCommand(delta_raw=240, modifiers=ScrubModifiers(offset_mode=True)))
        assert state.video_offset == 2.0
        assert editor.scheduler.video.position == 2.0

    def test_mute_toggle(self, editor: Editor):
        state = editor.dispatch(ToggleCommand("mute_audio"))
        assert state.mute_audio is True
        assert editor.scheduler.audio.volume == 0.0
        assert editor.dispatch(ToggleCommand("mute_audio")).mute_audio is False

    def test_play_toggle(self, editor: Editor, loop: ManualLoop):
        editor.dispatch(ToggleCommand("play"))
        assert editor.scheduler.playing
        loop.advance(1.0)
        editor.dispatch(ToggleCommand("play"))
        assert not editor.scheduler.playing
        assert editor.session.state.cursor == pytest.approx(5.0)

    def test_edit_pauses_playback(self, editor: Editor, loop: ManualLoop):
        editor.dispatch(ToggleCommand("play"))
        loop.advance(2.0)
        editor.dispatch(SetMarkCommand(MarkId.AUDIO))
        assert not editor.scheduler.playing
        assert editor.session.state.mark_audio == pytest.approx(6.0)

    def test_every_edit_is_pushed(self, editor: Editor):
        editor.dispatch(SetMarkCommand(MarkId.IN))
        editor.dispatch(ScrubCommand(delta_raw=120))
        record = editor.sync.transport.pull()
        assert record["version"] == 2
        assert record["cursor"] == 5.0
        assert record["mark_in"] == 4.0

    def test_unknown_command(self, editor: Editor):
        with pytest.raises(TypeError):
            editor.dispatch(object())

    def test_without_sync(self, loop: ManualLoop):
        editor = Editor(Session(make_state()), FakePlayer(60.0), FakePlayer(90.0), loop)
        editor.dispatch(ScrubCommand(delta_raw=120))
        assert editor.session.state.cursor == 1.0
        assert editor.reload() is editor.session.state


class TestEditorMediaLoading:
    def test_players_seated_when_loaded(self, loop: ManualLoop):
        video, audio = FakePlayer(None), FakePlayer(None)
        session = Session(make_state(cursor=8.0, video_offset=3.0))
        editor = Editor(session, video, audio, loop)

        assert editor.scheduler.play() is False
        audio.load(90.0)
        video.load(60.0)

        assert video.position == 5.0
        assert audio.position == 8.0
        assert editor.scheduler.play() is True

    def test_reload_pulls_external_state(self, editor: Editor):
        other = make_state(cursor=30.0, video_offset=1.0)
        editor.sync.transport.push({**other.to_record(), "version": 10})
        state = editor.reload()
        assert state == other
        assert editor.scheduler.video.position == 29.0
        assert editor.sync.version == 10

    def test_video_loading_during_playback_joins_in(self, loop: ManualLoop):
        video, audio = FakePlayer(None), FakePlayer(90.0)
        session = Session(make_state(cursor=8.0, video_offset=3.0))
        editor = Editor(session, video, audio, loop)

        assert editor.scheduler.play() is True
        assert video.play_calls == 0
        loop.advance(1.5)
        video.load(60.0)

        assert video.play_calls == 1
        assert video.position == pytest.approx(6.5)
        assert "video" in editor.scheduler.voices
        loop.advance(1.0)
        editor.scheduler.pause()
        assert not video.playing
        assert video.position == pytest.approx(7.5)

    def test_late_video_before_its_start_is_delayed(self, loop: ManualLoop):
        video, audio = FakePlayer(None), FakePlayer(90.0)
        editor = Editor(Session(make_state(cursor=0.0, video_offset=5.0)), video, audio, loop)

        editor.scheduler.play()
        loop.advance(1.0)
        video.load(60.0)
        assert video.play_calls == 0
        loop.advance(4.0)
        assert video.play_calls == 1

    def test_late_video_past_its_end_stays_silent(self, loop: ManualLoop):
        video, audio = FakePlayer(None), FakePlayer(90.0)
        editor = Editor(Session(make_state(cursor=70.0)), video, audio, loop)

        editor.scheduler.play()
        video.load(60.0)
        assert video.play_calls == 0
        assert editor.scheduler.playing


class TestEditorPushFailure:
    def test_edit_survives_failed_push(self, loop: ManualLoop):
        session = Session(make_state(cursor=4.0))
        # another writer is ahead, so every push from here is stale
        transport = MemoryTransport({**make_state().to_record(), "version": 5})
        editor = Editor(session, FakePlayer(60.0), FakePlayer(90.0), loop, sync=StateSync(session, transport))
        editor.dispatch(ToggleCommand("play"))
        loop.advance(2.0)

        with pytest.raises(StaleStateError):
            editor.dispatch(SetMarkCommand(MarkId.AUDIO))

        assert not editor.scheduler.playing
        assert editor.session.state.mark_audio == pytest.approx(6.0)
        assert editor.scheduler.audio.position == pytest.approx(6.0)
        assert transport.pull()["version"] == 5

    def test_edit_is_pushed_once(self, editor: Editor, loop: ManualLoop):
        editor.dispatch(ToggleCommand("play"))
        loop.advance(1.0)
        editor.dispatch(SetMarkCommand(MarkId.IN))
        assert editor.sync.version == 1
        assert editor.sync.transport.pull()["mark_in"] == pytest.approx(5.0)
