"""FFmpeg/ffprobe subprocess helpers."""

import hashlib
import json
import os
import shutil
import subprocess
from pathlib import Path

import structlog

from syncforge.models import ProbeResult

logger = structlog.get_logger(__name__)

DEFAULT_PROXY_DIR = Path.home() / ".cache" / "videotools" / "proxy"

# Video codec arguments per encoder. Everything else in the proxy command is
# shared: aac audio, yuv420p, moov atom up front for progressive playback.
ENCODER_ARGS: dict[str, list[str]] = {
    "h264_nvenc": [
        "-c:v", "h264_nvenc",
        "-tune:v", "hq",
        "-rc:v", "vbr",
        "-cq:v", "20",
        "-b:v", "0",
        "-profile:v", "high",
    ],
    "libx264": [
        "-c:v", "libx264",
        "-preset", "medium",
        "-crf", "20",
        "-profile:v", "high",
    ],
}


class FFmpegNotFoundError(RuntimeError):
    pass


class MediaLoadError(RuntimeError):
    """Raised when media cannot be probed, decoded or converted to a proxy."""
    pass


def check_ffmpeg() -> None:
    """Raise FFmpegNotFoundError if ffmpeg/ffprobe are not on PATH."""
    for cmd in ("ffmpeg", "ffprobe"):
        if shutil.which(cmd) is None:
            raise FFmpegNotFoundError(f"{cmd} not found on PATH")


def _parse_rate(rate: str) -> float | None:
    num, _, den = rate.partition("/")
    try:
        if not den:
            return float(num)
        return int(num) / int(den) if int(den) else None
    except ValueError:
        return None


def probe(input_path: Path) -> ProbeResult:
    """Extract media metadata via ffprobe."""
    cmd = [
        "ffprobe",
        "-v", "quiet",
        "-print_format", "json",
        "-show_format",
        "-show_streams",
        str(input_path),
    ]
    result = subprocess.run(cmd, capture_output=True, text=True)
    if result.returncode != 0:
        raise MediaLoadError(
            f"ffprobe failed on {input_path} (rc={result.returncode})"
        )
    data = json.loads(result.stdout)

    video_stream = next(
        (s for s in data.get("streams", []) if s["codec_type"] == "video"), None
    )
    audio_stream = next(
        (s for s in data.get("streams", []) if s["codec_type"] == "audio"), None
    )
    if video_stream is None and audio_stream is None:
        raise MediaLoadError(f"No audio or video stream found in {input_path}")

    probe_result = ProbeResult(
        duration=float(data["format"]["duration"]),
        has_video=video_stream is not None,
        has_audio=audio_stream is not None,
    )
    if video_stream is not None:
        probe_result.fps = _parse_rate(video_stream.get("r_frame_rate", "0/0"))
        probe_result.width = int(video_stream["width"])
        probe_result.height = int(video_stream["height"])
        probe_result.codec_video = video_stream["codec_name"]
    if audio_stream is not None:
        probe_result.codec_audio = audio_stream["codec_name"]
    return probe_result


def proxy_cache_key(path: Path, mtime: float) -> str:
    """Content address of a proxy: the source path plus its modification time."""
    return hashlib.sha1(f"proxy-video:{path}:{mtime}".encode()).hexdigest()


def proxy_command(input_path: Path, output_path: Path, encoder: str) -> list[str]:
    if encoder not in ENCODER_ARGS:
        raise ValueError(
            f"Unknown proxy encoder '{encoder}', expected one of {sorted(ENCODER_ARGS)}"
        )
    return [
        "ffmpeg",
        "-i", str(input_path),
        *ENCODER_ARGS[encoder],
        "-c:a", "aac",
        "-pix_fmt", "yuv420p",
        "-movflags", "+faststart",
        "-y",
        str(output_path),
    ]


def ensure_playable(
    input_path: Path,
    cache_dir: Path | None = None,
    encoder: str = "libx264",
) -> Path:
    """Return a browser-playable copy of ``input_path``, encoding it if needed.

    Proxies are cached by (path, mtime), so an unchanged source is never
    re-encoded. Raises MediaLoadError if ffmpeg does not produce the file.
    """
    input_path = Path(input_path)
    try:
        mtime = input_path.stat().st_mtime
    except OSError as e:
        raise MediaLoadError(f"Cannot stat source video {input_path}: {e}") from e

    output = Path(cache_dir or DEFAULT_PROXY_DIR) / f"{proxy_cache_key(input_path, mtime)}.mp4"
    if output.exists():
        logger.debug("Proxy cache hit", source=str(input_path), proxy=str(output))
        return output

    output.parent.mkdir(parents=True, exist_ok=True)
    # only a finished encode may take the cache name
    partial = output.with_name(f"{output.stem}.partial{output.suffix}")
    cmd = proxy_command(input_path, partial, encoder)
    logger.info("Encoding proxy", source=str(input_path), command=" ".join(cmd))

    result = subprocess.run(cmd, capture_output=True, text=True)
    stderr = (result.stderr or "")[-500:]
    if result.returncode != 0:
        partial.unlink(missing_ok=True)
        raise MediaLoadError(
            f"FFmpeg failed on {input_path} (rc={result.returncode})\n{stderr}".rstrip()
        )
    if not partial.exists():
        raise MediaLoadError(f"FFmpeg did not create file: {output}\n{stderr}".rstrip())
    os.replace(partial, output)
    return output
