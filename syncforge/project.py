"""JSON project file: the contract between CLI/server and engine."""

import json
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_STATE_FILE = "syncforge_state.json"


@dataclass
class ProxyConfig:
    """Configuration for browser-playable proxy preparation."""

    enabled: bool = True
    encoder: str = "libx264"
    cache_dir: Path | None = None


@dataclass
class Project:
    """Top-level project: the two recordings and where state is kept."""

    root: Path
    video: Path
    audio: Path
    version: str = "1"
    fps: int = 30
    state_file: Path | None = None
    proxy: ProxyConfig = field(default_factory=ProxyConfig)

    def resolve(self, path: Path) -> Path:
        return path if path.is_absolute() else self.root / path

    @property
    def video_path(self) -> Path:
        return self.resolve(self.video)

    @property
    def audio_path(self) -> Path:
        return self.resolve(self.audio)

    @property
    def state_path(self) -> Path:
        return self.resolve(self.state_file or Path(DEFAULT_STATE_FILE))


def load_project(path: str | Path) -> Project:
    """Load and validate a project from a JSON file."""
    path = Path(path)
    data = json.loads(path.read_text())

    missing = [k for k in ("root", "video", "audio") if k not in data]
    if missing:
        raise ValueError(f"Project must contain 'root', 'video' and 'audio' fields (missing: {', '.join(missing)})")

    proxy_data = dict(data.get("proxy", {}))
    if proxy_data.get("cache_dir") is not None:
        proxy_data["cache_dir"] = Path(proxy_data["cache_dir"])
    proxy = ProxyConfig(**proxy_data)

    fps = int(data.get("fps", 30))
    if fps <= 0:
        raise ValueError(f"Project fps must be > 0, got {fps}")

    return Project(
        version=data.get("version", "1"),
        root=Path(data["root"]),
        video=Path(data["video"]),
        audio=Path(data["audio"]),
        fps=fps,
        state_file=Path(data["state_file"]) if data.get("state_file") else None,
        proxy=proxy,
    )


def save_project(project: Project, path: str | Path) -> Path:
    """Write a project back to JSON."""
    path = Path(path)
    data = {
        "version": project.version,
        "root": str(project.root),
        "video": str(project.video),
        "audio": str(project.audio),
        "fps": project.fps,
        "proxy": {
            "enabled": project.proxy.enabled,
            "encoder": project.proxy.encoder,
            "cache_dir": str(project.proxy.cache_dir) if project.proxy.cache_dir else None,
        },
    }
    if project.state_file is not None:
        data["state_file"] = str(project.state_file)
    path.write_text(json.dumps(data, indent=2))
    return path
