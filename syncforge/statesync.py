"""Push/pull of the session state to an external store.

The store holds one flat record (``TimelineState.to_record()`` plus an integer
``version``). Pushes are last-writer-wins, except that a push must carry a
version newer than the stored one; stale pushes are rejected, not merged.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Protocol

import requests
import structlog

from syncforge.models import TimelineState
from syncforge.session import Session

logger = structlog.get_logger(__name__)

VERSION_KEY = "version"


class TransportError(RuntimeError):
    """Raised when the external store cannot be read or written."""
    pass


class StaleStateError(TransportError):
    """Raised when a push carries a version that is not newer than the store's."""

    def __init__(self, pushed: int, stored: int):
        super().__init__(f"Stale push: version {pushed} is not newer than stored {stored}")
        self.pushed = pushed
        self.stored = stored


class Transport(Protocol):
    def pull(self) -> dict: ...

    def push(self, record: dict) -> None: ...


def parse_version(record: dict) -> int:
    """The record's version, 0 when absent. Raises ValueError unless it is an int."""
    version = record.get(VERSION_KEY, 0)
    if not isinstance(version, int) or isinstance(version, bool):
        raise ValueError(f"{VERSION_KEY} must be an integer, got {version!r}")
    return version


def check_version(record: dict, stored: dict | None) -> None:
    """Raise StaleStateError unless ``record`` is newer than ``stored``."""
    if stored is None:
        return
    pushed = parse_version(record)
    current = parse_version(stored)
    if pushed <= current:
        raise StaleStateError(pushed, current)


class MemoryTransport:
    """In-process store. Backs the state server."""

    def __init__(self, record: dict | None = None):
        self._record = dict(record) if record is not None else None

    def pull(self) -> dict:
        if self._record is None:
            raise TransportError("No state has been pushed yet")
        return dict(self._record)

    def push(self, record: dict) -> None:
        check_version(record, self._record)
        self._record = dict(record)


class JsonFileTransport:
    """Store the record as a JSON file, replaced atomically on each push."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def _read(self) -> dict | None:
        if not self.path.exists():
            return None
        try:
            return json.loads(self.path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            raise TransportError(f"Cannot read state file {self.path}: {e}") from e

    def pull(self) -> dict:
        record = self._read()
        if record is None:
            raise TransportError(f"State file not found: {self.path}")
        return record

    def push(self, record: dict) -> None:
        check_version(record, self._read())
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
            with os.fdopen(fd, "w") as f:
                json.dump(record, f, indent=2)
            os.replace(tmp, self.path)
        except OSError as e:
            raise TransportError(f"Cannot write state file {self.path}: {e}") from e


class HttpTransport:
    """Client for the state server's ``/api/state`` endpoint."""

    def __init__(self, base_url: str, timeout: float = 5.0):
        self.url = base_url.rstrip("/") + "/api/state"
        self.timeout = timeout

    def pull(self) -> dict:
        try:
            resp = requests.get(self.url, timeout=self.timeout)
            resp.raise_for_status()
            return resp.json()
        except requests.RequestException as e:
            raise TransportError(f"GET {self.url} failed: {e}") from e

    def push(self, record: dict) -> None:
        try:
            resp = requests.put(self.url, json=record, timeout=self.timeout)
        except requests.RequestException as e:
            raise TransportError(f"PUT {self.url} failed: {e}") from e

        if resp.status_code == 409:
            try:
                body = resp.json()
            except ValueError as e:
                raise TransportError(f"PUT {self.url} returned 409 without a JSON body: {resp.text[:200]}") from e
            raise StaleStateError(body.get("pushed", 0), body.get("stored", 0))
        if resp.status_code >= 400:
            raise TransportError(f"PUT {self.url} returned {resp.status_code}: {resp.text[:200]}")


def _decode(record: dict) -> tuple[TimelineState, int]:
    version = parse_version(record)
    fields = {k: v for k, v in record.items() if k != VERSION_KEY}
    return TimelineState.from_record(fields), version


class StateSync:
    """Moves the session state across the process boundary.

    On failure the in-memory state stays authoritative; nothing is rolled back.
    """

    def __init__(self, session: Session, transport: Transport):
        self.session = session
        self.transport = transport
        self.version = 0

    @classmethod
    def from_transport(cls, transport: Transport) -> "StateSync":
        """Start a new session from the stored snapshot."""
        state, version = _decode(transport.pull())
        sync = cls(Session(state), transport)
        sync.version = version
        return sync

    def pull(self) -> TimelineState:
        """Replace the session state with the stored snapshot."""
        state, version = _decode(self.transport.pull())
        self.version = version
        logger.debug("State pulled", version=version)
        return self.session.replace(state)

    def push(self) -> int:
        """Send the session state to the store. Returns the pushed version."""
        record = self.session.state.to_record()
        record[VERSION_KEY] = self.version + 1
        try:
            self.transport.push(record)
        except TransportError as e:
            logger.error("State push failed", version=record[VERSION_KEY], error=str(e))
            raise
        self.version = record[VERSION_KEY]
        logger.debug("State pushed", version=self.version)
        return self.version
