"""Storage backends for the event log.

The EventLog keeps its working set in memory and writes through to a
backend.  A backend only needs "durable append + reload"; ordering and
validation are the log's job.  Swap implementations to change durability
without touching log logic.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Protocol

from integrity_monitor.domain.errors import StorageError
from integrity_monitor.domain.session import Session
from integrity_monitor.domain.signal import Signal

logger = logging.getLogger(__name__)


class EventStorage(Protocol):
    """Protocol for durable session and signal persistence.

    A backend whose calls block on I/O sets ``blocking = True``; the
    EventLog then runs them in a worker thread.
    """

    blocking: bool

    def load(self) -> tuple[list[Session], dict[str, list[Signal]]]:
        """Return every stored session and its signals in append order."""
        ...

    def save_session(self, session: Session) -> None:
        """Persist the current state of *session* (create or update)."""
        ...

    def append_signal(self, signal: Signal) -> None:
        """Durably append one signal.  Raise StorageError on failure."""
        ...


class InMemoryStorage:
    """No durability.  The EventLog's own memory is the only copy."""

    blocking = False

    def load(self) -> tuple[list[Session], dict[str, list[Signal]]]:
        return [], {}

    def save_session(self, session: Session) -> None:
        pass

    def append_signal(self, signal: Signal) -> None:
        pass


class JsonlStorage:
    """JSON Lines on disk.

    Layout under *root*:
        sessions.jsonl            one record per session change; last wins
        events/<session_id>.jsonl one signal per line, in append order
    """

    blocking = True

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)
        self._events_dir = self._root / "events"
        self._sessions_file = self._root / "sessions.jsonl"
        try:
            self._events_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"cannot create storage directory {self._root}: {exc}") from exc

    def load(self) -> tuple[list[Session], dict[str, list[Signal]]]:
        sessions: dict[str, Session] = {}
        events: dict[str, list[Signal]] = {}
        try:
            if self._sessions_file.exists():
                for record in self._read_lines(self._sessions_file):
                    sessions[record["session_id"]] = Session.from_record(record)
            for path in sorted(self._events_dir.glob("*.jsonl")):
                events[path.stem] = [
                    Signal.model_validate(record) for record in self._read_lines(path)
                ]
        except (OSError, ValueError, KeyError) as exc:
            raise StorageError(f"cannot load event log from {self._root}: {exc}") from exc

        logger.info(
            "Loaded %d session(s), %d signal(s) from %s",
            len(sessions),
            sum(len(v) for v in events.values()),
            self._root,
        )
        return list(sessions.values()), events

    def save_session(self, session: Session) -> None:
        self._append_line(self._sessions_file, session.to_record())

    def append_signal(self, signal: Signal) -> None:
        self._append_line(self._events_dir / f"{signal.session_id}.jsonl", signal.to_wire())

    # ── Internals ────────────────────────────────────────────────────────

    @staticmethod
    def _read_lines(path: Path) -> list[dict]:
        raw = path.read_bytes()
        complete, _, tail = raw.rpartition(b"\n")
        if tail.strip():
            # Torn write from a crash mid-append; the record never landed
            logger.warning(
                "Discarding partial trailing record in %s (%d byte(s))", path.name, len(tail)
            )
            os.truncate(path, len(raw) - len(tail))
        return [
            json.loads(line) for line in complete.decode("utf-8").splitlines() if line.strip()
        ]

    @staticmethod
    def _append_line(path: Path, record: dict) -> None:
        line = json.dumps(record, sort_keys=True) + "\n"
        try:
            size = path.stat().st_size if path.exists() else 0
        except OSError as exc:
            raise StorageError(f"cannot stat {path.name}: {exc}") from exc
        try:
            with path.open("a", encoding="utf-8") as fh:
                fh.write(line)
                fh.flush()
        except OSError as exc:
            try:
                os.truncate(path, size)
            except OSError as undo_exc:
                logger.error("Could not roll back partial append to %s: %s", path.name, undo_exc)
            raise StorageError(f"append to {path.name} failed: {exc}") from exc
