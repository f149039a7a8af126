"""Tests for the EventLog and its storage backends."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import patch

import pytest

from integrity_monitor.domain.enums import EventOrder, SignalKind
from integrity_monitor.domain.errors import (
    SessionNotFoundError,
    SignalValidationError,
    StorageError,
)
from integrity_monitor.domain.signal import SignalDraft
from integrity_monitor.store.event_log import EventLog
from integrity_monitor.store.storage import InMemoryStorage, JsonlStorage

_BASE = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def _draft(session_id: str, kind: SignalKind = SignalKind.MULTIPLE_FACES, ms: int | None = None, **payload) -> SignalDraft:
    if not payload and kind == SignalKind.MULTIPLE_FACES:
        payload = {"count": 2}
    return SignalDraft(
        session_id=session_id,
        kind=kind,
        timestamp=None if ms is None else _BASE + timedelta(milliseconds=ms),
        payload=payload,
    )


class FailingStorage(InMemoryStorage):
    """Accepts sessions, refuses every signal."""

    def append_signal(self, signal) -> None:
        raise StorageError("disk full")


# ── Sessions ─────────────────────────────────────────────────────────────────


class TestSessions:
    @pytest.mark.asyncio
    async def test_create_and_get(self) -> None:
        log = EventLog()
        session = await log.create_session("Demo Candidate")
        assert await log.get_session(session.session_id) is session
        assert await log.session_count() == 1

    @pytest.mark.asyncio
    async def test_duplicate_id_rejected(self) -> None:
        log = EventLog()
        await log.create_session("A", session_id="fixed")
        with pytest.raises(SignalValidationError):
            await log.create_session("B", session_id="fixed")

    @pytest.mark.asyncio
    async def test_require_unknown_raises(self) -> None:
        with pytest.raises(SessionNotFoundError):
            await EventLog().require_session("missing")

    @pytest.mark.asyncio
    async def test_list_sessions_newest_first(self) -> None:
        log = EventLog()
        with patch("integrity_monitor.domain.session.utc_now", return_value=_BASE):
            first = await log.create_session("first")
        with patch(
            "integrity_monitor.domain.session.utc_now",
            return_value=_BASE + timedelta(minutes=5),
        ):
            second = await log.create_session("second")
        assert [s.session_id for s in await log.list_sessions()] == [
            second.session_id,
            first.session_id,
        ]

    @pytest.mark.asyncio
    async def test_end_session_keeps_first_end(self) -> None:
        log = EventLog()
        session = await log.create_session("A")
        await log.end_session(session.session_id, _BASE + timedelta(hours=1))
        await log.end_session(session.session_id, _BASE + timedelta(hours=2))
        assert session.ended_at == _BASE + timedelta(hours=1)


# ── Append ───────────────────────────────────────────────────────────────────


class TestAppend:
    @pytest.mark.asyncio
    async def test_append_assigns_sequence_and_id(self) -> None:
        log = EventLog()
        session = await log.create_session("A")
        first = await log.append(_draft(session.session_id, ms=0))
        second = await log.append(_draft(session.session_id, ms=10))
        assert (first.sequence, second.sequence) == (0, 1)
        assert first.signal_id != second.signal_id
        assert first.timestamp == _BASE

    @pytest.mark.asyncio
    async def test_missing_timestamp_uses_now(self) -> None:
        log = EventLog()
        session = await log.create_session("A")
        with patch("integrity_monitor.store.event_log.utc_now", return_value=_BASE):
            signal = await log.append(_draft(session.session_id))
        assert signal.timestamp == _BASE

    @pytest.mark.asyncio
    async def test_assigned_now_never_precedes_last_signal(self) -> None:
        log = EventLog()
        session = await log.create_session("A")
        await log.append(_draft(session.session_id, ms=5000))
        with patch("integrity_monitor.store.event_log.utc_now", return_value=_BASE):
            signal = await log.append(_draft(session.session_id))
        assert signal.timestamp == _BASE + timedelta(seconds=5)

    @pytest.mark.asyncio
    async def test_earlier_explicit_timestamp_rejected(self) -> None:
        log = EventLog()
        session = await log.create_session("A")
        await log.append(_draft(session.session_id, ms=5000))
        with pytest.raises(SignalValidationError):
            await log.append(_draft(session.session_id, ms=4000))
        assert await log.event_count(session.session_id) == 1

    @pytest.mark.asyncio
    async def test_equal_timestamps_accepted(self) -> None:
        log = EventLog()
        session = await log.create_session("A")
        await log.append(_draft(session.session_id, ms=0))
        await log.append(_draft(session.session_id, ms=0))
        assert await log.event_count(session.session_id) == 2

    @pytest.mark.asyncio
    async def test_clamped_timestamp_moves_up_and_keeps_observed_time(self) -> None:
        log = EventLog()
        session = await log.create_session("A")
        await log.append(_draft(session.session_id, ms=5000))
        signal = await log.append(_draft(session.session_id, ms=4000), clamp_timestamp=True)
        assert signal.timestamp == _BASE + timedelta(seconds=5)
        assert signal.payload["observedAt"] == (_BASE + timedelta(seconds=4)).isoformat()
        assert signal.payload["count"] == 2

    @pytest.mark.asyncio
    async def test_clamp_leaves_in_order_timestamp_alone(self) -> None:
        log = EventLog()
        session = await log.create_session("A")
        await log.append(_draft(session.session_id, ms=0))
        signal = await log.append(_draft(session.session_id, ms=10), clamp_timestamp=True)
        assert signal.timestamp == _BASE + timedelta(milliseconds=10)
        assert "observedAt" not in signal.payload

    @pytest.mark.asyncio
    async def test_unknown_session_leaves_log_unchanged(self) -> None:
        log = EventLog()
        session = await log.create_session("A")
        await log.append(_draft(session.session_id, ms=0))
        with pytest.raises(SessionNotFoundError):
            await log.append(_draft("missing", ms=10))
        assert await log.event_count(session.session_id) == 1
        assert await log.list_by_session("missing") == []

    @pytest.mark.asyncio
    async def test_malformed_dict_rejected(self) -> None:
        log = EventLog()
        session = await log.create_session("A")
        with pytest.raises(SignalValidationError):
            await log.append({"session_id": session.session_id, "kind": "NO_FACE", "payload": {}})

    @pytest.mark.asyncio
    async def test_dict_draft_accepted(self) -> None:
        log = EventLog()
        session = await log.create_session("A")
        signal = await log.append(
            {"session_id": session.session_id, "kind": "NO_FACE", "payload": {"durationMs": 10_500}}
        )
        assert signal.kind == SignalKind.NO_FACE

    @pytest.mark.asyncio
    async def test_storage_failure_appends_nothing(self) -> None:
        log = EventLog(FailingStorage())
        session = await log.create_session("A")
        with pytest.raises(StorageError):
            await log.append(_draft(session.session_id, ms=0))
        assert await log.event_count(session.session_id) == 0

    @pytest.mark.asyncio
    async def test_appending_after_end_is_allowed(self) -> None:
        log = EventLog()
        session = await log.create_session("A")
        await log.end_session(session.session_id, _BASE)
        signal = await log.append(
            _draft(session.session_id, SignalKind.VIDEO_UPLOADED, ms=10, path="/uploads/a.webm")
        )
        assert signal.sequence == 0

    @pytest.mark.asyncio
    async def test_concurrent_appends_keep_dense_sequence(self) -> None:
        log = EventLog()
        session = await log.create_session("A")
        await asyncio.gather(*(log.append(_draft(session.session_id)) for _ in range(50)))
        events = await log.list_by_session(session.session_id)
        assert [s.sequence for s in events] == list(range(50))


# ── Queries ──────────────────────────────────────────────────────────────────


class TestQueries:
    @pytest.mark.asyncio
    async def test_descending_is_exact_reverse(self) -> None:
        log = EventLog()
        session = await log.create_session("A")
        for ms in (0, 0, 10, 20):
            await log.append(_draft(session.session_id, ms=ms))
        asc = await log.list_by_session(session.session_id)
        desc = await log.list_by_session(session.session_id, EventOrder.DESC)
        assert desc == list(reversed(asc))

    @pytest.mark.asyncio
    async def test_sessions_are_partitioned(self) -> None:
        log = EventLog()
        a = await log.create_session("A")
        b = await log.create_session("B")
        await log.append(_draft(a.session_id, ms=0))
        assert await log.list_by_session(b.session_id) == []

    @pytest.mark.asyncio
    async def test_snapshot_excludes_later_appends(self) -> None:
        log = EventLog()
        session = await log.create_session("A")
        await log.append(_draft(session.session_id, ms=0))
        snap_session, snap_events = await log.snapshot(session.session_id)
        await log.append(_draft(session.session_id, ms=10))
        await log.end_session(session.session_id, _BASE)
        assert len(snap_events) == 1
        assert snap_session.ended_at is None

    @pytest.mark.asyncio
    async def test_returned_list_is_a_copy(self) -> None:
        log = EventLog()
        session = await log.create_session("A")
        await log.append(_draft(session.session_id, ms=0))
        events = await log.list_by_session(session.session_id)
        events.clear()
        assert await log.event_count(session.session_id) == 1


# ── JSONL Storage ────────────────────────────────────────────────────────────


class TestJsonlStorage:
    @pytest.mark.asyncio
    async def test_reload_restores_sessions_and_events(self, tmp_path) -> None:
        log = EventLog(JsonlStorage(tmp_path))
        session = await log.create_session("Demo Candidate")
        await log.append(_draft(session.session_id, ms=0))
        await log.append(
            _draft(session.session_id, SignalKind.UNAUTHORIZED_ITEM, ms=10, label="book", score=0.9)
        )
        await log.end_session(session.session_id, _BASE + timedelta(seconds=1))

        reloaded = EventLog(JsonlStorage(tmp_path))
        restored = await reloaded.require_session(session.session_id)
        assert restored.ended_at == _BASE + timedelta(seconds=1)
        events = await reloaded.list_by_session(session.session_id)
        assert [s.kind for s in events] == [SignalKind.MULTIPLE_FACES, SignalKind.UNAUTHORIZED_ITEM]
        assert events == await log.list_by_session(session.session_id)

    @pytest.mark.asyncio
    async def test_sequence_continues_after_reload(self, tmp_path) -> None:
        log = EventLog(JsonlStorage(tmp_path))
        session = await log.create_session("A")
        await log.append(_draft(session.session_id, ms=0))

        reloaded = EventLog(JsonlStorage(tmp_path))
        signal = await reloaded.append(_draft(session.session_id, ms=10))
        assert signal.sequence == 1

    def test_corrupt_file_raises_storage_error(self, tmp_path) -> None:
        JsonlStorage(tmp_path)
        (tmp_path / "sessions.jsonl").write_text("{not json\n", encoding="utf-8")
        with pytest.raises(StorageError):
            JsonlStorage(tmp_path).load()

    @pytest.mark.asyncio
    async def test_torn_trailing_line_dropped_on_reload(self, tmp_path) -> None:
        log = EventLog(JsonlStorage(tmp_path))
        session = await log.create_session("A")
        await log.append(_draft(session.session_id, ms=0))
        events_file = tmp_path / "events" / f"{session.session_id}.jsonl"
        with events_file.open("a", encoding="utf-8") as fh:
            fh.write('{"kind": "NO_F')

        reloaded = EventLog(JsonlStorage(tmp_path))
        assert await reloaded.event_count(session.session_id) == 1
        signal = await reloaded.append(_draft(session.session_id, ms=10))
        assert signal.sequence == 1

        again = EventLog(JsonlStorage(tmp_path))
        events = await again.list_by_session(session.session_id)
        assert [s.sequence for s in events] == [0, 1]

    @pytest.mark.asyncio
    async def test_failed_append_leaves_file_unchanged(self, tmp_path) -> None:
        log = EventLog(JsonlStorage(tmp_path))
        session = await log.create_session("A")
        await log.append(_draft(session.session_id, ms=0))
        events_file = tmp_path / "events" / f"{session.session_id}.jsonl"
        before = events_file.read_bytes()

        with patch.object(Path, "open", side_effect=OSError("disk full")):
            with pytest.raises(StorageError):
                await log.append(_draft(session.session_id, ms=10))

        assert events_file.read_bytes() == before
        assert await log.event_count(session.session_id) == 1

    @pytest.mark.asyncio
    async def test_file_writes_run_off_the_event_loop(self, tmp_path) -> None:
        log = EventLog(JsonlStorage(tmp_path))
        session = await log.create_session("A")
        with patch(
            "integrity_monitor.store.event_log.asyncio.to_thread", wraps=asyncio.to_thread
        ) as to_thread:
            await log.append(_draft(session.session_id, ms=0))
        assert to_thread.call_count == 1
        assert await log.event_count(session.session_id) == 1

    @pytest.mark.asyncio
    async def test_in_memory_writes_stay_on_the_event_loop(self) -> None:
        log = EventLog()
        session = await log.create_session("A")
        with patch(
            "integrity_monitor.store.event_log.asyncio.to_thread", wraps=asyncio.to_thread
        ) as to_thread:
            await log.append(_draft(session.session_id, ms=0))
        assert to_thread.call_count == 0
