"""Tests for the SignalClassifier and its trackers.

Time is driven explicitly: every tick is ``_BASE + ms``.  Frames are
1000 x 1000 px with the eyes at x=450/550, so a nose offset of N px is a
horizontal deviation of N / 1000.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from integrity_monitor.classifier.config import ClassifierConfig
from integrity_monitor.classifier.signal_classifier import SignalClassifier
from integrity_monitor.domain.detection import DetectionFrame, FaceObservation, Point
from integrity_monitor.domain.enums import FacePresence, GazeState, SignalKind

_BASE = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
_FOCUSED = 0.0
_AWAY = 100.0


def _at(ms: int) -> datetime:
    return _BASE + timedelta(milliseconds=ms)


def _face(nose_offset_px: float = _FOCUSED) -> FaceObservation:
    return FaceObservation(
        keypoints={
            "left_eye": Point(x=450, y=400),
            "right_eye": Point(x=550, y=400),
            "nose": Point(x=500 + nose_offset_px, y=450),
        }
    )


def _frame(faces=None, objects=None, *, no_faces: bool = False) -> DetectionFrame:
    """One face looking straight ahead unless told otherwise."""
    if faces is None and not no_faces:
        faces = [_face()]
    return DetectionFrame(
        faces=[] if no_faces else faces,
        objects=[] if objects is None else objects,
        frame_width=1000,
        frame_height=1000,
    )


def _phone(score: float = 0.9, label: str = "cell phone") -> dict:
    return {"label": label, "score": score, "bbox": [10, 20, 30, 40]}


def _classifier(**config) -> SignalClassifier:
    return SignalClassifier("session-a", _BASE, ClassifierConfig(**config))


def _kinds(drafts) -> list[SignalKind]:
    return [d.kind for d in drafts]


def _run(classifier: SignalClassifier, ticks) -> list:
    """Feed ``(ms, frame)`` pairs in order and collect every draft."""
    drafts = []
    for ms, frame in ticks:
        drafts.extend(classifier.classify(frame, _at(ms)))
    return drafts


# ── Configuration ────────────────────────────────────────────────────────────


class TestClassifierConfig:
    def test_defaults(self) -> None:
        cfg = ClassifierConfig()
        assert cfg.no_face_threshold_ms == 10_000
        assert cfg.look_away_duration_ms == 5_000
        assert cfg.look_away_deviation_threshold == 0.06
        assert cfg.object_detect_interval_ms == 1_000
        assert "cell phone" in cfg.unauthorized_labels

    def test_regain_longer_than_look_away_accepted(self) -> None:
        cfg = ClassifierConfig(look_away_duration_ms=1000, focus_regain_duration_ms=2000)
        assert cfg.focus_regain_duration_ms == 2000

    def test_labels_are_normalised(self) -> None:
        cfg = ClassifierConfig(unauthorized_labels=(" Phone ", "BOOK"))
        assert cfg.unauthorized_labels == ("phone", "book")


# ── Face presence ────────────────────────────────────────────────────────────


class TestFacePresence:
    def test_no_signal_before_threshold(self) -> None:
        c = _classifier()
        drafts = _run(c, [(ms, _frame(no_faces=True)) for ms in range(0, 10_001, 500)])
        assert SignalKind.NO_FACE not in _kinds(drafts)
        assert c.presence.state == FacePresence.ABSENT

    def test_one_signal_per_elapsed_window(self) -> None:
        c = _classifier()
        drafts = _run(c, [(ms, _frame(no_faces=True)) for ms in range(0, 25_001, 300)])
        no_face = [d for d in drafts if d.kind == SignalKind.NO_FACE]
        assert len(no_face) == 2
        assert [d.payload["durationMs"] for d in no_face] == [10_200, 10_200]
        assert no_face[0].timestamp == _at(10_200)

    def test_face_reappearing_resets_baseline(self) -> None:
        c = _classifier()
        ticks = [(ms, _frame(no_faces=True)) for ms in range(0, 9_001, 1000)]
        ticks.append((9_500, _frame()))
        ticks += [(ms, _frame(no_faces=True)) for ms in range(10_000, 19_001, 1000)]
        assert SignalKind.NO_FACE not in _kinds(_run(c, ticks))
        assert c.presence.last_seen_at == _at(9_500)


# ── Multiple faces ───────────────────────────────────────────────────────────


class TestMultipleFaces:
    def test_every_multi_face_tick_signals(self) -> None:
        c = _classifier()
        drafts = _run(c, [(ms, _frame([_face(), _face()])) for ms in (0, 100, 200)])
        multiple = [d for d in drafts if d.kind == SignalKind.MULTIPLE_FACES]
        assert len(multiple) == 3
        assert all(d.payload == {"count": 2} for d in multiple)

    def test_multi_face_tick_leaves_focus_untouched(self) -> None:
        c = _classifier()
        _run(c, [(0, _frame([_face(_AWAY)]))])
        assert c.focus.state == GazeState.AWAY_PENDING
        _run(c, [(1000, _frame([_face(), _face()]))])
        assert c.focus.state == GazeState.AWAY_PENDING
        assert c.focus.streak_started_at == _at(0)


# ── Focus ────────────────────────────────────────────────────────────────────


class TestFocus:
    def test_streak_just_short_of_duration_is_silent(self) -> None:
        c = _classifier()
        ticks = [(ms, _frame([_face(_AWAY)])) for ms in (0, 1000, 2000, 3000, 4000, 4999)]
        ticks.append((5100, _frame()))
        drafts = _run(c, ticks)
        assert SignalKind.FOCUS_LOST not in _kinds(drafts)
        assert c.focus.state == GazeState.FOCUSED

    def test_streak_past_duration_signals_once(self) -> None:
        c = _classifier()
        drafts = _run(
            c, [(ms, _frame([_face(_AWAY)])) for ms in (0, 2500, 5001, 5500, 6000, 9000)]
        )
        lost = [d for d in drafts if d.kind == SignalKind.FOCUS_LOST]
        assert len(lost) == 1
        assert lost[0].timestamp == _at(5001)
        assert lost[0].payload["durationMs"] == 5001
        assert lost[0].payload["deviation"] == pytest.approx(0.1)
        assert c.focus.looking_away

    def test_regain_after_stable_window(self) -> None:
        c = _classifier()
        _run(c, [(ms, _frame([_face(_AWAY)])) for ms in (0, 5001)])
        drafts = _run(c, [(ms, _frame()) for ms in (6300, 7000, 7800, 8500)])
        assert _kinds(drafts) == [SignalKind.FOCUS_REGAINED]
        assert drafts[0].timestamp == _at(7800)
        assert c.focus.state == GazeState.FOCUSED

    def test_regain_window_longer_than_look_away(self) -> None:
        c = _classifier(look_away_duration_ms=1000, focus_regain_duration_ms=3000)
        _run(c, [(ms, _frame([_face(_AWAY)])) for ms in (0, 1001)])
        assert c.focus.looking_away
        assert _run(c, [(ms, _frame()) for ms in (2000, 4000)]) == []
        drafts = _run(c, [(5000, _frame())])
        assert _kinds(drafts) == [SignalKind.FOCUS_REGAINED]

    def test_looking_away_during_regain_cancels_it(self) -> None:
        c = _classifier()
        _run(c, [(ms, _frame([_face(_AWAY)])) for ms in (0, 5001)])
        drafts = _run(
            c,
            [
                (6000, _frame()),
                (6500, _frame([_face(_AWAY)])),
                (7600, _frame()),
                (8000, _frame()),
            ],
        )
        assert drafts == []
        assert c.focus.state == GazeState.REGAINING
        assert c.focus.regain_started_at == _at(7600)

        drafts = _run(c, [(9100, _frame())])
        assert _kinds(drafts) == [SignalKind.FOCUS_REGAINED]

    def test_brief_glance_restarts_streak(self) -> None:
        c = _classifier()
        _run(c, [(0, _frame([_face(_AWAY)])), (1000, _frame())])
        assert c.focus.state == GazeState.FOCUSED
        _run(c, [(2000, _frame([_face(_AWAY)]))])
        assert c.focus.streak_started_at == _at(2000)

    def test_negative_deviation_counts_as_away(self) -> None:
        c = _classifier()
        drafts = _run(c, [(ms, _frame([_face(-_AWAY)])) for ms in (0, 5001)])
        assert _kinds(drafts) == [SignalKind.FOCUS_LOST]
        assert drafts[0].payload["deviation"] == pytest.approx(-0.1)

    def test_vertical_threshold_is_optional(self) -> None:
        c = _classifier(look_away_vertical_threshold=0.02, vertical_baseline=0.05)
        drafts = _run(c, [(ms, _frame()) for ms in (0, 5001)])
        assert _kinds(drafts) == []

        tilted = FaceObservation(
            keypoints={
                "left_eye": Point(x=450, y=400),
                "right_eye": Point(x=550, y=400),
                "nose": Point(x=500, y=500),
            }
        )
        drafts = _run(c, [(ms, _frame([tilted])) for ms in (6000, 11_001)])
        assert _kinds(drafts) == [SignalKind.FOCUS_LOST]
        assert drafts[0].payload["verticalDeviation"] == pytest.approx(0.05)


# ── Unauthorized items ───────────────────────────────────────────────────────


class TestUnauthorizedItems:
    def test_rate_limited_to_interval(self) -> None:
        c = _classifier()
        ticks = [(ms, _frame(objects=[_phone()])) for ms in (0, 300, 600, 999, 1000, 1500)]
        items = [d for d in _run(c, ticks) if d.kind == SignalKind.UNAUTHORIZED_ITEM]
        assert [d.timestamp for d in items] == [_at(0), _at(1000)]

    def test_one_signal_per_matching_object(self) -> None:
        c = _classifier()
        objects = [_phone(), _phone(label="book"), _phone(label="person")]
        drafts = _run(c, [(0, _frame(objects=objects))])
        assert [d.payload["label"] for d in drafts] == ["cell phone", "book"]

    def test_low_confidence_ignored(self) -> None:
        c = _classifier()
        drafts = _run(c, [(0, _frame(objects=[_phone(score=0.6)]))])
        assert drafts == []

    def test_label_match_is_case_insensitive(self) -> None:
        c = _classifier()
        drafts = _run(c, [(0, _frame(objects=[_phone(label="Cell Phone")]))])
        assert len(drafts) == 1
        assert drafts[0].payload["bbox"] == [10, 20, 30, 40]

    def test_missing_objects_do_not_consume_interval(self) -> None:
        c = _classifier()
        frame = DetectionFrame(faces=[_face()], objects=None, frame_width=1000, frame_height=1000)
        _run(c, [(0, frame)])
        assert c.items.last_evaluated_at is None
        assert c.object_evaluation_due(_at(100))

        drafts = _run(c, [(100, _frame(objects=[_phone()]))])
        assert _kinds(drafts) == [SignalKind.UNAUTHORIZED_ITEM]
        assert not c.object_evaluation_due(_at(500))


# ── Composition ──────────────────────────────────────────────────────────────


class TestSignalClassifier:
    def test_drafts_carry_session_and_tick_time(self) -> None:
        c = _classifier()
        drafts = c.classify(_frame([_face(), _face()]), _at(42))
        assert drafts[0].session_id == "session-a"
        assert drafts[0].timestamp == _at(42)

    def test_tracker_order_within_a_tick(self) -> None:
        c = _classifier()
        drafts = _run(c, [(0, _frame([_face(), _face()], objects=[_phone()]))])
        assert _kinds(drafts) == [SignalKind.MULTIPLE_FACES, SignalKind.UNAUTHORIZED_ITEM]

    def test_missing_landmarks_skip_only_focus(self) -> None:
        c = _classifier()
        partial = FaceObservation(keypoints={"nose": Point(x=500, y=450)})
        drafts = _run(c, [(0, _frame([partial], objects=[_phone()]))])
        assert _kinds(drafts) == [SignalKind.UNAUTHORIZED_ITEM]
        assert c.skipped["focus"] == 1
        assert c.presence.last_seen_at == _at(0)
        assert c.ticks_processed == 1

    def test_missing_faces_skip_face_trackers(self) -> None:
        c = _classifier()
        frame = DetectionFrame(faces=None, objects=[_phone()], frame_width=1000, frame_height=1000)
        drafts = _run(c, [(0, frame)])
        assert _kinds(drafts) == [SignalKind.UNAUTHORIZED_ITEM]
        assert c.skipped["face_presence"] == 1
        assert c.skipped["multiple_faces"] == 1
        assert c.skipped["focus"] == 1

    def test_finalize_reports_tick_stats(self) -> None:
        c = _classifier()
        frame = DetectionFrame(faces=None, objects=[], frame_width=1000, frame_height=1000)
        _run(c, [(0, _frame()), (100, frame)])
        end = c.finalize(_at(200))
        assert end.kind == SignalKind.SESSION_END
        assert end.payload == {"ticks": 2, "skippedFrames": 3}

    def test_snapshot_reflects_state(self) -> None:
        c = _classifier()
        _run(c, [(0, _frame([_face(_AWAY)]))])
        snap = c.snapshot()
        assert snap["gaze_state"] == GazeState.AWAY_PENDING.value
        assert snap["looking_away"] is True
        assert snap["ticks_processed"] == 1
