"""Controlled enumerations for the integrity-monitor domain.

Every categorical field in the domain MUST reference an enum defined here.
The string values are the stable wire identifiers observers and exports
rely on; never rename them.
"""

from __future__ import annotations

from enum import Enum


class SignalKind(str, Enum):
    """Kinds of integrity signal recorded in a session's event log."""

    SESSION_START = "SESSION_START"
    SESSION_END = "SESSION_END"
    NO_FACE = "NO_FACE"
    MULTIPLE_FACES = "MULTIPLE_FACES"
    FOCUS_LOST = "FOCUS_LOST"
    FOCUS_REGAINED = "FOCUS_REGAINED"
    UNAUTHORIZED_ITEM = "UNAUTHORIZED_ITEM"
    VIDEO_UPLOADED = "VIDEO_UPLOADED"
    VIDEO_UPLOAD_FAILED = "VIDEO_UPLOAD_FAILED"

    # Legacy producers emit LOOK_AWAY instead of FOCUS_LOST.
    LOOK_AWAY = "LOOK_AWAY"


class FacePresence(str, Enum):
    """States of the face-presence tracker."""

    PRESENT = "present"
    ABSENT = "absent"


class GazeState(str, Enum):
    """States of the focus (gaze) tracker.

    FOCUSED → AWAY_PENDING (streak started, nothing logged)
            → LOST         (FOCUS_LOST logged for this streak)
            → REGAINING    (back under threshold, confirmation timer running)
            → FOCUSED      (FOCUS_REGAINED logged)
    """

    FOCUSED = "focused"
    AWAY_PENDING = "away_pending"
    LOST = "lost"
    REGAINING = "regaining"


class MonitorStatus(str, Enum):
    """Lifecycle of a per-session monitoring actor."""

    IDLE = "idle"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


class EventOrder(str, Enum):
    """Sort order for event log queries.  Ascending is canonical."""

    ASC = "asc"
    DESC = "desc"
