"""Error taxonomy for the monitoring pipeline.

    SignalValidationError   rejected synchronously, never partially applied
      ├─ SessionNotFoundError
      └─ SessionClosedError
    DetectionFrameError     logged and skipped, isolated to one sub-machine
    StorageError            surfaced to the caller, prior state intact
    DeliveryError           swallowed per subscriber, never propagated
"""

from __future__ import annotations


class MonitorError(Exception):
    """Base class for every error raised by integrity-monitor."""


class SignalValidationError(MonitorError):
    """A signal (or its target session) failed validation."""


class SessionNotFoundError(SignalValidationError):
    """The referenced session does not exist."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"Session {session_id} not found")


class SessionClosedError(SignalValidationError):
    """Detection input arrived for a session that is no longer monitored."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"Session {session_id} is not being monitored")


class DetectionFrameError(MonitorError):
    """A classifier sub-machine could not interpret a detection frame."""

    def __init__(self, tracker: str, reason: str) -> None:
        self.tracker = tracker
        self.reason = reason
        super().__init__(f"{tracker}: {reason}")


class StorageError(MonitorError):
    """The storage backend failed to append or query."""


class DeliveryError(MonitorError):
    """A live observer could not receive a published signal."""

    def __init__(self, subscriber_id: str, reason: str) -> None:
        self.subscriber_id = subscriber_id
        self.reason = reason
        super().__init__(f"Delivery to {subscriber_id} failed: {reason}")
