"""Abstract base for detection frame adapters.

Frame adapters normalise raw payloads from heterogeneous inference engines
into the canonical DetectionFrame model.

Architectural rules:
    1. Adapters must NOT mutate the incoming payload dict.
    2. adapt() must return a valid DetectionFrame or raise ValueError.
    3. A malformed face or object section becomes ``None`` on the frame
       (that detector is skipped for the tick); it does not fail the frame.
    4. No classification lives inside an adapter, only field mapping.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Optional, TypeVar

from integrity_monitor.domain.detection import DetectionFrame

logger = logging.getLogger(__name__)

T = TypeVar("T")


class FrameAdapter(ABC):
    """Base class for converting raw detector payloads into DetectionFrames."""

    @abstractmethod
    def can_handle(self, raw: dict[str, Any]) -> bool:
        """Return True if this adapter knows how to translate *raw*.

        Must be a fast, non-destructive check (e.g. key presence).
        """
        ...

    @abstractmethod
    def adapt(self, raw: dict[str, Any]) -> DetectionFrame:
        """Translate a raw payload dict into a validated DetectionFrame.

        Raises:
            ValueError: If the payload cannot be normalised at all.
        """
        ...

    @property
    @abstractmethod
    def source_name(self) -> str:
        """Human-readable name of the inference engine this adapter handles."""
        ...

    # ── Helpers for subclasses ───────────────────────────────────────────

    def _section(
        self,
        raw: dict[str, Any],
        key: str,
        parse: Callable[[Any], T],
    ) -> Optional[list[T]]:
        """Parse one list section; ``None`` if absent or malformed."""
        if key not in raw or raw[key] is None:
            return None
        items = raw[key]
        if not isinstance(items, list):
            logger.warning("%s payload: '%s' is not a list", self.source_name, key)
            return None
        try:
            return [parse(item) for item in items]
        except (ValueError, TypeError, KeyError, IndexError) as exc:
            logger.warning("%s payload: malformed '%s' section: %s", self.source_name, key, exc)
            return None

    @staticmethod
    def _dimension(raw: dict[str, Any], *keys: str) -> float:
        for key in keys:
            value = raw.get(key)
            if value:
                return float(value)
        raise ValueError(f"payload missing frame dimension ({' or '.join(keys)})")
