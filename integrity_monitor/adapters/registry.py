"""Frame adapter registry.

Detection sources announce themselves with a ``source_type`` (or some
other cheap marker); the registry asks each adapter in registration order
and routes the payload to the first one that claims it.  A payload nobody
claims is an error, never a guess.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Optional

from integrity_monitor.adapters.base import FrameAdapter
from integrity_monitor.domain.detection import DetectionFrame

logger = logging.getLogger(__name__)


@dataclass
class AdapterStats:
    """Accepted / rejected frame counts for one detection source."""

    adapter_name: str
    accepted_count: int = 0
    rejected_count: int = 0
    last_rejection: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


class NoAdapterFoundError(Exception):
    """No registered adapter claims the payload."""


class AdaptationError(Exception):
    """The claiming adapter could not build a DetectionFrame."""

    def __init__(self, adapter_name: str, reason: str) -> None:
        self.adapter_name = adapter_name
        self.reason = reason
        super().__init__(f"{adapter_name} frame rejected: {reason}")


class AdapterRegistry:
    """Ordered set of frame adapters plus per-source ingestion stats."""

    def __init__(self) -> None:
        self._adapters: dict[str, FrameAdapter] = {}
        self._stats: dict[str, AdapterStats] = {}

    def register(self, adapter: FrameAdapter) -> None:
        name = adapter.source_name
        if name in self._adapters:
            raise ValueError(f"frame adapter {name!r} is already registered")
        self._adapters[name] = adapter
        self._stats[name] = AdapterStats(name)
        logger.info("Frame adapter registered: %s", name)

    def resolve(self, raw: dict[str, Any]) -> FrameAdapter:
        """The first adapter that claims *raw*."""
        claimed = next((a for a in self._adapters.values() if a.can_handle(raw)), None)
        if claimed is None:
            raise NoAdapterFoundError(
                f"no frame adapter for payload (source_type={raw.get('source_type')!r}, "
                f"keys={sorted(raw)})"
            )
        return claimed

    def adapt(self, raw: dict[str, Any]) -> DetectionFrame:
        """Route *raw* through its adapter.

        Raises:
            NoAdapterFoundError: Nobody claims the payload.
            AdaptationError: The claiming adapter rejected it.
        """
        adapter = self.resolve(raw)
        stats = self._stats[adapter.source_name]
        try:
            frame = adapter.adapt(raw)
        except (ValueError, TypeError, KeyError) as exc:
            stats.rejected_count += 1
            stats.last_rejection = str(exc)
            logger.warning("%s frame rejected: %s", adapter.source_name, exc)
            raise AdaptationError(adapter.source_name, str(exc)) from exc

        stats.accepted_count += 1
        return frame

    @property
    def adapter_names(self) -> list[str]:
        return list(self._adapters)

    @property
    def stats(self) -> list[dict]:
        return [s.to_dict() for s in self._stats.values()]

    @property
    def total_accepted(self) -> int:
        return sum(s.accepted_count for s in self._stats.values())

    @property
    def total_rejected(self) -> int:
        return sum(s.rejected_count for s in self._stats.values())
