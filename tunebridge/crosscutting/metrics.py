import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Any, Optional


@dataclass
class ResolutionSnapshot:
    """Point-in-time copy of the resolution counters."""
    started_at: datetime
    resolutions: Dict[str, Dict[str, int]] = field(default_factory=dict)
    errors: Dict[str, Dict[str, int]] = field(default_factory=dict)
    playlists_resolved: int = 0
    playlist_items_resolved: int = 0
    total_duration_ms: int = 0

    @property
    def total_resolutions(self) -> int:
        return sum(sum(tiers.values()) for tiers in self.resolutions.values())

    @property
    def match_rate(self) -> float:
        """Share of resolutions that produced a match."""
        total = self.total_resolutions
        if total == 0:
            return 0.0
        unmatched = sum(tiers.get('none', 0) for tiers in self.resolutions.values())
        return (total - unmatched) / total

    def to_dict(self) -> Dict[str, Any]:
        return {
            'startedAt': self.started_at.isoformat(),
            'resolutions': self.resolutions,
            'errors': self.errors,
            'totalResolutions': self.total_resolutions,
            'matchRate': round(self.match_rate, 4),
            'playlistsResolved': self.playlists_resolved,
            'playlistItemsResolved': self.playlist_items_resolved,
            'totalDurationMs': self.total_duration_ms,
        }


class ResolutionMetrics:
    """Thread-safe counters for resolution outcomes.

    Shared by the resolution engine, the collection resolver and the worker
    threads of a playlist fan-out.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._started_at = datetime.now()
        self._resolutions: Dict[str, Dict[str, int]] = {}
        self._errors: Dict[str, Dict[str, int]] = {}
        self._playlists = 0
        self._playlist_items = 0
        self._duration_ms = 0

    def record_resolution(self, kind: str, tier: str) -> None:
        """Count one finished resolution by entity kind and match tier."""
        with self._lock:
            tiers = self._resolutions.setdefault(kind, {})
            tiers[tier] = tiers.get(tier, 0) + 1

    def record_error(self, stage: str, error: Exception) -> None:
        """Count one failure by stage and exception type."""
        with self._lock:
            by_type = self._errors.setdefault(stage, {})
            name = type(error).__name__
            by_type[name] = by_type.get(name, 0) + 1

    def record_playlist(self, item_count: int) -> None:
        with self._lock:
            self._playlists += 1
            self._playlist_items += item_count

    def record_duration(self, duration_ms: int) -> None:
        with self._lock:
            self._duration_ms += max(0, int(duration_ms))

    @contextmanager
    def timed(self):
        """Add the wall time of the enclosed block to the total duration."""
        start = time.monotonic()
        try:
            yield
        finally:
            self.record_duration(int((time.monotonic() - start) * 1000))

    def snapshot(self) -> ResolutionSnapshot:
        with self._lock:
            return ResolutionSnapshot(
                started_at=self._started_at,
                resolutions={k: dict(v) for k, v in self._resolutions.items()},
                errors={k: dict(v) for k, v in self._errors.items()},
                playlists_resolved=self._playlists,
                playlist_items_resolved=self._playlist_items,
                total_duration_ms=self._duration_ms,
            )

    def to_dict(self) -> Dict[str, Any]:
        return self.snapshot().to_dict()

    def reset(self) -> None:
        with self._lock:
            self._started_at = datetime.now()
            self._resolutions.clear()
            self._errors.clear()
            self._playlists = 0
            self._playlist_items = 0
            self._duration_ms = 0


# Global instance
_metrics: Optional[ResolutionMetrics] = None


def get_metrics() -> ResolutionMetrics:
    """Get the process-wide metrics recorder, creating it on first use."""
    global _metrics
    if _metrics is None:
        _metrics = ResolutionMetrics()
    return _metrics
