from datetime import datetime
from typing import Dict, Any, Optional
from dataclasses import dataclass, field, asdict
import threading


@dataclass
class TickCounters:
    """Counters accumulated over the process lifetime."""
    ticks: int = 0
    outcomes: Dict[str, int] = field(default_factory=dict)
    track_fetches: int = 0
    cover_cache_hits: int = 0
    cover_uploads: int = 0
    cover_failures: int = 0
    started_at: datetime = field(default_factory=datetime.now)
    last_tick_at: Optional[datetime] = None
    last_outcome: Optional[str] = None

    @property
    def update_rate(self) -> float:
        """Share of ticks that pushed a new activity."""
        if self.ticks == 0:
            return 0.0
        return self.outcomes.get('updated', 0) / self.ticks

    @property
    def cover_hit_rate(self) -> float:
        """Share of cover resolutions served from the cache."""
        total = self.cover_cache_hits + self.cover_uploads + self.cover_failures
        if total == 0:
            return 0.0
        return self.cover_cache_hits / total


class TickMetrics:
    """Collects metrics for the reconciliation loop.

    Written from the tick thread and read by the status server, hence the lock.
    """

    def __init__(self):
        """Initialize metrics collector."""
        self.counters = TickCounters()
        self._lock = threading.Lock()

    def record_tick(self, outcome: str) -> None:
        """Record a finished tick and its outcome."""
        with self._lock:
            self.counters.ticks += 1
            self.counters.outcomes[outcome] = self.counters.outcomes.get(outcome, 0) + 1
            self.counters.last_tick_at = datetime.now()
            self.counters.last_outcome = outcome

    def record_track_fetch(self) -> None:
        with self._lock:
            self.counters.track_fetches += 1

    def record_cover_cache_hit(self) -> None:
        with self._lock:
            self.counters.cover_cache_hits += 1

    def record_cover_upload(self) -> None:
        with self._lock:
            self.counters.cover_uploads += 1

    def record_cover_failure(self) -> None:
        with self._lock:
            self.counters.cover_failures += 1

    def outcome_count(self, outcome: str) -> int:
        with self._lock:
            return self.counters.outcomes.get(outcome, 0)

    def to_dict(self) -> Dict[str, Any]:
        """Convert metrics to dictionary for JSON serialization."""
        with self._lock:
            data = asdict(self.counters)
            data['outcomes'] = dict(self.counters.outcomes)
            data['update_rate'] = self.counters.update_rate
            data['cover_hit_rate'] = self.counters.cover_hit_rate
        data['started_at'] = data['started_at'].isoformat()
        if data['last_tick_at']:
            data['last_tick_at'] = data['last_tick_at'].isoformat()
        return data

    def print_summary(self) -> None:
        """Print metrics summary to stdout."""
        data = self.to_dict()

        print("\n=== Presence Metrics Summary ===")
        print(f"Started: {data['started_at']}")
        print(f"Ticks: {data['ticks']}")
        for outcome, count in sorted(data['outcomes'].items()):
            print(f"  {outcome}: {count}")
        print(f"Update Rate: {data['update_rate']:.2%}")
        print(f"Track Fetches: {data['track_fetches']}")
        print(f"Cover Uploads: {data['cover_uploads']}")
        print(f"Cover Cache Hits: {data['cover_cache_hits']} ({data['cover_hit_rate']:.2%})")
        print(f"Cover Failures: {data['cover_failures']}")
