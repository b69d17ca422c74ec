import logging
import time
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Optional

from muspresence.crosscutting.logging import CorrelationContext, log_error, log_now_playing, log_presence_cleared
from muspresence.crosscutting.metrics import TickMetrics
from muspresence.domain.activity import FALLBACK_IMAGE, build_activity, describe_track
from muspresence.domain.entities import PlaybackSnapshot, PresenceActivity, ReconcilerState, TrackMetadata
from muspresence.domain.errors import PresenceError, UploadsDisabled
from muspresence.domain.ports import CoverResolver, PlaybackSource, PresenceSink


logger = logging.getLogger(__name__)


def now_ms() -> int:
    return time.time_ns() // 1_000_000


class TickOutcome(str, Enum):
    """What a single tick ended up doing."""

    FETCH_FAILED = "fetch_failed"
    IDLE = "idle"
    CLEARED = "cleared"
    UNCHANGED = "unchanged"
    TRACK_FETCH_FAILED = "track_fetch_failed"
    SINK_FAILED = "sink_failed"
    UPDATED = "updated"


class Reconciler:
    """Mirrors the music server's playback into the presence sink.

    ``tick`` is called once at startup and then on a fixed interval. Ticks must
    not overlap: the state and the cover cache are not locked. Every failure is
    logged and swallowed at the tick boundary, and the state is only advanced
    once the sink accepted the update, so the next tick retries whatever failed.
    """

    def __init__(self,
                 source: PlaybackSource,
                 sink: PresenceSink,
                 covers: CoverResolver,
                 clock: Callable[[], int] = now_ms,
                 metrics: Optional[TickMetrics] = None,
                 state: Optional[ReconcilerState] = None):
        """Initialize the engine.

        Args:
            source: Music server client
            sink: Presence display
            covers: Cover art resolver
            clock: Returns the current time in epoch milliseconds
            metrics: Optional metrics collector
            state: Initial state, empty by default
        """
        self.source = source
        self.sink = sink
        self.covers = covers
        self.clock = clock
        self.metrics = metrics
        self.state = state if state is not None else ReconcilerState()
        self._tick_count = 0
        self._published: Optional[Dict[str, Any]] = None

    def tick(self) -> TickOutcome:
        """Run one reconciliation pass."""
        self._tick_count += 1
        with CorrelationContext(tick_id=self._tick_count, stage='tick'):
            outcome = self._reconcile()
        logger.debug(f"Tick {self._tick_count} finished: {outcome.value}")
        if self.metrics:
            self.metrics.record_tick(outcome.value)
        return outcome

    def _reconcile(self) -> TickOutcome:
        try:
            snapshot = self.source.fetch_active_playback()
        except PresenceError as e:
            log_error(logger, "Error fetching playback", e, level='WARNING')
            return TickOutcome.FETCH_FAILED

        if snapshot is None or not snapshot.is_active:
            return self._go_idle()

        if self.state.matches(snapshot):
            return TickOutcome.UNCHANGED

        state = self.state
        track, cover_image = state.cached_track, state.cached_cover_image
        if snapshot.track_id != state.last_track_id or track is None:
            try:
                track = self.source.fetch_track(snapshot.track_id)
            except PresenceError as e:
                log_error(logger, "Error fetching track", e, level='WARNING', track_id=snapshot.track_id)
                return TickOutcome.TRACK_FETCH_FAILED
            if self.metrics:
                self.metrics.record_track_fetch()

            cover_image = self._resolve_cover(track)
            log_now_playing(logger, describe_track(snapshot.state, track), snapshot.track_id)
        elif snapshot.state != state.last_playback_state:
            log_now_playing(logger, describe_track(snapshot.state, track, with_artists=False),
                            snapshot.track_id)

        activity = build_activity(snapshot, track, cover_image, self.clock())

        try:
            self.sink.set_activity(activity)
        except PresenceError as e:
            log_error(logger, "Error setting activity", e, level='WARNING', track_id=snapshot.track_id)
            return TickOutcome.SINK_FAILED

        state.cached_track, state.cached_cover_image = track, cover_image
        state.remember(snapshot)
        self._publish(snapshot, track, activity)
        return TickOutcome.UPDATED

    def _go_idle(self) -> TickOutcome:
        outcome = TickOutcome.IDLE
        if self.state.last_playback_state:
            previous_track_id = self.state.last_track_id
            try:
                self.sink.clear_activity()
            except PresenceError as e:
                log_error(logger, "Error clearing activity", e, level='WARNING')
                outcome = TickOutcome.SINK_FAILED
            else:
                log_presence_cleared(logger, previous_track_id)
                outcome = TickOutcome.CLEARED

        self.state.reset()
        self._published = None
        return outcome

    def _resolve_cover(self, track: TrackMetadata) -> str:
        album = track.primary_album
        if album is None:
            return FALLBACK_IMAGE

        try:
            return self.covers.resolve(album.id)
        except UploadsDisabled as e:
            log_error(logger, "Error uploading cover", e, level='DEBUG', album_id=album.id)
            return FALLBACK_IMAGE
        except PresenceError as e:
            log_error(logger, "Error uploading cover", e, level='WARNING', album_id=album.id)
            return FALLBACK_IMAGE

    def _publish(self, snapshot: PlaybackSnapshot, track: TrackMetadata, activity: PresenceActivity) -> None:
        album = track.primary_album
        self._published = {
            'track_id': snapshot.track_id,
            'state': snapshot.state,
            'position_ms': snapshot.position_ms,
            'duration_ms': snapshot.duration_ms,
            'track': {
                'title': track.title,
                'artists': track.artist_names,
                'album': album.title if album else None,
                'year': album.year if album and album.year else None,
            },
            'activity': activity.to_json(),
            'announced_at': datetime.now().isoformat(),
        }

    def status(self) -> Optional[Dict[str, Any]]:
        """Last announced presence, or None while idle.

        The dict is replaced, never mutated, so readers on other threads see a
        consistent view.
        """
        return self._published
