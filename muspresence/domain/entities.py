from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .errors import DecodeError


class PlaybackState:
    """Playback states reported by the music server that the engine acts on."""

    PLAYING = "playing"
    PAUSED = "paused"

    ACTIVE = (PLAYING, PAUSED)


class ActivityKind(Enum):
    """Kind of presence activity. Only listening is produced."""

    LISTENING = "listening"


def _require(data: Dict[str, Any], key: str, kind: str) -> Any:
    try:
        return data[key]
    except (KeyError, TypeError):
        raise DecodeError(f"{kind} payload is missing '{key}'")


def _as_int(value: Any, key: str, kind: str) -> int:
    if isinstance(value, bool):
        raise DecodeError(f"{kind} field '{key}' is not an integer: {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise DecodeError(f"{kind} field '{key}' is not an integer: {value!r}")


@dataclass(frozen=True)
class PlaybackSnapshot:
    """Server view of playback at fetch time.

    ``position_ms`` is the position as of ``updated_at_ms``, not "now"; callers
    extrapolate. ``duration_ms`` is None when the length is unknown (live streams).
    """

    playback_id: int
    track_id: int
    user_id: int
    position_ms: int
    state: str
    activity_ms: int = 0
    updated_at_ms: int = 0
    duration_ms: Optional[int] = None

    @property
    def is_active(self) -> bool:
        return self.state in PlaybackState.ACTIVE

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "PlaybackSnapshot":
        """Decode one element of ``GET /api/playbacks``."""
        if not isinstance(data, dict):
            raise DecodeError(f"playback payload is not an object: {type(data).__name__}")
        kind = "playback"
        duration = data.get("duration_ms")
        state = _require(data, "state", kind)
        if not isinstance(state, str):
            raise DecodeError(f"playback field 'state' is not a string: {state!r}")
        return cls(
            playback_id=_as_int(_require(data, "playback_id", kind), "playback_id", kind),
            track_id=_as_int(_require(data, "track_id", kind), "track_id", kind),
            user_id=_as_int(data.get("user_id", 0), "user_id", kind),
            position_ms=_as_int(_require(data, "position_ms", kind), "position_ms", kind),
            state=state,
            activity_ms=_as_int(data.get("activity_ms", 0), "activity_ms", kind),
            updated_at_ms=_as_int(_require(data, "updated_at_ms", kind), "updated_at_ms", kind),
            duration_ms=None if duration is None else _as_int(duration, "duration_ms", kind),
        )


@dataclass(frozen=True)
class Artist:
    id: int
    name: str

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "Artist":
        return cls(
            id=_as_int(_require(data, "db_id", "artist"), "db_id", "artist"),
            name=str(data.get("artist_name") or ""),
        )


@dataclass(frozen=True)
class Album:
    """Album as embedded in a track. ``year`` is 0 when the server does not know it."""

    id: int
    title: str
    year: int = 0

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "Album":
        return cls(
            id=_as_int(_require(data, "db_id", "album"), "db_id", "album"),
            title=str(data.get("album_title") or ""),
            year=_as_int(data.get("year") or 0, "year", "album"),
        )


@dataclass(frozen=True)
class TrackMetadata:
    """Track with its artists and albums, as returned by ``GET /api/tracks/{id}``."""

    id: int
    title: str
    artists: List[Artist] = field(default_factory=list)
    albums: List[Album] = field(default_factory=list)

    @property
    def primary_album(self) -> Optional[Album]:
        """First album of the track; drives the cover art and the state line."""
        return self.albums[0] if self.albums else None

    @property
    def artist_names(self) -> List[str]:
        return [artist.name for artist in self.artists]

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "TrackMetadata":
        if not isinstance(data, dict):
            raise DecodeError(f"track payload is not an object: {type(data).__name__}")
        artists = data.get("artists") or []
        albums = data.get("albums") or []
        if not isinstance(artists, list) or not isinstance(albums, list):
            raise DecodeError("track payload has non-list 'artists' or 'albums'")
        return cls(
            id=_as_int(_require(data, "db_id", "track"), "db_id", "track"),
            title=str(data.get("title") or ""),
            artists=[Artist.from_json(a) for a in artists],
            albums=[Album.from_json(a) for a in albums],
        )


@dataclass(frozen=True)
class Timestamps:
    """Progress window in epoch milliseconds. ``end_ms`` is None for unbounded playback."""

    start_ms: int
    end_ms: Optional[int] = None


@dataclass(frozen=True)
class PresenceActivity:
    """Outbound payload handed to the presence sink."""

    details: str
    large_image: str
    large_text: str
    small_image: str
    small_text: str
    state: Optional[str] = None
    timestamps: Optional[Timestamps] = None
    kind: ActivityKind = ActivityKind.LISTENING

    def to_json(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "details": self.details,
            "state": self.state,
            "large_image": self.large_image,
            "large_text": self.large_text,
            "small_image": self.small_image,
            "small_text": self.small_text,
            "timestamps": None if self.timestamps is None else {
                "start_ms": self.timestamps.start_ms,
                "end_ms": self.timestamps.end_ms,
            },
        }


@dataclass
class ReconcilerState:
    """Last announced playback, owned by a single Reconciler instance.

    ``cached_track`` is set iff ``last_track_id`` is non-zero; both are only
    written together, after the sink accepted the activity.
    ``cached_cover_image`` only means something alongside ``cached_track``.
    """

    last_track_id: int = 0
    last_playback_state: str = ""
    last_position_ms: int = 0
    cached_track: Optional[TrackMetadata] = None
    cached_cover_image: str = ""

    def reset(self) -> None:
        self.last_track_id = 0
        self.last_playback_state = ""
        self.last_position_ms = 0
        self.cached_track = None
        self.cached_cover_image = ""

    def matches(self, snapshot: PlaybackSnapshot) -> bool:
        """True when the snapshot repeats the last announced track, state and position."""
        return (
            snapshot.track_id == self.last_track_id
            and snapshot.state == self.last_playback_state
            and snapshot.position_ms == self.last_position_ms
        )

    def remember(self, snapshot: PlaybackSnapshot) -> None:
        self.last_track_id = snapshot.track_id
        self.last_playback_state = snapshot.state
        self.last_position_ms = snapshot.position_ms
