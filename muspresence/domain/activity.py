from __future__ import annotations

from typing import Iterable, Optional

from .entities import (
    Album,
    PlaybackSnapshot,
    PlaybackState,
    PresenceActivity,
    Timestamps,
    TrackMetadata,
)


FALLBACK_IMAGE = "logo-dark"
PLAYING_IMAGE = "playing"
PLAYING_TEXT = "Playing"
PAUSED_IMAGE = "https://files.catbox.moe/ibpq2d.png"
PAUSED_TEXT = "Paused"


def join_artist_names(names: Iterable[str]) -> str:
    return ", ".join(names)


def format_album_line(album: Optional[Album]) -> Optional[str]:
    """Album title with the year in parentheses, or None without an album.

    A year of 0 means unknown and is left out.
    """
    if album is None:
        return None
    if album.year:
        return f"{album.title} ({album.year})"
    return album.title


def effective_position_ms(snapshot: PlaybackSnapshot, now_ms: int) -> int:
    """Extrapolate the reported position to ``now_ms``.

    Never exceeds a known duration and never drops below zero, so clock skew
    cannot push the start of the progress bar into the future.
    """
    effective = snapshot.position_ms + (now_ms - snapshot.updated_at_ms)
    if snapshot.duration_ms is not None and effective > snapshot.duration_ms:
        effective = snapshot.duration_ms
    return max(0, effective)


def build_timestamps(snapshot: PlaybackSnapshot, now_ms: int) -> Timestamps:
    start = now_ms - effective_position_ms(snapshot, now_ms)
    end = None if snapshot.duration_ms is None else start + snapshot.duration_ms
    return Timestamps(start_ms=start, end_ms=end)


def build_activity(
    snapshot: PlaybackSnapshot,
    track: TrackMetadata,
    cover_image: Optional[str],
    now_ms: int,
) -> PresenceActivity:
    """Map the snapshot and its track into the listening activity."""
    if snapshot.state == PlaybackState.PLAYING:
        small_image, small_text = PLAYING_IMAGE, PLAYING_TEXT
        timestamps = build_timestamps(snapshot, now_ms)
    else:
        small_image, small_text = PAUSED_IMAGE, PAUSED_TEXT
        timestamps = None

    return PresenceActivity(
        details=track.title,
        state=format_album_line(track.primary_album),
        large_image=cover_image or FALLBACK_IMAGE,
        large_text=join_artist_names(track.artist_names),
        small_image=small_image,
        small_text=small_text,
        timestamps=timestamps,
    )


def describe_track(state: str, track: TrackMetadata, with_artists: bool = True) -> str:
    """One-line "Playing: title - artists" summary for logs."""
    label = PAUSED_TEXT if state == PlaybackState.PAUSED else PLAYING_TEXT
    if with_artists:
        return f"{label}: {track.title} - {join_artist_names(track.artist_names)}"
    return f"{label}: {track.title}"
