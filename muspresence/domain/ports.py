from __future__ import annotations

from typing import Optional, Protocol

from .entities import PlaybackSnapshot, PresenceActivity, TrackMetadata


class PlaybackSource(Protocol):
    """Port for the music server that reports playback.

    Implementations raise ``TransportError``, ``UnexpectedStatus`` or ``DecodeError``.
    """

    def fetch_active_playback(self) -> Optional[PlaybackSnapshot]:
        """Return the first active playback, or None when nothing is playing."""

    def fetch_track(self, track_id: int) -> TrackMetadata:
        """Return the track with its albums and artists embedded."""

    def fetch_album_cover(self, album_id: int) -> bytes:
        """Return the raw cover image of an album."""


class CoverResolver(Protocol):
    """Port turning an album id into a publicly reachable image URL."""

    def resolve(self, album_id: int) -> str:
        """Return the URL, uploading on first use. Raises a ``PresenceError`` on failure."""


class ImageHost(Protocol):
    """Port for third-party image hosting: image bytes in, public URL out."""

    name: str

    def upload(self, image: bytes) -> str:
        """Upload the image and return its public URL."""


class PresenceSink(Protocol):
    """Port for the display surface rendering the activity.

    Implementations raise ``PresenceSinkError`` on failure.
    """

    def login(self, app_id: str) -> None:
        """Open the session. Called once at startup."""

    def logout(self) -> None:
        """Close the session. Called once at shutdown."""

    def set_activity(self, activity: PresenceActivity) -> None:
        """Display the activity, replacing any previous one."""

    def clear_activity(self) -> None:
        """Remove the displayed activity."""
