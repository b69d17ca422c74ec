import logging
from typing import Any, Optional

import requests

from muspresence.domain.entities import PlaybackSnapshot, TrackMetadata
from muspresence.domain.errors import DecodeError, TransportError, UnexpectedStatus
from muspresence.domain.ports import PlaybackSource

logger = logging.getLogger(__name__)


class MusicServerClient(PlaybackSource):
    """HTTP adapter for the music server API implementing the PlaybackSource port."""

    def __init__(self,
                 base_url: str,
                 timeout: float = 10,
                 session: Optional[requests.Session] = None):
        """Initialize the client.

        Args:
            base_url: Music server root, e.g. ``http://localhost:3000``
            timeout: Per-request timeout in seconds
            session: Optional pre-configured session (tests inject a mock)
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self._session = session or requests.Session()

    def _get(self, operation: str, path: str, **kwargs) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            response = self._session.get(url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise TransportError(f"{operation} failed: {e}") from e

        if response.status_code != 200:
            raise UnexpectedStatus(operation, response.status_code)
        return response

    def _json(self, operation: str, response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise DecodeError(f"{operation} returned malformed JSON: {e}") from e

    def fetch_active_playback(self) -> Optional[PlaybackSnapshot]:
        """Return the first active playback, or None when the server reports none."""
        operation = "playbacks API"
        data = self._json(operation, self._get(operation, "/api/playbacks", params={"active": "true"}))

        if not isinstance(data, list):
            raise DecodeError(f"{operation} returned {type(data).__name__}, expected a list")
        if not data:
            return None
        if len(data) > 1:
            logger.debug(f"{len(data)} active playbacks reported, using the first")
        return PlaybackSnapshot.from_json(data[0])

    def fetch_track(self, track_id: int) -> TrackMetadata:
        """Return track metadata with albums and artists embedded."""
        operation = "tracks API"
        response = self._get(operation, f"/api/tracks/{track_id}", params={"inc": "albums,artists"})
        return TrackMetadata.from_json(self._json(operation, response))

    def fetch_album_cover(self, album_id: int) -> bytes:
        """Return the raw cover image bytes of an album."""
        return self._get("cover API", f"/api/albums/{album_id}/cover").content

    def close(self) -> None:
        self._session.close()
