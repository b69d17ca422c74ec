import logging
from typing import Dict, Optional

from muspresence.crosscutting.metrics import TickMetrics
from muspresence.domain.errors import CoverFetchFailed, PresenceError, TransportError, UnexpectedStatus, UploadsDisabled
from muspresence.domain.ports import CoverResolver, ImageHost, PlaybackSource


logger = logging.getLogger(__name__)


class CoverArtCache:
    """Album id -> public image URL for the process lifetime.

    Entries are write-once: the first stored URL for an album is kept and
    nothing is ever evicted.
    """

    def __init__(self):
        self._urls: Dict[int, str] = {}

    def get(self, album_id: int) -> Optional[str]:
        return self._urls.get(album_id)

    def put(self, album_id: int, url: str) -> str:
        """Store the URL unless one is already cached; return the cached URL."""
        return self._urls.setdefault(album_id, url)

    def __contains__(self, album_id: int) -> bool:
        return album_id in self._urls

    def __len__(self) -> int:
        return len(self._urls)


class CoverArtResolver(CoverResolver):
    """Resolves album covers to public URLs, uploading each album at most once."""

    def __init__(self,
                 source: PlaybackSource,
                 host: Optional[ImageHost],
                 cache: Optional[CoverArtCache] = None,
                 metrics: Optional[TickMetrics] = None):
        """Initialize the resolver.

        Args:
            source: Music server client providing raw cover bytes
            host: Image host to upload to, None when uploads are disabled
            cache: Cache to read and write through
            metrics: Optional metrics collector
        """
        self.source = source
        self.host = host
        self.cache = cache if cache is not None else CoverArtCache()
        self.metrics = metrics

    def resolve(self, album_id: int) -> str:
        """Return a public URL for the album cover.

        Raises:
            UploadsDisabled: no image host is configured
            CoverFetchFailed: the music server did not return the cover
            ImageHostRejected, TransportError, DecodeError: the upload failed
        """
        cached = self.cache.get(album_id)
        if cached is not None:
            if self.metrics:
                self.metrics.record_cover_cache_hit()
            return cached

        try:
            url = self._upload(album_id)
        except PresenceError:
            if self.metrics:
                self.metrics.record_cover_failure()
            raise

        if self.metrics:
            self.metrics.record_cover_upload()
        logger.info(f"Uploaded cover for album {album_id} to {self.host.name}")
        return self.cache.put(album_id, url)

    def _upload(self, album_id: int) -> str:
        if self.host is None:
            raise UploadsDisabled("image uploads disabled")

        try:
            image = self.source.fetch_album_cover(album_id)
        except (TransportError, UnexpectedStatus) as e:
            raise CoverFetchFailed(f"cover for album {album_id} unavailable: {e}") from e

        return self.host.upload(image)
