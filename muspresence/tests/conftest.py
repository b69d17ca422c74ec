import logging
import os
import sys
from typing import Dict, List, Optional

import pytest


def _ensure_project_root_on_sys_path() -> None:
    here = os.path.dirname(__file__)
    project_root = os.path.abspath(os.path.join(here, "..", ".."))
    if project_root not in sys.path:
        sys.path.insert(0, project_root)


_ensure_project_root_on_sys_path()

from muspresence.domain.entities import Album, Artist, PlaybackSnapshot, PresenceActivity, TrackMetadata  # noqa: E402
from muspresence.domain.errors import PresenceSinkError, TransportError  # noqa: E402


_ENV_KEYS = [
    'MUSPRESENCE_CONFIG', 'MUSPRESENCE_BASE_URL', 'MUSPRESENCE_POLL_INTERVAL_SEC',
    'MUSPRESENCE_HTTP_TIMEOUT_SEC', 'MUSPRESENCE_IMAGE_UPLOADER', 'IMGUR_CLIENT_ID',
    'DISCORD_APP_ID', 'MUSPRESENCE_LOG_LEVEL', 'MUSPRESENCE_LOG_FILE', 'MUSPRESENCE_LOG_FORMAT',
]


@pytest.fixture(autouse=True)
def _isolate_environment():
    """Keep MUSPRESENCE_* overrides from a developer shell out of the tests."""
    backup = {k: os.environ.get(k) for k in _ENV_KEYS}
    for k in _ENV_KEYS:
        os.environ.pop(k, None)
    try:
        yield
    finally:
        for k, v in backup.items():
            if v is None:
                os.environ.pop(k, None)
            else:
                os.environ[k] = v


@pytest.fixture(autouse=True)
def _restore_app_logger():
    """setup_logging() reconfigures the app logger; undo it after each test."""
    logger = logging.getLogger('muspresence')
    handlers, level, propagate = list(logger.handlers), logger.level, logger.propagate
    try:
        yield
    finally:
        logger.handlers[:] = handlers
        logger.setLevel(level)
        logger.propagate = propagate


class FakeMusicServer:
    """In-memory PlaybackSource recording every call."""

    def __init__(self) -> None:
        self.playback: Optional[PlaybackSnapshot] = None
        self.tracks: Dict[int, TrackMetadata] = {}
        self.covers: Dict[int, bytes] = {}
        self.fail_playback = False
        self.fail_tracks = False
        self.playback_calls = 0
        self.track_calls: List[int] = []
        self.cover_calls: List[int] = []

    def fetch_active_playback(self) -> Optional[PlaybackSnapshot]:
        self.playback_calls += 1
        if self.fail_playback:
            raise TransportError("connection refused")
        return self.playback

    def fetch_track(self, track_id: int) -> TrackMetadata:
        self.track_calls.append(track_id)
        if self.fail_tracks or track_id not in self.tracks:
            raise TransportError(f"track {track_id} unavailable")
        return self.tracks[track_id]

    def fetch_album_cover(self, album_id: int) -> bytes:
        self.cover_calls.append(album_id)
        if album_id not in self.covers:
            raise TransportError(f"cover {album_id} unavailable")
        return self.covers[album_id]


class RecordingSink:
    """PresenceSink keeping every call for assertions."""

    def __init__(self) -> None:
        self.activities: List[PresenceActivity] = []
        self.clears = 0
        self.fail_next = False
        self.logged_in_as: Optional[str] = None

    def login(self, app_id: str) -> None:
        self.logged_in_as = app_id

    def logout(self) -> None:
        self.logged_in_as = None

    def set_activity(self, activity: PresenceActivity) -> None:
        if self.fail_next:
            self.fail_next = False
            raise PresenceSinkError("pipe closed")
        self.activities.append(activity)

    def clear_activity(self) -> None:
        if self.fail_next:
            self.fail_next = False
            raise PresenceSinkError("pipe closed")
        self.clears += 1

    @property
    def calls(self) -> int:
        return len(self.activities) + self.clears


def make_snapshot(track_id: int = 5, state: str = "playing", position_ms: int = 1000,
                  updated_at_ms: int = 1_000_000, duration_ms: Optional[int] = 200_000) -> PlaybackSnapshot:
    return PlaybackSnapshot(
        playback_id=1,
        track_id=track_id,
        user_id=1,
        position_ms=position_ms,
        state=state,
        activity_ms=updated_at_ms,
        updated_at_ms=updated_at_ms,
        duration_ms=duration_ms,
    )


def make_track(track_id: int = 5, title: str = "Song", artists=("Artist A", "Artist B"),
               albums=(("Album", 2001),)) -> TrackMetadata:
    return TrackMetadata(
        id=track_id,
        title=title,
        artists=[Artist(id=i + 1, name=name) for i, name in enumerate(artists)],
        albums=[Album(id=100 + i, title=t, year=y) for i, (t, y) in enumerate(albums)],
    )


@pytest.fixture
def music_server() -> FakeMusicServer:
    return FakeMusicServer()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def snapshot_factory():
    return make_snapshot


@pytest.fixture
def track_factory():
    return make_track
