from typing import List, Optional

from muspresence.application.cover_art import CoverArtResolver
from muspresence.domain.entities import Album, Artist, PlaybackSnapshot, PresenceActivity, TrackMetadata
from muspresence.domain.ports import CoverResolver, ImageHost, PlaybackSource, PresenceSink
from muspresence.infrastructure.discord import DiscordPresenceSink
from muspresence.infrastructure.image_hosts import ImgurHost, LitterboxHost
from muspresence.infrastructure.music_server import MusicServerClient


class FakeSource(PlaybackSource):
    def __init__(self) -> None:
        self._playback = PlaybackSnapshot(
            playback_id=1, track_id=3, user_id=1, position_ms=0, state="playing",
            updated_at_ms=0, duration_ms=1000,
        )
        self._tracks = {
            3: TrackMetadata(id=3, title="T", artists=[Artist(id=1, name="A")], albums=[Album(id=9, title="L")]),
        }

    def fetch_active_playback(self) -> Optional[PlaybackSnapshot]:
        return self._playback

    def fetch_track(self, track_id: int) -> TrackMetadata:
        return self._tracks[track_id]

    def fetch_album_cover(self, album_id: int) -> bytes:
        return b"img-%d" % album_id


class FakeHost(ImageHost):
    name = "fake"

    def __init__(self) -> None:
        self.uploads = []  # type: List[bytes]

    def upload(self, image: bytes) -> str:
        self.uploads.append(image)
        return f"https://img.example/{len(self.uploads)}"


class FakeSink(PresenceSink):
    def __init__(self) -> None:
        self.shown = None  # type: Optional[PresenceActivity]
        self.session = None  # type: Optional[str]

    def login(self, app_id: str) -> None:
        self.session = app_id

    def logout(self) -> None:
        self.session = None

    def set_activity(self, activity: PresenceActivity) -> None:
        self.shown = activity

    def clear_activity(self) -> None:
        self.shown = None


def test_adapters_implement_ports():
    assert PlaybackSource in MusicServerClient.__mro__
    assert ImageHost in LitterboxHost.__mro__
    assert ImageHost in ImgurHost.__mro__
    assert PresenceSink in DiscordPresenceSink.__mro__
    assert CoverResolver in CoverArtResolver.__mro__
    assert LitterboxHost.name == "litterbox" and ImgurHost.name == "imgur"


def test_contract_semantics():
    source = FakeSource()
    host = FakeHost()
    resolver = CoverArtResolver(source, host)

    snapshot = source.fetch_active_playback()
    assert snapshot is not None and snapshot.is_active

    track = source.fetch_track(snapshot.track_id)
    assert track.primary_album is not None

    urls = {resolver.resolve(track.primary_album.id) for _ in range(3)}  # type: set
    assert urls == {"https://img.example/1"}
    assert host.uploads == [b"img-9"]

    sink = FakeSink()
    sink.login("app")
    sink.set_activity(PresenceActivity(details=track.title, large_image=urls.pop(), large_text="A",
                                       small_image="playing", small_text="Playing"))
    assert sink.shown is not None
    sink.clear_activity()
    assert sink.shown is None
    sink.logout()
