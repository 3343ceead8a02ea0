import os
import sys
import threading
from typing import Dict, List, Optional
from unittest.mock import Mock

import pytest


def _ensure_project_root_on_sys_path() -> None:
    here = os.path.dirname(__file__)
    project_root = os.path.abspath(os.path.join(here, "..", ".."))
    if project_root not in sys.path:
        sys.path.insert(0, project_root)


_ensure_project_root_on_sys_path()

from tunebridge.application.collection import CollectionResolver  # noqa: E402
from tunebridge.application.resolution import ResolutionEngine  # noqa: E402
from tunebridge.crosscutting.config import Settings  # noqa: E402
from tunebridge.crosscutting.metrics import ResolutionMetrics  # noqa: E402
from tunebridge.domain.entities import CatalogEntity, LinkKind, PlaylistInfo, Platform  # noqa: E402
from tunebridge.domain.errors import NotFoundError  # noqa: E402
from tunebridge.interfaces.wiring import Services  # noqa: E402


class FakeProvider:
    """In-memory catalog provider that records every call in order."""

    def __init__(self, name: str, platform: Platform):
        self.name = name
        self.platform = platform
        self.entities: Dict[str, CatalogEntity] = {}
        self.by_code: Dict[str, CatalogEntity] = {}
        self.by_text: Dict[tuple, CatalogEntity] = {}
        self.playlist_info: Optional[PlaylistInfo] = None
        self.playlist_items: List[CatalogEntity] = []
        self.errors: Dict[str, Exception] = {}
        self.calls: List[tuple] = []
        self._lock = threading.Lock()

    def _record(self, *call):
        with self._lock:
            self.calls.append(call)
        error = self.errors.get(call[0])
        if error is not None:
            raise error

    def fetch_by_id(self, entity_id, kind, region="us"):
        self._record("fetch_by_id", entity_id, kind, region)
        if entity_id not in self.entities:
            raise NotFoundError(f"{entity_id} not found")
        return self.entities[entity_id]

    def search_by_external_code(self, code, kind, region="us"):
        self._record("search_by_external_code", code, kind, region)
        return self.by_code.get(code)

    def search_by_text(self, name, artist, kind, region="us"):
        self._record("search_by_text", name, artist, kind, region)
        return self.by_text.get((name, artist))

    def fetch_playlist_info(self, playlist_id, region="us"):
        self._record("fetch_playlist_info", playlist_id, region)
        return self.playlist_info

    def list_collection_items(self, playlist_id, region="us"):
        self._record("list_collection_items", playlist_id, region)
        return list(self.playlist_items)


def make_entity(source_id: str, name: str = "Song", artist: str = "Artist",
                code: Optional[str] = None, platform: Platform = Platform.SPOTIFY,
                kind: LinkKind = LinkKind.SONG) -> CatalogEntity:
    host = "open.spotify.com/track" if platform == Platform.SPOTIFY else "music.apple.com/us/song"
    return CatalogEntity(
        name=name,
        primary_artist=artist,
        external_code=code,
        canonical_url=f"https://{host}/{source_id}",
        source_id=source_id,
        platform=platform,
        kind=kind,
        artists=[artist],
    )


@pytest.fixture
def spotify_fake():
    return FakeProvider("spotify", Platform.SPOTIFY)


@pytest.fixture
def apple_fake():
    return FakeProvider("apple_music", Platform.APPLE_MUSIC)


@pytest.fixture
def entity_factory():
    return make_entity


@pytest.fixture
def services(spotify_fake, apple_fake):
    """Services wired to the in-memory providers."""
    metrics = ResolutionMetrics()
    engine = ResolutionEngine({Platform.SPOTIFY: spotify_fake, Platform.APPLE_MUSIC: apple_fake}, metrics=metrics)
    credentials = Mock()
    credentials.state = "empty"
    return Services(
        settings=Settings(default_country="us"),
        session=Mock(),
        credentials=credentials,
        engine=engine,
        collection_resolver=CollectionResolver(engine, max_workers=2),
        metrics=metrics
    )


@pytest.fixture(autouse=True)
def _clear_tunebridge_env():
    """Keep developer .env values from leaking into tests."""
    keys = [k for k in os.environ if k.startswith('TUNEBRIDGE_')] + ['SPOTIFY_CLIENT_ID', 'SPOTIFY_CLIENT_SECRET']
    backup = {k: os.environ.get(k) for k in keys}
    for k in keys:
        os.environ.pop(k, None)
    try:
        yield
    finally:
        for k in [k for k in os.environ if k.startswith('TUNEBRIDGE_') and k not in backup]:
            os.environ.pop(k, None)
        for k, v in backup.items():
            if v is None:
                os.environ.pop(k, None)
            else:
                os.environ[k] = v
