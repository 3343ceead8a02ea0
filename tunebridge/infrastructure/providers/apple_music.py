"""
Apple Music adapter over the public iTunes Search API.

No authentication is required:
- Lookup: https://itunes.apple.com/lookup?id=X (also isrc=X, upc=X)
- Search: https://itunes.apple.com/search?term=X&entity=song|album

Playlists are not exposed by this API, so collection operations are rejected.
"""

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

import requests

from tunebridge.domain.entities import CatalogEntity, LinkKind, PlaylistInfo, Platform
from tunebridge.domain.errors import NotFoundError, UnsupportedLinkError, UpstreamError
from tunebridge.domain.normalization import clean_search_text, normalize_external_code
from tunebridge.domain.ports import CatalogProvider, DEFAULT_REGION

logger = logging.getLogger(__name__)

# iTunes wrapperType for each kind
_WRAPPER_TYPES = {
    LinkKind.SONG: 'track',
    LinkKind.ALBUM: 'collection',
}
_SEARCH_ENTITIES = {
    LinkKind.SONG: 'song',
    LinkKind.ALBUM: 'album',
}
# Affiliate tracking parameters appended to iTunes view URLs
_TRACKING_PARAMS = {'uo', 'at', 'ct'}


def build_apple_music_album_url(album_id: str, country: str = DEFAULT_REGION) -> str:
    return f"https://music.apple.com/{country}/album/{album_id}"


def build_apple_music_track_url(track_id: str, country: str = DEFAULT_REGION) -> str:
    return f"https://music.apple.com/{country}/song/{track_id}"


def _strip_tracking(url: Optional[str]) -> Optional[str]:
    if not url:
        return url
    parsed = urlparse(url)
    query = [(k, v) for k, v in parse_qsl(parsed.query) if k not in _TRACKING_PARAMS]
    return urlunparse(parsed._replace(query=urlencode(query)))


class AppleMusicProvider(CatalogProvider):
    """iTunes Search/Lookup API client mapped onto the catalog provider port."""

    name = 'apple_music'
    BASE_URL = 'https://itunes.apple.com'

    def __init__(self,
                 session: Optional[requests.Session] = None,
                 timeout: float = 10,
                 search_limit: int = 5):
        """
        Args:
            session: Shared HTTP session (connection reuse)
            timeout: Request timeout in seconds
            search_limit: Number of results requested per search
        """
        self.session = session or requests.Session()
        self.timeout = timeout
        self.search_limit = max(1, search_limit)

    def _get(self, path: str, params: Dict[str, Any], operation: str) -> List[Dict[str, Any]]:
        url = f"{self.BASE_URL}/{path}"
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"Apple Music {operation} transport failure: {e}")
            raise UpstreamError(f"Apple Music {operation} failed: {e}", provider=self.name) from e

        # iTunes answers 403 when rate limited
        if not 200 <= response.status_code < 300:
            logger.error(f"Apple Music {operation} failed with status {response.status_code}")
            raise UpstreamError(f"Apple Music {operation} failed with status {response.status_code}",
                                provider=self.name, status_code=response.status_code)
        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamError(f"Apple Music {operation} returned invalid JSON", provider=self.name) from e

        results = data.get('results') if isinstance(data, dict) else None
        return [r for r in results or [] if isinstance(r, dict)]

    def _to_entity(self, item: Dict[str, Any], kind: LinkKind, region: str) -> CatalogEntity:
        artist = item.get('artistName') or ''
        if kind == LinkKind.ALBUM:
            entity_id = str(item.get('collectionId') or '')
            return CatalogEntity(
                name=item.get('collectionName') or '',
                primary_artist=artist,
                external_code=normalize_external_code(item.get('upc')),
                canonical_url=_strip_tracking(item.get('collectionViewUrl'))
                or (build_apple_music_album_url(entity_id, region) if entity_id else None),
                source_id=entity_id,
                platform=Platform.APPLE_MUSIC,
                kind=LinkKind.ALBUM,
                artists=[artist] if artist else []
            )

        entity_id = str(item.get('trackId') or '')
        return CatalogEntity(
            name=item.get('trackName') or '',
            primary_artist=artist,
            external_code=normalize_external_code(item.get('isrc')),
            canonical_url=_strip_tracking(item.get('trackViewUrl'))
            or (build_apple_music_track_url(entity_id, region) if entity_id else None),
            source_id=entity_id,
            platform=Platform.APPLE_MUSIC,
            kind=LinkKind.SONG,
            artists=[artist] if artist else [],
            album=item.get('collectionName')
        )

    def _first_of_kind(self, results: List[Dict[str, Any]], kind: LinkKind,
                       region: str) -> Optional[CatalogEntity]:
        wrapper_type = _WRAPPER_TYPES[kind]
        for item in results:
            if item.get('wrapperType') == wrapper_type:
                return self._to_entity(item, kind, region)
        return None

    @staticmethod
    def _require_kind(kind: LinkKind) -> None:
        if kind not in _WRAPPER_TYPES:
            raise UnsupportedLinkError(f"Apple Music does not support kind '{kind.value}'")

    def fetch_by_id(self, entity_id: str, kind: LinkKind, region: str = DEFAULT_REGION) -> CatalogEntity:
        """Look up a song or album by its Apple Music id."""
        self._require_kind(kind)
        results = self._get('lookup', {'id': entity_id, 'country': region}, f"{kind.value} lookup")
        entity = self._first_of_kind(results, kind, region)
        if entity is None:
            raise NotFoundError(f"Apple Music {kind.value} '{entity_id}' not found")
        return entity

    def search_by_external_code(self, code: str, kind: LinkKind,
                                region: str = DEFAULT_REGION) -> Optional[CatalogEntity]:
        """Look up by ISRC (songs) or UPC (albums)."""
        self._require_kind(kind)
        code = normalize_external_code(code)
        if not code:
            return None
        param = 'upc' if kind == LinkKind.ALBUM else 'isrc'
        results = self._get('lookup', {param: code, 'country': region}, f"{param} lookup")
        return self._first_of_kind(results, kind, region)

    def search_by_text(self, name: str, artist: str, kind: LinkKind,
                       region: str = DEFAULT_REGION) -> Optional[CatalogEntity]:
        """Return the first result of a free-text search in iTunes relevance order."""
        self._require_kind(kind)
        term = " ".join(part for part in (clean_search_text(name), clean_search_text(artist)) if part)
        if not term:
            return None
        params = {
            'term': term,
            'entity': _SEARCH_ENTITIES[kind],
            'country': region,
            'limit': self.search_limit
        }
        results = self._get('search', params, f"{kind.value} search")
        return self._first_of_kind(results, kind, region)

    def fetch_playlist_info(self, playlist_id: str, region: str = DEFAULT_REGION) -> PlaylistInfo:
        raise UnsupportedLinkError("Apple Music playlists are not available through the public catalog API")

    def list_collection_items(self, playlist_id: str, region: str = DEFAULT_REGION) -> List[CatalogEntity]:
        raise UnsupportedLinkError("Apple Music playlists are not available through the public catalog API")
