import logging
from typing import Any, Callable, Dict, List, Optional

import requests
import spotipy
from spotipy.exceptions import SpotifyException

from tunebridge.domain.entities import CatalogEntity, LinkKind, PlaylistInfo, Platform
from tunebridge.domain.errors import NotFoundError, TuneBridgeError, UnsupportedLinkError, UpstreamError
from tunebridge.domain.normalization import clean_search_text, normalize_external_code, primary_artist
from tunebridge.domain.ports import CatalogProvider, DEFAULT_REGION
from tunebridge.infrastructure.auth import CredentialCache

logger = logging.getLogger(__name__)

PLAYLIST_PAGE_SIZE = 100
PLAYLIST_INFO_FIELDS = 'name,description,owner(id,display_name),tracks(total)'


class SpotifyProvider(CatalogProvider):
    """Spotify Web API adapter.

    A fresh ``spotipy.Spotify`` client is built for every call from the shared
    credential cache, so each request carries a token that is valid at the time
    it is issued. All clients share one ``requests.Session``.
    """

    name = 'spotify'

    def __init__(self,
                 credentials: CredentialCache,
                 session: Optional[requests.Session] = None,
                 timeout: float = 10,
                 search_limit: int = 5,
                 client_factory: Optional[Callable[[str], Any]] = None):
        """Initialize Spotify provider.

        Args:
            credentials: Credential cache used for every call
            session: Shared HTTP session
            timeout: Request timeout in seconds
            search_limit: Number of results requested per search
            client_factory: Builds a client from a bearer token (tests replace it)
        """
        self._credentials = credentials
        self._session = session or requests.Session()
        self._timeout = timeout
        self._search_limit = max(1, search_limit)
        self._client_factory = client_factory or self._default_client

    def _default_client(self, token: str) -> spotipy.Spotify:
        # Retries are disabled: failures surface to the caller unchanged.
        return spotipy.Spotify(
            auth=token,
            requests_session=self._session,
            requests_timeout=self._timeout,
            retries=0,
            status_retries=0
        )

    def _request(self, operation: str, entity_id: str, method: str, *args,
                 not_found_on_bad_id: bool = False, **kwargs) -> Any:
        client = self._client_factory(self._credentials.get_credential())
        try:
            return getattr(client, method)(*args, **kwargs)
        except SpotifyException as e:
            status = getattr(e, 'http_status', None)
            if not_found_on_bad_id and status in (400, 404):
                raise NotFoundError(f"Spotify {operation}: '{entity_id}' not found") from e
            logger.error(f"Spotify {operation} failed for '{entity_id}': {status} {e}")
            raise UpstreamError(f"Spotify {operation} failed: {e}", provider=self.name,
                                status_code=status) from e
        except requests.RequestException as e:
            logger.error(f"Spotify {operation} transport failure for '{entity_id}': {e}")
            raise UpstreamError(f"Spotify {operation} failed: {e}", provider=self.name) from e

    @staticmethod
    def _market(region: str) -> str:
        return (region or DEFAULT_REGION).upper()

    def _track_to_entity(self, track: Dict[str, Any]) -> CatalogEntity:
        track_id = track.get('id') or ''
        artists = [a.get('name') for a in track.get('artists') or [] if isinstance(a, dict) and a.get('name')]
        album = track.get('album') or {}
        return CatalogEntity(
            name=track.get('name') or '',
            primary_artist=primary_artist(artists),
            external_code=normalize_external_code((track.get('external_ids') or {}).get('isrc')),
            canonical_url=(track.get('external_urls') or {}).get('spotify')
            or (f"https://open.spotify.com/track/{track_id}" if track_id else None),
            source_id=track_id,
            platform=Platform.SPOTIFY,
            kind=LinkKind.SONG,
            artists=artists,
            album=album.get('name') if isinstance(album, dict) else None
        )

    def _album_to_entity(self, album: Dict[str, Any]) -> CatalogEntity:
        album_id = album.get('id') or ''
        artists = [a.get('name') for a in album.get('artists') or [] if isinstance(a, dict) and a.get('name')]
        return CatalogEntity(
            name=album.get('name') or '',
            primary_artist=primary_artist(artists),
            external_code=normalize_external_code((album.get('external_ids') or {}).get('upc')),
            canonical_url=(album.get('external_urls') or {}).get('spotify')
            or (f"https://open.spotify.com/album/{album_id}" if album_id else None),
            source_id=album_id,
            platform=Platform.SPOTIFY,
            kind=LinkKind.ALBUM,
            artists=artists
        )

    def _to_entity(self, payload: Dict[str, Any], kind: LinkKind) -> CatalogEntity:
        if kind == LinkKind.ALBUM:
            return self._album_to_entity(payload)
        return self._track_to_entity(payload)

    def _first_search_item(self, results: Any, kind: LinkKind) -> Optional[CatalogEntity]:
        key = 'albums' if kind == LinkKind.ALBUM else 'tracks'
        items = ((results or {}).get(key) or {}).get('items') or []
        for item in items:
            if isinstance(item, dict) and item.get('id'):
                return self._to_entity(item, kind)
        return None

    def fetch_by_id(self, entity_id: str, kind: LinkKind, region: str = DEFAULT_REGION) -> CatalogEntity:
        """Fetch a track or an album by Spotify id."""
        if kind == LinkKind.SONG:
            payload = self._request('track lookup', entity_id, 'track', entity_id,
                                    market=self._market(region), not_found_on_bad_id=True)
        elif kind == LinkKind.ALBUM:
            payload = self._request('album lookup', entity_id, 'album', entity_id,
                                    market=self._market(region), not_found_on_bad_id=True)
        else:
            raise UnsupportedLinkError(f"Spotify lookup does not support kind '{kind.value}'")

        if not payload or not payload.get('id'):
            raise NotFoundError(f"Spotify {kind.value} '{entity_id}' not found")
        return self._to_entity(payload, kind)

    def search_by_external_code(self, code: str, kind: LinkKind,
                                region: str = DEFAULT_REGION) -> Optional[CatalogEntity]:
        """Search by ISRC (songs) or UPC (albums)."""
        code = normalize_external_code(code)
        if not code:
            return None
        if kind == LinkKind.ALBUM:
            query, search_type = f"upc:{code}", 'album'
        else:
            query, search_type = f"isrc:{code}", 'track'

        logger.debug(f"Searching Spotify with {query} (market={self._market(region)})")
        results = self._request('code search', code, 'search', query, type=search_type,
                                limit=self._search_limit, market=self._market(region))
        return self._first_search_item(results, kind)

    def search_by_text(self, name: str, artist: str, kind: LinkKind,
                       region: str = DEFAULT_REGION) -> Optional[CatalogEntity]:
        """Return Spotify's top-ranked result for a field-filtered name/artist query."""
        title = clean_search_text(name)
        artist = clean_search_text(artist)
        if not title:
            return None
        field_name, search_type = ('album', 'album') if kind == LinkKind.ALBUM else ('track', 'track')
        query = f'{field_name}:"{title}"'
        if artist:
            query += f' artist:"{artist}"'

        logger.debug(f"Searching Spotify with {query} (market={self._market(region)})")
        results = self._request('text search', title, 'search', query, type=search_type,
                                limit=self._search_limit, market=self._market(region))
        return self._first_search_item(results, kind)

    def fetch_playlist_info(self, playlist_id: str, region: str = DEFAULT_REGION) -> PlaylistInfo:
        """Fetch playlist name, description, owner and reported track count."""
        payload = self._request('playlist lookup', playlist_id, 'playlist', playlist_id,
                                fields=PLAYLIST_INFO_FIELDS, market=self._market(region),
                                not_found_on_bad_id=True)
        if not payload:
            raise NotFoundError(f"Spotify playlist '{playlist_id}' not found")
        owner = payload.get('owner') or {}
        return PlaylistInfo(
            name=payload.get('name') or '',
            description=payload.get('description') or '',
            owner=owner.get('display_name') or owner.get('id') or '',
            track_count=int((payload.get('tracks') or {}).get('total') or 0)
        )

    def list_collection_items(self, playlist_id: str, region: str = DEFAULT_REGION) -> List[CatalogEntity]:
        """List every track of a playlist, following the ``next`` cursor.

        A failure on the first page propagates. A failure on a later page stops
        pagination and returns what was collected so far.
        """
        tracks: List[CatalogEntity] = []
        page = self._request('playlist items', playlist_id, 'playlist_items', playlist_id,
                             limit=PLAYLIST_PAGE_SIZE, market=self._market(region),
                             additional_types=('track',), not_found_on_bad_id=True)
        page_number = 1

        while page:
            for item in page.get('items') or []:
                track = (item or {}).get('track')
                # Removed tracks and episodes are skipped. Local files have no id or ISRC
                # but keep their name and artists for text matching.
                if not track or track.get('type', 'track') != 'track':
                    continue
                tracks.append(self._track_to_entity(track))

            if not page.get('next'):
                break

            page_number += 1
            try:
                page = self._request('playlist items', playlist_id, 'next', page)
            except TuneBridgeError as e:
                logger.warning(
                    f"Stopped listing playlist '{playlist_id}' at page {page_number}: {e}; "
                    f"returning {len(tracks)} tracks"
                )
                break

        logger.info(f"Listed {len(tracks)} tracks from Spotify playlist '{playlist_id}'")
        return tracks
