from unittest.mock import Mock

import pytest
import requests
from spotipy.exceptions import SpotifyException

from tunebridge.domain.entities import LinkKind, Platform
from tunebridge.domain.errors import NotFoundError, UnsupportedLinkError, UpstreamError
from tunebridge.infrastructure.providers.spotify import SpotifyProvider


def _track(track_id, name="Bohemian Rhapsody", artists=("Queen",), isrc="GBUM71029604", **extra):
    payload = {
        "id": track_id,
        "type": "track",
        "name": name,
        "artists": [{"name": a} for a in artists],
        "album": {"name": "A Night at the Opera"},
        "external_ids": {"isrc": isrc} if isrc else {},
        "external_urls": {"spotify": f"https://open.spotify.com/track/{track_id}"},
    }
    payload.update(extra)
    return payload


def _page(tracks, next_url=None):
    return {"items": [{"track": t} for t in tracks], "next": next_url}


class TestSpotifyProvider:
    """Tests for the Spotify catalog adapter."""

    def setup_method(self):
        self.client = Mock()
        self.credentials = Mock()
        self.credentials.get_credential.return_value = "token"
        self.tokens = []

        def factory(token):
            self.tokens.append(token)
            return self.client

        self.provider = SpotifyProvider(self.credentials, session=Mock(), search_limit=5, client_factory=factory)

    def test_fetch_track_maps_fields(self):
        self.client.track.return_value = _track("abc123", artists=("Queen", "David Bowie"), isrc="gb-um7-1029604")

        entity = self.provider.fetch_by_id("abc123", LinkKind.SONG, region="gb")

        self.client.track.assert_called_once_with("abc123", market="GB")
        assert entity.platform == Platform.SPOTIFY
        assert entity.kind == LinkKind.SONG
        assert entity.name == "Bohemian Rhapsody"
        assert entity.primary_artist == "Queen"
        assert entity.artists == ["Queen", "David Bowie"]
        assert entity.external_code == "GBUM71029604"
        assert entity.album == "A Night at the Opera"
        assert entity.canonical_url == "https://open.spotify.com/track/abc123"

    def test_fetch_album_maps_upc(self):
        self.client.album.return_value = {
            "id": "alb1", "name": "Abbey Road", "artists": [{"name": "The Beatles"}],
            "external_ids": {"upc": "00602547670342"}, "external_urls": {},
        }

        entity = self.provider.fetch_by_id("alb1", LinkKind.ALBUM)

        assert entity.kind == LinkKind.ALBUM
        assert entity.external_code == "00602547670342"
        assert entity.canonical_url == "https://open.spotify.com/album/alb1"

    def test_fetch_rejects_playlist_kind(self):
        with pytest.raises(UnsupportedLinkError):
            self.provider.fetch_by_id("p1", LinkKind.PLAYLIST)

    @pytest.mark.parametrize("status", [400, 404])
    def test_bad_id_is_not_found(self, status):
        self.client.track.side_effect = SpotifyException(status, -1, "invalid id")

        with pytest.raises(NotFoundError):
            self.provider.fetch_by_id("nope", LinkKind.SONG)

    def test_server_error_is_upstream(self):
        self.client.track.side_effect = SpotifyException(500, -1, "server error")

        with pytest.raises(UpstreamError) as exc_info:
            self.provider.fetch_by_id("abc", LinkKind.SONG)
        assert exc_info.value.status_code == 500
        assert exc_info.value.provider == "spotify"

    def test_transport_error_is_upstream(self):
        self.client.search.side_effect = requests.ConnectionError("reset")

        with pytest.raises(UpstreamError):
            self.provider.search_by_text("x", "y", LinkKind.SONG)

    def test_search_not_found_status_is_upstream(self):
        self.client.search.side_effect = SpotifyException(404, -1, "missing")

        with pytest.raises(UpstreamError):
            self.provider.search_by_external_code("USABC1234567", LinkKind.SONG)

    def test_isrc_search(self):
        self.client.search.return_value = {"tracks": {"items": [_track("t1")]}}

        entity = self.provider.search_by_external_code("usabc1234567", LinkKind.SONG, region="de")

        self.client.search.assert_called_once_with("isrc:USABC1234567", type="track", limit=5, market="DE")
        assert entity.source_id == "t1"

    def test_upc_search(self):
        self.client.search.return_value = {"albums": {"items": []}}

        assert self.provider.search_by_external_code("0602547670342", LinkKind.ALBUM) is None
        self.client.search.assert_called_once_with("upc:0602547670342", type="album", limit=5, market="US")

    def test_text_search_query_format(self):
        self.client.search.return_value = {"tracks": {"items": [_track("t1"), _track("t2")]}}

        entity = self.provider.search_by_text('Under Pressure (feat. David Bowie)', "Queen", LinkKind.SONG)

        self.client.search.assert_called_once_with(
            'track:"Under Pressure" artist:"Queen"', type="track", limit=5, market="US"
        )
        assert entity.source_id == "t1"

    def test_album_text_search(self):
        self.client.search.return_value = {"albums": {"items": [{"id": "a1", "name": "Abbey Road", "artists": []}]}}

        entity = self.provider.search_by_text("Abbey Road", "The Beatles", LinkKind.ALBUM)

        self.client.search.assert_called_once_with(
            'album:"Abbey Road" artist:"The Beatles"', type="album", limit=5, market="US"
        )
        assert entity.kind == LinkKind.ALBUM

    def test_every_call_reads_the_credential(self):
        self.client.search.return_value = {"tracks": {"items": []}}
        self.credentials.get_credential.side_effect = ["tok-a", "tok-b"]

        self.provider.search_by_text("a", "b", LinkKind.SONG)
        self.provider.search_by_text("a", "b", LinkKind.SONG)

        assert self.tokens == ["tok-a", "tok-b"]

    def test_fetch_playlist_info(self):
        self.client.playlist.return_value = {
            "name": "Road Trip", "description": "Long drives",
            "owner": {"id": "u1", "display_name": "Sam"}, "tracks": {"total": 237},
        }

        info = self.provider.fetch_playlist_info("pl1")

        assert (info.name, info.description, info.owner, info.track_count) == ("Road Trip", "Long drives", "Sam", 237)

    def test_lists_all_pages_in_order(self):
        pages = [
            _page([_track(f"t{i}") for i in range(0, 100)], "next-1"),
            _page([_track(f"t{i}") for i in range(100, 200)], "next-2"),
            _page([_track(f"t{i}") for i in range(200, 237)]),
        ]
        self.client.playlist_items.return_value = pages[0]
        self.client.next.side_effect = pages[1:]

        tracks = self.provider.list_collection_items("pl1")

        assert len(tracks) == 237
        assert [t.source_id for t in tracks] == [f"t{i}" for i in range(237)]
        self.client.playlist_items.assert_called_once_with(
            "pl1", limit=100, market="US", additional_types=("track",)
        )
        assert self.client.next.call_count == 2

    def test_later_page_failure_truncates(self):
        self.client.playlist_items.return_value = _page([_track("t1"), _track("t2")], "next-1")
        self.client.next.side_effect = SpotifyException(502, -1, "bad gateway")

        tracks = self.provider.list_collection_items("pl1")

        assert [t.source_id for t in tracks] == ["t1", "t2"]

    def test_first_page_failure_propagates(self):
        self.client.playlist_items.side_effect = SpotifyException(500, -1, "server error")

        with pytest.raises(UpstreamError):
            self.provider.list_collection_items("pl1")

    def test_missing_playlist_is_not_found(self):
        self.client.playlist_items.side_effect = SpotifyException(404, -1, "not found")

        with pytest.raises(NotFoundError):
            self.provider.list_collection_items("pl1")

    def test_skips_removed_tracks_and_episodes(self):
        page = {
            "items": [
                {"track": None},
                {},
                {"track": _track("ep1", type="episode")},
                {"track": _track("t1")},
            ],
            "next": None,
        }
        self.client.playlist_items.return_value = page

        tracks = self.provider.list_collection_items("pl1")

        assert [t.source_id for t in tracks] == ["t1"]

    def test_keeps_local_files_for_text_matching(self):
        local = _track(None, name="Local Hit", artists=("B",), isrc=None, is_local=True,
                       uri="spotify:local:B::Local+Hit:215", external_urls={})
        self.client.playlist_items.return_value = _page([_track("t1", name="One"), local, _track("t3", name="Three")])

        tracks = self.provider.list_collection_items("pl1")

        assert [t.name for t in tracks] == ["One", "Local Hit", "Three"]
        local_entity = tracks[1]
        assert local_entity.source_id == ""
        assert local_entity.external_code is None
        assert local_entity.primary_artist == "B"
        assert local_entity.canonical_url is None
