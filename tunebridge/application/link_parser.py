"""Turn raw catalog URLs into typed references.

Parsing never raises: malformed input is reported as ``Platform.INVALID`` and
unrecognized hosts as ``Platform.UNKNOWN`` so callers can decide how to react.
"""

import logging
from typing import List, Optional
from urllib.parse import urlparse, parse_qs

from tunebridge.domain.entities import LinkKind, ParsedLink, Platform

logger = logging.getLogger(__name__)

SPOTIFY_HOST_MARKERS = ("spotify.com",)
APPLE_HOST_MARKERS = ("music.apple.com", "itunes.apple.com")

_SPOTIFY_KINDS = {
    "track": LinkKind.SONG,
    "album": LinkKind.ALBUM,
    "playlist": LinkKind.PLAYLIST,
}

# Apple Music song query parameter: /album/<slug>/<album-id>?i=<song-id>
APPLE_SONG_QUERY_PARAM = "i"


def parse(raw_url: str) -> ParsedLink:
    """Parse a Spotify or Apple Music link into a ParsedLink."""
    raw = raw_url if isinstance(raw_url, str) else ""
    candidate = raw.strip()
    try:
        parsed = urlparse(candidate)
        host = (parsed.hostname or "").lower()
    except ValueError:
        logger.debug(f"Rejected malformed URL: {raw!r}")
        return _invalid(raw)

    if not candidate or not parsed.scheme or not host:
        return _invalid(raw)

    segments = [s for s in parsed.path.split("/") if s]

    if any(marker in host for marker in SPOTIFY_HOST_MARKERS):
        return _parse_spotify(segments, raw)
    if any(marker in host for marker in APPLE_HOST_MARKERS):
        return _parse_apple(segments, parse_qs(parsed.query), raw)
    return ParsedLink(platform=Platform.UNKNOWN, kind=LinkKind.UNKNOWN, id=None, raw=raw)


def _invalid(raw: str) -> ParsedLink:
    return ParsedLink(platform=Platform.INVALID, kind=LinkKind.INVALID, id=None, raw=raw)


def _parse_spotify(segments: List[str], raw: str) -> ParsedLink:
    kind = _SPOTIFY_KINDS.get(segments[0]) if segments else None
    if kind is None or len(segments) < 2:
        return ParsedLink(platform=Platform.SPOTIFY, kind=LinkKind.UNKNOWN, id=None, raw=raw)
    return ParsedLink(platform=Platform.SPOTIFY, kind=kind, id=segments[1], raw=raw)


def _parse_apple(segments: List[str], query: dict, raw: str) -> ParsedLink:
    # The song query parameter is unambiguous, so it wins over any path shape.
    for value in query.get(APPLE_SONG_QUERY_PARAM, []):
        if value.isdigit():
            return ParsedLink(platform=Platform.APPLE_MUSIC, kind=LinkKind.SONG, id=value, raw=raw)

    for marker, kind in (("album", LinkKind.ALBUM), ("song", LinkKind.SONG)):
        if marker not in segments:
            continue
        entity_id = _find_apple_id(segments, segments.index(marker))
        if entity_id is not None:
            return ParsedLink(platform=Platform.APPLE_MUSIC, kind=kind, id=entity_id, raw=raw)

    return ParsedLink(platform=Platform.APPLE_MUSIC, kind=LinkKind.UNKNOWN, id=None, raw=raw)


def _find_apple_id(segments: List[str], marker_index: int) -> Optional[str]:
    """First all-digit segment from two past the marker, else the last all-digit segment."""
    for segment in segments[marker_index + 2:]:
        if segment.isdigit():
            return segment
    for segment in reversed(segments):
        if segment.isdigit():
            return segment
    return None
