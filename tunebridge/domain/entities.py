from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class Platform(str, Enum):
    """Catalog a link belongs to."""

    SPOTIFY = "spotify"
    APPLE_MUSIC = "apple_music"
    UNKNOWN = "unknown"
    INVALID = "invalid"

    @property
    def is_known(self) -> bool:
        return self in (Platform.SPOTIFY, Platform.APPLE_MUSIC)


class LinkKind(str, Enum):
    """Kind of catalog entity a link points to."""

    SONG = "song"
    ALBUM = "album"
    PLAYLIST = "playlist"
    UNKNOWN = "unknown"
    INVALID = "invalid"


class MatchTier(str, Enum):
    """Strategy that produced a match."""

    EXTERNAL_CODE = "external_code"
    TEXT = "text"
    NONE = "none"


@dataclass(frozen=True)
class ParsedLink:
    """Typed reference extracted from a raw catalog URL."""

    platform: Platform
    kind: LinkKind
    id: Optional[str] = None
    raw: str = ""

    @property
    def is_resolvable(self) -> bool:
        return (
            self.platform.is_known
            and self.kind in (LinkKind.SONG, LinkKind.ALBUM, LinkKind.PLAYLIST)
            and self.id is not None
        )


@dataclass(frozen=True)
class CatalogEntity:
    """Provider-independent view of a track or an album."""

    name: str = ""
    primary_artist: str = ""
    external_code: Optional[str] = None
    canonical_url: Optional[str] = None
    source_id: str = ""
    platform: Platform = Platform.UNKNOWN
    kind: LinkKind = LinkKind.SONG
    artists: List[str] = field(default_factory=list)
    album: Optional[str] = None


@dataclass(frozen=True)
class MatchResult:
    """Outcome of resolving one source entity on the destination catalog."""

    source_entity: CatalogEntity
    target_entity: Optional[CatalogEntity] = None
    match_tier: MatchTier = MatchTier.NONE

    def __post_init__(self):
        if (self.target_entity is None) != (self.match_tier is MatchTier.NONE):
            raise ValueError("target_entity must be set exactly when match_tier is not NONE")

    @property
    def matched(self) -> bool:
        return self.match_tier is not MatchTier.NONE


@dataclass(frozen=True)
class Credential:
    """Bearer credential with its absolute expiry as a POSIX timestamp."""

    value: str
    expires_at: float


@dataclass(frozen=True)
class PlaylistInfo:
    """Metadata of a playlist."""

    name: str = ""
    description: str = ""
    owner: str = ""
    track_count: int = 0


@dataclass(frozen=True)
class CollectionResult:
    """Aggregated resolution of every track of a playlist.

    ``items`` holds one result per listed track in playlist order, matched or not.
    """

    info: PlaylistInfo
    items: List[MatchResult] = field(default_factory=list)
    total_count: int = 0

    @property
    def matched_count(self) -> int:
        return sum(1 for item in self.items if item.matched)

    @property
    def matches(self) -> List[MatchResult]:
        return [item for item in self.items if item.matched]
