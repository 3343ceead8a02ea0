from __future__ import annotations

from typing import List, Optional, Protocol

from .entities import CatalogEntity, LinkKind, PlaylistInfo

DEFAULT_REGION = "us"


class CatalogProvider(Protocol):
    """Port defining the read capabilities the resolver needs from a catalog.

    Implementations map provider payloads into domain entities at the boundary.
    Search operations return ``None`` when nothing matches and only raise on
    transport failures.
    """

    name: str

    def fetch_by_id(self, entity_id: str, kind: LinkKind, region: str = DEFAULT_REGION) -> CatalogEntity:
        """Return the entity with the given id. Raises NotFoundError or UpstreamError."""

    def search_by_external_code(self, code: str, kind: LinkKind,
                                region: str = DEFAULT_REGION) -> Optional[CatalogEntity]:
        """Return the top entity carrying the given ISRC/UPC, if any."""

    def search_by_text(self, name: str, artist: str, kind: LinkKind,
                       region: str = DEFAULT_REGION) -> Optional[CatalogEntity]:
        """Return the provider's top-ranked result for name and artist, if any."""

    def fetch_playlist_info(self, playlist_id: str, region: str = DEFAULT_REGION) -> PlaylistInfo:
        """Return playlist metadata."""

    def list_collection_items(self, playlist_id: str, region: str = DEFAULT_REGION) -> List[CatalogEntity]:
        """Return every track of the playlist in provider order, following pagination."""
