import logging
from typing import Dict, Iterable, Optional

from tunebridge.crosscutting.logging import CorrelationContext, log_error
from tunebridge.crosscutting.metrics import ResolutionMetrics
from tunebridge.domain.entities import CatalogEntity, LinkKind, MatchResult, MatchTier, ParsedLink, Platform
from tunebridge.domain.errors import TuneBridgeError, UnsupportedLinkError
from tunebridge.domain.ports import CatalogProvider, DEFAULT_REGION

logger = logging.getLogger(__name__)

ENTITY_KINDS = (LinkKind.SONG, LinkKind.ALBUM)


def ensure_resolvable(link: ParsedLink, kinds: Iterable[LinkKind]) -> None:
    """Reject links that no resolution path handles, before any network call."""
    kinds = tuple(kinds)
    if link.platform == Platform.INVALID:
        raise UnsupportedLinkError(f"Malformed link: '{link.raw}'")
    if not link.platform.is_known:
        raise UnsupportedLinkError(f"Unsupported platform for link: '{link.raw}'")
    if link.kind not in kinds:
        expected = ", ".join(k.value for k in kinds)
        raise UnsupportedLinkError(
            f"Unsupported {link.platform.value} link kind '{link.kind.value}' (expected {expected})"
        )
    if link.id is None:
        raise UnsupportedLinkError(f"Link has no entity id: '{link.raw}'")


class ResolutionEngine:
    """Resolves a single song or album onto the other catalog.

    Matching is tiered:
    1. External code (ISRC/UPC) lookup on the destination, accepted unconditionally
    2. Name + primary artist text search, first result in provider order
    3. No match

    The engine keeps no state between calls, so negative results are never cached.
    """

    def __init__(self, providers: Dict[Platform, CatalogProvider],
                 metrics: Optional[ResolutionMetrics] = None):
        """Initialize the engine.

        Args:
            providers: Provider per platform; exactly the two known platforms
            metrics: Optional recorder for resolution outcomes
        """
        missing = [p.value for p in (Platform.SPOTIFY, Platform.APPLE_MUSIC) if p not in providers]
        if missing:
            raise ValueError(f"Missing providers for: {', '.join(missing)}")
        self._providers = dict(providers)
        self.metrics = metrics

    def provider_for(self, platform: Platform) -> CatalogProvider:
        """Origin provider of links on ``platform``."""
        try:
            return self._providers[platform]
        except KeyError:
            raise UnsupportedLinkError(f"No provider for platform '{platform.value}'")

    def destination_for(self, platform: Platform) -> CatalogProvider:
        """Provider searched for equivalents of entities from ``platform``."""
        if platform == Platform.SPOTIFY:
            return self._providers[Platform.APPLE_MUSIC]
        if platform == Platform.APPLE_MUSIC:
            return self._providers[Platform.SPOTIFY]
        raise UnsupportedLinkError(f"No destination for platform '{platform.value}'")

    def resolve_entity(self, link: ParsedLink, region: str = DEFAULT_REGION) -> MatchResult:
        """Resolve a song or album link into its equivalent on the other catalog.

        Raises:
            UnsupportedLinkError: link is not a resolvable song/album link
            NotFoundError: source entity does not exist
            UpstreamError, AuthError: provider failures, propagated untouched
        """
        ensure_resolvable(link, ENTITY_KINDS)
        origin = self.provider_for(link.platform)
        destination = self.destination_for(link.platform)

        with CorrelationContext(entity_id=link.id, platform=link.platform.value, stage='fetch_source'):
            try:
                source = origin.fetch_by_id(link.id, link.kind, region=region)
            except TuneBridgeError as e:
                log_error(logger, "Source fetch failed", e, entity_id=link.id, kind=link.kind.value)
                self._record_error('fetch_source', e)
                raise

        return self.match_entity(source, link.kind, destination, region=region)

    def match_entity(self, source: CatalogEntity, kind: LinkKind, destination: CatalogProvider,
                     region: str = DEFAULT_REGION) -> MatchResult:
        """Run the matching tiers for an already fetched source entity."""
        with CorrelationContext(entity_id=source.source_id, stage='match_code'):
            target = None
            if source.external_code:
                target = self._guarded('match_code', destination.search_by_external_code,
                                       source.external_code, kind, region=region)
            if target is not None:
                return self._finish(source, target, MatchTier.EXTERNAL_CODE, kind)

        with CorrelationContext(entity_id=source.source_id, stage='match_text'):
            target = self._guarded('match_text', destination.search_by_text,
                                   source.name, source.primary_artist, kind, region=region)
            if target is not None:
                return self._finish(source, target, MatchTier.TEXT, kind)

            logger.info(f"No {kind.value} match for '{source.name}' by '{source.primary_artist}'")
            return self._finish(source, None, MatchTier.NONE, kind)

    def _guarded(self, stage: str, call, *args, **kwargs) -> Optional[CatalogEntity]:
        try:
            return call(*args, **kwargs)
        except TuneBridgeError as e:
            log_error(logger, "Destination search failed", e, stage=stage)
            self._record_error(stage, e)
            raise

    def _finish(self, source: CatalogEntity, target: Optional[CatalogEntity],
                tier: MatchTier, kind: LinkKind) -> MatchResult:
        if target is not None:
            logger.info(f"Matched {kind.value} '{source.name}' -> {target.canonical_url} via {tier.value}")
        if self.metrics is not None:
            self.metrics.record_resolution(kind.value, tier.value)
        return MatchResult(source_entity=source, target_entity=target, match_tier=tier)

    def _record_error(self, stage: str, error: Exception) -> None:
        if self.metrics is not None:
            self.metrics.record_error(stage, error)
