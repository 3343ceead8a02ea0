import contextvars
import logging
from concurrent.futures import ThreadPoolExecutor

from tunebridge.application.resolution import ResolutionEngine, ensure_resolvable
from tunebridge.crosscutting.logging import CorrelationContext, log_error
from tunebridge.domain.entities import CatalogEntity, CollectionResult, LinkKind, MatchResult, MatchTier, ParsedLink
from tunebridge.domain.ports import CatalogProvider, DEFAULT_REGION

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 8


class CollectionResolver:
    """Resolves every track of a playlist concurrently.

    Item resolutions run on a bounded thread pool. A failure while resolving
    one item is logged and recorded as an unmatched result; it never aborts
    the other items. Failures while fetching the playlist itself propagate.
    """

    def __init__(self, engine: ResolutionEngine, max_workers: int = DEFAULT_MAX_WORKERS):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.engine = engine
        self.max_workers = max_workers

    def resolve_playlist(self, link: ParsedLink, region: str = DEFAULT_REGION) -> CollectionResult:
        """Resolve a playlist link.

        Returns:
            CollectionResult whose items follow the original playlist order
        """
        ensure_resolvable(link, (LinkKind.PLAYLIST,))
        origin = self.engine.provider_for(link.platform)
        destination = self.engine.destination_for(link.platform)

        with CorrelationContext(entity_id=link.id, platform=link.platform.value, stage='list_playlist'):
            try:
                info = origin.fetch_playlist_info(link.id, region=region)
                tracks = origin.list_collection_items(link.id, region=region)
            except Exception as e:
                log_error(logger, "Playlist listing failed", e, playlist_id=link.id)
                if self.engine.metrics is not None:
                    self.engine.metrics.record_error('list_playlist', e)
                raise

        logger.info(f"Resolving {len(tracks)} tracks of playlist '{info.name}' ({link.id})")

        if not tracks:
            items = []
        else:
            workers = min(self.max_workers, len(tracks))
            with ThreadPoolExecutor(max_workers=workers, thread_name_prefix='tunebridge-resolve') as executor:
                # Each task runs in a copy of the caller's context so log correlation survives.
                futures = [
                    executor.submit(contextvars.copy_context().run, self._resolve_item,
                                    index, track, destination, region)
                    for index, track in enumerate(tracks)
                ]
                items = [future.result() for future in futures]

        # The reported count also covers items the listing skipped.
        total_count = max(info.track_count, len(tracks))
        result = CollectionResult(info=info, items=items, total_count=total_count)
        if self.engine.metrics is not None:
            self.engine.metrics.record_playlist(len(items))
        logger.info(f"Playlist '{link.id}': matched {result.matched_count}/{result.total_count} tracks")
        return result

    def _resolve_item(self, index: int, track: CatalogEntity, destination: CatalogProvider,
                      region: str) -> MatchResult:
        try:
            return self.engine.match_entity(track, LinkKind.SONG, destination, region=region)
        except Exception as e:
            with CorrelationContext(entity_id=track.source_id, stage='resolve_item'):
                log_error(logger, "Playlist item resolution failed", e, index=index, track=track.name)
            return MatchResult(source_entity=track, target_entity=None, match_tier=MatchTier.NONE)
