from dataclasses import dataclass
from typing import Optional

import requests

from tunebridge.application.collection import CollectionResolver
from tunebridge.application.resolution import ResolutionEngine
from tunebridge.crosscutting.config import Settings, get_settings
from tunebridge.crosscutting.metrics import ResolutionMetrics, get_metrics
from tunebridge.domain.entities import Platform
from tunebridge.infrastructure.auth import CredentialCache
from tunebridge.infrastructure.providers.apple_music import AppleMusicProvider
from tunebridge.infrastructure.providers.spotify import SpotifyProvider

USER_AGENT = 'TuneBridge/0.1.0'


@dataclass
class Services:
    """Long-lived objects shared by every request of a process."""

    settings: Settings
    session: requests.Session
    credentials: CredentialCache
    engine: ResolutionEngine
    collection_resolver: CollectionResolver
    metrics: ResolutionMetrics


def build_services(settings: Optional[Settings] = None,
                   session: Optional[requests.Session] = None,
                   metrics: Optional[ResolutionMetrics] = None) -> Services:
    """Construct the credential cache, providers and resolvers from settings."""
    settings = settings or get_settings()
    metrics = metrics or get_metrics()
    if session is None:
        session = requests.Session()
        session.headers.update({'User-Agent': USER_AGENT})

    credentials = CredentialCache(
        client_id=settings.spotify_client_id,
        client_secret=settings.spotify_client_secret,
        session=session,
        timeout=settings.request_timeout,
        safety_margin_sec=settings.token_safety_margin
    )
    providers = {
        Platform.SPOTIFY: SpotifyProvider(
            credentials,
            session=session,
            timeout=settings.request_timeout,
            search_limit=settings.search_limit
        ),
        Platform.APPLE_MUSIC: AppleMusicProvider(
            session=session,
            timeout=settings.request_timeout,
            search_limit=settings.search_limit
        ),
    }
    engine = ResolutionEngine(providers, metrics=metrics)
    return Services(
        settings=settings,
        session=session,
        credentials=credentials,
        engine=engine,
        collection_resolver=CollectionResolver(engine, max_workers=settings.max_workers),
        metrics=metrics
    )
