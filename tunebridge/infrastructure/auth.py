import logging
import threading
import time
from typing import Callable, Optional

import requests

from tunebridge.domain.entities import Credential
from tunebridge.domain.errors import AuthConfigError, AuthProviderError, UpstreamError

logger = logging.getLogger(__name__)

SPOTIFY_TOKEN_URL = 'https://accounts.spotify.com/api/token'
DEFAULT_SAFETY_MARGIN_SEC = 300


class CredentialCache:
    """Client-credentials bearer token cache for the Spotify Web API.

    One instance is created at startup and shared by every resolution call.
    The token is fetched lazily, reused until ``expires_at`` and refreshed on
    the first call after expiry. Concurrent refreshes are coalesced behind a
    lock so only one token exchange is in flight at a time.
    """

    STATE_EMPTY = 'empty'
    STATE_VALID = 'valid'
    STATE_EXPIRED = 'expired'

    def __init__(self,
                 client_id: Optional[str],
                 client_secret: Optional[str],
                 session: Optional[requests.Session] = None,
                 token_url: str = SPOTIFY_TOKEN_URL,
                 timeout: float = 10,
                 safety_margin_sec: float = DEFAULT_SAFETY_MARGIN_SEC,
                 clock: Callable[[], float] = time.time):
        """Initialize the cache.

        Args:
            client_id: Spotify application client ID
            client_secret: Spotify application client secret
            session: Shared HTTP session (connection pool)
            token_url: Token endpoint
            timeout: Request timeout in seconds for the token exchange
            safety_margin_sec: Seconds subtracted from the provider TTL
            clock: Time source returning POSIX seconds
        """
        self.client_id = client_id
        self.client_secret = client_secret
        self.token_url = token_url
        self.timeout = timeout
        self.safety_margin_sec = safety_margin_sec
        self._session = session or requests.Session()
        self._clock = clock
        self._credential: Optional[Credential] = None
        self._lock = threading.Lock()

    @property
    def state(self) -> str:
        credential = self._credential
        if credential is None:
            return self.STATE_EMPTY
        if self._clock() < credential.expires_at:
            return self.STATE_VALID
        return self.STATE_EXPIRED

    def get_credential(self) -> str:
        """Return a valid bearer token, exchanging client credentials if needed.

        Raises:
            AuthConfigError: client id or secret is not configured
            AuthProviderError: the token endpoint rejected the exchange
            UpstreamError: the token endpoint could not be reached
        """
        credential = self._credential
        if credential is not None and self._clock() < credential.expires_at:
            return credential.value

        with self._lock:
            # Another caller may have refreshed while we waited for the lock.
            credential = self._credential
            if credential is not None and self._clock() < credential.expires_at:
                return credential.value
            self._credential = self._exchange()
            return self._credential.value

    def _exchange(self) -> Credential:
        if not self.client_id or not self.client_secret:
            raise AuthConfigError("SPOTIFY_CLIENT_ID and SPOTIFY_CLIENT_SECRET must be configured")

        logger.info("Requesting Spotify client-credentials token")
        try:
            response = self._session.post(
                self.token_url,
                data={'grant_type': 'client_credentials'},
                auth=(self.client_id, self.client_secret),
                timeout=self.timeout
            )
        except requests.RequestException as e:
            logger.error(f"Token exchange transport failure: {e}")
            raise UpstreamError(f"Token endpoint unreachable: {e}", provider='spotify') from e

        if response.status_code != 200:
            logger.error(f"Token exchange failed: {response.status_code}")
            raise AuthProviderError(f"Token exchange rejected with status {response.status_code}")

        try:
            payload = response.json()
        except ValueError as e:
            raise AuthProviderError("Token endpoint returned a non-JSON body") from e

        access_token = payload.get('access_token') if isinstance(payload, dict) else None
        if not access_token:
            raise AuthProviderError("Token endpoint response has no access_token")

        expires_in = payload.get('expires_in', 3600)
        try:
            expires_in = float(expires_in)
        except (TypeError, ValueError):
            expires_in = 3600.0

        expires_at = self._clock() + expires_in - self.safety_margin_sec
        logger.debug(f"Spotify token cached for {expires_in - self.safety_margin_sec:.0f}s")
        return Credential(value=access_token, expires_at=expires_at)
