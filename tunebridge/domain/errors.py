from typing import Optional


class TuneBridgeError(Exception):
    """Base class for all resolution failures."""


class UnsupportedLinkError(TuneBridgeError):
    """Link platform/kind combination is not handled by any resolution path."""


class AuthError(TuneBridgeError):
    """Outbound credential could not be obtained."""


class AuthConfigError(AuthError):
    """Client credentials are missing from configuration."""


class AuthProviderError(AuthError):
    """Token exchange was rejected by the provider."""


class UpstreamError(TuneBridgeError):
    """Transport failure or non-2xx response from a catalog provider."""

    def __init__(self, message: str, provider: Optional[str] = None,
                 status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class NotFoundError(TuneBridgeError):
    """Requested entity does not exist in the catalog."""
