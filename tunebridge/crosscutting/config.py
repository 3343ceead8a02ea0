import os
from dataclasses import dataclass
from typing import Any, Dict, Optional

from dotenv import load_dotenv


class ConfigError(Exception):
    """Configuration error."""
    pass


@dataclass(frozen=True)
class Settings:
    """Runtime configuration read from the environment.

    Spotify client credentials are optional here: their absence is reported by
    the credential cache when an authenticated call is attempted.
    """

    spotify_client_id: Optional[str] = None
    spotify_client_secret: Optional[str] = None
    default_country: str = 'us'
    max_workers: int = 8
    request_timeout: float = 10.0
    token_safety_margin: int = 300
    search_limit: int = 5
    log_level: str = 'INFO'
    log_file: Optional[str] = None
    host: str = 'localhost'
    port: int = 3000

    @property
    def has_spotify_credentials(self) -> bool:
        return bool(self.spotify_client_id and self.spotify_client_secret)

    def summary(self) -> Dict[str, Any]:
        """Configuration summary without secrets."""
        return {
            'spotify_credentials': self.has_spotify_credentials,
            'default_country': self.default_country,
            'max_workers': self.max_workers,
            'request_timeout': self.request_timeout,
            'token_safety_margin': self.token_safety_margin,
            'search_limit': self.search_limit,
            'log_level': self.log_level,
        }


def _get_str(env: Dict[str, str], key: str, default: Optional[str] = None) -> Optional[str]:
    value = env.get(key)
    if value is None or not str(value).strip():
        return default
    return str(value).strip()


def _get_number(env: Dict[str, str], key: str, default, cast, minimum):
    raw = _get_str(env, key)
    if raw is None:
        return default
    try:
        value = cast(raw)
    except ValueError:
        raise ConfigError(f"{key} must be a number, got '{raw}'")
    if value < minimum:
        raise ConfigError(f"{key} must be >= {minimum}, got {value}")
    return value


def load_settings(env: Optional[Dict[str, str]] = None, dotenv_path: Optional[str] = None) -> Settings:
    """Build Settings from a mapping, defaulting to ``os.environ`` after loading ``.env``."""
    if env is None:
        load_dotenv(dotenv_path=dotenv_path, override=False)
        env = dict(os.environ)

    log_level = (_get_str(env, 'TUNEBRIDGE_LOG_LEVEL', 'INFO') or 'INFO').upper()
    if log_level not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
        raise ConfigError(f"TUNEBRIDGE_LOG_LEVEL is not a valid level: '{log_level}'")

    return Settings(
        spotify_client_id=_get_str(env, 'SPOTIFY_CLIENT_ID'),
        spotify_client_secret=_get_str(env, 'SPOTIFY_CLIENT_SECRET'),
        default_country=(_get_str(env, 'TUNEBRIDGE_DEFAULT_COUNTRY', 'us') or 'us').lower(),
        max_workers=_get_number(env, 'TUNEBRIDGE_MAX_WORKERS', 8, int, 1),
        request_timeout=_get_number(env, 'TUNEBRIDGE_REQUEST_TIMEOUT', 10.0, float, 0.1),
        token_safety_margin=_get_number(env, 'TUNEBRIDGE_TOKEN_SAFETY_MARGIN', 300, int, 0),
        search_limit=_get_number(env, 'TUNEBRIDGE_SEARCH_LIMIT', 5, int, 1),
        log_level=log_level,
        log_file=_get_str(env, 'TUNEBRIDGE_LOG_FILE'),
        host=_get_str(env, 'HOST', 'localhost'),
        port=_get_number(env, 'PORT', 3000, int, 1),
    )


# Global instance, created lazily so importing does not read the environment
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get global settings instance."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def setup_config(env: Optional[Dict[str, str]] = None, dotenv_path: Optional[str] = None) -> Settings:
    """Reload global settings, optionally from an explicit mapping."""
    global _settings
    _settings = load_settings(env, dotenv_path)
    return _settings
