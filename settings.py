"""Configuration for the calendar events service."""
import os
from dataclasses import dataclass
from typing import Mapping, Optional


@dataclass
class Settings:
    """Service settings, passed explicitly to the components that need them."""
    api_key: str = ''
    table_name: str = 'calendar-events-cache'
    cache_prefix: str = 'gcal_cache_'
    cache_ttl_seconds: int = 1800
    timeout_seconds: int = 15
    log_level: str = 'INFO'
    max_lookup_workers: int = 4
    legacy_duplicates: bool = False

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'Settings':
        """
        Read settings from environment variables.

        Args:
            environ: Mapping to read from (default: os.environ)

        Returns:
            Settings object
        """
        env = os.environ if environ is None else environ
        return cls(
            api_key=env.get('GOOGLE_API_KEY', '').strip(),
            table_name=env.get('TABLE_NAME', 'calendar-events-cache'),
            cache_prefix=env.get('CACHE_PREFIX', 'gcal_cache_'),
            cache_ttl_seconds=int(env.get('CACHE_TTL_SECONDS', '1800')),
            timeout_seconds=int(env.get('TIMEOUT_SECONDS', '15')),
            log_level=env.get('LOG_LEVEL', 'INFO'),
            max_lookup_workers=int(env.get('MAX_LOOKUP_WORKERS', '4')),
            legacy_duplicates=env.get('LEGACY_DUPLICATES', 'false').lower() in ('1', 'true', 'yes')
        )
