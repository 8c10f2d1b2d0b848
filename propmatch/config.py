"""
Configuration Management

Load and validate configuration from YAML and environment variables.
Environment variables always win over YAML values.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).parent.parent

DEFAULT_API_URL = 'https://api.airtable.com/v0'


@dataclass(frozen=True)
class Tables:
    """Backend table names."""
    buyers: str = 'Buyers'
    properties: str = 'Properties'
    matches: str = 'Property-Buyer Matches'
    cache: str = 'System Cache'


# Direct environment overrides: env var -> (section, key)
ENV_OVERRIDES = {
    'AIRTABLE_API_KEY': ('airtable', 'api_key'),
    'AIRTABLE_BASE_ID': ('airtable', 'base_id'),
    'AIRTABLE_API_URL': ('airtable', 'api_url'),
    'PROPMATCH_MAX_RETRIES': ('airtable', 'max_retries'),
    'PROPMATCH_REQUEST_TIMEOUT': ('airtable', 'timeout'),
    'PROPMATCH_CACHE_MAX_AGE_HOURS': ('cache', 'max_age_hours'),
    'CORS_ALLOWED_ORIGINS': ('api', 'cors_allowed_origins'),
    'PROPMATCH_LOG_LEVEL': ('logging', 'level'),
    'PROPMATCH_LOG_FILE': ('logging', 'file'),
}


def load_settings(
    config_path: Optional[Union[str, Path]] = None,
    env_path: Optional[Union[str, Path]] = None
) -> Dict[str, Any]:
    """
    Load settings from a YAML file and environment variables.

    Args:
        config_path: Path to YAML config file (default: config/config.yaml)
        env_path: Path to .env file (default: .env in the project root)

    Returns:
        Nested settings dictionary
    """
    env_path = Path(env_path) if env_path else PROJECT_ROOT / '.env'
    config_path = Path(config_path) if config_path else PROJECT_ROOT / 'config' / 'config.yaml'

    if env_path.exists():
        load_dotenv(env_path)

    settings = {}
    if config_path.exists():
        with open(config_path, 'r') as f:
            settings = yaml.safe_load(f) or {}

    settings = _expand_env_vars(settings)
    return _apply_env_overrides(settings)


def _expand_env_vars(obj: Any) -> Any:
    """Recursively expand ${VAR} references; unset variables become None."""
    if isinstance(obj, dict):
        return {k: _expand_env_vars(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_expand_env_vars(item) for item in obj]
    elif isinstance(obj, str) and obj.startswith('${') and obj.endswith('}'):
        return os.environ.get(obj[2:-1])
    return obj


def _apply_env_overrides(settings: Dict[str, Any]) -> Dict[str, Any]:
    """Apply direct environment variable overrides."""
    for env_var, (section, key) in ENV_OVERRIDES.items():
        value = os.environ.get(env_var)
        if value:
            settings.setdefault(section, {})[key] = value
    return settings


def _optional_float(value: Any) -> Optional[float]:
    if value is None or value == '':
        return None
    return float(value)


class Config:
    """Configuration settings for the matching API."""

    def __init__(self, settings: Optional[Dict[str, Any]] = None):
        settings = settings if settings is not None else load_settings()

        airtable = settings.get('airtable') or {}
        cache = settings.get('cache') or {}
        matching = settings.get('matching') or {}
        api = settings.get('api') or {}
        log = settings.get('logging') or {}

        # Airtable
        self.AIRTABLE_API_KEY = airtable.get('api_key') or ''
        self.AIRTABLE_BASE_ID = airtable.get('base_id') or ''
        self.AIRTABLE_API_URL = (airtable.get('api_url') or DEFAULT_API_URL).rstrip('/')
        self.MAX_RETRIES = int(airtable.get('max_retries', 3))
        self.RETRY_BASE_DELAY = float(airtable.get('retry_base_delay', 1.0))
        self.RETRY_MAX_DELAY = float(airtable.get('retry_max_delay', 5.0))
        self.REQUEST_TIMEOUT = int(airtable.get('timeout', 30))

        tables = airtable.get('tables') or {}
        self.TABLES = Tables(
            buyers=tables.get('buyers', Tables.buyers),
            properties=tables.get('properties', Tables.properties),
            matches=tables.get('matches', Tables.matches),
            cache=tables.get('cache', Tables.cache),
        )

        # Matching
        self.DEFAULT_PAGE_LIMIT = int(matching.get('default_limit', 50))
        self.MAX_PAGE_LIMIT = int(matching.get('max_limit', 100))
        self.DELETE_BATCH_SIZE = int(matching.get('delete_batch_size', 10))
        self.MIN_MATCH_SCORE = float(matching.get('min_score', 30))

        # Cache
        self.COUNT_PAGE_SIZE = int(cache.get('count_page_size', 100))
        self.CACHE_MAX_AGE_HOURS = _optional_float(cache.get('max_age_hours'))
        self.INVALIDATE_ON_DIVERGENCE = bool(cache.get('invalidate_on_divergence', True))

        # API server
        origins = api.get('cors_allowed_origins', '*')
        if isinstance(origins, str):
            origins = [o.strip() for o in origins.split(',') if o.strip()]
        self.CORS_ALLOWED_ORIGINS = origins
        self.API_HOST = api.get('host', '127.0.0.1')
        self.API_PORT = int(api.get('port', 5000))

        # Logging
        self.LOG_LEVEL = str(log.get('level', 'INFO')).upper()
        self.LOG_FILE = log.get('file')

    def validate(self) -> List[str]:
        """Validate configuration, return list of errors."""
        errors = []

        if not self.AIRTABLE_API_KEY:
            errors.append('AIRTABLE_API_KEY not set')

        if not self.AIRTABLE_BASE_ID:
            errors.append('AIRTABLE_BASE_ID not set')

        return errors

    def is_configured(self) -> bool:
        """Check if backend credentials are present."""
        return bool(self.AIRTABLE_API_KEY and self.AIRTABLE_BASE_ID)

    def missing_credentials(self) -> List[str]:
        missing = []
        if not self.AIRTABLE_API_KEY:
            missing.append('AIRTABLE_API_KEY')
        if not self.AIRTABLE_BASE_ID:
            missing.append('AIRTABLE_BASE_ID')
        return missing
