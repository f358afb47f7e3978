"""Provides functions for loading and accessing configuration settings.

Supports loading from .env files, environment variables, and a dedicated
YAML configuration file (~/.circlestats/config.yaml).
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

from circlestats.domain.models.common import BackoffPolicy, Credentials, FetchOptions
from circlestats.domain.models.errors import CircleApiError, ErrorKind

logger = logging.getLogger(__name__)

# --- Configuration Constants ---
DEFAULT_CONFIG_DIR = Path.home() / ".circlestats"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"
DEFAULT_CACHE_FILE = DEFAULT_CONFIG_DIR / "cache.pkl"
ENV_FILE_NAME = ".env"

DEFAULT_BASE_URL = "https://app.circle.so/api/admin/v2"

DEFAULTS: Dict[str, Any] = {
    'circle.base_url': DEFAULT_BASE_URL,
    'circle.per_page': 100,
    'fetch.timeout_seconds': 30,
    'fetch.max_retries': 3,
    'fetch.retry_delays_seconds': [1.0, 2.0, 4.0],
    'pagination.max_pages': 20,
    'pagination.max_consecutive_empty': 3,
    'cache.ttl_seconds': 300,
    'cache.max_age_seconds': 1800,
    'cache.file': str(DEFAULT_CACHE_FILE),
    'logging.level': 'INFO',
}

# --- Global Configuration Store (Simple Approach) ---
_config: Dict[str, Any] = {}
_test_config: Dict[str, Any] = {}  # For testing purposes
_loaded = False


def _flatten(data: Dict[str, Any], prefix: str = "") -> Dict[str, Any]:
    """Turns nested YAML mappings into dotted keys ('cache.ttl_seconds')."""
    flat: Dict[str, Any] = {}
    for key, value in data.items():
        dotted = f"{prefix}{key}"
        if isinstance(value, dict):
            flat.update(_flatten(value, prefix=f"{dotted}."))
        else:
            flat[dotted] = value
    return flat


def load_configuration(config_file: Path = DEFAULT_CONFIG_FILE, env_file: Optional[Path] = None) -> None:
    """Loads configuration from environment, .env file, and YAML file.

    Priority order (highest to lowest):
    1. Environment Variables
    2. .env file
    3. YAML configuration file
    4. Default values defined in this module

    Args:
        config_file: Path to the YAML configuration file.
        env_file: Path to the .env file (searches upwards from cwd if None).
    """
    global _config, _loaded
    if _loaded:
        logger.debug("Configuration already loaded.")
        return

    _config = {}

    # 1. Load from YAML file (Lowest priority)
    if config_file.exists():
        try:
            with open(config_file, 'r') as f:
                yaml_config = yaml.safe_load(f)
            if isinstance(yaml_config, dict):
                _config.update(_flatten(yaml_config))
                logger.info(f"Loaded configuration from YAML: {config_file}")
            elif yaml_config is not None:
                logger.warning(f"YAML config file {config_file} did not contain a dictionary.")
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load or parse YAML config {config_file}: {e}")
    else:
        logger.debug(f"YAML config file not found: {config_file}")

    # 2. Load from .env file (Medium priority)
    dotenv_path = env_file or find_dotenv_path()
    if dotenv_path:
        # override=False: ENV VARS take precedence
        if load_dotenv(dotenv_path=dotenv_path, override=False):
            logger.info(f"Loaded environment variables from: {dotenv_path}")
    else:
        logger.debug(".env file not found at or above current directory.")

    # 3. Environment Variables (Highest priority) are handled in get_config
    _loaded = True
    logger.debug("Configuration loading process completed.")


def _coerce(value: str) -> Any:
    """Converts common string forms from the environment."""
    if value.lower() == 'true':
        return True
    if value.lower() == 'false':
        return False
    try:
        if '.' in value:
            return float(value)
        return int(value)
    except (ValueError, TypeError):
        return value


def get_config(key: str, default: Any = None) -> Any:
    """
    Get a configuration value by key.

    Priority:
    1. Test configuration (if in testing mode)
    2. Environment variable ('cache.ttl_seconds' -> CACHE_TTL_SECONDS)
    3. YAML config
    4. Module defaults, then `default`

    Args:
        key: The configuration key
        default: Default value if the key is not found

    Returns:
        The configuration value
    """
    if key in _test_config:
        return _test_config[key]

    env_key = key.upper().replace('.', '_')
    if env_key in os.environ:
        raw = os.environ[env_key]
        # Credentials must stay strings even when they look numeric
        return raw if env_key.startswith('CIRCLE_') else _coerce(raw)

    if key in _config:
        return _config[key]

    if default is None and key in DEFAULTS:
        return DEFAULTS[key]
    return default


def find_dotenv_path() -> Optional[Path]:
    """Searches for the .env file upwards from the current directory."""
    cwd = Path.cwd()
    for path in [cwd] + list(cwd.parents):
        env_path = path / ENV_FILE_NAME
        if env_path.is_file():
            return env_path
    return None


# --- Convenience Functions ---

def load_credentials() -> Credentials:
    """Reads the API token and community id.

    Raises:
        CircleApiError: INVALID_CREDENTIALS if either value is missing.
    """
    api_key = get_config('CIRCLE_API_KEY') or get_config('circle.api_key')
    community_id = get_config('CIRCLE_COMMUNITY_ID') or get_config('circle.community_id')
    if not api_key or not community_id:
        raise CircleApiError.of(
            ErrorKind.INVALID_CREDENTIALS,
            "Missing API credentials. Please check CIRCLE_API_KEY and CIRCLE_COMMUNITY_ID environment variables.",
        )
    return Credentials(api_key=str(api_key), community_id=str(community_id))


def get_base_url() -> str:
    return str(get_config('circle.base_url'))


def get_fetch_options() -> FetchOptions:
    return FetchOptions(
        timeout_s=float(get_config('fetch.timeout_seconds')),
        max_retries=int(get_config('fetch.max_retries')),
    )


def get_backoff_policy() -> BackoffPolicy:
    delays = get_config('fetch.retry_delays_seconds')
    if isinstance(delays, str):
        delays = [d for d in delays.split(',') if d.strip()]
    return BackoffPolicy(
        max_retries=int(get_config('fetch.max_retries')),
        retry_delays_s=[float(d) for d in delays],
    )


def get_cache_file() -> Optional[Path]:
    """Path of the persistent cache file, or None for memory-only caching."""
    value = get_config('cache.file')
    if not value:
        return None
    return Path(str(value)).expanduser()


def set_config_for_testing(config_dict: Dict[str, Any]) -> None:
    """
    Set configuration values for testing purposes.
    These values will override any existing configuration.

    Args:
        config_dict: Dictionary of configuration values to set
    """
    _test_config.update(config_dict)
    logger.debug(f"Set testing configuration: {sorted(config_dict)}")


def clear_test_config() -> None:
    """Clear all testing configuration values."""
    _test_config.clear()
    logger.debug("Cleared testing configuration")


# Load configuration when the module is imported
load_configuration()
