"""Provides functions for loading and accessing configuration settings.

Supports loading from .env files, environment variables, and a dedicated
configuration file (~/.agimage/config.yaml). Also exposes the scheduling and
retry tunables as typed settings objects.
"""

import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml
from dotenv import load_dotenv

from agimage.domain.models.common import EndpointUrl

logger = logging.getLogger(__name__)

# --- Configuration Constants ---
DEFAULT_CONFIG_DIR = Path.home() / ".agimage"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"
ENV_FILE_NAME = ".env"
ENV_PREFIX = "AGIMAGE_"

# Scheduling defaults
DEFAULT_SOFT_QUOTA_THRESHOLD = 0.1        # <= 10% remaining counts as soft-exceeded
DEFAULT_QUOTA_CACHE_TTL_S = 5 * 60        # cached quota goes stale after 5 minutes
DEFAULT_RATE_LIMIT_COOLDOWN_S = 5 * 60
DEFAULT_MAX_ACCOUNT_ATTEMPTS = 3

# Retry defaults
DEFAULT_ENDPOINTS = (
    "https://daily-cloudcode-pa.googleapis.com",
    "https://daily-cloudcode-pa.sandbox.googleapis.com",
    "https://cloudcode-pa.googleapis.com",
)
DEFAULT_METADATA_BASE_URL = "https://daily-cloudcode-pa.googleapis.com"
DEFAULT_MAX_CAPACITY_RETRIES = 3
DEFAULT_CAPACITY_RETRY_BASE_DELAY_S = 3.0 # 3s, 6s, 12s
DEFAULT_ATTEMPT_TIMEOUT_S = 120.0

# OAuth (same installed-app client as the antigravity auth plugin)
DEFAULT_OAUTH_CLIENT_ID = "1071006060591-tmhssin2h21lcre235vtolojh4g403ep.apps.googleusercontent.com"
DEFAULT_TOKEN_URL = "https://oauth2.googleapis.com/token"

DEFAULT_IMAGE_MODEL = "gemini-3.1-flash-image"
DEFAULT_SESSIONS_SUBDIR = ".agimage/sessions"

# --- Global Configuration Store ---
_config: Dict[str, Any] = {}
_test_config: Dict[str, Any] = {}
_loaded = False


@dataclass(frozen=True)
class SchedulerSettings:
    """Tunables for account selection."""
    soft_quota_threshold: float = DEFAULT_SOFT_QUOTA_THRESHOLD
    quota_cache_ttl_s: float = DEFAULT_QUOTA_CACHE_TTL_S
    rate_limit_cooldown_s: float = DEFAULT_RATE_LIMIT_COOLDOWN_S


@dataclass(frozen=True)
class ExecutorSettings:
    """Tunables for the per-account attempt sequence."""
    endpoints: Tuple[EndpointUrl, ...] = field(default_factory=lambda: tuple(EndpointUrl(e) for e in DEFAULT_ENDPOINTS))
    max_capacity_retries: int = DEFAULT_MAX_CAPACITY_RETRIES
    capacity_retry_base_delay_s: float = DEFAULT_CAPACITY_RETRY_BASE_DELAY_S
    attempt_timeout_s: float = DEFAULT_ATTEMPT_TIMEOUT_S

    def __post_init__(self):
        if not self.endpoints:
            raise ValueError("At least one endpoint is required")
        if self.max_capacity_retries < 0:
            raise ValueError("max_capacity_retries must be >= 0")


@dataclass(frozen=True)
class OAuthClient:
    client_id: str
    client_secret: str
    token_url: str = DEFAULT_TOKEN_URL


def load_configuration(config_file: Path = DEFAULT_CONFIG_FILE, env_file: Optional[Path] = None) -> None:
    """Loads configuration from environment, .env file, and YAML file.

    Priority order (highest to lowest):
    1. Environment Variables
    2. .env file
    3. YAML configuration file
    4. Default values passed to get_config

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
            with open(config_file, 'r', encoding='utf-8') as f:
                yaml_config = yaml.safe_load(f)
            if isinstance(yaml_config, dict):
                _config.update(yaml_config)
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
        if load_dotenv(dotenv_path=dotenv_path, override=False): # override=False: ENV VARS take precedence
            logger.info(f"Loaded environment variables from: {dotenv_path}")
    else:
        logger.debug("Skipping .env file loading (no .env found).")

    # 3. Environment Variables (Highest priority) are handled by os.environ in get_config

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


def _lookup_nested(key: str) -> Tuple[bool, Any]:
    """Finds 'a.b.c' either as a flat key or as nested YAML mappings."""
    if key in _config:
        return True, _config[key]
    node: Any = _config
    for part in key.split('.'):
        if not isinstance(node, dict) or part not in node:
            return False, None
        node = node[part]
    return True, node


def env_var_name(key: str) -> str:
    return ENV_PREFIX + key.upper().replace('.', '_')


def get_config(key: str, default: Any = None) -> Any:
    """
    Get a configuration value by key.

    Priority:
    1. Test configuration (if in testing mode)
    2. Environment variable (AGIMAGE_ prefix, dots become underscores)
    3. YAML config
    4. Default value

    Args:
        key: The configuration key, e.g. 'scheduler.soft_quota_threshold'
        default: Default value if the key is not found

    Returns:
        The configuration value
    """
    if key in _test_config:
        return _test_config[key]

    env_key = env_var_name(key)
    if env_key in os.environ:
        return _coerce(os.environ[env_key])

    found, value = _lookup_nested(key)
    if found:
        return value

    return default


def find_dotenv_path() -> Optional[Path]:
    """Searches for the .env file upwards from the current directory."""
    try:
        cwd = Path.cwd()
        for path in [cwd] + list(cwd.parents):
            env_path = path / ENV_FILE_NAME
            if env_path.is_file():
                return env_path
    except OSError as e:
        logger.warning(f"Error searching for .env file: {e}")
    return None


# --- Typed Accessors ---

def _get_float(key: str, default: float) -> float:
    value = get_config(key, default)
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning(f"Config '{key}' is not a number ({value!r}). Using default {default}.")
        return default


def _get_int(key: str, default: int) -> int:
    value = get_config(key, default)
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning(f"Config '{key}' is not an integer ({value!r}). Using default {default}.")
        return default


def _get_list(key: str, default: List[str]) -> List[str]:
    value = get_config(key)
    if value is None:
        return list(default)
    if isinstance(value, str):
        # Comma separated in env vars
        return [item.strip() for item in value.split(',') if item.strip()]
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value]
    logger.warning(f"Config '{key}' should be a list, got {type(value).__name__}. Using default.")
    return list(default)


def get_scheduler_settings() -> SchedulerSettings:
    return SchedulerSettings(
        soft_quota_threshold=_get_float('scheduler.soft_quota_threshold', DEFAULT_SOFT_QUOTA_THRESHOLD),
        quota_cache_ttl_s=_get_float('scheduler.quota_cache_ttl_s', DEFAULT_QUOTA_CACHE_TTL_S),
        rate_limit_cooldown_s=_get_float('scheduler.rate_limit_cooldown_s', DEFAULT_RATE_LIMIT_COOLDOWN_S),
    )


def get_executor_settings() -> ExecutorSettings:
    endpoints = _get_list('executor.endpoints', list(DEFAULT_ENDPOINTS))
    return ExecutorSettings(
        endpoints=tuple(EndpointUrl(e.rstrip('/')) for e in endpoints),
        max_capacity_retries=_get_int('executor.max_capacity_retries', DEFAULT_MAX_CAPACITY_RETRIES),
        capacity_retry_base_delay_s=_get_float('executor.capacity_retry_base_delay_s', DEFAULT_CAPACITY_RETRY_BASE_DELAY_S),
        attempt_timeout_s=_get_float('executor.attempt_timeout_s', DEFAULT_ATTEMPT_TIMEOUT_S),
    )


def get_max_account_attempts() -> int:
    return max(1, _get_int('scheduler.max_account_attempts', DEFAULT_MAX_ACCOUNT_ATTEMPTS))


def get_metadata_base_url() -> str:
    return str(get_config('api.metadata_base_url', DEFAULT_METADATA_BASE_URL)).rstrip('/')


def get_default_image_model() -> str:
    return str(get_config('api.default_image_model', DEFAULT_IMAGE_MODEL))


def get_oauth_client() -> OAuthClient:
    """OAuth installed-app client used for refresh token exchange.

    The client secret has no default and must come from config or
    AGIMAGE_OAUTH_CLIENT_SECRET.
    """
    return OAuthClient(
        client_id=str(get_config('oauth.client_id', DEFAULT_OAUTH_CLIENT_ID)),
        client_secret=str(get_config('oauth.client_secret', '')),
        token_url=str(get_config('oauth.token_url', DEFAULT_TOKEN_URL)),
    )


def get_opencode_config_dir() -> Path:
    """Config directory shared with the opencode auth plugin."""
    if sys.platform == "win32":
        appdata = os.environ.get("APPDATA") or str(Path.home() / "AppData" / "Roaming")
        return Path(appdata) / "opencode"
    xdg_config = os.environ.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return Path(xdg_config) / "opencode"


def get_accounts_paths() -> List[Path]:
    """Candidate accounts files, first existing one wins."""
    defaults = [
        str(get_opencode_config_dir() / "antigravity-accounts.json"),
        str(Path.home() / ".opencode" / "antigravity-accounts.json"),
    ]
    return [Path(p).expanduser() for p in _get_list('accounts.paths', defaults)]


def get_state_file() -> Path:
    default = DEFAULT_CONFIG_DIR / "last-image-state.json"
    return Path(str(get_config('state.file', default))).expanduser()


def get_cache_dir() -> Path:
    default = DEFAULT_CONFIG_DIR / "cache"
    return Path(str(get_config('cache.dir', default))).expanduser()


def get_sessions_subdir() -> str:
    return str(get_config('sessions.subdir', DEFAULT_SESSIONS_SUBDIR))


def set_config_for_testing(config_dict: Dict[str, Any]) -> None:
    """
    Set configuration values for testing purposes.
    These values will override any existing configuration.

    Args:
        config_dict: Dictionary of configuration values to set
    """
    _test_config.update(config_dict)
    logger.debug(f"Set testing configuration: {config_dict}")


def clear_test_config() -> None:
    """Clear all testing configuration values."""
    _test_config.clear()
    logger.debug("Cleared testing configuration")
