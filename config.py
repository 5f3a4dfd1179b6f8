#!/usr/bin/env python3
"""
Configuration management for the Pinterest cache client.

This module centralizes configuration loading, validation, and logging setup.
It handles environment variables, an optional .env file and an optional YAML
settings file, and provides a clean interface for accessing configuration
values throughout the library.
"""

from os import environ, path, access, R_OK
from typing import Dict, Any, Optional
from logging import getLogger, basicConfig, StreamHandler, INFO, DEBUG, WARNING, ERROR
import sys
import yaml
from dotenv import load_dotenv

def _setup_global_logger():
    """Setup a single global logger for the entire library.

    Environment Variables:
        LOG_LEVEL: Set log level (DEBUG, INFO, WARNING, ERROR) - defaults to INFO
        LOG_TIMESTAMPS: Enable/disable timestamps in logs (true/false) - defaults to true

    All modules should use get_logger() to create module-specific loggers that inherit this configuration.
    """
    level_str = environ.get("LOG_LEVEL", "INFO").upper()
    level_map = {
        "DEBUG": DEBUG,
        "INFO": INFO,
        "WARNING": WARNING,
        "ERROR": ERROR
    }
    level = level_map.get(level_str, INFO)

    show_timestamps = environ.get("LOG_TIMESTAMPS", "true").lower() != "false"

    if show_timestamps:
        log_format = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    else:
        log_format = '%(name)s - %(levelname)s - %(message)s'

    # Logs go to stderr so CLI output on stdout stays valid JSON
    basicConfig(
        level=level,
        format=log_format,
        handlers=[StreamHandler(sys.stderr)],
        force=True
    )

    # Keep aiohttp's own chatter out unless we are debugging
    aiohttp_level = DEBUG if level == DEBUG else WARNING
    for name in ("aiohttp", "aiohttp.client", "aiohttp.access"):
        getLogger(name).setLevel(aiohttp_level)

    return getLogger("PinClient")

def get_logger(name: str):
    """Get a module-specific logger with the unified configuration.

    Args:
        name: The logger name (e.g., "cache", "fetcher", "client")

    Returns:
        A logger named "PinClient.{name}"
    """
    return getLogger(f"PinClient.{name}")

# Create single global logger instance
logger = _setup_global_logger()

DEFAULT_ENDPOINTS = {
    "BOARDS_URL": "http://pinterestapi.co.uk/{username}/boards",
    "BOARD_PINS_URL": "https://api.pinterest.com/v3/pidgets/boards/{username}/{board}/pins/",
    "BOARD_FEED_URL": "http://www.pinterest.com/{username}/{board}.rss",
    "PIN_INFO_URL": "http://api.pinterest.com/v3/pidgets/pins/info/?pin_ids={pin_ids}",
}


class Config:
    """Configuration manager for the Pinterest cache client.

    Values are loaded from:
    1. Environment variables
    2. .env file (if present next to this module)
    3. YAML settings file (SETTINGS_FILE, defaults to settings.yaml)

    Example settings.yaml:
    ```yaml
    username: someone
    pagination:
      items_per_page: 25
    endpoints:
      BOARDS_URL: "http://localhost:8080/{username}/boards"
    ```
    """

    def __init__(self):
        self._load_environment()
        self._validate_and_set_config()
        self._load_settings_file()

    def _load_environment(self):
        """Load environment variables from a .env file if present."""
        dotenv_path = path.join(path.dirname(path.abspath(__file__)), '.env')
        if path.exists(dotenv_path):
            load_dotenv(dotenv_path)
            logger.info(f"Loaded environment variables from {dotenv_path}")

    def _validate_positive_int(self, env_var: str, default: int, min_val: int = 1) -> int:
        """Validate and parse a positive integer environment variable."""
        try:
            value = int(environ.get(env_var, str(default)))
            if value < min_val:
                logger.warning(f"{env_var} must be at least {min_val}, using default {default}")
                return default
            return value
        except (ValueError, TypeError):
            logger.warning(f"Invalid {env_var} value, using default {default}")
            return default

    def _parse_items_per_page(self, raw: Any, source: str) -> Optional[int]:
        """Parse a page size; empty/absent/'all' means unbounded (None)."""
        if raw is None:
            return None
        text = str(raw).strip().lower()
        if text in ("", "none", "all", "null"):
            return None
        try:
            value = int(text)
        except ValueError:
            logger.warning(f"Invalid items_per_page '{raw}' in {source}; using unbounded pagination")
            return None
        if value < 1:
            logger.warning(f"items_per_page must be >=1 in {source}; using unbounded pagination (got {raw})")
            return None
        return value

    def _validate_and_set_config(self):
        """Validate and set all configuration values."""
        self.PINTEREST_USERNAME = environ.get("PINTEREST_USERNAME")
        self.USER_AGENT = environ.get("USER_AGENT", "Mozilla/5.0 (compatible; PinterestCacheClient/1.0)")

        # Cache configuration
        base_dir = path.dirname(path.abspath(__file__))
        self.DATA_PATH = environ.get("DATA_PATH", base_dir)
        self.CACHE_DIR = environ.get("CACHE_DIR", path.join(self.DATA_PATH, "cache"))
        self.CACHE_PREFIX = "pinterest_"
        self.CACHE_SUFFIX = ".cache"
        self.CACHE_TTL_MINUTES = self._validate_positive_int("CACHE_TTL_MINUTES", 60, 1)

        # Default pagination for new clients
        self.ITEMS_PER_PAGE = self._parse_items_per_page(environ.get("ITEMS_PER_PAGE"), "ITEMS_PER_PAGE")

        # Endpoint URL templates
        for name, default in DEFAULT_ENDPOINTS.items():
            setattr(self, name, environ.get(name, default))

        self.SETTINGS_PATH = environ.get("SETTINGS_FILE", path.join(base_dir, "settings.yaml"))

    def _safe_read_yaml(self, file_path: str, max_size: int, kind: str) -> Any | None:
        """Safely read a YAML file with consistent validation.

        Args:
            file_path: Path to the YAML file
            max_size: Maximum allowed file size in bytes
            kind: Short label for logging context (e.g. 'settings')

        Returns:
            Parsed YAML or None on failure.
        """
        try:
            if not path.isfile(file_path):
                logger.debug(f"{kind.capitalize()} file not found at {file_path}")
                return None
            if not access(file_path, R_OK):
                logger.error(f"No read permission for {kind} file at {file_path}")
                return None
            size = path.getsize(file_path)
            if size > max_size:
                logger.error(f"{kind.capitalize()} file too large: {size} bytes (limit: {max_size} bytes)")
                return None
            with open(file_path, 'r') as f:
                data = yaml.safe_load(f)
            if not data:
                logger.warning(f"Empty or invalid YAML in {kind} file {file_path}")
                return None
            return data
        except yaml.YAMLError as e:
            logger.error(f"Error parsing YAML in {kind} file {file_path}: {e}")
        except OSError as e:
            logger.error(f"Error loading {kind} file {file_path}: {e}")
        return None

    def _load_settings_file(self) -> None:
        """Apply overrides from the YAML settings file, if any."""
        settings_path = self.SETTINGS_PATH
        data = self._safe_read_yaml(settings_path, 1024 * 1024, 'settings')
        if not data:
            return
        if not isinstance(data, dict):
            logger.warning(f"Settings file {settings_path} must be a YAML mapping at the top level")
            return

        username = data.get('username')
        if isinstance(username, str) and username.strip() and not self.PINTEREST_USERNAME:
            self.PINTEREST_USERNAME = username.strip()

        pagination = data.get('pagination')
        if isinstance(pagination, dict) and 'items_per_page' in pagination:
            self.ITEMS_PER_PAGE = self._parse_items_per_page(pagination.get('items_per_page'), settings_path)
        elif pagination is not None and not isinstance(pagination, dict):
            logger.warning(f"pagination section in {settings_path} must be a mapping")

        endpoints = data.get('endpoints')
        if isinstance(endpoints, dict):
            for name, value in endpoints.items():
                key = str(name).upper()
                if key not in DEFAULT_ENDPOINTS:
                    logger.warning(f"Unknown endpoint '{name}' in {settings_path}; ignoring")
                    continue
                if not isinstance(value, str) or not value.strip():
                    logger.warning(f"Invalid URL for endpoint '{name}' in {settings_path}; ignoring")
                    continue
                setattr(self, key, value.strip())
                logger.debug(f"Endpoint {key} overridden from settings file")
        elif endpoints is not None:
            logger.warning(f"endpoints section in {settings_path} must be a mapping")

        logger.info(f"Loaded settings from {settings_path}")

    def reload(self):
        """Reload configuration from the environment and settings file."""
        logger.info("Reloading configuration")
        self._validate_and_set_config()
        self._load_settings_file()

    def get_config_summary(self) -> Dict[str, Any]:
        """Get a summary of current configuration for logging/debugging."""
        return {
            "username": self.PINTEREST_USERNAME,
            "cache_dir": self.CACHE_DIR,
            "cache_ttl_minutes": self.CACHE_TTL_MINUTES,
            "items_per_page": self.ITEMS_PER_PAGE,
            "settings_file_present": path.isfile(self.SETTINGS_PATH),
            "endpoints": {name: getattr(self, name) for name in DEFAULT_ENDPOINTS},
        }

# Global configuration instance
config = Config()
