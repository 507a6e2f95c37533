"""
Centralized configuration management.

Values are layered, later sources overriding earlier ones:
1) `env.example` (committed, safe placeholders)
2) `env.local` (optional, MUST NOT be committed)
3) System environment variables (highest priority)
"""

import os
from pathlib import Path

from dotenv import dotenv_values
from loguru import logger


class EnvironConfig:
    """
    Singleton configuration class that loads environment variables from env files
    and system environment, with typed getters and default values.
    """

    _instance = None
    _initialized = False

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(EnvironConfig, cls).__new__(cls)
        return cls._instance

    def __init__(self):
        if not self._initialized:
            self._config = {}
            self._load_config()
            EnvironConfig._initialized = True

    def _load_config(self):
        """
        Load configuration from env files and system environment.

        Priority order (later overrides earlier):
        1. env.example (committed placeholders)
        2. env.local (developer-local, not committed)
        3. System environment variables (highest priority)
        """
        root = Path(__file__).parent.parent.parent

        example_path = root / "env.example"
        if example_path.exists():
            env_values = dotenv_values(example_path)
            self._config.update(env_values)
            logger.info("Loaded environment variables from {}", example_path)

        local_path = root / "env.local"
        if local_path.exists():
            local_values = dotenv_values(local_path)
            self._config.update(local_values)
            logger.info("Loaded and overrode environment variables from {}", local_path)

        self._config.update(os.environ)

    def get(self, key, default=None):
        """Get configuration value by key with optional default."""
        return self._config.get(key, default)

    def get_str(self, key: str, default: str = "") -> str:
        """Get a stripped string value; blank values fall back to the default."""
        value = (self.get(key) or "").strip()
        return value or default

    def get_bool(self, key: str, default: bool = False) -> bool:
        value = (self.get(key) or "").strip().lower()
        if not value:
            return default
        return value in {"true", "yes", "on", "1"}

    def get_float(self, key: str, default: float, *, minimum: float = 0.0) -> float:
        """
        Get a float value, falling back to the default when the value is missing,
        unparseable, or below `minimum`.
        """
        raw = (self.get(key) or "").strip()
        if not raw:
            return default
        try:
            value = float(raw)
        except (ValueError, TypeError):
            logger.warning("Invalid {} value '{}', defaulting to {}", key, raw, default)
            return default
        if value < minimum:
            logger.warning("{} value {} is below {}, defaulting to {}", key, value, minimum, default)
            return default
        return value

    def get_int(self, key: str, default: int, *, minimum: int = 0) -> int:
        raw = (self.get(key) or "").strip()
        if not raw:
            return default
        try:
            value = int(raw)
        except (ValueError, TypeError):
            logger.warning("Invalid {} value '{}', defaulting to {}", key, raw, default)
            return default
        if value < minimum:
            logger.warning("{} value {} is below {}, defaulting to {}", key, value, minimum, default)
            return default
        return value

    def get_list(self, key: str, default: list[str] | None = None) -> list[str]:
        """Get a comma separated list; empty items are dropped."""
        raw = self.get(key) or ""
        items = [x.strip() for x in raw.split(",") if x.strip()]
        if not items:
            return list(default or [])
        return items

    def reload(self):
        """
        Reload configuration from files and environment.
        Useful for testing or when configuration files change.
        """
        self._config.clear()
        self._load_config()
        logger.info("Configuration reloaded")


# Global configuration instance
config = EnvironConfig()
