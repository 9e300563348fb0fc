import copy
import os
from typing import Any, Optional, Dict
import yaml
import logging
from .constants import (
    CONFIG_ENV_VAR,
    DEFAULT_BACKEND,
    DEFAULT_BATCH_SIZE,
    DEFAULT_CONFIG_FILE,
    DEFAULT_DAG_DISPATCH_ITEMS,
    DEFAULT_DATASET_CACHE_DIR,
    DEFAULT_HOST_CHUNK_ITEMS,
    DEFAULT_HOST_WORKERS,
    DEFAULT_LOG_FILE,
    DEFAULT_MAX_PARTITIONS,
    DEFAULT_THREADS_PER_BLOCK,
)
from .exceptions import ConfigurationError

BACKENDS = ("auto", "cuda", "host")

DEFAULT_CONFIG: Dict[str, Any] = {
    "engine": {
        "backend": DEFAULT_BACKEND,
        "max_allocation_bytes": None,
        "max_partitions": DEFAULT_MAX_PARTITIONS,
    },
    "gpu": {
        "device_id": 0,
        "threads_per_block": DEFAULT_THREADS_PER_BLOCK,
        "dag_dispatch_items": DEFAULT_DAG_DISPATCH_ITEMS,
    },
    "host": {
        "workers": DEFAULT_HOST_WORKERS,
        "chunk_items": DEFAULT_HOST_CHUNK_ITEMS,
    },
    "mining": {
        "batch_size": DEFAULT_BATCH_SIZE,
    },
    "dataset_cache": {
        "enabled": False,
        "directory": DEFAULT_DATASET_CACHE_DIR,
    },
    "logging": {
        "file": DEFAULT_LOG_FILE,
        "level": "info",
        "console_level": "info",
    },
}

# Keys that must hold a positive integer when set
_POSITIVE_INT_KEYS = (
    "engine.max_partitions",
    "gpu.threads_per_block",
    "gpu.dag_dispatch_items",
    "host.chunk_items",
    "mining.batch_size",
)


class Config:
    """
    Engine configuration manager with singleton pattern.

    Loads configuration from a YAML file and provides dot-notation access
    to nested configuration values. Merges user configuration with defaults.

    Example:
        >>> config = Config()
        >>> backend = config.get('engine.backend')
        >>> tpb = config.get('gpu.threads_per_block', default=128)
    """

    _instance: Optional['Config'] = None

    def __new__(cls) -> 'Config':
        if cls._instance is None:
            cls._instance = super(Config, cls).__new__(cls)
            cls._instance.data = copy.deepcopy(DEFAULT_CONFIG)
            cls._instance.load()
        return cls._instance

    @staticmethod
    def default_path() -> str:
        """Config file path, honouring the environment override."""
        return os.environ.get(CONFIG_ENV_VAR, DEFAULT_CONFIG_FILE)

    def load(self, config_path: Optional[str] = None) -> None:
        """
        Load configuration from YAML file, merging with defaults.

        Args:
            config_path: Path to YAML configuration file

        Raises:
            ConfigurationError: If config file is malformed
        """
        config_path = config_path or self.default_path()
        if os.path.exists(config_path):
            try:
                with open(config_path, 'r', encoding='utf-8') as f:
                    user_config = yaml.safe_load(f)
            except yaml.YAMLError as e:
                logging.warning(f"Config file {config_path} is not valid YAML, using defaults: {e}")
                return
            if user_config:
                if not isinstance(user_config, dict):
                    raise ConfigurationError(
                        config_path,
                        "Configuration file must contain a dictionary"
                    )
                self._merge(self.data, user_config)
            logging.info(f"Loaded configuration from {config_path}")
        else:
            logging.debug("No config file found, using defaults")

        self.validate()

    def validate(self) -> None:
        """
        Check the values the engine relies on.

        Raises:
            ConfigurationError: If a value is out of range
        """
        backend = self.get('engine.backend')
        if backend not in BACKENDS:
            raise ConfigurationError('engine.backend', f"must be one of {', '.join(BACKENDS)}, got {backend!r}")

        for key in _POSITIVE_INT_KEYS:
            value = self.get(key)
            if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
                raise ConfigurationError(key, f"must be a positive integer, got {value!r}")

        max_alloc = self.get('engine.max_allocation_bytes')
        if max_alloc is not None and (not isinstance(max_alloc, int) or max_alloc <= 0):
            raise ConfigurationError('engine.max_allocation_bytes', f"must be a positive integer or null, got {max_alloc!r}")

        workers = self.get('host.workers')
        if not isinstance(workers, int) or workers < 0:
            raise ConfigurationError('host.workers', f"must be zero or a positive integer, got {workers!r}")

    def save(self, config_path: Optional[str] = None) -> None:
        """
        Save current configuration to YAML file.

        Args:
            config_path: Path where configuration should be saved

        Raises:
            ConfigurationError: If unable to write configuration file
        """
        config_path = config_path or self.default_path()
        try:
            with open(config_path, 'w', encoding='utf-8') as f:
                yaml.dump(self.data, f, default_flow_style=False)
            logging.info(f"Saved configuration to {config_path}")
        except OSError as e:
            raise ConfigurationError(config_path, f"Failed to save: {e}")

    def reset(self) -> None:
        """Drop every user override and return to the defaults."""
        self.data = copy.deepcopy(DEFAULT_CONFIG)

    def _merge(self, default: Dict[str, Any], user: Dict[str, Any]) -> None:
        """
        Recursively merge user configuration into default configuration.

        Args:
            default: Default configuration dictionary (modified in place)
            user: User configuration to merge
        """
        for k, v in user.items():
            if isinstance(v, dict) and k in default and isinstance(default[k], dict):
                self._merge(default[k], v)
            else:
                default[k] = v

    def get(self, path: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation.

        Args:
            path: Dot-separated path to configuration value (e.g., 'gpu.device_id')
            default: Default value if path not found

        Returns:
            Configuration value at path, or default if not found

        Example:
            >>> config.get('host.chunk_items', default=16384)
            16384
        """
        keys = path.split('.')
        val = self.data
        try:
            for k in keys:
                val = val[k]
            return val
        except (KeyError, TypeError):
            return default

    def set(self, path: str, value: Any) -> None:
        """Set a value using dot notation, creating sections as needed."""
        keys = path.split('.')
        section = self.data
        for k in keys[:-1]:
            section = section.setdefault(k, {})
        section[keys[-1]] = value


# Global instance
config = Config()
