"""
ConfigManager - engine tunables loaded from YAML.

Purpose
-------
Serve the dynamic, non-secret tunables of the territory engine (H3
resolution, closing threshold, leaderboard cadence, lock backend) through
dot-notation lookups. Values come from YAML files under ``config/``,
deep-merged over the built-in defaults below.

Usage
-----
>>> await ConfigManager.initialize()
>>> ConfigManager.get("tiling.resolution")
10
>>> ConfigManager.get("leaderboard.interval_minutes", 60)
60
"""

from __future__ import annotations

import asyncio
import copy
from pathlib import Path
from typing import Any, Dict, MutableMapping, Optional

import yaml

from hexturf.core.config.config import Config
from hexturf.core.logging.logger import get_logger

logger = get_logger(__name__)


class ConfigManagerError(RuntimeError):
    """Base error for configuration manager failures."""


class ConfigInitializationError(ConfigManagerError):
    """Raised when YAML configuration cannot be loaded."""


__all__ = ["ConfigManager", "ConfigManagerError", "ConfigInitializationError", "DEFAULTS"]


DEFAULTS: Dict[str, Any] = {
    "tiling": {
        "resolution": 10,
        "parent_resolution": 6,
        "closing_threshold_m": 200.0,
        "fill_gaps": True,
    },
    "capture": {
        "allowed_sport_types": ["Run", "TrailRun", "VirtualRun"],
    },
    "leaderboard": {
        "interval_minutes": 60,
        "types": ["global", "weekly", "monthly"],
        "lock_backend": "local",
        "lock_timeout_seconds": 120,
        "lock_blocking_timeout_seconds": 60,
    },
    "scheduler": {
        "poll_interval_seconds": 1.0,
        "max_queue_size": 100,
    },
    "event": {
        "listener_timeout_seconds": 5.0,
    },
}


class ConfigManager:
    """
    YAML-backed configuration with dot-notation access.

    Class-level state so that every service sees the same values. Tests
    may call :meth:`override` and :meth:`reset` to adjust tunables.
    """

    _values: Dict[str, Any] = copy.deepcopy(DEFAULTS)
    _initialized: bool = False
    _init_lock: asyncio.Lock = asyncio.Lock()

    @staticmethod
    def _deep_merge_dict(
        target: MutableMapping[str, Any],
        source: MutableMapping[str, Any],
    ) -> None:
        """Recursively merge `source` into `target` (in-place)."""
        for key, value in source.items():
            if isinstance(value, dict) and isinstance(target.get(key), dict):
                ConfigManager._deep_merge_dict(target[key], value)
            else:
                target[key] = value

    @classmethod
    def _load_yaml_configs(cls, config_dir: Path) -> int:
        """
        Load every YAML file under `config_dir` into the value tree.

        Returns the number of files merged. Files are merged in sorted
        order so later names win on conflicts.
        """
        if not config_dir.exists():
            logger.warning(
                "Config directory not found; using built-in defaults only",
                extra={"config_dir": str(config_dir)},
            )
            return 0

        yaml_files = sorted(list(config_dir.rglob("*.yaml")) + list(config_dir.rglob("*.yml")))
        loaded_count = 0

        for yaml_file in yaml_files:
            try:
                with yaml_file.open("r", encoding="utf-8") as handle:
                    data = yaml.safe_load(handle)
            except (OSError, yaml.YAMLError) as exc:
                raise ConfigInitializationError(
                    f"Failed to load YAML config {yaml_file}: {exc}"
                ) from exc

            if isinstance(data, dict):
                cls._deep_merge_dict(cls._values, data)
                loaded_count += 1
                logger.debug(
                    "Loaded YAML config",
                    extra={"file": str(yaml_file.relative_to(config_dir))},
                )
            elif data is not None:
                logger.warning(
                    "Ignoring non-dict YAML root object",
                    extra={
                        "file": str(yaml_file.relative_to(config_dir)),
                        "root_type": type(data).__name__,
                    },
                )

        return loaded_count

    @classmethod
    async def initialize(cls, config_dir: Optional[Path] = None) -> None:
        """
        Load YAML configuration once.

        Raises
        ------
        ConfigInitializationError
            If a YAML file exists but cannot be parsed.
        """
        async with cls._init_lock:
            if cls._initialized:
                logger.debug("ConfigManager already initialized; skipping")
                return

            directory = config_dir or Config.CONFIG_DIR
            cls._values = copy.deepcopy(DEFAULTS)
            loaded = cls._load_yaml_configs(directory)
            cls._initialized = True

            logger.info(
                "ConfigManager initialized",
                extra={"yaml_file_count": loaded, "config_dir": str(directory)},
            )

    @classmethod
    def get(cls, key: str, default: Any = None) -> Any:
        """
        Retrieve a configuration value by dot-notation path.

        Parameters
        ----------
        key:
            Dot-notation config path (e.g. ``"tiling.resolution"``).
        default:
            Value to return if the key is not present.
        """
        value: Any = cls._values
        for part in key.split("."):
            if not isinstance(value, dict) or part not in value:
                return default
            value = value[part]
        return default if value is None else value

    @classmethod
    def override(cls, key: str, value: Any) -> None:
        """Set a single dot-notation key in memory."""
        parts = key.split(".")
        node = cls._values
        for part in parts[:-1]:
            node = node.setdefault(part, {})
        node[parts[-1]] = value
        logger.info("Configuration override applied", extra={"config_key": key})

    @classmethod
    def reset(cls) -> None:
        """Drop overrides and YAML values, returning to built-in defaults."""
        cls._values = copy.deepcopy(DEFAULTS)
        cls._initialized = False
