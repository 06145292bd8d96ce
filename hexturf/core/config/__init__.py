"""
Configuration layer.

- ``Config`` (this package): static settings from environment variables and ``.env``
- ``hexturf.core.config.manager.ConfigManager``: engine tunables from YAML
"""

from hexturf.core.config.config import Config, Environment

__all__ = ["Config", "Environment"]
