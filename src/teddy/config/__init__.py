"""Configuration for Teddy: defaults, artifact paths and runtime settings."""

from teddy.config.settings import TeddyConfig, load_config, save_config

__all__ = ["TeddyConfig", "load_config", "save_config"]
