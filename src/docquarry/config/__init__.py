"""Configuration models and loaders."""

from .config import Config, ExtractionConfig, LazyConfig, MonitoringConfig, find_config_file, settings

__all__ = ["Config", "ExtractionConfig", "MonitoringConfig", "LazyConfig", "find_config_file", "settings"]
