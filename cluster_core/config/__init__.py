"""
Configuration loading.

Settings come from config/settings.yaml with ${VAR:default} substitution,
validated by pydantic models.
"""

from cluster_core.config.settings_loader import ConfigManager, Settings, get_settings

__all__ = ["ConfigManager", "Settings", "get_settings"]
