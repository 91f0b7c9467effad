"""
Infrastructure Configuration
============================
ClientSettings is the single source of truth for client options.
"""

from .settings import ClientSettings, LoggingSettings, LogLevel
from .config_loader import load_settings, load_settings_from_json

__all__ = ['ClientSettings', 'LoggingSettings', 'LogLevel', 'load_settings', 'load_settings_from_json']
