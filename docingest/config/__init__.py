"""Configuration module -- exports Settings and load_settings."""

from docingest.config.loader import load_settings
from docingest.config.settings import Settings

__all__ = ["Settings", "load_settings"]
