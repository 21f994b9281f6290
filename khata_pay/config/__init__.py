"""Configuration package for khata payments."""
from .settings import get_settings, Settings

__all__ = ["Settings", "get_settings"]
