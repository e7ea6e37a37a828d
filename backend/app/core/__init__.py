"""
Core application modules.
Contains configuration, logging, metrics and the cache backend client.
"""
from .config import Settings, get_settings
from .cache import CacheClient

__all__ = ["Settings", "get_settings", "CacheClient"]
