"""Signing key caches"""

from .key_set_cache import KeySetCache, KeySetError, RemoteKeySet

__all__ = ["KeySetCache", "KeySetError", "RemoteKeySet"]
