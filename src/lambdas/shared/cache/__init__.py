"""Cache utilities for the role subsystem."""

from src.lambdas.shared.cache.role_cache import CacheStats, RoleCache

__all__ = [
    "CacheStats",
    "RoleCache",
]
