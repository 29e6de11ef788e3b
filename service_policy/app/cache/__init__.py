from .redis_cache import EntitlementCache

__all__ = ["EntitlementCache"]
