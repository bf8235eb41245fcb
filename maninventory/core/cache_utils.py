"""
Caching helpers for per-owner report queries.

Keys carry the owner id and a per-owner version number. Invalidation bumps
the version, so every entry cached under the old one is skipped and left to
expire. One shop's cached numbers are never served to another.
"""
from django.core.cache import cache
from functools import wraps
import hashlib
import logging

logger = logging.getLogger(__name__)

DASHBOARD_KPI_CACHE_TTL = 300  # 5 minutes
REPORTS_CACHE_TTL = 600  # 10 minutes


def make_cache_key(prefix, owner_id, *args, version=1, **kwargs):
    """Generate a unique cache key from arguments"""
    key_data = f"{prefix}:{owner_id}:{args}:{sorted(kwargs.items())}"
    key_hash = hashlib.md5(key_data.encode()).hexdigest()
    return f"{prefix}:{owner_id}:v{version}:{key_hash}"


def _owner_version_key(owner_id):
    return f"cache_version:{owner_id}"


def get_owner_version(owner_id):
    key = _owner_version_key(owner_id)
    version = cache.get(key)
    if version is None:
        # add() keeps whichever value another worker stored first
        cache.add(key, 1, None)
        version = cache.get(key, 1)
    return version


def cached_owner_query(cache_ttl=60, key_prefix="query"):
    """
    Decorator to cache a query whose first argument is the owning user

    Usage:
        @cached_owner_query(cache_ttl=300, key_prefix="dashboard_kpis")
        def build_kpis(owner):
            ...
    """
    def decorator(func):
        @wraps(func)
        def wrapper(owner, *args, **kwargs):
            cache_key = make_cache_key(key_prefix, owner.pk, *args, version=get_owner_version(owner.pk), **kwargs)
            cached_data = cache.get(cache_key)
            if cached_data is not None:
                logger.debug(f"Cache HIT for {key_prefix}: {cache_key}")
                return cached_data

            logger.debug(f"Cache MISS for {key_prefix}: {cache_key}")
            result = func(owner, *args, **kwargs)
            cache.set(cache_key, result, cache_ttl)
            return result
        return wrapper
    return decorator


def invalidate_owner_cache(owner_id):
    """Drop every cached report for one owner by moving to a new version"""
    key = _owner_version_key(owner_id)
    try:
        version = cache.incr(key)
    except ValueError:
        # Version expired or was evicted; readers fell back to 1
        cache.add(key, 2, None)
        version = cache.get(key, 2)
    logger.debug(f"Report cache for owner {owner_id} now at version {version}")
