"""
Cache utilities for the picks application
Provides the route caching decorator and leaderboard invalidation
"""

import functools

from flask import current_app, request

from makepicks import cache


def make_cache_key(*args, **kwargs):
    """Generate a cache key from request path and arguments"""
    path = request.path
    args_str = "_".join(str(arg) for arg in args)
    kwargs_str = "_".join(f"{k}_{v}" for k, v in sorted(kwargs.items()))
    return f"{path}_{args_str}_{kwargs_str}".replace("/", "_")


def cached_route(timeout=300, key_prefix="view"):
    """
    Decorator for caching JSON route responses

    Args:
        timeout: Cache timeout in seconds (default 5 minutes)
        key_prefix: Prefix for cache key
    """

    def decorator(f):
        @functools.wraps(f)
        def wrapped(*args, **kwargs):
            cache_key = f"{key_prefix}_{make_cache_key(*args, **kwargs)}"

            cached = cache.get(cache_key)
            if cached is not None:
                current_app.logger.debug(f"Cache hit for key: {cache_key}")
                body, status = cached
                return current_app.response_class(
                    body, status=status, mimetype="application/json"
                )

            result = f(*args, **kwargs)
            response = current_app.make_response(result)
            # Only successful responses are worth keeping
            if response.status_code == 200:
                cache.set(
                    cache_key,
                    (response.get_data(as_text=True), response.status_code),
                    timeout=timeout,
                )
                current_app.logger.debug(f"Cache set for key: {cache_key}")

            return response

        return wrapped

    return decorator


def invalidate_cache_pattern(pattern):
    """
    Invalidate cache keys matching a pattern

    Args:
        pattern: Pattern to match cache keys
    """
    try:
        # SimpleCache cannot enumerate keys, so clear everything
        cache.clear()
        current_app.logger.info(f"Cache cleared for pattern: {pattern}")
    except Exception as e:
        current_app.logger.error(f"Failed to clear cache: {e}")


def invalidate_leaderboard_cache(season_id=None):
    """Drop cached leaderboard and graph responses"""
    target = f"season {season_id}" if season_id else "all seasons"
    invalidate_cache_pattern(f"leaderboard* ({target})")

