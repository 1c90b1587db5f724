import json
import logging

import redis
from flask import current_app

logger = logging.getLogger(__name__)

DASHBOARD_KEYS = "dashboard_*"


def init_cache(app):
    """
    Attach a Redis client to the app. No connection is made here; if Redis
    is down, reads miss and writes are skipped with a warning.
    """
    url = app.config.get('REDIS_URL')
    app.extensions['redis'] = redis.Redis.from_url(url) if url else None


def _client():
    return current_app.extensions.get('redis')


def get_json(key):
    cache = _client()
    if not cache:
        return None
    try:
        cached = cache.get(key)
    except redis.RedisError as e:
        logger.warning("Redis read failed for %s: %s", key, e)
        return None
    if cached:
        logger.debug("Cache HIT for %s", key)
        return json.loads(cached)
    logger.debug("Cache MISS for %s", key)
    return None


def set_json(key, value, seconds):
    cache = _client()
    if not cache:
        return
    try:
        cache.setex(key, seconds, json.dumps(value))
    except redis.RedisError as e:
        logger.warning("Redis write failed for %s: %s", key, e)


def clear_cache(patterns):
    """Clears Redis cache keys matching the given patterns."""
    cache = _client()
    if not cache:
        return
    try:
        keys_to_delete = []
        for pattern in patterns:
            keys_to_delete.extend(cache.scan_iter(match=pattern))

        if keys_to_delete:
            cache.delete(*keys_to_delete)
            logger.debug("Cache cleared for keys: %s", keys_to_delete)
    except redis.RedisError as e:
        logger.warning("Redis cache clear failed: %s", e)
