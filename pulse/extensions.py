"""
Shared client instances — Redis.

from_url() does not connect until the first command, so importing this
module is always safe (even when Redis is down during tests).
"""
import redis

from pulse.config import REDIS_URL

redis_client = redis.from_url(REDIS_URL, decode_responses=True)
