"""
Advisory stage locks — keep two invocations of the same stage from
overlapping (double-inserted alerts, double-counted digest quota).

Redis SET NX EX with a per-holder token; released only by the holder.
If Redis is unreachable the lock fails open and logs a warning.
"""
import logging
import uuid
from contextlib import contextmanager

from pulse import config

logger = logging.getLogger('services.locks')


class StageLockedError(Exception):
    """Another invocation of this stage currently holds the lock."""
    def __init__(self, stage):
        self.stage = stage
        super().__init__(f"Stage '{stage}' is already running")


def _lock_key(stage):
    return f'lock:stage:{stage}'


@contextmanager
def stage_lock(stage, ttl=None, redis_client=None):
    """Hold the advisory lock for `stage` for the duration of the block."""
    if redis_client is None:
        from pulse.extensions import redis_client as rc
        redis_client = rc
    if ttl is None:
        ttl = config.STAGE_LOCK_TTL_SECONDS

    token = uuid.uuid4().hex
    key = _lock_key(stage)
    held = False
    try:
        acquired = redis_client.set(key, token, nx=True, ex=ttl)
        if not acquired:
            raise StageLockedError(stage)
        held = True
    except StageLockedError:
        raise
    except Exception as e:
        logger.warning("Stage lock unavailable for '%s', running unlocked: %s", stage, e)

    try:
        yield
    finally:
        if held:
            try:
                if redis_client.get(key) == token:
                    redis_client.delete(key)
            except Exception:
                logger.warning("Failed to release stage lock '%s'", stage, exc_info=True)
