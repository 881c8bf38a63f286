"""
Circuit breaker for upstream APIs, with state kept in Redis so every worker
process sees the same view.

  CLOSED    → calls pass through, consecutive failures are counted
  OPEN      → calls short-circuit with CircuitOpenError
  HALF_OPEN → once reset_timeout has elapsed, one trial call is let through

If Redis itself is unreachable the breaker fails open (calls pass).
"""
import logging
import time
from functools import wraps

logger = logging.getLogger('services.circuit_breaker')

CLOSED = 'closed'
OPEN = 'open'
HALF_OPEN = 'half_open'


class CircuitOpenError(Exception):
    """Raised when calling through an open circuit breaker."""
    def __init__(self, name, retry_after=None):
        self.name = name
        self.retry_after = retry_after
        super().__init__(f"Circuit breaker '{name}' is OPEN — upstream unavailable")


class CircuitBreaker:
    """
    Usage:
        cb = CircuitBreaker('hn', redis_client, failure_threshold=5, reset_timeout=120)
        ids = cb.call(fetch_ids)
    """

    PREFIX = 'cb'

    def __init__(self, name, redis_client, failure_threshold=5, reset_timeout=120):
        self.name = name
        self.redis = redis_client
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout

    def _key(self, suffix):
        return f'{self.PREFIX}:{self.name}:{suffix}'

    @property
    def state(self):
        try:
            current = self.redis.get(self._key('state'))
            if current is None:
                return CLOSED
            if current == OPEN:
                opened_at = self.redis.get(self._key('last_failure'))
                if opened_at and (time.time() - float(opened_at)) > self.reset_timeout:
                    self.redis.set(self._key('state'), HALF_OPEN)
                    return HALF_OPEN
            return current
        except Exception:
            return CLOSED

    @property
    def failure_count(self):
        try:
            val = self.redis.get(self._key('failures'))
            return int(val) if val else 0
        except Exception:
            return 0

    def get_health(self):
        """Breaker state plus lifetime success/failure counters."""
        try:
            data = self.redis.hgetall(self._key('health')) or {}
        except Exception:
            data = {}
        return {
            'name': self.name,
            'state': self.state,
            'failure_count': self.failure_count,
            'failure_threshold': self.failure_threshold,
            'total_success': int(data.get('success', 0)),
            'total_failure': int(data.get('failure', 0)),
            'last_error': data.get('last_error', ''),
        }

    def call(self, func, *args, **kwargs):
        """Run func through the breaker."""
        if self.state == OPEN:
            retry_after = None
            try:
                opened_at = self.redis.get(self._key('last_failure'))
                if opened_at:
                    retry_after = max(0, self.reset_timeout - (time.time() - float(opened_at)))
            except Exception:
                pass
            raise CircuitOpenError(self.name, retry_after=retry_after)

        try:
            result = func(*args, **kwargs)
        except Exception as e:
            self._on_failure(e)
            raise
        self._on_success()
        return result

    def _on_success(self):
        try:
            pipe = self.redis.pipeline()
            pipe.set(self._key('state'), CLOSED)
            pipe.set(self._key('failures'), 0)
            pipe.hincrby(self._key('health'), 'success', 1)
            pipe.execute()
        except Exception:
            logger.debug("Circuit '%s' could not record success", self.name)

    def _on_failure(self, error):
        try:
            count = self.redis.incr(self._key('failures'))
            self.redis.set(self._key('last_failure'), str(time.time()))
            pipe = self.redis.pipeline()
            pipe.hincrby(self._key('health'), 'failure', 1)
            pipe.hset(self._key('health'), 'last_error', str(error)[:200])
            pipe.execute()
        except Exception:
            logger.debug("Circuit '%s' could not record failure", self.name)
            return

        if count >= self.failure_threshold:
            self.redis.set(self._key('state'), OPEN)
            logger.warning("Circuit '%s' OPENED after %d failures: %s", self.name, count, error)
        else:
            logger.info("Circuit '%s' failure %d/%d: %s",
                        self.name, count, self.failure_threshold, error)

    def reset(self):
        """Force the breaker back to CLOSED."""
        pipe = self.redis.pipeline()
        pipe.set(self._key('state'), CLOSED)
        pipe.set(self._key('failures'), 0)
        pipe.delete(self._key('last_failure'))
        pipe.execute()
        logger.info("Circuit '%s' manually reset to CLOSED", self.name)

    def protect(self, func):
        """Decorator form of call()."""
        @wraps(func)
        def wrapper(*args, **kwargs):
            return self.call(func, *args, **kwargs)
        return wrapper


# ── Registry ─────────────────────────────────────────────────────────────────

_registry = {}


def get_breaker(name, redis_client=None, **kwargs):
    """Get or create a named breaker (one per name per process)."""
    if name not in _registry:
        if redis_client is None:
            from pulse.extensions import redis_client as rc
            redis_client = rc
        _registry[name] = CircuitBreaker(name, redis_client, **kwargs)
    return _registry[name]


def get_all_breakers():
    return dict(_registry)


def init_breakers(redis_client):
    """Register breakers for every upstream the pipeline calls."""
    breakers = {
        'hn': CircuitBreaker('hn', redis_client, failure_threshold=5, reset_timeout=120),
    }
    _registry.update(breakers)
    return breakers
