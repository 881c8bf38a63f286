"""
Centralized configuration — env vars, detection thresholds, batching quotas.
"""
import os


def _int_env(name, default):
    try:
        return int(os.getenv(name, default))
    except (TypeError, ValueError):
        return int(default)


# ── Logging ──────────────────────────────────────────────────────────────────
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
LOG_FORMAT = os.getenv('LOG_FORMAT', 'text')

# ── Redis (stage locks + circuit breakers) ────────────────────────────────────
REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')

# ── PostgreSQL ────────────────────────────────────────────────────────────────
DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///local.db')

# ── Cron auth ────────────────────────────────────────────────────────────────
CRON_SECRET = os.getenv('CRON_SECRET')

# ── Hacker News ──────────────────────────────────────────────────────────────
HN_API_BASE_URL = os.getenv('HN_API_BASE_URL', 'https://hacker-news.firebaseio.com/v0')
INGEST_MAX_ITEMS = _int_env('INGEST_MAX_ITEMS', 200)
INGEST_CONCURRENCY = _int_env('INGEST_CONCURRENCY', 50)

# ── Detection ────────────────────────────────────────────────────────────────
ALERT_PERCENTILE_THRESHOLD = _int_env('ALERT_PERCENTILE_THRESHOLD', 95)
ACTIVE_ITEM_WINDOW_HOURS = _int_env('ACTIVE_ITEM_WINDOW_HOURS', 48)

# ── Benchmarks ───────────────────────────────────────────────────────────────
BENCHMARK_LOOKBACK_DAYS = _int_env('BENCHMARK_LOOKBACK_DAYS', 7)
BENCHMARK_MIN_SAMPLES = _int_env('BENCHMARK_MIN_SAMPLES', 10)
BENCHMARK_PAIR_WINDOW_MINUTES = _int_env('BENCHMARK_PAIR_WINDOW_MINUTES', 10)

# ── Digests ──────────────────────────────────────────────────────────────────
DIGEST_BATCH_SIZE = _int_env('DIGEST_BATCH_SIZE', 10)
MAX_DIGESTS_PER_DAY = _int_env('MAX_DIGESTS_PER_DAY', 5)
UNSENT_ALERT_WINDOW_HOURS = _int_env('UNSENT_ALERT_WINDOW_HOURS', 4)

# ── Stage locks ──────────────────────────────────────────────────────────────
STAGE_LOCK_TTL_SECONDS = _int_env('STAGE_LOCK_TTL_SECONDS', 600)

# ── Slack notifications ──────────────────────────────────────────────────────
SLACK_WEBHOOK_URLS = [
    u.strip() for u in os.getenv('SLACK_WEBHOOK_URLS', '').split(',') if u.strip()
]

# ── Domain vocabulary ────────────────────────────────────────────────────────
AGE_BUCKETS = ['new', 'young', 'mature']
METRIC_TYPES = ['score_velocity', 'comment_velocity']
ALERT_TYPES = ['score_velocity', 'comment_velocity', 'breakthrough']
ITEM_TYPES = ['story', 'ask', 'show', 'job', 'poll']
DIGEST_TYPES = ['hourly', 'urgent']
DELIVERY_STATUSES = ['pending', 'sent', 'partial', 'failed']
