"""
Stage jobs — the entry points the scheduler calls (cron routes, run_cron.py).

Each job holds its stage lock, times itself and returns a JSON-ready summary.
StageLockedError propagates so the caller can report the overlap.
"""
import logging
import time
from datetime import datetime

from pulse.services.benchmarks import recalculate_benchmarks, seed_initial_benchmarks
from pulse.services.detector import detect_breakouts
from pulse.services.digests import run_digest_batch
from pulse.services.ingest import run_ingest_cycle
from pulse.logging_config import log_stage
from pulse.services.locks import stage_lock

logger = logging.getLogger('pulse.jobs')


def _envelope(started, **payload):
    out = {
        'success': True,
        'timestamp': datetime.now().isoformat(),
        'execution_time_ms': int((time.monotonic() - started) * 1000),
    }
    out.update(payload)
    return out


def run_fetch_job():
    """Ingest the newest items, then run one detection cycle."""
    started = time.monotonic()
    with stage_lock('fetch'), log_stage('fetch'):
        logger.info("=== Fetch + detect started ===")
        stats = run_ingest_cycle()

        detection = None
        try:
            detection = detect_breakouts().to_dict()
        except Exception:
            # Ingested snapshots are already committed; the next cycle retries detection.
            logger.error("Breakout detection failed", exc_info=True)

        stats['alerts_generated'] = detection['alerts_created'] if detection else 0
        logger.info("=== Fetch + detect completed ===")
        return _envelope(started, stats=stats, detection=detection)


def run_benchmark_job():
    started = time.monotonic()
    with stage_lock('benchmarks'), log_stage('benchmarks'):
        result = recalculate_benchmarks()
        return _envelope(started,
                         benchmarks_updated=result.benchmarks_updated,
                         errors=result.errors)


def run_digest_job():
    started = time.monotonic()
    with stage_lock('digests'), log_stage('digests'):
        result = run_digest_batch()
        return _envelope(started, digest=result.to_dict())


def run_seed_job():
    started = time.monotonic()
    with stage_lock('benchmarks'), log_stage('benchmarks'):
        inserted = seed_initial_benchmarks()
        return _envelope(started, benchmarks_seeded=inserted)
