"""
Benchmarks service — percentile profiles per (age bucket, metric), percentile
scoring, periodic recomputation from history, cold-start seeding.

Detection reads the full 6-cell map every cycle; recomputation runs on its
own, slower schedule and overwrites one cell at a time.
"""
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from pulse import config
from pulse.database import get_session
from pulse.models.benchmark import GrowthBenchmark
from pulse.services.snapshots import iter_item_histories, iter_snapshot_pairs
from pulse.services.velocity import in_age_bucket

logger = logging.getLogger('services.benchmarks')

PERCENTILES = (50, 75, 90, 95, 99)


@dataclass
class Benchmark:
    p50: float
    p75: float
    p90: float
    p95: float
    p99: float
    sample_size: int = 0


@dataclass
class RecalculationResult:
    benchmarks_updated: int = 0
    errors: List[str] = field(default_factory=list)


# Hand-picked, intentionally generous tables used until real history exists.
DEFAULT_BENCHMARKS = [
    # New items (0-30 min): high volatility
    {'age_bucket': 'new', 'metric_type': 'score_velocity',
     'p50': 0.5, 'p75': 1.0, 'p90': 2.0, 'p95': 3.5, 'p99': 6.0, 'sample_size': 100},
    {'age_bucket': 'new', 'metric_type': 'comment_velocity',
     'p50': 0.1, 'p75': 0.3, 'p90': 0.6, 'p95': 1.0, 'p99': 2.0, 'sample_size': 100},
    # Young items (31-120 min): stabilizing
    {'age_bucket': 'young', 'metric_type': 'score_velocity',
     'p50': 0.3, 'p75': 0.6, 'p90': 1.2, 'p95': 2.0, 'p99': 4.0, 'sample_size': 100},
    {'age_bucket': 'young', 'metric_type': 'comment_velocity',
     'p50': 0.05, 'p75': 0.15, 'p90': 0.3, 'p95': 0.5, 'p99': 1.0, 'sample_size': 100},
    # Mature items (121+ min): slow growth
    {'age_bucket': 'mature', 'metric_type': 'score_velocity',
     'p50': 0.1, 'p75': 0.2, 'p90': 0.5, 'p95': 0.8, 'p99': 1.5, 'sample_size': 100},
    {'age_bucket': 'mature', 'metric_type': 'comment_velocity',
     'p50': 0.02, 'p75': 0.05, 'p90': 0.1, 'p95': 0.2, 'p99': 0.4, 'sample_size': 100},
]


# ── Lookup ────────────────────────────────────────────────────────────────────

def get_growth_benchmarks(session) -> Optional[Dict[str, Dict[str, Benchmark]]]:
    """
    Load the benchmark map {age_bucket: {metric_type: Benchmark}}.

    Returns None unless every (bucket, metric) cell is present — partial
    benchmark data is never used for scoring.
    """
    rows = session.query(GrowthBenchmark).order_by(GrowthBenchmark.calculated_at).all()
    if not rows:
        return None

    result: Dict[str, Dict[str, Benchmark]] = {}
    for row in rows:
        result.setdefault(row.age_bucket, {})[row.metric_type] = Benchmark(
            p50=float(row.p50 or 0),
            p75=float(row.p75 or 0),
            p90=float(row.p90 or 0),
            p95=float(row.p95 or 0),
            p99=float(row.p99 or 0),
            sample_size=row.sample_size,
        )

    for bucket in config.AGE_BUCKETS:
        for metric in config.METRIC_TYPES:
            if metric not in result.get(bucket, {}):
                logger.warning("Benchmark map incomplete: missing %s/%s", bucket, metric)
                return None
    return result


# ── Scoring ───────────────────────────────────────────────────────────────────

def _interpolate(value, low_value, high_value, low_pct, high_pct):
    span = high_value - low_value
    if span <= 0:
        return float(high_pct)
    return low_pct + ((value - low_value) / span) * (high_pct - low_pct)


def calculate_percentile(value: float, benchmark: Benchmark) -> float:
    """
    Estimated percentile rank of `value` against five stored quantiles.

    Piecewise-linear between (0,0), (p50,50), (p75,75), (p90,90), (p95,95),
    (p99,99). Beyond p99 the tail saturates: 99 + min(1, (v - p99) / p99).
    """
    b = benchmark
    if value <= b.p50:
        if b.p50 <= 0:
            return 0.0
        return min(50.0, (value / b.p50) * 50)
    if value <= b.p75:
        return _interpolate(value, b.p50, b.p75, 50, 75)
    if value <= b.p90:
        return _interpolate(value, b.p75, b.p90, 75, 90)
    if value <= b.p95:
        return _interpolate(value, b.p90, b.p95, 90, 95)
    if value <= b.p99:
        return _interpolate(value, b.p95, b.p99, 95, 99)

    if b.p99 <= 0:
        return 100.0
    return 99 + min(1.0, (value - b.p99) / b.p99)


def calculate_percentiles(values: List[float]) -> Dict[str, float]:
    """Nearest-rank percentiles: index ceil(p/100 * n) - 1, clamped to 0."""
    if not values:
        return {f'p{p}': 0.0 for p in PERCENTILES}

    ordered = sorted(values)
    n = len(ordered)
    out = {}
    for p in PERCENTILES:
        index = max(0, math.ceil((p / 100) * n) - 1)
        out[f'p{p}'] = float(ordered[index])
    return out


# ── Recomputation ─────────────────────────────────────────────────────────────

def collect_velocity_samples(session, bucket: str, since: datetime,
                             pair_window_minutes: int) -> Dict[str, List[float]]:
    """
    Score/comment velocity samples for one age bucket.

    A sample comes from a snapshot captured at or after `since` whose age
    falls in the bucket, paired with the earliest later snapshot of the same
    item within the pairing window. Pairs where either metric decreased are
    dropped as noise.
    """
    samples = {'score_velocity': [], 'comment_velocity': []}
    for history in iter_item_histories(session, since):
        for first, second in iter_snapshot_pairs(history, pair_window_minutes):
            if not in_age_bucket(first.minutes_since_creation, bucket):
                continue
            if second.score < first.score or second.comment_count < first.comment_count:
                continue
            elapsed = (second.captured_at - first.captured_at).total_seconds() / 60
            if elapsed <= 0:
                continue
            samples['score_velocity'].append((second.score - first.score) / elapsed)
            samples['comment_velocity'].append((second.comment_count - first.comment_count) / elapsed)
    return samples


def _upsert_benchmark(session, bucket, metric, percentiles, sample_size, calculated_at):
    row = session.query(GrowthBenchmark).filter(
        GrowthBenchmark.age_bucket == bucket,
        GrowthBenchmark.metric_type == metric,
    ).first()

    if row is None:
        row = GrowthBenchmark(age_bucket=bucket, metric_type=metric)
        session.add(row)

    row.p50 = percentiles['p50']
    row.p75 = percentiles['p75']
    row.p90 = percentiles['p90']
    row.p95 = percentiles['p95']
    row.p99 = percentiles['p99']
    row.sample_size = sample_size
    row.calculated_at = calculated_at


def recalculate_benchmarks(now: Optional[datetime] = None,
                           lookback_days: Optional[int] = None,
                           min_samples: Optional[int] = None,
                           pair_window_minutes: Optional[int] = None) -> RecalculationResult:
    """
    Rebuild every (bucket, metric) cell from the trailing lookback window.

    A failing bucket is rolled back and reported; the others still commit.
    Cells short of `min_samples` keep their previous values.
    """
    now = now or datetime.now()
    if lookback_days is None:
        lookback_days = config.BENCHMARK_LOOKBACK_DAYS
    if min_samples is None:
        min_samples = config.BENCHMARK_MIN_SAMPLES
    if pair_window_minutes is None:
        pair_window_minutes = config.BENCHMARK_PAIR_WINDOW_MINUTES

    since = now - timedelta(days=lookback_days)
    result = RecalculationResult()

    session = get_session()
    try:
        for bucket in config.AGE_BUCKETS:
            try:
                samples = collect_velocity_samples(session, bucket, since, pair_window_minutes)

                if not samples['score_velocity']:
                    result.errors.append(f"No data for age bucket: {bucket}")
                    continue

                updated = 0
                for metric in config.METRIC_TYPES:
                    values = samples[metric]
                    if len(values) < min_samples:
                        result.errors.append(
                            f"Insufficient data for {bucket}/{metric}: {len(values)} samples"
                        )
                        continue
                    _upsert_benchmark(session, bucket, metric,
                                      calculate_percentiles(values), len(values), now)
                    updated += 1

                session.commit()
                result.benchmarks_updated += updated
            except Exception as e:
                session.rollback()
                logger.error("Benchmark recalculation failed for %s", bucket, exc_info=True)
                result.errors.append(f"Error processing {bucket}: {e}")
    finally:
        session.close()

    for error in result.errors:
        logger.warning("Benchmark recalculation: %s", error)
    logger.info("Recalculated %d benchmark cells (%d warnings)",
                result.benchmarks_updated, len(result.errors))
    return result


# ── Seeding ───────────────────────────────────────────────────────────────────

def seed_initial_benchmarks(now: Optional[datetime] = None) -> int:
    """Insert DEFAULT_BENCHMARKS for cells that have no row yet. Returns rows inserted."""
    now = now or datetime.now()
    session = get_session()
    try:
        existing = {
            (row.age_bucket, row.metric_type)
            for row in session.query(GrowthBenchmark.age_bucket, GrowthBenchmark.metric_type)
        }
        inserted = 0
        for default in DEFAULT_BENCHMARKS:
            key = (default['age_bucket'], default['metric_type'])
            if key in existing:
                continue
            session.add(GrowthBenchmark(calculated_at=now, **default))
            inserted += 1
        session.commit()
        logger.info("Seeded %d default benchmark cells", inserted)
        return inserted
    except Exception:
        session.rollback()
        logger.error("Failed to seed benchmarks", exc_info=True)
        raise
    finally:
        session.close()
