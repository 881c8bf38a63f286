"""
Breakout detector — scores every active item against the benchmark map and
writes deduplicated alerts.

Per cycle:
  active items → two newest snapshots → velocity → age bucket →
  score/comment percentiles → rules → insert-or-ignore alerts

A missing or partial benchmark map aborts the whole cycle with zero alerts.
A fault analyzing one item skips only that item.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from pulse import config
from pulse.database import get_session
from pulse.services.alerts import create_alert
from pulse.services.benchmarks import calculate_percentile, get_growth_benchmarks
from pulse.services.snapshots import get_active_items, get_recent_snapshots
from pulse.services.velocity import calculate_item_velocity, get_age_bucket

logger = logging.getLogger('services.detector')

# Absolute floors that suppress noise on tiny counts
MIN_SCORE_FOR_SCORE_ALERT = 10
MIN_COMMENTS_FOR_COMMENT_ALERT = 5

# Breakthrough: very early, very fast
BREAKTHROUGH_MAX_AGE_MINUTES = 30
BREAKTHROUGH_MIN_PERCENTILE = 90
BREAKTHROUGH_MIN_SCORE = 20


@dataclass
class AlertCandidate:
    item_id: int
    alert_type: str
    percentile: float
    growth_rate: float
    score: int
    comments: int
    item_age_minutes: int


@dataclass
class DetectionSummary:
    status: str = 'completed'          # completed / no_benchmarks
    items_scanned: int = 0
    items_skipped: int = 0
    item_errors: int = 0
    candidates_by_type: Dict[str, int] = field(
        default_factory=lambda: {t: 0 for t in config.ALERT_TYPES})
    alerts_created_by_type: Dict[str, int] = field(
        default_factory=lambda: {t: 0 for t in config.ALERT_TYPES})
    candidates: List[AlertCandidate] = field(default_factory=list)

    @property
    def alerts_created(self) -> int:
        return sum(self.alerts_created_by_type.values())

    def to_dict(self):
        return {
            'status': self.status,
            'items_scanned': self.items_scanned,
            'items_skipped': self.items_skipped,
            'item_errors': self.item_errors,
            'candidates': len(self.candidates),
            'candidates_by_type': dict(self.candidates_by_type),
            'alerts_created': self.alerts_created,
            'alerts_created_by_type': dict(self.alerts_created_by_type),
        }


def get_alert_threshold() -> int:
    """Configured percentile threshold, clamped to [0, 100]."""
    return min(100, max(0, int(config.ALERT_PERCENTILE_THRESHOLD)))


def evaluate_item(item_id: int, recent_snapshots, benchmarks, threshold: float) -> Optional[List[AlertCandidate]]:
    """
    Apply the three alert rules to one item.

    `recent_snapshots` is newest first. Returns None when no velocity can be
    computed, otherwise the (possibly empty) candidate list. Rules are
    independent: one item may yield several candidates.
    """
    velocity = calculate_item_velocity(recent_snapshots)
    if velocity is None:
        return None

    current = recent_snapshots[0]
    age = int(current.minutes_since_creation)
    score = int(current.score or 0)
    comments = int(current.comment_count or 0)

    bucket = benchmarks[get_age_bucket(age)]
    score_pct = calculate_percentile(velocity.score_velocity, bucket['score_velocity'])
    comment_pct = calculate_percentile(velocity.comment_velocity, bucket['comment_velocity'])

    def candidate(alert_type, percentile, growth_rate):
        return AlertCandidate(
            item_id=item_id,
            alert_type=alert_type,
            percentile=percentile,
            growth_rate=growth_rate,
            score=score,
            comments=comments,
            item_age_minutes=age,
        )

    out = []
    if score_pct >= threshold and score >= MIN_SCORE_FOR_SCORE_ALERT:
        out.append(candidate('score_velocity', score_pct, velocity.score_velocity))

    if comment_pct >= threshold and comments >= MIN_COMMENTS_FOR_COMMENT_ALERT:
        out.append(candidate('comment_velocity', comment_pct, velocity.comment_velocity))

    if (age < BREAKTHROUGH_MAX_AGE_MINUTES
            and score_pct >= BREAKTHROUGH_MIN_PERCENTILE
            and score >= BREAKTHROUGH_MIN_SCORE):
        out.append(candidate('breakthrough', score_pct, velocity.score_velocity))

    return out


def detect_breakouts(now: Optional[datetime] = None,
                     threshold: Optional[float] = None) -> DetectionSummary:
    """Run one detection cycle over all active items."""
    now = now or datetime.now()
    if threshold is None:
        threshold = get_alert_threshold()

    summary = DetectionSummary()
    session = get_session()
    try:
        benchmarks = get_growth_benchmarks(session)
        if not benchmarks:
            logger.warning("No benchmarks available — skipping detection")
            summary.status = 'no_benchmarks'
            return summary

        items = get_active_items(session, now=now)
        if not items:
            return summary

        logger.info("Analyzing %d active items for breakout growth...", len(items))
        snapshots_by_item = get_recent_snapshots(session, [item.id for item in items], limit=2)

        for item in items:
            summary.items_scanned += 1
            try:
                recent = snapshots_by_item.get(item.id, [])
                if len(recent) < 2:
                    summary.items_skipped += 1
                    continue

                found = evaluate_item(item.id, recent, benchmarks, threshold)
                if found is None:
                    summary.items_skipped += 1
                    continue

                for cand in found:
                    summary.candidates.append(cand)
                    summary.candidates_by_type[cand.alert_type] += 1
            except Exception:
                summary.item_errors += 1
                logger.error("Error analyzing item %s", item.id, exc_info=True,
                             extra={'item_id': item.id})

        for cand in summary.candidates:
            if create_alert(session, cand, detected_at=now):
                summary.alerts_created_by_type[cand.alert_type] += 1
                logger.debug("Alert for item %s at p%.1f", cand.item_id, cand.percentile,
                             extra={'item_id': cand.item_id, 'alert_type': cand.alert_type})
        session.commit()

        logger.info("Generated %d alerts from %d candidates",
                    summary.alerts_created, len(summary.candidates))
        return summary
    except Exception:
        session.rollback()
        logger.error("Detection cycle failed", exc_info=True)
        raise
    finally:
        session.close()
