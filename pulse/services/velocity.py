"""
Velocity service — growth rate between snapshots + age bucketing.

Pure functions only. Snapshots can be ORM rows or any object exposing
item_id, score, comment_count and captured_at.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

logger = logging.getLogger('services.velocity')

# Inclusive minute ranges; mature has no upper bound.
AGE_BUCKET_RANGES = {
    'new': (0, 30),
    'young': (31, 120),
    'mature': (121, None),
}


@dataclass
class Velocity:
    score_velocity: float     # points per minute
    comment_velocity: float   # comments per minute
    time_elapsed: float       # minutes between the two snapshots


def get_age_bucket(minutes_since_creation: int) -> str:
    """Classify an item age (minutes) into new / young / mature."""
    if minutes_since_creation <= 30:
        return 'new'
    if minutes_since_creation <= 120:
        return 'young'
    return 'mature'


def get_age_bucket_range(bucket: str) -> Tuple[int, Optional[int]]:
    """Inclusive (min, max) minute range for a bucket. max is None for mature."""
    if bucket not in AGE_BUCKET_RANGES:
        raise ValueError(f"Unknown age bucket: {bucket}")
    return AGE_BUCKET_RANGES[bucket]


def in_age_bucket(minutes_since_creation: int, bucket: str) -> bool:
    low, high = get_age_bucket_range(bucket)
    # Negative ages classify as new, same as get_age_bucket
    minutes_since_creation = max(0, minutes_since_creation)
    if minutes_since_creation < low:
        return False
    return high is None or minutes_since_creation <= high


def calculate_velocity(current, previous) -> Optional[Velocity]:
    """
    Growth rate from previous → current.

    Returns None when the timestamps are equal or inverted, or when the
    snapshots belong to different items. Score/comment decreases are clamped
    to zero: a moderation event is "no growth", never negative growth.
    """
    if current.item_id != previous.item_id:
        logger.debug("Snapshot pair spans items %s/%s", current.item_id, previous.item_id)
        return None

    if current.captured_at <= previous.captured_at:
        return None

    time_elapsed = (current.captured_at - previous.captured_at).total_seconds() / 60
    if time_elapsed <= 0:
        return None

    score_diff = (current.score or 0) - (previous.score or 0)
    comment_diff = (current.comment_count or 0) - (previous.comment_count or 0)

    return Velocity(
        score_velocity=max(0.0, score_diff / time_elapsed),
        comment_velocity=max(0.0, comment_diff / time_elapsed),
        time_elapsed=time_elapsed,
    )


def calculate_item_velocity(recent_snapshots: Sequence) -> Optional[Velocity]:
    """Velocity from an item's snapshots ordered newest first."""
    if len(recent_snapshots) < 2:
        return None
    current, previous = recent_snapshots[0], recent_snapshots[1]
    return calculate_velocity(current, previous)
