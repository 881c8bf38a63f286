"""
Snapshot store adapter — the access patterns the analytics core needs over
items and their time series.

Every function takes an open session; callers own the transaction.
"""
import logging
from datetime import datetime, timedelta
from itertools import groupby
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy import func, select

from pulse import config
from pulse.database import insert_ignore
from pulse.models.item import Item
from pulse.models.snapshot import Snapshot

logger = logging.getLogger('services.snapshots')

# Keeps IN (...) lists under SQLite's bound-parameter ceiling
_ID_CHUNK = 500


def get_active_items(session, now: Optional[datetime] = None,
                     window_hours: Optional[int] = None) -> List[Item]:
    """Items first observed within the trailing window that are neither dead nor deleted."""
    now = now or datetime.now()
    if window_hours is None:
        window_hours = config.ACTIVE_ITEM_WINDOW_HOURS
    cutoff = now - timedelta(hours=window_hours)

    return session.query(Item).filter(
        Item.first_seen_at >= cutoff,
        Item.is_dead.is_(False),
        Item.is_deleted.is_(False),
    ).order_by(Item.first_seen_at.desc()).all()


def get_recent_snapshots(session, item_ids, limit: int = 2) -> Dict[int, List[Snapshot]]:
    """
    Most recent `limit` snapshots per item, newest first.

    Returns {item_id: [snapshot, ...]}. Items without snapshots are absent.
    """
    result: Dict[int, List[Snapshot]] = {}
    ids = list(dict.fromkeys(item_ids))
    for start in range(0, len(ids), _ID_CHUNK):
        chunk = ids[start:start + _ID_CHUNK]
        rn = func.row_number().over(
            partition_by=Snapshot.item_id,
            order_by=Snapshot.captured_at.desc(),
        ).label('rn')
        ranked = select(Snapshot.id, rn).where(Snapshot.item_id.in_(chunk)).subquery()

        rows = session.query(Snapshot).join(
            ranked, Snapshot.id == ranked.c.id,
        ).filter(
            ranked.c.rn <= limit,
        ).order_by(Snapshot.item_id, Snapshot.captured_at.desc()).all()

        for snap in rows:
            result.setdefault(snap.item_id, []).append(snap)
    return result


def get_recent_items_with_latest_snapshot(session, hours: int = 24, limit: int = 20,
                                          now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    """
    Live items first seen within the last `hours`, each with its newest
    snapshot, highest current score first. Items never snapshotted are left out.
    """
    items = get_active_items(session, now=now, window_hours=hours)
    latest = get_recent_snapshots(session, [item.id for item in items], limit=1)

    posts = []
    for item in items:
        snaps = latest.get(item.id)
        if not snaps:
            continue
        snap = snaps[0]
        posts.append({
            'id': item.id,
            'title': item.title,
            'url': item.url,
            'author': item.author,
            'item_type': item.item_type,
            'first_seen_at': item.first_seen_at.isoformat() if item.first_seen_at else None,
            'score': snap.score,
            'comment_count': snap.comment_count,
            'minutes_since_creation': snap.minutes_since_creation,
            'captured_at': snap.captured_at.isoformat(),
        })

    posts.sort(key=lambda p: p['score'], reverse=True)
    return posts[:max(limit, 0)]


def record_snapshot(session, item_id: int, score: int, comment_count: int,
                    captured_at: datetime, minutes_since_creation: int) -> bool:
    """Append one observation. A second write for the same (item, captured_at) is ignored."""
    return insert_ignore(
        session, Snapshot,
        {
            'item_id': item_id,
            'score': int(score or 0),
            'comment_count': int(comment_count or 0),
            'captured_at': captured_at,
            'minutes_since_creation': int(minutes_since_creation),
        },
        index_elements=['item_id', 'captured_at'],
    )


def iter_item_histories(session, since: datetime) -> Iterator[List]:
    """
    Yield each item's snapshots captured at or after `since`, ascending by
    capture time, one item at a time.
    """
    stmt = select(
        Snapshot.item_id,
        Snapshot.score,
        Snapshot.comment_count,
        Snapshot.captured_at,
        Snapshot.minutes_since_creation,
    ).where(
        Snapshot.captured_at >= since,
    ).order_by(Snapshot.item_id, Snapshot.captured_at)

    rows = session.execute(stmt.execution_options(yield_per=1000))
    for _, history in groupby(rows, key=lambda r: r.item_id):
        yield list(history)


def iter_snapshot_pairs(history, pair_window_minutes: int) -> Iterator[tuple]:
    """
    Pair each snapshot with the earliest later snapshot of the same item,
    provided it lands within `pair_window_minutes`.

    `history` must be one item's snapshots in ascending capture order.
    """
    window = timedelta(minutes=pair_window_minutes)
    n = len(history)
    j = 0
    for i in range(n):
        first = history[i]
        if j <= i:
            j = i + 1
        while j < n and history[j].captured_at <= first.captured_at:
            j += 1
        if j >= n:
            break
        second = history[j]
        if second.captured_at - first.captured_at <= window:
            yield first, second
