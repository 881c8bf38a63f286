"""
Ingestion — upsert items from the upstream feed and append one snapshot per
active item per cycle.
"""
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from pulse import config
from pulse.database import get_session
from pulse.models.item import Item
from pulse.services import hn
from pulse.services.snapshots import get_active_items, record_snapshot

logger = logging.getLogger('services.ingest')


def upsert_items(session, stories: List[Dict[str, Any]], now: datetime) -> int:
    """
    Create items on first sighting; afterwards only title, url and liveness
    change. Returns the number of stories applied.
    """
    upserted = 0
    for story in stories:
        try:
            item = session.get(Item, story['id'])
            if item is None:
                session.add(Item(
                    id=story['id'],
                    title=story['title'],
                    url=story.get('url'),
                    author=story['by'],
                    item_type=story.get('item_type') or 'story',
                    first_seen_at=datetime.fromtimestamp(story['time']),
                    last_updated_at=now,
                    is_dead=bool(story.get('dead')),
                    is_deleted=bool(story.get('deleted')),
                ))
            else:
                item.title = story['title']
                item.url = story.get('url')
                item.last_updated_at = now
                item.is_dead = bool(story.get('dead'))
                item.is_deleted = bool(story.get('deleted'))
            upserted += 1
        except (KeyError, TypeError, ValueError, OverflowError, OSError):
            logger.error("Failed to upsert item %s", story.get('id'), exc_info=True,
                         extra={'item_id': story.get('id')})
    session.flush()
    return upserted


def minutes_since(start: datetime, now: datetime) -> int:
    """Whole minutes from `start` to `now`; an upstream clock running ahead counts as 0."""
    return max(0, int((now - start).total_seconds() // 60))


def run_ingest_cycle(now: Optional[datetime] = None,
                     fetch_ids: Optional[Callable] = None,
                     fetch_batch: Optional[Callable] = None,
                     max_items: Optional[int] = None) -> Dict[str, int]:
    """
    Fetch the newest upstream items, upsert them, and snapshot every active
    item that appeared in this fetch.
    """
    now = now or datetime.now()
    fetch_ids = fetch_ids or hn.fetch_new_story_ids
    fetch_batch = fetch_batch or hn.fetch_items_batch
    if max_items is None:
        max_items = config.INGEST_MAX_ITEMS

    stats = {
        'story_ids_fetched': 0,
        'items_processed': 0,
        'items_upserted': 0,
        'active_items': 0,
        'snapshots_created': 0,
    }

    story_ids = fetch_ids()
    stats['story_ids_fetched'] = len(story_ids)
    if not story_ids:
        logger.warning("No stories fetched from upstream")
        return stats

    stories = fetch_batch(story_ids[:max_items])
    stats['items_processed'] = len(stories)
    by_id = {s['id']: s for s in stories}

    session = get_session()
    try:
        stats['items_upserted'] = upsert_items(session, stories, now)

        active = get_active_items(session, now=now)
        stats['active_items'] = len(active)

        for item in active:
            story = by_id.get(item.id)
            if story is None:
                continue
            if record_snapshot(session, item.id, story.get('score'), story.get('descendants'),
                               captured_at=now,
                               minutes_since_creation=minutes_since(item.first_seen_at, now)):
                stats['snapshots_created'] += 1

        session.commit()
    except Exception:
        session.rollback()
        logger.error("Ingestion cycle failed", exc_info=True)
        raise
    finally:
        session.close()

    logger.info("Ingested %d items, created %d snapshots",
                stats['items_upserted'], stats['snapshots_created'])
    return stats
