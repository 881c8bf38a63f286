"""
Hacker News API client — new story IDs and item details.

Transient failures are retried with exponential backoff (1s, 2s, 4s).
A 404 means the item is gone and is not retried. The story-list call goes
through the 'hn' circuit breaker.
"""
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional

import requests

from pulse import config
from pulse.services.circuit_breaker import CircuitOpenError, get_breaker

logger = logging.getLogger('services.hn')

MAX_RETRIES = 3
RETRY_DELAY = 1.0  # seconds
REQUEST_TIMEOUT = 10

VALID_TYPES = ('story', 'job', 'poll')


def _get_json(url: str, retries: int = MAX_RETRIES):
    """GET url → parsed JSON, None on 404. Raises after the last failed attempt."""
    for attempt in range(retries + 1):
        try:
            resp = requests.get(url, timeout=REQUEST_TIMEOUT)
            if resp.status_code == 404:
                return None
            resp.raise_for_status()
            return resp.json()
        except requests.exceptions.RequestException as e:
            if attempt == retries:
                raise
            delay = RETRY_DELAY * (2 ** attempt)
            logger.warning("Fetch failed (attempt %d/%d), retrying in %.0fs: %s",
                           attempt + 1, retries + 1, delay, e)
            time.sleep(delay)
    return None


def get_item_type(item: Dict[str, Any]) -> str:
    """Map a raw HN item to story / ask / show / job / poll."""
    if item.get('type') == 'job':
        return 'job'
    if item.get('type') == 'poll':
        return 'poll'

    title = (item.get('title') or '').lower()
    if title.startswith('ask hn:'):
        return 'ask'
    if title.startswith('show hn:'):
        return 'show'
    return 'story'


def is_valid_story(item: Optional[Dict[str, Any]]) -> bool:
    if not item:
        return False
    if item.get('deleted') or item.get('dead'):
        return False
    if not item.get('by') or not item.get('title'):
        return False
    return item.get('type') in VALID_TYPES


def fetch_new_story_ids() -> List[int]:
    """Up to 500 newest story IDs. Empty list when the upstream is unavailable."""
    url = f"{config.HN_API_BASE_URL}/newstories.json"
    try:
        ids = get_breaker('hn').call(_get_json, url)
    except CircuitOpenError as e:
        logger.warning("%s", e)
        return []
    except requests.exceptions.RequestException:
        logger.error("Failed to fetch new story IDs", exc_info=True)
        return []
    return ids or []


def fetch_item(item_id: int) -> Optional[Dict[str, Any]]:
    """Normalized story dict, or None for missing/invalid items."""
    url = f"{config.HN_API_BASE_URL}/item/{item_id}.json"
    try:
        item = _get_json(url)
    except requests.exceptions.RequestException as e:
        logger.error("Failed to fetch item %s after %d attempts: %s", item_id, MAX_RETRIES + 1, e)
        return None

    if not is_valid_story(item):
        return None

    return {
        'id': item['id'],
        'title': item['title'],
        'url': item.get('url'),
        'by': item['by'],
        'time': item.get('time') or 0,
        'score': item.get('score') or 0,
        'descendants': item.get('descendants') or 0,
        'type': item['type'],
        'item_type': get_item_type(item),
        'dead': bool(item.get('dead')),
        'deleted': bool(item.get('deleted')),
    }


def fetch_items_batch(ids: List[int], concurrency: Optional[int] = None) -> List[Dict[str, Any]]:
    """Fetch many items with bounded fan-out; invalid items are dropped, order kept."""
    if not ids:
        return []
    if concurrency is None:
        concurrency = config.INGEST_CONCURRENCY

    with ThreadPoolExecutor(max_workers=max(1, min(concurrency, len(ids)))) as pool:
        results = list(pool.map(fetch_item, ids))

    stories = [r for r in results if r is not None]
    logger.info("Fetched %d valid items out of %d IDs", len(stories), len(ids))
    return stories
