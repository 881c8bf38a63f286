"""
Alert store — insert-or-ignore per (item, alert type), unsent-alert selection
for digests, and item-wide mark-sent propagation.

Once any alert of an item has gone out in a digest, no alert of that item
is ever selected again.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import select

from pulse import config
from pulse.database import get_session, insert_ignore
from pulse.models.alert import Alert
from pulse.models.item import Item

logger = logging.getLogger('services.alerts')


def create_alert(session, candidate, detected_at: datetime) -> bool:
    """
    Persist an AlertCandidate. A repeat detection of the same (item, type)
    is a silent no-op; the first detection's numbers are kept.

    Returns True only when a new row was written.
    """
    return insert_ignore(
        session, Alert,
        {
            'item_id': candidate.item_id,
            'alert_type': candidate.alert_type,
            'percentile': round(candidate.percentile, 2),
            'growth_rate': round(candidate.growth_rate, 2),
            'score_at_alert': candidate.score,
            'comments_at_alert': candidate.comments,
            'item_age_minutes': candidate.item_age_minutes,
            'detected_at': detected_at,
            'is_sent': False,
        },
        index_elements=['item_id', 'alert_type'],
    )


def _alert_to_dict(alert: Alert, item: Item) -> Dict[str, Any]:
    return {
        'id': alert.id,
        'item_id': alert.item_id,
        'alert_type': alert.alert_type,
        'percentile': alert.percentile,
        'growth_rate': alert.growth_rate,
        'score_at_alert': alert.score_at_alert,
        'comments_at_alert': alert.comments_at_alert,
        'item_age_minutes': alert.item_age_minutes,
        'detected_at': alert.detected_at.isoformat() if alert.detected_at else None,
        'is_sent': bool(alert.is_sent),
        'title': item.title,
        'url': item.url,
        'author': item.author,
        'item_type': item.item_type,
    }


def get_unsent_alerts(limit: Optional[int] = None, now: Optional[datetime] = None,
                      window_hours: Optional[int] = None, session=None) -> List[Dict[str, Any]]:
    """
    Unsent alerts detected within the trailing window, excluding every item
    that has ever had an alert marked sent. Highest percentile first, then
    most recent detection.
    """
    if limit is None:
        limit = config.DIGEST_BATCH_SIZE
    if window_hours is None:
        window_hours = config.UNSENT_ALERT_WINDOW_HOURS
    now = now or datetime.now()
    cutoff = now - timedelta(hours=window_hours)

    own_session = session is None
    session = session or get_session()
    try:
        sent_items = select(Alert.item_id).where(Alert.is_sent.is_(True))

        rows = session.query(Alert, Item).join(
            Item, Alert.item_id == Item.id,
        ).filter(
            Alert.is_sent.is_(False),
            Alert.detected_at >= cutoff,
            Alert.item_id.not_in(sent_items),
        ).order_by(
            Alert.percentile.desc(),
            Alert.detected_at.desc(),
        ).limit(limit).all()

        return [_alert_to_dict(alert, item) for alert, item in rows]
    finally:
        if own_session:
            session.close()


def mark_alerts_as_sent(alert_ids: List[int], session=None) -> int:
    """
    Mark every alert of the items owning `alert_ids` as sent, not just the
    listed rows, in a single UPDATE. Returns rows updated.
    """
    if not alert_ids:
        return 0

    own_session = session is None
    session = session or get_session()
    try:
        owning_items = select(Alert.item_id).where(Alert.id.in_(list(alert_ids)))
        updated = session.query(Alert).filter(
            Alert.item_id.in_(owning_items),
        ).update({Alert.is_sent: True}, synchronize_session=False)

        if own_session:
            session.commit()
        logger.info("Marked %d alerts sent for %d selected alerts", updated, len(alert_ids))
        return updated
    except Exception:
        if own_session:
            session.rollback()
        raise
    finally:
        if own_session:
            session.close()


def get_recent_alerts(limit: int = 20, hours: int = 24,
                      now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    """Alerts detected within the last `hours`, newest first, sent or not."""
    now = now or datetime.now()
    cutoff = now - timedelta(hours=hours)

    session = get_session()
    try:
        rows = session.query(Alert, Item).join(
            Item, Alert.item_id == Item.id,
        ).filter(
            Alert.detected_at >= cutoff,
        ).order_by(Alert.detected_at.desc()).limit(limit).all()
        return [_alert_to_dict(alert, item) for alert, item in rows]
    finally:
        session.close()
