"""
Digest batcher — groups unsent alerts into one notification batch under a
daily quota.

At-most-once: alerts included in a batch are marked sent whatever the
delivery outcome, so a failed delivery is never retried into a duplicate.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy import func

from pulse import config
from pulse.database import get_session
from pulse.models.digest import Digest
from pulse.services.alerts import get_unsent_alerts, mark_alerts_as_sent
from pulse.services.notifications import deliver_digest

logger = logging.getLogger('services.digests')

URGENT_PERCENTILE = 99


@dataclass
class DigestResult:
    status: str                          # skipped / completed
    reason: Optional[str] = None         # quota_reached / no_unsent_alerts
    digest_type: Optional[str] = None    # hourly / urgent
    alert_count: int = 0
    alert_ids: List[int] = field(default_factory=list)
    delivery_status: Optional[str] = None  # sent / partial / failed
    quota_sent: int = 0
    quota_max: int = 0

    @property
    def skipped(self) -> bool:
        return self.status == 'skipped'

    def to_dict(self):
        return {
            'status': self.status,
            'skipped': self.skipped,
            'reason': self.reason,
            'digest_type': self.digest_type,
            'alert_count': self.alert_count,
            'alert_ids': list(self.alert_ids),
            'delivery_status': self.delivery_status,
            'quota': {'sent': self.quota_sent, 'max': self.quota_max},
        }


def count_digests_today(session, now: Optional[datetime] = None) -> int:
    """Digests recorded since local midnight."""
    now = now or datetime.now()
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return session.query(func.count(Digest.id)).filter(Digest.sent_at >= midnight).scalar() or 0


def classify_digest(alerts) -> str:
    """'urgent' if any alert reached the 99th percentile, else 'hourly'."""
    if any(float(a.get('percentile') or 0) >= URGENT_PERCENTILE for a in alerts):
        return 'urgent'
    return 'hourly'


def run_digest_batch(deliver: Optional[Callable] = None,
                     now: Optional[datetime] = None,
                     batch_size: Optional[int] = None,
                     max_per_day: Optional[int] = None) -> DigestResult:
    """
    Build, deliver and record one digest.

    `deliver(alerts, digest_type)` returns 'sent' / 'partial' / 'failed';
    defaults to the Slack webhook delivery.
    """
    deliver = deliver or deliver_digest
    now = now or datetime.now()
    if batch_size is None:
        batch_size = config.DIGEST_BATCH_SIZE
    if max_per_day is None:
        max_per_day = config.MAX_DIGESTS_PER_DAY

    session = get_session()
    try:
        sent_today = count_digests_today(session, now)
        logger.info("Digests sent today: %d/%d", sent_today, max_per_day)

        if sent_today >= max_per_day:
            logger.info("Daily quota reached, skipping digest")
            return DigestResult(status='skipped', reason='quota_reached',
                                quota_sent=sent_today, quota_max=max_per_day)

        alerts = get_unsent_alerts(limit=batch_size, now=now, session=session)
        if not alerts:
            logger.info("No alerts to send")
            return DigestResult(status='skipped', reason='no_unsent_alerts',
                                quota_sent=sent_today, quota_max=max_per_day)

        digest_type = classify_digest(alerts)
        alert_ids = [a['id'] for a in alerts]
        logger.info("Creating %s digest with %d alerts", digest_type, len(alerts))

        error_message = None
        try:
            delivery_status = deliver(alerts, digest_type) or 'failed'
        except Exception as e:
            logger.error("Digest delivery raised", exc_info=True)
            delivery_status = 'failed'
            error_message = str(e)[:500]

        session.add(Digest(
            sent_at=now,
            alert_ids=alert_ids,
            alert_count=len(alert_ids),
            digest_type=digest_type,
            status=delivery_status,
            error_message=error_message,
        ))
        mark_alerts_as_sent(alert_ids, session=session)
        session.commit()

        return DigestResult(
            status='completed',
            digest_type=digest_type,
            alert_count=len(alert_ids),
            alert_ids=alert_ids,
            delivery_status=delivery_status,
            quota_sent=sent_today + 1,
            quota_max=max_per_day,
        )
    except Exception:
        session.rollback()
        logger.error("Digest batch failed", exc_info=True)
        raise
    finally:
        session.close()
