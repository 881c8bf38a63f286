"""
Dashboard routes — health checks, stats API, recent alerts and posts.
"""
import logging
from datetime import datetime, timedelta

from flask import Blueprint, jsonify, request
from sqlalchemy import func

from pulse import config
from pulse.database import get_session
from pulse.models.alert import Alert
from pulse.models.item import Item
from pulse.models.snapshot import Snapshot
from pulse.services.alerts import get_recent_alerts
from pulse.services.circuit_breaker import get_all_breakers
from pulse.services.digests import count_digests_today
from pulse.services.snapshots import get_recent_items_with_latest_snapshot

logger = logging.getLogger('routes.dashboard')

bp = Blueprint('dashboard', __name__)

MAX_ALERTS_LIMIT = 100
MAX_POSTS_LIMIT = 100
CRON_STALE_MINUTES = 10


@bp.route('/health')
def health_check():
    """Health check endpoint."""
    return jsonify({"status": "healthy"}), 200


@bp.route('/api/health')
def upstream_health():
    """Circuit breaker state for every registered upstream."""
    breakers = {name: cb.get_health() for name, cb in get_all_breakers().items()}
    return jsonify({'breakers': breakers}), 200


@bp.route('/api/dashboard/stats')
def get_stats():
    """Counts across items, snapshots, alerts and digests."""
    now = datetime.now()
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    active_cutoff = now - timedelta(hours=config.ACTIVE_ITEM_WINDOW_HOURS)
    day_ago = now - timedelta(hours=24)

    session = get_session()
    try:
        total_items = session.query(func.count(Item.id)).scalar() or 0
        active_items = session.query(func.count(Item.id)).filter(
            Item.first_seen_at >= active_cutoff,
            Item.is_dead.is_(False),
            Item.is_deleted.is_(False),
        ).scalar() or 0

        total_snapshots = session.query(func.count(Snapshot.id)).scalar() or 0
        snapshots_today = session.query(func.count(Snapshot.id)).filter(
            Snapshot.captured_at >= midnight,
        ).scalar() or 0

        total_alerts = session.query(func.count(Alert.id)).scalar() or 0
        alerts_24h = session.query(func.count(Alert.id)).filter(
            Alert.detected_at >= day_ago,
        ).scalar() or 0
        unsent_alerts = session.query(func.count(Alert.id)).filter(
            Alert.is_sent.is_(False),
        ).scalar() or 0

        digests_today = count_digests_today(session, now=now)
        last_snapshot = session.query(func.max(Snapshot.captured_at)).scalar()

        healthy = (
            last_snapshot is not None
            and now - last_snapshot < timedelta(minutes=CRON_STALE_MINUTES)
        )

        return jsonify({
            'success': True,
            'stats': {
                'items': {'total': total_items, 'active': active_items},
                'snapshots': {'total': total_snapshots, 'today': snapshots_today},
                'alerts': {'total': total_alerts, 'last24h': alerts_24h, 'unsent': unsent_alerts},
                'digests': {
                    'today': digests_today,
                    'maxPerDay': config.MAX_DIGESTS_PER_DAY,
                    'remaining': max(0, config.MAX_DIGESTS_PER_DAY - digests_today),
                },
                'system': {
                    'lastCronRun': last_snapshot.isoformat() if last_snapshot else None,
                    'status': 'healthy' if healthy else 'stale',
                },
            },
        }), 200
    except Exception as e:
        logger.error("Error getting stats", exc_info=True)
        return jsonify({'success': False, 'error': str(e)}), 500
    finally:
        session.close()


@bp.route('/api/dashboard/alerts')
def list_alerts():
    """Recent alerts. ?limit= (max 100) and ?hours= (default 24)."""
    limit = min(request.args.get('limit', 20, type=int), MAX_ALERTS_LIMIT)
    hours = request.args.get('hours', 24, type=int)
    try:
        alerts = get_recent_alerts(limit=max(limit, 0), hours=hours)
    except Exception as e:
        logger.error("Error getting alerts", exc_info=True)
        return jsonify({'success': False, 'error': str(e)}), 500
    return jsonify({'success': True, 'alerts': alerts, 'count': len(alerts)}), 200


@bp.route('/api/dashboard/posts')
def list_posts():
    """Live items from the last ?hours= (default 24) by current score. ?limit= (max 100)."""
    limit = min(request.args.get('limit', 20, type=int), MAX_POSTS_LIMIT)
    hours = request.args.get('hours', 24, type=int)

    session = get_session()
    try:
        posts = get_recent_items_with_latest_snapshot(session, hours=hours, limit=limit)
        return jsonify({'success': True, 'posts': posts, 'count': len(posts)}), 200
    except Exception as e:
        logger.error("Error getting posts", exc_info=True)
        return jsonify({'success': False, 'error': str(e)}), 500
    finally:
        session.close()
