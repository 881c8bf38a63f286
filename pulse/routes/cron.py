"""
Cron blueprint — scheduler-facing trigger endpoints.

Every request must carry `Authorization: Bearer <CRON_SECRET>`. Cycle
failures answer 200 with success=false so the scheduler does not retry in a
tight loop; an overlapping invocation answers 409.
"""
import logging
from datetime import datetime

from flask import Blueprint, jsonify, request

from pulse import config
from pulse.jobs import run_benchmark_job, run_digest_job, run_fetch_job, run_seed_job
from pulse.services.locks import StageLockedError

logger = logging.getLogger('routes.cron')

bp = Blueprint('cron', __name__, url_prefix='/api/cron')


@bp.before_request
def require_cron_secret():
    if not config.CRON_SECRET:
        logger.error("CRON_SECRET environment variable not set")
        return jsonify({'error': 'Server configuration error'}), 500
    if request.headers.get('Authorization') != f'Bearer {config.CRON_SECRET}':
        logger.warning("Unauthorized cron request to %s", request.path)
        return jsonify({'error': 'Unauthorized'}), 401


def _run(job, name):
    try:
        return jsonify(job()), 200
    except StageLockedError as e:
        logger.warning("%s", e)
        return jsonify({'success': False, 'error': str(e), 'stage': e.stage}), 409
    except Exception as e:
        logger.error("%s job failed", name, exc_info=True)
        return jsonify({
            'success': False,
            'error': str(e),
            'timestamp': datetime.now().isoformat(),
        }), 200


@bp.route('/fetch-posts', methods=['GET'])
def fetch_posts():
    """Ingest + detection cycle (every few minutes)."""
    return _run(run_fetch_job, 'fetch')


@bp.route('/fetch-posts', methods=['POST'])
def seed_benchmarks():
    """One-time setup: seed the default benchmark table."""
    try:
        return jsonify(run_seed_job()), 200
    except StageLockedError as e:
        return jsonify({'success': False, 'error': str(e)}), 409
    except Exception as e:
        logger.error("Failed to seed benchmarks", exc_info=True)
        return jsonify({'success': False, 'error': str(e)}), 500


@bp.route('/recalculate-benchmarks', methods=['GET'])
def recalculate():
    """Benchmark recomputation (daily)."""
    return _run(run_benchmark_job, 'benchmarks')


@bp.route('/send-digests', methods=['GET'])
def send_digests():
    """Digest batching (every few hours)."""
    return _run(run_digest_job, 'digests')
