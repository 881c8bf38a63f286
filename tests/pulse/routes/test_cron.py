"""Tests for /api/cron/* trigger endpoints."""
from unittest.mock import patch

import pytest

from pulse.services.locks import StageLockedError

AUTH = {'Authorization': 'Bearer s3cret'}


@pytest.fixture(autouse=True)
def cron_secret():
    with patch('pulse.config.CRON_SECRET', 's3cret'):
        yield


class TestCronAuth:

    def test_missing_header_401(self, client):
        resp = client.get('/api/cron/fetch-posts')
        assert resp.status_code == 401

    def test_wrong_secret_401(self, client):
        resp = client.get('/api/cron/send-digests', headers={'Authorization': 'Bearer nope'})
        assert resp.status_code == 401

    def test_unset_secret_500(self, client):
        with patch('pulse.config.CRON_SECRET', None):
            resp = client.get('/api/cron/fetch-posts', headers=AUTH)
        assert resp.status_code == 500


class TestCronEndpoints:

    @patch('pulse.routes.cron.run_fetch_job')
    def test_fetch_posts(self, mock_job, client):
        mock_job.return_value = {'success': True, 'stats': {'alerts_generated': 1}}
        resp = client.get('/api/cron/fetch-posts', headers=AUTH)
        assert resp.status_code == 200
        assert resp.get_json()['stats']['alerts_generated'] == 1

    @patch('pulse.routes.cron.run_seed_job', return_value={'success': True, 'benchmarks_seeded': 6})
    def test_post_seeds_benchmarks(self, mock_job, client):
        resp = client.post('/api/cron/fetch-posts', headers=AUTH)
        assert resp.status_code == 200
        assert resp.get_json()['benchmarks_seeded'] == 6

    @patch('pulse.routes.cron.run_benchmark_job', return_value={'success': True, 'benchmarks_updated': 6})
    def test_recalculate(self, mock_job, client):
        resp = client.get('/api/cron/recalculate-benchmarks', headers=AUTH)
        assert resp.get_json()['benchmarks_updated'] == 6

    @patch('pulse.routes.cron.run_digest_job', side_effect=StageLockedError('digests'))
    def test_overlap_409(self, mock_job, client):
        resp = client.get('/api/cron/send-digests', headers=AUTH)
        assert resp.status_code == 409
        assert resp.get_json()['stage'] == 'digests'

    @patch('pulse.routes.cron.run_fetch_job', side_effect=RuntimeError('db gone'))
    def test_failure_reports_200_with_error(self, mock_job, client):
        resp = client.get('/api/cron/fetch-posts', headers=AUTH)
        assert resp.status_code == 200
        data = resp.get_json()
        assert data['success'] is False
        assert data['error'] == 'db gone'

    def test_end_to_end_digest_with_no_alerts(self, client):
        resp = client.get('/api/cron/send-digests', headers=AUTH)
        assert resp.status_code == 200
        data = resp.get_json()
        assert data['success'] is True
        assert data['digest']['reason'] == 'no_unsent_alerts'
