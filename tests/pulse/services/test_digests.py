"""Tests for pulse.services.digests — quota, classification, at-most-once delivery."""
from datetime import timedelta
from unittest.mock import MagicMock

from pulse.models.alert import Alert
from pulse.models.digest import Digest
from pulse.services.digests import classify_digest, count_digests_today, run_digest_batch
from tests.conftest import NOW


def _add_digests(db_session, count, sent_at):
    for _ in range(count):
        db_session.add(Digest(sent_at=sent_at, alert_ids=[], alert_count=0,
                              digest_type='hourly', status='sent'))
    db_session.commit()


class TestClassifyDigest:

    def test_urgent_at_99(self):
        assert classify_digest([{'percentile': 96.0}, {'percentile': 99.0}]) == 'urgent'

    def test_hourly_below_99(self):
        assert classify_digest([{'percentile': 98.99}]) == 'hourly'


class TestCountDigestsToday:

    def test_counts_from_local_midnight(self, db_session):
        _add_digests(db_session, 2, NOW - timedelta(hours=1))
        _add_digests(db_session, 3, NOW.replace(hour=0) - timedelta(minutes=1))
        assert count_digests_today(db_session, NOW) == 2


class TestRunDigestBatch:

    def test_quota_reached_skips_without_side_effects(self, db_session, make_item, make_alert):
        make_item(1)
        make_alert(1)
        db_session.commit()
        _add_digests(db_session, 5, NOW - timedelta(hours=2))
        deliver = MagicMock()

        result = run_digest_batch(deliver=deliver, now=NOW, max_per_day=5)

        assert result.skipped
        assert result.reason == 'quota_reached'
        assert result.quota_sent == 5
        deliver.assert_not_called()
        assert db_session.query(Alert).filter_by(is_sent=True).count() == 0

    def test_yesterdays_digests_do_not_count(self, db_session, make_item, make_alert):
        make_item(1)
        make_alert(1)
        db_session.commit()
        _add_digests(db_session, 5, NOW - timedelta(days=1))

        result = run_digest_batch(deliver=MagicMock(return_value='sent'), now=NOW, max_per_day=5)
        assert result.status == 'completed'

    def test_no_unsent_alerts(self, db_session):
        deliver = MagicMock()
        result = run_digest_batch(deliver=deliver, now=NOW)
        assert result.reason == 'no_unsent_alerts'
        deliver.assert_not_called()
        assert db_session.query(Digest).count() == 0

    def test_successful_batch(self, db_session, make_item, make_alert):
        make_item(1)
        make_item(2)
        a1 = make_alert(1, percentile=97.0)
        make_alert(1, alert_type='breakthrough', percentile=96.0)
        a2 = make_alert(2, percentile=99.2)
        db_session.commit()
        deliver = MagicMock(return_value='sent')

        result = run_digest_batch(deliver=deliver, now=NOW, batch_size=2)

        assert result.status == 'completed'
        assert result.digest_type == 'urgent'
        assert result.alert_ids == [a2.id, a1.id]
        assert result.delivery_status == 'sent'
        assert result.quota_sent == 1

        alerts, digest_type = deliver.call_args[0]
        assert digest_type == 'urgent'
        assert [a['item_id'] for a in alerts] == [2, 1]

        digest = db_session.query(Digest).one()
        assert digest.alert_ids == [a2.id, a1.id]
        assert digest.alert_count == 2
        assert digest.status == 'sent'
        # breakthrough alert of item 1 was not in the batch but is marked too
        assert db_session.query(Alert).filter_by(is_sent=False).count() == 0

    def test_failed_delivery_still_marks_sent(self, db_session, make_item, make_alert):
        make_item(1)
        make_alert(1)
        db_session.commit()

        result = run_digest_batch(deliver=MagicMock(return_value='failed'), now=NOW)

        assert result.delivery_status == 'failed'
        assert db_session.query(Digest).one().status == 'failed'
        assert db_session.query(Alert).one().is_sent is True

        again = run_digest_batch(deliver=MagicMock(return_value='sent'), now=NOW)
        assert again.reason == 'no_unsent_alerts'

    def test_raising_delivery_records_error(self, db_session, make_item, make_alert):
        make_item(1)
        make_alert(1)
        db_session.commit()

        result = run_digest_batch(deliver=MagicMock(side_effect=RuntimeError('slack down')), now=NOW)

        assert result.delivery_status == 'failed'
        digest = db_session.query(Digest).one()
        assert digest.status == 'failed'
        assert digest.error_message == 'slack down'
        assert db_session.query(Alert).one().is_sent is True

    def test_to_dict(self, db_session):
        out = run_digest_batch(deliver=MagicMock(), now=NOW, max_per_day=3).to_dict()
        assert out['skipped'] is True
        assert out['quota'] == {'sent': 0, 'max': 3}
