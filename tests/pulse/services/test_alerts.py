"""Tests for pulse.services.alerts — insert-or-ignore, unsent selection, mark-sent."""
from datetime import timedelta

from pulse.models.alert import Alert
from pulse.services.alerts import (
    create_alert, get_recent_alerts, get_unsent_alerts, mark_alerts_as_sent,
)
from pulse.services.detector import AlertCandidate
from tests.conftest import NOW


def _candidate(item_id=1, alert_type='score_velocity', percentile=95.8123, rate=4.0444):
    return AlertCandidate(item_id=item_id, alert_type=alert_type, percentile=percentile,
                          growth_rate=rate, score=25, comments=1, item_age_minutes=15)


class TestCreateAlert:

    def test_first_detection_wins(self, db_session, make_item):
        make_item(1)
        db_session.commit()

        assert create_alert(db_session, _candidate(), detected_at=NOW) is True
        assert create_alert(db_session, _candidate(percentile=99.9), detected_at=NOW) is False
        db_session.commit()

        alert = db_session.query(Alert).one()
        assert alert.percentile == 95.81
        assert alert.growth_rate == 4.04

    def test_distinct_types_coexist(self, db_session, make_item):
        make_item(1)
        db_session.commit()
        create_alert(db_session, _candidate(alert_type='score_velocity'), detected_at=NOW)
        create_alert(db_session, _candidate(alert_type='breakthrough'), detected_at=NOW)
        db_session.commit()
        assert db_session.query(Alert).count() == 2


class TestGetUnsentAlerts:

    def test_ordered_by_percentile_then_recency(self, db_session, make_item, make_alert):
        for i in (1, 2, 3):
            make_item(i)
        make_alert(1, percentile=96.0, minutes_ago=30)
        make_alert(2, percentile=99.5, minutes_ago=60)
        make_alert(3, percentile=96.0, minutes_ago=10)
        db_session.commit()

        alerts = get_unsent_alerts(now=NOW)
        assert [a['item_id'] for a in alerts] == [2, 3, 1]
        assert alerts[0]['title'] == 'Story 2'
        assert alerts[0]['detected_at'] == (NOW - timedelta(minutes=60)).isoformat()

    def test_window_and_limit(self, db_session, make_item, make_alert):
        for i in (1, 2, 3):
            make_item(i)
        make_alert(1, minutes_ago=5 * 60)       # outside the 4h window
        make_alert(2, percentile=97.0)
        make_alert(3, percentile=98.0)
        db_session.commit()

        assert [a['item_id'] for a in get_unsent_alerts(now=NOW)] == [3, 2]
        assert [a['item_id'] for a in get_unsent_alerts(now=NOW, limit=1)] == [3]

    def test_item_with_any_sent_alert_excluded(self, db_session, make_item, make_alert):
        make_item(1)
        make_item(2)
        make_alert(1, alert_type='breakthrough', is_sent=True)
        make_alert(1, alert_type='comment_velocity', percentile=99.9)
        make_alert(2)
        db_session.commit()

        assert [a['item_id'] for a in get_unsent_alerts(now=NOW)] == [2]


class TestMarkAlertsAsSent:

    def test_marks_every_alert_of_the_item(self, db_session, make_item, make_alert):
        make_item(1)
        make_item(2)
        first = make_alert(1, alert_type='score_velocity')
        make_alert(1, alert_type='breakthrough')
        other = make_alert(2)
        db_session.commit()

        updated = mark_alerts_as_sent([first.id])
        db_session.expire_all()

        assert updated == 2
        sent = {(a.item_id, a.alert_type) for a in db_session.query(Alert).filter_by(is_sent=True)}
        assert sent == {(1, 'score_velocity'), (1, 'breakthrough')}
        assert db_session.get(Alert, other.id).is_sent is False

    def test_empty_list_is_noop(self):
        assert mark_alerts_as_sent([]) == 0


class TestGetRecentAlerts:

    def test_hours_window_includes_sent(self, db_session, make_item, make_alert):
        make_item(1)
        make_item(2)
        make_alert(1, is_sent=True, minutes_ago=60)
        make_alert(2, minutes_ago=30 * 60)
        db_session.commit()

        recent = get_recent_alerts(hours=24, now=NOW)
        assert [a['item_id'] for a in recent] == [1]
        assert recent[0]['is_sent'] is True
        assert len(get_recent_alerts(hours=48, now=NOW)) == 2
