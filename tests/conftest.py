"""Shared test fixtures."""
from datetime import datetime, timedelta

import pytest
from unittest.mock import patch
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from pulse.database import Base

# Modules that bind get_session at import time
SESSION_USERS = [
    'pulse.database.get_session',
    'pulse.services.alerts.get_session',
    'pulse.services.benchmarks.get_session',
    'pulse.services.detector.get_session',
    'pulse.services.digests.get_session',
    'pulse.services.ingest.get_session',
    'pulse.routes.dashboard.get_session',
]

NOW = datetime(2026, 3, 10, 12, 0, 0)


class FakeRedis:
    """Minimal in-memory Redis fake: strings with SET NX, hashes, pipelines."""

    def __init__(self):
        self.get_store = {}
        self.hash_store = {}
        self.expiry = {}

    def get(self, key):
        return self.get_store.get(key)

    def set(self, key, value, nx=False, ex=None):
        if nx and key in self.get_store:
            return None
        self.get_store[key] = str(value)
        if ex is not None:
            self.expiry[key] = ex
        return True

    def incr(self, key):
        val = int(self.get_store.get(key, 0)) + 1
        self.get_store[key] = str(val)
        return val

    def delete(self, *keys):
        for k in keys:
            self.get_store.pop(k, None)
            self.hash_store.pop(k, None)

    def hset(self, key, field, value):
        self.hash_store.setdefault(key, {})[field] = value

    def hincrby(self, key, field, amount):
        h = self.hash_store.setdefault(key, {})
        h[field] = str(int(h.get(field, 0)) + amount)

    def hgetall(self, key):
        return dict(self.hash_store.get(key, {}))

    def pipeline(self):
        return FakePipeline(self)


class FakePipeline:
    """Fake Redis pipeline that replays queued commands on execute()."""

    def __init__(self, redis):
        self._redis = redis
        self._ops = []

    def set(self, key, value):
        self._ops.append(lambda: self._redis.set(key, value))
        return self

    def delete(self, *keys):
        self._ops.append(lambda: self._redis.delete(*keys))
        return self

    def hincrby(self, key, field, amount):
        self._ops.append(lambda: self._redis.hincrby(key, field, amount))
        return self

    def hset(self, key, field, value):
        self._ops.append(lambda: self._redis.hset(key, field, value))
        return self

    def execute(self):
        for op in self._ops:
            op()
        self._ops = []


@pytest.fixture
def db_engine():
    """In-memory SQLite engine with schema created."""
    engine = create_engine('sqlite:///:memory:')
    import pulse.models.item
    import pulse.models.snapshot
    import pulse.models.alert
    import pulse.models.benchmark
    import pulse.models.digest
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    """SQLAlchemy session bound to in-memory SQLite. Rolls back after each test."""
    Session = sessionmaker(bind=db_engine)
    session = Session()
    yield session
    session.rollback()
    session.close()


@pytest.fixture(autouse=True)
def patch_get_session(db_session):
    """Route all get_session() calls to the test session.

    We disable close() so that services calling session.close() in their
    finally blocks don't invalidate the shared test session. Setup data must
    be committed before calling code that may roll back.
    """
    _real_close = db_session.close
    db_session.close = lambda: None
    patchers = [patch(target, return_value=db_session) for target in SESSION_USERS]
    for p in patchers:
        p.start()
    yield db_session
    for p in reversed(patchers):
        p.stop()
    db_session.close = _real_close


@pytest.fixture
def fake_redis():
    """In-memory Redis standing in for pulse.extensions.redis_client."""
    fake = FakeRedis()
    with patch('pulse.extensions.redis_client', fake):
        yield fake


@pytest.fixture
def app(fake_redis):
    """Flask test app."""
    from pulse import create_app
    app = create_app()
    app.config['TESTING'] = True
    yield app


@pytest.fixture
def client(app):
    """Flask test client."""
    with app.test_client() as c:
        yield c


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_item(db_session):
    """Factory fixture — inserts an Item first seen `age_minutes` before NOW."""
    from pulse.models.item import Item

    def _make(item_id, age_minutes=10, **overrides):
        defaults = dict(
            id=item_id,
            title=f'Story {item_id}',
            url=f'https://example.com/{item_id}',
            author='pg',
            item_type='story',
            first_seen_at=NOW - timedelta(minutes=age_minutes),
            last_updated_at=NOW,
            is_dead=False,
            is_deleted=False,
        )
        defaults.update(overrides)
        item = Item(**defaults)
        db_session.add(item)
        db_session.flush()
        return item
    return _make


@pytest.fixture
def make_snapshot(db_session):
    """Factory fixture — inserts a Snapshot captured `minutes_ago` before NOW."""
    from pulse.models.snapshot import Snapshot

    def _make(item_id, score, comments=0, minutes_ago=0, age=10):
        snap = Snapshot(
            item_id=item_id,
            score=score,
            comment_count=comments,
            captured_at=NOW - timedelta(minutes=minutes_ago),
            minutes_since_creation=age,
        )
        db_session.add(snap)
        db_session.flush()
        return snap
    return _make


@pytest.fixture
def make_alert(db_session):
    """Factory fixture — inserts an Alert detected `minutes_ago` before NOW."""
    from pulse.models.alert import Alert

    def _make(item_id, alert_type='score_velocity', percentile=96.0,
              minutes_ago=5, is_sent=False, **overrides):
        defaults = dict(
            item_id=item_id,
            alert_type=alert_type,
            percentile=percentile,
            growth_rate=4.0,
            score_at_alert=25,
            comments_at_alert=3,
            item_age_minutes=15,
            detected_at=NOW - timedelta(minutes=minutes_ago),
            is_sent=is_sent,
        )
        defaults.update(overrides)
        alert = Alert(**defaults)
        db_session.add(alert)
        db_session.flush()
        return alert
    return _make


@pytest.fixture
def seeded_benchmarks(db_session):
    """Default benchmark table committed to the test database."""
    from pulse.models.benchmark import GrowthBenchmark
    from pulse.services.benchmarks import DEFAULT_BENCHMARKS

    for default in DEFAULT_BENCHMARKS:
        db_session.add(GrowthBenchmark(calculated_at=NOW, **default))
    db_session.commit()
