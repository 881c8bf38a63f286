"""Tests for structured logging configuration."""
import json
import logging
import os
import sys
from unittest.mock import patch

import pytest

from pulse.logging_config import NO_STAGE, JSONFormatter, configure_logging, current_stage, log_stage


@pytest.fixture(autouse=True)
def _reset_root_logger():
    """Reset root logger state after each test."""
    root = logging.getLogger()
    original_level = root.level
    original_handlers = root.handlers[:]
    yield
    root.setLevel(original_level)
    root.handlers = original_handlers


class TestConfigureLogging:
    """Tests for configure_logging()."""

    def test_default_level_is_info(self):
        with patch.dict(os.environ, {}, clear=False):
            os.environ.pop('LOG_LEVEL', None)
            configure_logging()
        assert logging.getLogger().level == logging.INFO

    def test_log_level_case_insensitive(self):
        with patch.dict(os.environ, {'LOG_LEVEL': 'debug'}):
            configure_logging()
        assert logging.getLogger().level == logging.DEBUG

    def test_invalid_log_level_defaults_to_info(self):
        with patch.dict(os.environ, {'LOG_LEVEL': 'NONSENSE'}):
            configure_logging()
        assert logging.getLogger().level == logging.INFO

    def test_json_format_produces_parseable_json(self, capsys):
        with patch.dict(os.environ, {'LOG_FORMAT': 'json'}):
            configure_logging()
        logging.getLogger('services.detector').warning("no benchmarks")
        parsed = json.loads(capsys.readouterr().err.strip())
        assert parsed['level'] == 'WARNING'
        assert parsed['logger'] == 'services.detector'
        assert parsed['message'] == 'no benchmarks'
        assert parsed['stage'] == NO_STAGE

    def test_third_party_loggers_quieted_to_warning(self):
        configure_logging()
        for name in ['urllib3', 'requests', 'sqlalchemy.engine', 'werkzeug']:
            assert logging.getLogger(name).level == logging.WARNING

    def test_no_duplicate_handlers_on_repeated_calls(self):
        configure_logging()
        configure_logging()
        assert len(logging.getLogger().handlers) == 1


class TestJSONFormatter:

    def test_includes_exception(self):
        formatter = JSONFormatter()
        try:
            raise ValueError("boom")
        except ValueError:
            record = logging.LogRecord(
                name='test', level=logging.ERROR, pathname='', lineno=0,
                msg='failed %s', args=('item',), exc_info=sys.exc_info(),
            )
        parsed = json.loads(formatter.format(record))
        assert parsed['message'] == 'failed item'
        assert 'ValueError' in parsed['exception']

    def test_lifts_domain_extras(self):
        record = logging.LogRecord(
            name='services.detector', level=logging.DEBUG, pathname='', lineno=0,
            msg='alert', args=(), exc_info=None,
        )
        record.item_id = 42
        record.alert_type = 'breakthrough'
        parsed = json.loads(JSONFormatter().format(record))
        assert parsed['item_id'] == 42
        assert parsed['alert_type'] == 'breakthrough'
        assert 'digest_type' not in parsed


class TestLogStage:

    def test_json_entries_carry_stage(self, capsys):
        with patch.dict(os.environ, {'LOG_FORMAT': 'json'}):
            configure_logging()
        with log_stage('digests'):
            logging.getLogger('services.digests').info("sending")
        logging.getLogger('services.digests').info("idle")

        lines = [json.loads(line) for line in capsys.readouterr().err.strip().splitlines()]
        assert [entry['stage'] for entry in lines] == ['digests', NO_STAGE]

    def test_text_format_shows_stage(self, capsys):
        with patch.dict(os.environ, {'LOG_FORMAT': 'text'}):
            configure_logging()
        with log_stage('fetch'):
            logging.getLogger('services.ingest').warning("No stories fetched from upstream")
        assert 'services.ingest [fetch] No stories fetched from upstream' in capsys.readouterr().err

    def test_nested_stage_restored(self):
        with log_stage('benchmarks'):
            with log_stage('fetch'):
                assert current_stage() == 'fetch'
            assert current_stage() == 'benchmarks'
        assert current_stage() == NO_STAGE

    def test_stage_reset_on_error(self):
        with pytest.raises(RuntimeError):
            with log_stage('fetch'):
                raise RuntimeError('boom')
        assert current_stage() == NO_STAGE
