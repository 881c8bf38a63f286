"""
Structured logging for the pipeline stages.

Called once from create_app() and from scripts/run_cron.py. Every record is
tagged with the pipeline stage it was emitted under (fetch, benchmarks,
digests) via log_stage(), so one cron invocation can be followed through
ingest, detection and delivery. Records may also carry item_id / alert_type /
digest_type through `extra=`; the JSON formatter lifts those into the entry.

LOG_FORMAT selects text (default) or json. LOG_LEVEL defaults to INFO.
"""
import contextvars
import json
import logging
import os
import sys
from contextlib import contextmanager
from datetime import datetime, timezone

NO_STAGE = '-'

_current_stage = contextvars.ContextVar('pulse_stage', default=NO_STAGE)

# Domain fields callers attach with extra={...}
CONTEXT_FIELDS = ('item_id', 'alert_type', 'digest_type')


def current_stage():
    return _current_stage.get()


@contextmanager
def log_stage(stage):
    """Tag every record emitted inside the block with `stage`."""
    token = _current_stage.set(stage)
    try:
        yield
    finally:
        _current_stage.reset(token)


class StageFilter(logging.Filter):
    """Stamps record.stage from the active log_stage() block."""

    def filter(self, record):
        if not hasattr(record, 'stage'):
            record.stage = current_stage()
        return True


class JSONFormatter(logging.Formatter):
    """Single-line JSON log formatter for production log aggregators."""

    def format(self, record):
        entry = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'stage': getattr(record, 'stage', None) or current_stage(),
            'message': record.getMessage(),
        }
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                entry[field] = value
        if record.exc_info and record.exc_info[0] is not None:
            entry['exception'] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


TEXT_FORMAT = '[%(asctime)s] %(levelname)s %(name)s [%(stage)s] %(message)s'

# HTTP and SQL chatter from the upstream client, the store and the dev server
_NOISY_LOGGERS = [
    'urllib3',
    'requests',
    'sqlalchemy.engine',
    'werkzeug',
]


def configure_logging(app=None):
    """
    Install one stderr handler on the root logger, stage-aware in both formats.

    Environment variables:
        LOG_LEVEL  — Python log level name (default: INFO)
        LOG_FORMAT — "text" (default) or "json"
    """
    level_name = os.getenv('LOG_LEVEL', 'INFO').upper()
    level = getattr(logging, level_name, logging.INFO)

    log_format = os.getenv('LOG_FORMAT', 'text').lower()

    root = logging.getLogger()
    root.setLevel(level)

    # Re-init (tests, create_app after run_cron) replaces rather than stacks
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.addFilter(StageFilter())

    if log_format == 'json':
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))

    root.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    if app is not None:
        app.logger.debug("Logging configured (%s, %s)", log_format, logging.getLevelName(level))
