#!/usr/bin/env python3
"""
Run pipeline stages from the command line, without the HTTP cron surface.

Usage:
    python scripts/run_cron.py fetch        # ingest + detect
    python scripts/run_cron.py benchmarks   # recompute growth benchmarks
    python scripts/run_cron.py digests      # send one digest batch
    python scripts/run_cron.py init         # create tables (SQLite dev) + seed benchmarks
    python scripts/run_cron.py all          # fetch, then digests

Requires: Redis running, DATABASE_URL set (or defaults to sqlite:///local.db).
"""
import sys
import os
import json
import argparse

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pulse import load_models
from pulse.database import Base, engine
from pulse.jobs import run_benchmark_job, run_digest_job, run_fetch_job, run_seed_job
from pulse.logging_config import configure_logging
from pulse.services.locks import StageLockedError


def init():
    # Ensure tables exist (for SQLite local dev)
    Base.metadata.create_all(engine)
    return run_seed_job()


STAGES = {
    'fetch': [run_fetch_job],
    'benchmarks': [run_benchmark_job],
    'digests': [run_digest_job],
    'init': [init],
    'all': [run_fetch_job, run_digest_job],
}


def main():
    parser = argparse.ArgumentParser(description='Run breakout pipeline stages')
    parser.add_argument('stage', choices=sorted(STAGES), help='Stage to run')
    args = parser.parse_args()

    configure_logging()
    load_models()

    from pulse.extensions import redis_client
    from pulse.services.circuit_breaker import init_breakers
    init_breakers(redis_client)

    exit_code = 0
    for job in STAGES[args.stage]:
        try:
            result = job()
        except StageLockedError as e:
            print(f'Skipped: {e}')
            exit_code = 2
            continue
        print(json.dumps(result, indent=2, default=str))
    return exit_code


if __name__ == '__main__':
    sys.exit(main())
