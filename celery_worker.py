#!/usr/bin/env python3
"""
Celery worker script for background payment reconciliation.
Run with ``beat`` as the first argument to start the periodic sweep scheduler.
"""

import sys
from dotenv import load_dotenv

load_dotenv()

if __name__ == "__main__":
    from core.celery import celery_app
    from core.logging_config import configure_logging

    configure_logging()

    if len(sys.argv) > 1 and sys.argv[1] == "beat":
        celery_app.start(["beat", "--loglevel=info"])
    else:
        celery_app.start([
            "worker",
            "--loglevel=info",
            "--concurrency=4",
            "--without-gossip",
            "--without-mingle",
            "--without-heartbeat",
        ])
