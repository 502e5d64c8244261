#!/usr/bin/env python3
"""
Celery worker script for the storefront checkout service.
Runs the email queue and, with --beat, the reconciliation sweeps.
"""

import sys

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

if __name__ == "__main__":
    from core.celery import celery_app
    from core.logging import configure_logging

    configure_logging()

    argv = [
        "worker",
        "--loglevel=info",
        "--concurrency=4",
        "--without-gossip",
        "--without-mingle",
        "--without-heartbeat",
    ]
    if "--beat" in sys.argv[1:]:
        argv.append("--beat")
    celery_app.start(argv)
