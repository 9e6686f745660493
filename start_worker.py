#!/usr/bin/env python3
"""
Session Sweeper Runner

Starts the background worker that deletes expired sessions from MongoDB.

Run with:
    python start_worker.py
"""

import asyncio
import sys

from config import AppSettings
from shared.logging import get_logger, setup_logging
from workers.session_sweeper import run_sweeper

log = get_logger(__name__)


def main():
    """Main function to start the session sweeper"""
    settings = AppSettings()
    setup_logging(settings.logging.log_level, settings.logging.log_format)

    try:
        asyncio.run(run_sweeper(settings))
    except KeyboardInterrupt:
        log.info("session_sweeper_interrupted")
    except Exception as e:
        log.error("session_sweeper_crashed", error=str(e), error_type=type(e).__name__)
        sys.exit(1)


if __name__ == "__main__":
    main()
