"""Standalone entry point for the subscription server.

Reads its runtime settings from the database settings table; set
subEnable=true there to serve.

Usage:
    python run_subscription.py
"""

import logging
import signal
import sys
import threading

from config.settings import LOG_LEVEL
from database import init_db
from services import SettingService
from subscription import Server, ShutdownError


def setup_logging():
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
        ]
    )


def main():
    setup_logging()
    logger = logging.getLogger(__name__)

    logger.info("Initializing database...")
    init_db()

    server = Server(SettingService())
    try:
        server.start()
    except Exception as e:
        logger.error(f"Failed to start subscription server: {e}", exc_info=True)
        sys.exit(1)

    if server.listener is None:
        logger.warning("Subscription server is disabled (subEnable=false), exiting")
        return

    stop_requested = threading.Event()
    signal.signal(signal.SIGINT, lambda *_: stop_requested.set())
    signal.signal(signal.SIGTERM, lambda *_: stop_requested.set())
    stop_requested.wait()

    logger.info("Stopping subscription server...")
    try:
        server.stop()
    except ShutdownError as e:
        logger.error(f"Error during shutdown: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
