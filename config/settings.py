"""Process-level configuration loader for the subscription server."""

import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

VERSION = "2.1.0"

# SQLite database with the settings table and subscriber data
DATABASE_PATH = os.getenv('SUBSERVE_DB_PATH', '')

# Logging level for run_subscription.py
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()

# Seconds uvicorn may spend draining in-flight requests on stop()
SHUTDOWN_TIMEOUT = int(os.getenv('SUBSERVE_SHUTDOWN_TIMEOUT', 5))

# Seconds start() waits for the serving thread to report readiness
STARTUP_TIMEOUT = int(os.getenv('SUBSERVE_STARTUP_TIMEOUT', 10))
