"""Configuration package for the subscription server."""

from .settings import (
    VERSION,
    DATABASE_PATH,
    LOG_LEVEL,
    SHUTDOWN_TIMEOUT,
    STARTUP_TIMEOUT,
)

__all__ = [
    'VERSION',
    'DATABASE_PATH',
    'LOG_LEVEL',
    'SHUTDOWN_TIMEOUT',
    'STARTUP_TIMEOUT',
]
