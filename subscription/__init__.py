"""Subscription server package: link and JSON delivery over HTTP/HTTPS."""

from subscription.app import create_app
from subscription.config import ServerConfig
from subscription.errors import ServerError, ShutdownError
from subscription.server import Server

__all__ = [
    "create_app",
    "ServerConfig",
    "Server",
    "ServerError",
    "ShutdownError",
]
