"""Database package for the subscription server."""

from .models import (
    Base,
    Setting,
    Client,
    Link,
)
from .connection import (
    init_db,
    get_db,
    get_db_session,
    get_session_factory,
    init_test_db,
)

__all__ = [
    # Models
    "Base",
    "Setting",
    "Client",
    "Link",
    # Connection
    "init_db",
    "get_db",
    "get_db_session",
    "get_session_factory",
    "init_test_db",
]
