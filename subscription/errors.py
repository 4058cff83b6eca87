"""Exceptions raised by the subscription server lifecycle."""

from typing import List


class ServerError(Exception):
    """Base exception for subscription server lifecycle errors."""
    pass


class ShutdownError(ServerError):
    """One or more steps of stop() failed; every step was still attempted."""

    def __init__(self, errors: List[BaseException]):
        self.errors = list(errors)
        super().__init__("; ".join(f"{type(e).__name__}: {e}" for e in self.errors))
