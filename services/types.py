"""Data types shared between the data services and the HTTP layer."""

from dataclasses import dataclass, field
from typing import List, Protocol, Tuple


@dataclass(frozen=True)
class Traffic:
    """Traffic counters of a subscriber.

    up, down and total are bytes (total == 0 means unlimited);
    expiry_time is unix milliseconds.
    """

    up: int = 0
    down: int = 0
    total: int = 0
    expiry_time: int = 0

    @property
    def used(self) -> int:
        return self.up + self.down

    @property
    def expire_seconds(self) -> int:
        # truncates toward zero for delayed-start (negative) expiry
        return int(self.expiry_time / 1000)

    def usage_header(self) -> str:
        """Value for the Subscription-Userinfo header (expire in seconds)."""
        return (
            f"upload={self.up}; download={self.down}; "
            f"total={self.total}; expire={self.expire_seconds}"
        )


@dataclass
class SubscriptionPayload:
    """Links of one subscriber in emission order plus usage metadata."""

    links: List[str] = field(default_factory=list)
    last_online: int = 0
    traffic: Traffic = field(default_factory=Traffic)


class SubProvider(Protocol):
    """Produces the link list of a subscriber."""

    def get_subs(self, sub_id: str, host: str) -> SubscriptionPayload:
        ...


class JsonSubProvider(Protocol):
    """Produces the JSON configuration of a subscriber and its usage header."""

    def get_json(self, sub_id: str, host: str) -> Tuple[str, str]:
        ...
