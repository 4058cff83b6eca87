"""Link-list data service backed by the clients/links tables."""

import logging
import time
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from database import Client, Link, get_session_factory
from vpn.links import get_remark, set_remark

from .errors import SubscriptionNotFound
from .types import SubscriptionPayload, Traffic

logger = logging.getLogger(__name__)

HOST_PLACEHOLDER = "{host}"

_TRAFFIC_UNITS = ["KB", "MB", "GB", "TB"]


def format_traffic(traffic_bytes: int) -> str:
    """Format a byte count like 1.50MB (two decimals, 1024 steps)."""
    if traffic_bytes < 1024:
        return f"{float(traffic_bytes):.2f}B"
    size = float(traffic_bytes)
    for unit in _TRAFFIC_UNITS:
        size /= 1024
        if size < 1024:
            return f"{size:.2f}{unit}"
    return f"{size / 1024:.2f}PB"


def _format_duration(seconds: int) -> str:
    days = seconds // 86400
    hours = (seconds % 86400) // 3600
    minutes = (seconds % 3600) // 60
    if days > 0:
        if hours > 0:
            return f"{days}D,{hours}H⏳"
        return f"{days}D⏳"
    if hours > 0:
        return f"{hours}H⏳"
    return f"{minutes}M⏳"


class SubService:
    """Serves the stored links of a subscriber.

    Links are returned in their stored order with the display remark
    rebuilt from the remark model: the first character is the separator,
    the rest orders the parts (i = inbound remark, e = client email,
    o = link extra). With show_info, remaining volume and time are appended.
    """

    def __init__(
        self,
        show_info: bool,
        remark_model: str,
        session_factory: Optional[Callable[[], Session]] = None,
    ):
        self.show_info = show_info
        self.remark_model = remark_model or "-ieo"
        self._session_factory = session_factory

    def get_subs(self, sub_id: str, host: str) -> SubscriptionPayload:
        """Return links, last online time and traffic for sub_id.

        Raises:
            SubscriptionNotFound: If no client has this sub_id
        """
        session_factory = self._session_factory or get_session_factory()
        with session_factory() as db:
            client = db.query(Client).filter(Client.sub_id == sub_id).first()
            if client is None:
                raise SubscriptionNotFound(f"Subscription not found: {sub_id}")

            traffic = Traffic(
                up=client.up or 0,
                down=client.down or 0,
                total=client.total or 0,
                expiry_time=client.expiry_time or 0,
            )

            links: List[str] = []
            if client.enable:
                active = db.query(Link).filter(
                    Link.client_id == client.id,
                    Link.is_active == True
                ).order_by(Link.position, Link.id).all()
                for link in active:
                    uri = link.uri.replace(HOST_PLACEHOLDER, host)
                    inbound_remark = link.remark or get_remark(link.uri)
                    remark = self.gen_remark(inbound_remark, client.email, link.extra, traffic)
                    links.append(set_remark(uri, remark))
            else:
                logger.info(f"Subscription disabled: sub_id={sub_id}")

            return SubscriptionPayload(
                links=links,
                last_online=client.last_online or 0,
                traffic=traffic,
            )

    def gen_remark(
        self,
        inbound_remark: str,
        email: str,
        extra: str,
        traffic: Traffic,
    ) -> str:
        separator = self.remark_model[0]
        orders = {"i": inbound_remark, "e": email, "o": extra}

        parts = []
        for char in self.remark_model[1:]:
            part = orders.get(char)
            if part:
                parts.append(part)

        if self.show_info:
            parts.extend(self._info_parts(traffic))

        return separator.join(parts)

    def _info_parts(self, traffic: Traffic) -> List[str]:
        info = []
        remaining = traffic.total - traffic.used
        if traffic.total > 0 and remaining > 0:
            info.append(f"{format_traffic(remaining)}📊")

        expire = traffic.expire_seconds
        if expire > 0:
            left = expire - int(time.time())
            if left > 0:
                info.append(_format_duration(left))
        elif expire < 0:
            # Not started yet: the value is the duration granted on first use
            info.append(_format_duration(-expire))
        return info
