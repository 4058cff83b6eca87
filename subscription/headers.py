"""Subscription response headers: usage, update interval, title, custom."""

import base64
import json
import logging
import re
from dataclasses import dataclass
from typing import List, MutableMapping

logger = logging.getLogger(__name__)

USERINFO_HEADER = "Subscription-Userinfo"
UPDATE_INTERVAL_HEADER = "Profile-Update-Interval"
TITLE_HEADER = "Profile-Title"

_TOKEN_RE = re.compile(r"^[!#$%&'*+\-.^_`|~0-9A-Za-z]+$")


@dataclass(frozen=True)
class CustomHeader:
    name: str
    value: str


def encode_title(title: str) -> str:
    """Encode profile title in base64: format for v2ray clients."""
    encoded = base64.b64encode(title.encode("utf-8")).decode("utf-8")
    return f"base64:{encoded}"


def _is_sendable(name: str, value: str) -> bool:
    if name and not _TOKEN_RE.match(name):
        return False
    if "\r" in value or "\n" in value:
        return False
    try:
        value.encode("latin-1")
    except UnicodeEncodeError:
        return False
    return True


def parse_custom_headers(raw: str) -> List[CustomHeader]:
    """Parse a JSON list of {"name": ..., "value": ...} objects.

    Any malformed entry invalidates the whole list, so the result is either
    every header or none of them. Entries with an empty name are kept here
    and skipped when applied.
    """
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except ValueError as e:
        logger.debug(f"Ignoring custom headers, invalid JSON: {e}")
        return []
    if not isinstance(data, list):
        logger.debug("Ignoring custom headers, expected a list")
        return []

    headers = []
    for item in data:
        if not isinstance(item, dict):
            logger.debug("Ignoring custom headers, entry is not an object")
            return []
        name = item.get("name", "")
        value = item.get("value", "")
        if not isinstance(name, str) or not isinstance(value, str) or not _is_sendable(name, value):
            logger.debug(f"Ignoring custom headers, bad entry {item!r}")
            return []
        headers.append(CustomHeader(name=name, value=value))
    return headers


def apply_common_headers(
    headers: MutableMapping[str, str],
    userinfo: str,
    update_interval: str,
    profile_title: str,
    custom_headers: List[CustomHeader],
) -> None:
    """Set the headers shared by link and json delivery.

    Custom headers go last and overwrite anything with the same name.
    """
    headers[USERINFO_HEADER] = userinfo
    headers[UPDATE_INTERVAL_HEADER] = update_interval

    if profile_title:
        headers[TITLE_HEADER] = encode_title(profile_title)

    for header in custom_headers:
        if header.name:
            headers[header.name] = header.value
