"""Helpers for reading and rewriting stored proxy links."""

import base64
import binascii
import json
from urllib.parse import parse_qs, quote, unquote, urlparse

VMESS_PREFIX = "vmess://"


def _decode_vmess(link: str) -> dict:
    payload = link[len(VMESS_PREFIX):]
    payload += "=" * (-len(payload) % 4)
    try:
        data = json.loads(base64.b64decode(payload).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError) as e:
        raise ValueError(f"Invalid vmess link: {e}") from e
    if not isinstance(data, dict):
        raise ValueError("Invalid vmess link: payload is not an object")
    return data


def get_remark(link: str) -> str:
    """Return the display name of a link ("" if it has none)."""
    if link.startswith(VMESS_PREFIX):
        try:
            return str(_decode_vmess(link).get("ps", ""))
        except ValueError:
            return ""
    if "#" in link:
        return unquote(link.split("#", 1)[1])
    return ""


def set_remark(link: str, remark: str) -> str:
    """Replace the display name of a link.

    vmess links carry the name in the "ps" field of their base64 payload;
    every other scheme uses the URI fragment.
    """
    if link.startswith(VMESS_PREFIX):
        try:
            data = _decode_vmess(link)
        except ValueError:
            return link
        data["ps"] = remark
        encoded = base64.b64encode(
            json.dumps(data, ensure_ascii=False).encode("utf-8")
        ).decode("ascii")
        return f"{VMESS_PREFIX}{encoded}"

    base_uri = link.split("#", 1)[0]
    return f"{base_uri}#{quote(remark, safe='')}"


def parse_vless_uri(uri: str) -> dict:
    """Parse a VLESS URI into its components.

    Args:
        uri: VLESS URI string

    Returns:
        Dictionary with parsed components:
        - uuid: Client UUID
        - host: Server hostname
        - port: Server port
        - params: Query parameters dict
        - remark: Fragment (display name)

    Raises:
        ValueError: If URI format is invalid
    """
    if not uri.startswith("vless://"):
        raise ValueError("URI must start with 'vless://'")

    # urlparse doesn't handle vless:// well, so we replace it temporarily
    parsed = urlparse(uri.replace("vless://", "https://", 1))

    uuid = parsed.username
    if not uuid:
        raise ValueError("UUID not found in URI")

    host = parsed.hostname
    port = parsed.port or 443

    if not host:
        raise ValueError("Host not found in URI")

    params = {}
    if parsed.query:
        for key, values in parse_qs(parsed.query).items():
            params[key] = values[0] if values else ""

    remark = unquote(parsed.fragment) if parsed.fragment else ""

    return {
        "uuid": unquote(uuid),
        "host": host,
        "port": port,
        "params": params,
        "remark": remark,
    }
