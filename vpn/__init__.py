"""Proxy link helpers.

Usage:
    from vpn import set_remark

    link = set_remark("vless://uuid@host:443?type=tcp#old", "Frankfurt")
"""

from .links import get_remark, parse_vless_uri, set_remark

__all__ = [
    "get_remark",
    "parse_vless_uri",
    "set_remark",
]
