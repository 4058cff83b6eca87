"""JSON client-configuration data service."""

import copy
import json
import logging
from typing import Any, List, Optional, Tuple

from vpn.links import parse_vless_uri

from .sub_service import SubService

logger = logging.getLogger(__name__)


DEFAULT_INBOUNDS = [
    {
        "tag": "socks",
        "port": 10808,
        "listen": "127.0.0.1",
        "protocol": "socks",
        "settings": {"udp": True, "auth": "noauth"},
        "sniffing": {"enabled": True, "destOverride": ["http", "tls"]},
    },
    {
        "tag": "http",
        "port": 10809,
        "listen": "127.0.0.1",
        "protocol": "http",
        "settings": {"allowTransparent": False},
    },
]

DEFAULT_RULES = [
    {"type": "field", "outboundTag": "direct", "ip": ["geoip:private"]},
    {"type": "field", "outboundTag": "block", "protocol": ["bittorrent"]},
]


def _load_blob(name: str, raw: str, expected: type) -> Optional[Any]:
    """Decode an optional JSON setting; invalid or mistyped blobs are dropped."""
    if not raw:
        return None
    try:
        value = json.loads(raw)
    except ValueError as e:
        logger.warning(f"Ignoring invalid {name} JSON: {e}")
        return None
    if not isinstance(value, expected):
        logger.warning(f"Ignoring {name}: expected {expected.__name__}")
        return None
    return value


def build_stream_settings(params: dict) -> dict:
    """Build xray streamSettings from vless query parameters."""
    network = params.get("type", "tcp")
    security = params.get("security", "none")
    stream = {"network": network, "security": security}

    if security == "reality":
        stream["realitySettings"] = {
            "publicKey": params.get("pbk", ""),
            "shortId": params.get("sid", ""),
            "serverName": params.get("sni", ""),
            "fingerprint": params.get("fp", "chrome"),
            "spiderX": params.get("spx", ""),
        }
    elif security == "tls":
        tls = {
            "serverName": params.get("sni", ""),
            "fingerprint": params.get("fp", "chrome"),
        }
        if params.get("alpn"):
            tls["alpn"] = params["alpn"].split(",")
        stream["tlsSettings"] = tls

    if network == "ws":
        stream["wsSettings"] = {"path": params.get("path", "/"), "host": params.get("host", "")}
    elif network == "grpc":
        stream["grpcSettings"] = {"serviceName": params.get("serviceName", "")}
    elif network in ("xhttp", "splithttp"):
        stream["xhttpSettings"] = {"path": params.get("path", "/"), "host": params.get("host", "")}
    elif network == "tcp" and params.get("headerType") == "http":
        stream["tcpSettings"] = {"header": {"type": "http"}}

    return stream


def build_vless_outbound(parsed: dict) -> dict:
    """Convert a parsed vless URI into an xray outbound tagged "proxy"."""
    params = parsed["params"]
    user = {"id": parsed["uuid"], "encryption": params.get("encryption", "none")}
    if params.get("flow"):
        user["flow"] = params["flow"]
    return {
        "tag": "proxy",
        "protocol": "vless",
        "settings": {
            "vnext": [
                {"address": parsed["host"], "port": parsed["port"], "users": [user]}
            ]
        },
        "streamSettings": build_stream_settings(params),
    }


class SubJsonService:
    """Builds xray client configs for the vless links of a subscriber.

    fragment is a full outbound object; when set the proxy dials through it.
    noises is a list placed into the direct outbound. mux is attached to
    the proxy outbound. rules are prepended to the default routing rules.
    """

    def __init__(
        self,
        fragment: str,
        noises: str,
        mux: str,
        rules: str,
        sub_service: SubService,
    ):
        self.fragment = _load_blob("fragment", fragment, dict)
        self.noises = _load_blob("noises", noises, list)
        self.mux = _load_blob("mux", mux, dict)
        self.rules = _load_blob("rules", rules, list) or []
        self.sub_service = sub_service

    def get_json(self, sub_id: str, host: str) -> Tuple[str, str]:
        """Return (json document, Subscription-Userinfo value).

        The document is "" when the subscriber has no usable vless link.
        """
        payload = self.sub_service.get_subs(sub_id, host)

        configs = []
        for link in payload.links:
            if not link.startswith("vless://"):
                continue
            try:
                parsed = parse_vless_uri(link)
            except ValueError as e:
                logger.warning(f"Skipping unparsable vless link for {sub_id}: {e}")
                continue
            configs.append(self.build_config(parsed))

        header = payload.traffic.usage_header()
        if not configs:
            return "", header
        return json.dumps(configs, indent=2, ensure_ascii=False), header

    def build_config(self, parsed: dict) -> dict:
        proxy = build_vless_outbound(parsed)
        if self.mux:
            proxy["mux"] = copy.deepcopy(self.mux)

        direct = {"tag": "direct", "protocol": "freedom", "settings": {}}
        if self.noises:
            direct["settings"]["noises"] = copy.deepcopy(self.noises)

        outbounds: List[dict] = [proxy, direct]
        if self.fragment:
            fragment = copy.deepcopy(self.fragment)
            fragment_tag = fragment.setdefault("tag", "fragment")
            proxy["streamSettings"]["sockopt"] = {"dialerProxy": fragment_tag}
            outbounds.append(fragment)
        outbounds.append({"tag": "block", "protocol": "blackhole"})

        return {
            "remarks": parsed["remark"],
            "log": {"loglevel": "warning"},
            "inbounds": copy.deepcopy(DEFAULT_INBOUNDS),
            "outbounds": outbounds,
            "routing": {
                "domainStrategy": "AsIs",
                "rules": copy.deepcopy(self.rules) + copy.deepcopy(DEFAULT_RULES),
            },
        }
