"""Subscription info page: view model, URL building and rendering."""

import html
import logging
from dataclasses import asdict, dataclass, field
from typing import List, Optional, Tuple

from jinja2.sandbox import SandboxedEnvironment

from config.settings import VERSION
from services import SubscriptionPayload, format_traffic

from .request_context import strip_port

logger = logging.getLogger(__name__)

UNLIMITED = "∞"

_template_env = SandboxedEnvironment(autoescape=True)


@dataclass
class PageData:
    """Variables available to the info page template."""

    sid: str
    host: str
    base_path: str
    download: str
    upload: str
    total: str
    used: str
    remained: str
    remained_byte: Optional[int]  # None when traffic is unlimited
    expire: int  # unix seconds, 0 = never
    last_online: int  # unix milliseconds
    download_byte: int
    upload_byte: int
    total_byte: int
    sub_url: str
    sub_json_url: str
    links: List[str] = field(default_factory=list)
    result: str = ""


def normalize_base_path(links_path: str) -> str:
    """Base path for asset URLs; always ends with "/"."""
    if not links_path.startswith("/"):
        links_path = "/" + links_path
    if not links_path.endswith("/"):
        links_path += "/"
    return links_path


def subscriber_base_path(base_path: str, sub_id: str) -> str:
    if base_path == "/":
        return f"/{sub_id}/"
    return f"{base_path.rstrip('/')}/{sub_id}/"


def _join_path_with_id(base: str, sub_id: str) -> str:
    if base.endswith("/"):
        return base + sub_id
    return f"{base}/{sub_id}"


def _default_base(scheme: str, host_with_port: str) -> str:
    """scheme://host[:port] without the scheme's default port."""
    host = strip_port(host_with_port)
    port = ""
    if host_with_port.startswith("["):
        _, _, port = host_with_port.partition("]:")
    elif host_with_port.count(":") == 1:
        port = host_with_port.split(":", 1)[1]

    if (scheme, port) in (("http", "80"), ("https", "443")):
        host_with_port = f"[{host}]" if ":" in host else host
    return f"{scheme}://{host_with_port}"


def build_urls(
    scheme: str,
    host_with_port: str,
    sub_path: str,
    sub_json_path: str,
    sub_id: str,
    sub_uri: str = "",
    sub_json_uri: str = "",
) -> Tuple[str, str]:
    """Return (subscription URL, json subscription URL).

    Configured URIs win over the request-derived scheme://host.
    """
    if not sub_id:
        return "", ""

    base = _default_base(scheme, host_with_port)
    sub_url = _join_path_with_id(sub_uri or base + normalize_base_path(sub_path), sub_id)
    sub_json_url = _join_path_with_id(sub_json_uri or base + normalize_base_path(sub_json_path), sub_id)
    return sub_url, sub_json_url


def build_page_data(
    sub_id: str,
    host: str,
    payload: SubscriptionPayload,
    sub_url: str,
    sub_json_url: str,
    base_path: str,
) -> PageData:
    traffic = payload.traffic

    total = UNLIMITED
    remained = UNLIMITED
    remained_byte = None
    if traffic.total > 0:
        total = format_traffic(traffic.total)
        remained_byte = max(traffic.total - traffic.used, 0)
        remained = format_traffic(remained_byte)

    return PageData(
        sid=sub_id,
        host=host,
        base_path=base_path,
        download=format_traffic(traffic.down),
        upload=format_traffic(traffic.up),
        total=total,
        used=format_traffic(traffic.used),
        remained=remained,
        remained_byte=remained_byte,
        expire=traffic.expire_seconds,
        last_online=payload.last_online,
        download_byte=traffic.down,
        upload_byte=traffic.up,
        total_byte=traffic.total,
        sub_url=sub_url,
        sub_json_url=sub_json_url,
        links=list(payload.links),
        result="".join(link + "\n" for link in payload.links),
    )


def render_custom_page(source: str, page: PageData) -> Optional[str]:
    """Render a user-supplied Jinja2 template; None if it fails."""
    try:
        template = _template_env.from_string(source)
        return template.render(cur_ver=VERSION, **asdict(page))
    except Exception as e:
        logger.error(f"Custom subscription page failed for {page.sid}: {e}", exc_info=True)
        return None


def render_fallback_page(page: PageData) -> str:
    sid = html.escape(page.sid)
    parts = [
        f"<html><head><title>Subscription {sid}</title></head><body>",
        f"<h1>Subscription {sid}</h1>",
        "<p>Download: {}, Upload: {}, Used: {}, Total: {}</p>".format(
            html.escape(page.download),
            html.escape(page.upload),
            html.escape(page.used),
            html.escape(page.total),
        ),
    ]
    if page.sub_url:
        url = html.escape(page.sub_url)
        parts.append(f'<p>URL: <a href="{url}">{url}</a></p>')
    parts.append("</body></html>")
    return "".join(parts)
