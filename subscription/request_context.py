"""Per-request scheme and host resolution."""

from dataclasses import dataclass

from fastapi import Request


@dataclass(frozen=True)
class RequestContext:
    scheme: str
    host: str  # name only, used for link generation
    host_with_port: str  # used to build subscription URLs
    raw_host: str  # shown on the info page


def strip_port(value: str) -> str:
    """Drop the port from host[:port], [v6]:port or a bare v6 address."""
    value = value.strip()
    if value.startswith("["):
        end = value.find("]")
        return value[1:end] if end != -1 else value[1:]
    if value.count(":") == 1:
        return value.split(":", 1)[0]
    return value


def resolve_request(request: Request) -> RequestContext:
    """Derive scheme and host values, preferring forwarding headers.

    Missing headers fall back to the connection itself.
    """
    headers = request.headers
    forwarded_host = headers.get("x-forwarded-host", "").split(",")[0].strip()
    real_ip = headers.get("x-real-ip", "").strip()
    host_header = headers.get("host", "")

    scheme = "http"
    if request.url.scheme == "https" or headers.get("x-forwarded-proto", "").lower() == "https":
        scheme = "https"

    host = strip_port(forwarded_host) if forwarded_host else ""
    if not host:
        host = real_ip
    if not host:
        host = strip_port(host_header)

    host_with_port = forwarded_host or host_header or host
    raw_host = forwarded_host or real_ip or host

    return RequestContext(
        scheme=scheme,
        host=host,
        host_with_port=host_with_port,
        raw_host=raw_host,
    )
