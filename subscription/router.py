"""Subscription server API routes."""

import base64
import logging

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse, PlainTextResponse, Response

from services import JsonSubProvider, SubProvider

from .config import ServerConfig
from .headers import apply_common_headers, parse_custom_headers
from .page import (
    build_page_data,
    build_urls,
    render_custom_page,
    render_fallback_page,
    subscriber_base_path,
)
from .request_context import resolve_request

logger = logging.getLogger(__name__)

ERROR_BODY = "Error!"


def route_path(prefix: str) -> str:
    """Route pattern matching exactly one segment below prefix."""
    prefix = "/" + prefix.strip("/")
    if prefix == "/":
        return "/{subid}"
    return prefix + "/{subid}"


def wants_html(request: Request) -> bool:
    """Browsers (Accept: text/html), ?html=1 and ?view=html get the info page."""
    accept = request.headers.get("accept", "").lower()
    return (
        "text/html" in accept
        or request.query_params.get("html") == "1"
        or request.query_params.get("view", "").lower() == "html"
    )


def error_response() -> PlainTextResponse:
    return PlainTextResponse(content=ERROR_BODY, status_code=400)


class SubController:
    """Link and json delivery endpoints for one ServerConfig.

    Handlers are plain functions, so FastAPI runs each request in its
    threadpool and blocking data-service calls do not stall the loop.
    """

    def __init__(
        self,
        config: ServerConfig,
        sub_service: SubProvider,
        sub_json_service: JsonSubProvider,
    ):
        self.config = config
        self.sub_service = sub_service
        self.sub_json_service = sub_json_service
        self.custom_headers = parse_custom_headers(config.custom_headers)

    def build_router(self) -> APIRouter:
        router = APIRouter()
        router.add_api_route(
            route_path(self.config.links_path),
            self.subs,
            methods=["GET"],
            include_in_schema=False,
        )
        if self.config.json_enabled:
            router.add_api_route(
                route_path(self.config.json_path),
                self.sub_jsons,
                methods=["GET"],
                include_in_schema=False,
            )
        return router

    def subs(self, subid: str, request: Request) -> Response:
        """Serve subscription links as text, base64 or an HTML info page."""
        ctx = resolve_request(request)
        try:
            payload = self.sub_service.get_subs(subid, ctx.host)
        except Exception as e:
            logger.warning(f"Subscription lookup failed: sub_id={subid}: {e}")
            return error_response()

        if not payload.links:
            logger.info(f"Subscription has no links: sub_id={subid}")
            return error_response()

        result = "".join(link + "\n" for link in payload.links)

        if wants_html(request):
            return self._render_page(subid, request, ctx, payload)

        body = result
        if self.config.encrypt:
            body = base64.b64encode(result.encode("utf-8")).decode("ascii")

        response = PlainTextResponse(content=body)
        apply_common_headers(
            response.headers,
            payload.traffic.usage_header(),
            self.config.update_interval,
            self.config.title,
            self.custom_headers,
        )
        logger.debug(f"Subscription served: sub_id={subid}, links={len(payload.links)}")
        return response

    def sub_jsons(self, subid: str, request: Request) -> Response:
        """Serve the JSON client configuration of a subscriber."""
        ctx = resolve_request(request)
        try:
            json_sub, userinfo = self.sub_json_service.get_json(subid, ctx.host)
        except Exception as e:
            logger.warning(f"JSON subscription lookup failed: sub_id={subid}: {e}")
            return error_response()

        if not json_sub:
            return error_response()

        response = Response(content=json_sub, media_type="application/json")
        apply_common_headers(
            response.headers,
            userinfo,
            self.config.update_interval,
            self.config.title,
            self.custom_headers,
        )
        return response

    def _render_page(self, subid, request, ctx, payload) -> HTMLResponse:
        sub_url, sub_json_url = build_urls(
            ctx.scheme,
            ctx.host_with_port,
            self.config.links_path,
            self.config.json_path,
            subid,
            self.config.sub_uri,
            self.config.sub_json_uri,
        )
        if not self.config.json_enabled:
            sub_json_url = ""

        base_path = getattr(request.state, "base_path", "/")
        page = build_page_data(
            subid,
            ctx.raw_host,
            payload,
            sub_url,
            sub_json_url,
            subscriber_base_path(base_path, subid),
        )

        if self.config.custom_html:
            rendered = render_custom_page(self.config.custom_html, page)
            if rendered is not None:
                return HTMLResponse(content=rendered)
        return HTMLResponse(content=render_fallback_page(page))
