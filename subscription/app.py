"""FastAPI application for subscription server."""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import Response

from config.settings import VERSION
from services import JsonSubProvider, SubProvider

from .config import ServerConfig
from .page import normalize_base_path
from .request_context import strip_port
from .router import SubController

logger = logging.getLogger(__name__)


def create_app(
    config: ServerConfig,
    sub_service: SubProvider,
    sub_json_service: JsonSubProvider,
) -> FastAPI:
    """Create and configure FastAPI application.

    Args:
        config: Settings snapshot for this server run
        sub_service: Link-list data service
        sub_json_service: JSON config data service

    Returns:
        Configured FastAPI app
    """
    app = FastAPI(
        title="Subscription Server",
        version=VERSION,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    base_path = normalize_base_path(config.links_path)

    @app.middleware("http")
    async def attach_base_path(request: Request, call_next):
        request.state.base_path = base_path
        return await call_next(request)

    if config.domain:
        domain = config.domain

        # Registered last so it runs first
        @app.middleware("http")
        async def validate_domain(request: Request, call_next):
            host = strip_port(request.headers.get("host", ""))
            if host != domain:
                logger.debug(f"Rejected request for host {host!r}")
                return Response(status_code=403)
            return await call_next(request)

    controller = SubController(config, sub_service, sub_json_service)
    app.include_router(controller.build_router())

    logger.info(
        f"FastAPI application created: links={config.links_path}, "
        f"json={config.json_path if config.json_enabled else 'disabled'}"
    )
    return app
