"""API server for ``chatrelay serve``.

Builds the FastAPI app with CORS, request ids, the shared error envelope and
the ``/api/v1/`` routers, and runs it under uvicorn.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from chatrelay.api.services import ChatServices, build_services
from chatrelay.config import Settings, get_settings

logger = logging.getLogger(__name__)

EXPOSED_HEADERS = ["X-Request-Id", "X-Model-Id", "X-Tool-Choice"]


def create_api_app(settings: Settings | None = None, services: ChatServices | None = None):
    """Build the FastAPI application.

    Pass *services* to inject stores or a model client (tests do); otherwise
    the defaults are built from *settings*.
    """
    from fastapi import FastAPI, Request
    from fastapi.middleware.cors import CORSMiddleware

    from chatrelay import __version__
    from chatrelay.api.errors import install_exception_handlers
    from chatrelay.api.v1 import mount_v1_routers
    from chatrelay.chat.model_resolver import BYOK_HEADER
    from chatrelay.store.models import generate_id

    settings = settings or (services.settings if services else get_settings())
    services = services or build_services(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await services.aclose()

    app = FastAPI(
        title="ChatRelay API",
        description="Streaming chat relay with session persistence.",
        version=__version__,
        docs_url="/api/v1/docs",
        redoc_url="/api/v1/redoc",
        openapi_url="/api/v1/openapi.json",
        lifespan=lifespan,
    )
    app.state.services = services

    # --- CORS -----------------------------------------------------------
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_origin_regex=r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$",
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-User-Id", "X-Request-Id", BYOK_HEADER],
        expose_headers=EXPOSED_HEADERS,
    )

    # --- Request ids ----------------------------------------------------
    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next):
        request_id = request.headers.get("X-Request-Id") or generate_id()
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers.setdefault("X-Request-Id", request_id)
        return response

    install_exception_handlers(app)

    # --- Mount all /api/v1/ routers -------------------------------------
    mount_v1_routers(app)

    return app


def run_api_server(
    host: str = "127.0.0.1",
    port: int = 8890,
    dev: bool = False,
) -> None:
    """Start the API server."""
    import uvicorn

    logger.info("ChatRelay API docs: http://%s:%d/api/v1/docs", host, port)

    if dev:
        import pathlib

        src_dir = str(pathlib.Path(__file__).resolve().parent.parent)
        uvicorn.run(
            "chatrelay.api.serve:create_api_app",
            factory=True,
            host=host,
            port=port,
            reload=True,
            reload_dirs=[src_dir],
            reload_includes=["*.py"],
            log_level="debug",
        )
    else:
        app = create_api_app()
        uvicorn.run(app, host=host, port=port)
