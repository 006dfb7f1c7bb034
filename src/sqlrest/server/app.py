"""FastAPI application for the SQL REST API.

This module sets up the application by:
1. Building the backend, catalog, access policy and table service from config
2. Optionally creating the FastMCP server and combining its routes with the REST routes
3. Mapping every failure onto the ``{statusCode, message, error}`` envelope
4. Tagging each response with a request ID and gating ``/mcp`` behind the bearer check
"""

import asyncio
import logging
import os
from contextlib import AsyncExitStack, asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastmcp import FastMCP
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..auth import StaticTokenVerifier, authenticate
from ..catalog import SchemaCatalog
from ..config import AppConfig, load_config
from ..db.backends import build_backend
from ..db.client import SQLClient
from ..errors import ApiError, AuthError, DiscoveryError
from ..logging_utils import configure_logging, log_extra, new_request_id
from ..policy import AccessPolicy
from ..responses import error_body
from ..service import TableService
from .routes import health_router, router
from .tools import register_tools

MCP_PATH = "/mcp"
REQUEST_ID_HEADER = "X-Request-ID"

log = logging.getLogger(__name__)


def _config_path() -> Path:
    """Get the configuration file path from environment or default."""
    path = os.environ.get("SQLREST_CONFIG", "config.example.yml")
    return Path(path)


def build_service(config: AppConfig) -> TableService:
    client = SQLClient(build_backend(config), config.limits)
    return TableService(
        client,
        SchemaCatalog(client),
        AccessPolicy.from_config(config.access),
        config.limits,
    )


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


async def _api_error(request: Request, exc: ApiError) -> JSONResponse:
    if exc.status_code >= 500:
        log.error(
            exc.message,
            extra=log_extra(request_id=_request_id(request), error_type=type(exc).__name__),
        )
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthError) else None
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.status_code, exc.message, exc.detail or type(exc).__name__),
        headers=headers,
    )


async def _request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    problems = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
    )
    return JSONResponse(
        status_code=400,
        content=error_body(400, "Invalid request", problems or "ValidationError"),
    )


async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = "Endpoint not found" if exc.status_code == 404 else str(exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.status_code, message),
        headers=getattr(exc, "headers", None),
    )


async def _unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    log.exception(
        "Unhandled error", extra=log_extra(request_id=_request_id(request))
    )
    return JSONResponse(
        status_code=500, content=error_body(500, "Internal server error", "InternalError")
    )


def create_app(
    config: AppConfig | None = None,
    config_path: Path | None = None,
    service: TableService | None = None,
) -> FastAPI:
    """Create the combined REST and MCP application.

    Args:
        config: Loaded configuration. If None, it is read from ``config_path``.
        config_path: Optional path to config file. If None, uses default from environment.
        service: Prebuilt table service, mostly for tests.

    Returns:
        FastAPI: the application, ready for uvicorn
    """
    if config is None:
        config = load_config(config_path or _config_path())
    configure_logging(config.observability.log_level)

    service = service or build_service(config)
    verifier = StaticTokenVerifier(config.auth.tokens)

    mcp_app = None
    if config.server.mcp_enabled:
        mcp_server = FastMCP(name="sqlrest")
        register_tools(mcp_server, service)
        mcp_app = mcp_server.http_app(path=MCP_PATH)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        async with AsyncExitStack() as stack:
            if mcp_app is not None:
                await stack.enter_async_context(mcp_app.lifespan(app))
            if config.catalog.eager_discovery:
                try:
                    await asyncio.to_thread(service.catalog.discover)
                except DiscoveryError:
                    log.warning(
                        "Startup discovery failed; tables will be discovered on first request"
                    )
            yield

    app = FastAPI(
        title="SQL REST API",
        description="Generic REST API over the tables of a relational database",
        version="0.1.0",
        routes=list(mcp_app.routes) if mcp_app is not None else None,
        lifespan=lifespan,
    )
    app.include_router(health_router)
    app.include_router(router)

    app.state.config = config
    app.state.service = service
    app.state.token_verifier = verifier

    app.add_exception_handler(ApiError, _api_error)
    app.add_exception_handler(RequestValidationError, _request_validation_error)
    app.add_exception_handler(StarletteHTTPException, _http_error)
    app.add_exception_handler(Exception, _unhandled_error)

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        """Assign a request ID and apply the bearer gate to the MCP endpoint."""
        incoming = None
        if config.observability.propagate_request_ids:
            incoming = request.headers.get(REQUEST_ID_HEADER)
        request_id = new_request_id(incoming)
        request.state.request_id = request_id

        if mcp_app is not None and request.url.path.startswith(MCP_PATH):
            try:
                request.state.identity = authenticate(
                    verifier, request.headers.get("authorization")
                )
            except AuthError as exc:
                response = await _api_error(request, exc)
                response.headers[REQUEST_ID_HEADER] = request_id
                return response

        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    if config.server.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=config.server.cors_origins,
            allow_methods=["GET", "POST", "PUT", "DELETE"],
            allow_headers=["Authorization", "Content-Type", REQUEST_ID_HEADER],
            expose_headers=[REQUEST_ID_HEADER, "Location"],
        )

    return app
