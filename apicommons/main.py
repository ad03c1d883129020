"""
ApiCommons — FastAPI Application Factory
=========================================

What:  Builds a FastAPI app with the ApiCommons pipeline wired in.
How:   create_app() registers the SQLAlchemy resource context in a
       ServiceContainer, attaches the request-context, error-boundary and
       transaction-scope middleware, renders framework errors (404, 405,
       422, HTTPException) as envelopes, mounts the health route and any
       routers the caller passes.
Who:   Applications (``create_app(routers=[...], registry=registry)``) and
       uvicorn (``apicommons.main:app``).

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │  Middleware Chain:                                       │
    │  ┌────────────┐  ┌────────────────┐  ┌────────────────┐  │
    │  │ Req Context│→ │ Error Boundary │→ │ Transaction    │→ routes
    │  └────────────┘  └────────────────┘  └────────────────┘  │
    └──────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  configure logging, freeze the transaction registry
    Shutdown: dispose the database engine
"""

import logging
import sys
from contextlib import asynccontextmanager
from http import HTTPStatus
from typing import AsyncGenerator, Iterable, Optional

from fastapi import APIRouter, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from apicommons import __version__
from apicommons.config import Settings, settings
from apicommons.container import ServiceContainer
from apicommons.database import Database
from apicommons.metadata import TransactionRegistry
from apicommons.middleware.error_boundary import FailureRenderer, render_failure_envelope
from apicommons.middleware.logging import RequestContextMiddleware, request_id_var
from apicommons.middleware.transaction import TransactionalRoute
from apicommons.pipeline import use_api_commons
from apicommons.routes import health
from apicommons.schemas.response import ApiResponse, envelope_response

logger = logging.getLogger(__name__)


def setup_logging(config: Settings = settings) -> None:
    """
    Configure root logging once per process.

    Format: 2024-01-15T12:00:00 [INFO] apicommons.access: GET /api/x 200 ...
    """
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )
    for name in config.quiet_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Render framework-raised errors as ApiResponse envelopes.

    Handler hierarchy:
        HTTPException           → its own status (404/405 from routing, or
                                  raised by a handler), detail as message
        RequestValidationError  → 422, one message per invalid field

    Everything else propagates to the error boundary.
    """

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        rid = request_id_var.get("")
        detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
        logger.info("[%s] HTTP %d on %s: %s", rid, exc.status_code, request.url.path, detail)
        envelope = ApiResponse.fail(exc.status_code, detail, {"path": request.url.path, "request_id": rid})
        return envelope_response(envelope, headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        rid = request_id_var.get("")
        messages = [
            f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg', 'invalid')}"
            for error in exc.errors()
        ] or ["Request validation failed"]
        logger.warning("[%s] Request validation failed on %s: %s", rid, request.url.path, messages)
        envelope = ApiResponse.fail(
            HTTPStatus.UNPROCESSABLE_ENTITY,
            messages[0],
            {"path": request.url.path, "request_id": rid},
        )
        for message in messages[1:]:
            envelope.add_message(message)
        return envelope_response(envelope)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    setup_logging(app.state.settings)
    app.state.registry.freeze()
    logger.info(
        "%s %s starting: %d transactional endpoint(s)",
        app.title,
        __version__,
        len(app.state.registry),
    )

    yield

    logger.info("%s shutting down...", app.title)
    await app.state.database.dispose()
    logger.info("Shutdown complete.")


def create_app(
    config: Settings = settings,
    registry: Optional[TransactionRegistry] = None,
    container: Optional[ServiceContainer] = None,
    database: Optional[Database] = None,
    routers: Iterable[APIRouter] = (),
    failure_renderer: FailureRenderer = render_failure_envelope,
    transaction_failure_renderer: Optional[FailureRenderer] = None,
) -> FastAPI:
    """
    Create and configure a FastAPI application.

    Args:
        config:        Settings (defaults to the environment-loaded singleton)
        registry:      Transaction declarations for the routers' endpoints
        container:     Resource factories; the database context is added
                       under ``config.default_context_key`` unless that key
                       is already registered
        database:      Database wiring (built from ``config`` when omitted)
        routers:       Application routers to include; declared endpoints
                       need ``APIRouter(route_class=TransactionalRoute)``
        failure_renderer:              Error boundary renderer
        transaction_failure_renderer:  Optional renderer for the transaction
                                       stage (None re-raises to the boundary)
    """
    registry = registry if registry is not None else TransactionRegistry()
    container = container if container is not None else ServiceContainer()
    database = database if database is not None else Database(config)

    if not container.is_registered(config.default_context_key):
        container.register(config.default_context_key, database.resource_context)

    app = FastAPI(title=config.app_title, version=__version__, lifespan=lifespan)
    app.router.route_class = TransactionalRoute
    app.state.settings = config
    app.state.registry = registry
    app.state.container = container
    app.state.database = database

    # Last added runs first: RequestContext → ErrorBoundary → TransactionScope
    use_api_commons(app, registry, container, failure_renderer, transaction_failure_renderer)
    app.add_middleware(RequestContextMiddleware)
    register_exception_handlers(app)

    app.include_router(health.router)
    for router in routers:
        app.include_router(router)

    return app


app = create_app()
