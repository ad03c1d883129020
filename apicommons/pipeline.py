"""
ApiCommons — Pipeline Registration
===================================

What:  The wiring surface applications use to put the two pipeline stages
       on a FastAPI/Starlette app.
How:   Thin wrappers over ``app.add_middleware``. Starlette runs middleware
       in reverse order of addition, so use_api_commons() adds the
       transaction scope first and the error boundary last, making the
       boundary the outer stage.

Usage:
    registry = TransactionRegistry()
    container = ServiceContainer()
    container.register("default", database.resource_context)

    use_api_commons(app, registry, container, render_failure_envelope)

    Declared endpoints must live on routers built with
    APIRouter(route_class=TransactionalRoute).
"""

from typing import Optional

from starlette.applications import Starlette

from apicommons.container import ServiceContainer
from apicommons.exceptions import ConfigurationError
from apicommons.metadata import TransactionRegistry
from apicommons.middleware.error_boundary import ErrorBoundaryMiddleware, FailureRenderer
from apicommons.middleware.transaction import TransactionScopeMiddleware


def attach_error_boundary(
    app: Starlette,
    failure_renderer: FailureRenderer,
    container: Optional[ServiceContainer] = None,
) -> None:
    """Add the error boundary. The renderer is mandatory."""
    if failure_renderer is None:
        raise ConfigurationError("attach_error_boundary requires a failure renderer")
    app.add_middleware(
        ErrorBoundaryMiddleware,
        failure_renderer=failure_renderer,
        container=container,
    )


def attach_transaction_scope(
    app: Starlette,
    registry: TransactionRegistry,
    container: ServiceContainer,
    failure_renderer: Optional[FailureRenderer] = None,
) -> None:
    """Add the transaction scope. Without a renderer, failures are re-raised."""
    app.add_middleware(
        TransactionScopeMiddleware,
        registry=registry,
        container=container,
        failure_renderer=failure_renderer,
    )


def use_api_commons(
    app: Starlette,
    registry: TransactionRegistry,
    container: ServiceContainer,
    failure_renderer: FailureRenderer,
    transaction_failure_renderer: Optional[FailureRenderer] = None,
) -> None:
    """Attach both stages with the error boundary outermost."""
    attach_transaction_scope(app, registry, container, transaction_failure_renderer)
    attach_error_boundary(app, failure_renderer, container)
